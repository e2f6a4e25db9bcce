"""
Document model — an identity document attached to a Customer.

The row holds metadata only. The uploaded file lives in the document
store and file_path points into it (relative to UPLOAD_DIR); the database
does not own the bytes. The customer service keeps the two consistent:
whenever a Document row exists, the file at file_path exists too.

Card number storage:
  - card_number_encrypted: the formatted number, Fernet-encrypted
  - card_number: read/write property that encrypts/decrypts transparently

Aadhaar and PAN numbers are sensitive identifiers, so they are
encrypted (recoverable for display) rather than hashed.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, LargeBinary, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from customer_vault.database import Base
from customer_vault.security import decrypt_value, encrypt_value


class DocumentType(str, enum.Enum):
    """
    Accepted identity documents.

    Inherits from str so the value serializes naturally to JSON and
    compares equal to the plain upper-case name.
    """
    AADHAR = "AADHAR"
    PAN = "PAN"
    PASSPORT = "PASSPORT"
    LICENCE = "LICENCE"


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType),
        nullable=False,
    )

    card_number_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    # Stored file name (unique, generated by the document store)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Path inside the document store, e.g. "documents/pan-1718000000000-123456789.pdf"
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    customer: Mapped["Customer"] = relationship(
        back_populates="documents",
    )

    @property
    def card_number(self) -> str:
        return decrypt_value(self.card_number_encrypted)

    @card_number.setter
    def card_number(self, value: str) -> None:
        self.card_number_encrypted = encrypt_value(value)
