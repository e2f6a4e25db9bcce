"""
Customer model — the root of the customer aggregate.

A Customer is owned by exactly one User and has exactly one Address and
(in practice) one Document. Deleting a Customer cascades to both, at the
ORM level (cascade="all, delete-orphan") and at the database level
(ondelete="CASCADE" on the child foreign keys).

The child relationships load eagerly with lazy="selectin": the aggregate
is always read as a whole, and async sessions cannot lazy-load on
attribute access.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from customer_vault.database import Base


class Customer(Base):
    __tablename__ = "customers"

    # Email is unique per owning user, not globally
    __table_args__ = (
        UniqueConstraint("user_id", "email", name="uq_customers_user_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Contact phone number
    number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

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

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="customers",
    )

    address: Mapped["Address"] = relationship(
        back_populates="customer",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    documents: Mapped[list["Document"]] = relationship(
        back_populates="customer",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Document.created_at",
    )

    @property
    def document(self) -> "Document | None":
        """The active document (storage allows more, the API exposes one)."""
        return self.documents[0] if self.documents else None
