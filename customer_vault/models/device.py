"""
Device model — one row per device fingerprint ever seen at login.

The row is the lock target for session creation: locking it with
SELECT ... FOR UPDATE serializes every "count active sessions, evict,
insert" sequence for the same fingerprint, even when the fingerprint has
no sessions yet (a lock on the session rows alone would not cover that
case).
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from customer_vault.database import Base


class Device(Base):
    __tablename__ = "devices"

    # SHA-256 hex digest
    fingerprint: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
