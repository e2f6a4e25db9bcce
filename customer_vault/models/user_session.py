"""
UserSession model — one authorized (user, device) pairing.

A session is valid only for the device fingerprint it was issued to: the
bearer token alone is not enough. Sessions are never deleted; they are
deactivated when superseded by a newer login on the same device or when
the user logs out, and an inactive session is never reactivated.

Invariant (enforced by SessionStore, not by a constraint): at most
MAX_DEVICE_SESSIONS rows with is_active = true share a device_fingerprint.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from customer_vault.database import Base


class UserSession(Base):
    __tablename__ = "user_sessions"

    __table_args__ = (
        # validate_session() looks up exactly this triple on every request
        Index("ix_user_sessions_token_device_active", "token", "device_fingerprint", "is_active"),
        Index("ix_user_sessions_device_active", "device_fingerprint", "is_active"),
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

    token: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
    )

    device_fingerprint: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Kept for the user's "where am I logged in" view; not used for matching
    user_agent: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    # Recency signal for eviction; bumped on every authenticated request
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        back_populates="sessions",
    )

    def __repr__(self) -> str:
        return f"<UserSession user={self.user_id} device={self.device_fingerprint[:8]} active={self.is_active}>"
