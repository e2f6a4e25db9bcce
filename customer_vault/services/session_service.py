"""
Session store — device-bound login sessions.

A bearer token proves who the caller is; a session proves the token is
being used from the device it was issued to. Every authenticated request
needs both: a token that verifies AND an active session matching
(token, fingerprint of the current request).

Per-device cap:
  At most `max_device_sessions` active sessions may share one device
  fingerprint. A new login on a full device deactivates the session(s)
  with the oldest last_used_at (ties broken by lowest id) before the new
  session is inserted. Eviction is silent to the caller.

Serialization:
  create_session() is a read-decide-write sequence. Two concurrent logins
  on the same device must not both see "cap not reached" and both insert,
  so creation is serialized twice over:
    1. The Device row for the fingerprint is locked with
       SELECT ... FOR UPDATE, which serializes across processes on
       PostgreSQL (a no-op on SQLite).
    2. A per-fingerprint asyncio lock held from the first read until
       commit, which covers SQLite, where the row lock does nothing.
       Logins on different devices never wait on each other.
  Creation commits before releasing the lock; otherwise a waiting login
  could read the table before the previous insert is visible.

State machine per session:
  Active --touch--> Active --evict/revoke--> Inactive (terminal)
"""

import asyncio
import logging
import uuid
import weakref
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from customer_vault.config import settings
from customer_vault.exceptions import PersistenceError
from customer_vault.fingerprint import DeviceMetadata, fingerprint
from customer_vault.models.device import Device
from customer_vault.models.user_session import UserSession


logger = logging.getLogger(__name__)


class SessionStore:
    """Tracks active sessions keyed by device fingerprint."""

    def __init__(self, max_device_sessions: int = 1):
        if max_device_sessions < 1:
            raise ValueError("max_device_sessions must be at least 1")
        self.max_device_sessions = max_device_sessions
        # Entries vanish once no coroutine holds or awaits the lock
        self._device_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _device_lock(self, device_fingerprint: str) -> asyncio.Lock:
        lock = self._device_locks.get(device_fingerprint)
        if lock is None:
            lock = asyncio.Lock()
            self._device_locks[device_fingerprint] = lock
        return lock

    @classmethod
    def from_settings(cls) -> "SessionStore":
        return cls(max_device_sessions=settings.MAX_DEVICE_SESSIONS)

    async def create_session(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        token: str,
        metadata: DeviceMetadata,
    ) -> UserSession:
        """
        Issue an active session for (user, device), evicting if the device is full.

        Commits the transaction (including anything already pending on `db`,
        such as a freshly created User at signup).

        Raises:
            IntegrityError: A constraint rejected pending caller work (the
                transaction is rolled back first).
            PersistenceError: If the datastore rejects the transaction.
        """
        device_fingerprint = fingerprint(metadata)

        async with self._device_lock(device_fingerprint):
            try:
                await self._lock_device(db, device_fingerprint)

                result = await db.execute(
                    select(UserSession)
                    .where(
                        UserSession.device_fingerprint == device_fingerprint,
                        UserSession.is_active.is_(True),
                    )
                    .order_by(UserSession.last_used_at.asc(), UserSession.id.asc())
                    .with_for_update()
                )
                active_sessions = list(result.scalars().all())

                # Normally evicts exactly one; more only if the cap was lowered
                excess = len(active_sessions) - self.max_device_sessions + 1
                for stale in active_sessions[:max(excess, 0)]:
                    stale.is_active = False
                    logger.info(
                        "Evicted oldest session on device at capacity",
                        extra={"session_id": stale.id, "user_id": stale.user_id},
                    )

                session = UserSession(
                    user_id=user_id,
                    token=token,
                    device_fingerprint=device_fingerprint,
                    user_agent=metadata.user_agent or None,
                    ip_address=metadata.ip_address or None,
                )
                db.add(session)
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("Session creation failed", exc_info=True, extra={"user_id": user_id})
                raise PersistenceError("Could not create session") from exc

        logger.info(
            "Session created",
            extra={"session_id": session.id, "user_id": user_id, "fingerprint": device_fingerprint[:12]},
        )
        return session

    async def _lock_device(self, db: AsyncSession, device_fingerprint: str) -> Device:
        """Ensure the Device row exists, then lock it for this transaction."""
        existing = await db.get(Device, device_fingerprint)
        if existing is None:
            try:
                # SAVEPOINT: a concurrent insert of the same fingerprint must
                # not poison the outer transaction
                async with db.begin_nested():
                    db.add(Device(fingerprint=device_fingerprint))
            except IntegrityError:
                pass

        result = await db.execute(
            select(Device)
            .where(Device.fingerprint == device_fingerprint)
            .with_for_update()  # No-op on SQLite, locks the row on PostgreSQL
        )
        return result.scalar_one()

    async def validate_session(
        self,
        db: AsyncSession,
        token: str,
        metadata: DeviceMetadata,
    ) -> UserSession | None:
        """
        Return the active session matching both the token and this device.

        A valid token replayed from a different fingerprint finds nothing.
        """
        device_fingerprint = fingerprint(metadata)
        result = await db.execute(
            select(UserSession).where(
                UserSession.token == token,
                UserSession.device_fingerprint == device_fingerprint,
                UserSession.is_active.is_(True),
            )
        )
        session = result.scalars().first()
        if session is None:
            logger.warning("No active session for token on this device")
        return session

    async def touch(self, db: AsyncSession, session: UserSession) -> None:
        """Mark the session as just used (the eviction recency signal)."""
        session.last_used_at = datetime.now(timezone.utc)
        await db.flush()

    async def revoke(self, db: AsyncSession, token: str) -> int:
        """
        Deactivate every session carrying this token (logout).

        Returns:
            The number of sessions deactivated.
        """
        result = await db.execute(
            update(UserSession)
            .where(UserSession.token == token, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
        await db.flush()
        return result.rowcount
