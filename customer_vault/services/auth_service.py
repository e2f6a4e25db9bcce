"""
Authentication service — signup, login, logout and password flows.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses.

Signup flow:
  1. Check if email is already registered (the unique index on
     users.email catches a concurrent signup that slips past the check)
  2. Hash the password with Argon2id
  3. Create the User, mint a bearer token
  4. Create a device session for (user, fingerprint) — one commit for both

Login flow:
  1. Look up user by email, verify password
  2. Mint a bearer token
  3. Create a device session (may silently evict the oldest session on
     this device)

Security notes:
  - Login returns the same error for "wrong password" and "email not found"
    to prevent user enumeration attacks
  - forgot_password answers identically whether or not the email exists
  - Reset codes are 6 random digits from `secrets`, valid for 15 minutes,
    and cleared after use
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from customer_vault.exceptions import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidResetCodeError,
    NotFoundError,
)
from customer_vault.fingerprint import DeviceMetadata
from customer_vault.models.customer import Customer
from customer_vault.models.user import User
from customer_vault.security import CredentialVerifier
from customer_vault.services.email_service import EmailSender
from customer_vault.services.session_service import SessionStore


logger = logging.getLogger(__name__)

RESET_CODE_LENGTH = 6


def _generate_reset_code(length: int = RESET_CODE_LENGTH) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


async def _email_registered(db: AsyncSession, email: str) -> bool:
    result = await db.execute(select(User.id).where(User.email == email))
    return result.first() is not None


async def signup(
    db: AsyncSession,
    verifier: CredentialVerifier,
    sessions: SessionStore,
    name: str,
    email: str,
    password: str,
    metadata: DeviceMetadata,
) -> tuple[User, str]:
    """
    Register a new user and log them in on the calling device.

    Returns:
        Tuple of (User instance, bearer token).

    Raises:
        DuplicateEmailError: If the email is already registered.
        PersistenceError: If the user/session transaction fails.
    """
    if await _email_registered(db, email):
        raise DuplicateEmailError(email)

    user = User(
        name=name,
        email=email,
        hashed_password=verifier.hash_password(password),
    )
    db.add(user)
    try:
        # Flush to get user.id assigned (needed for the token and session)
        await db.flush()

        token = verifier.mint_token(user.id, user.email, user.name)
        # Commits the user together with the session
        await sessions.create_session(db, user.id, token, metadata)
    except IntegrityError as exc:
        # A concurrent signup registered the email after the check above
        await db.rollback()
        raise DuplicateEmailError(email) from exc

    logger.info("User signed up", extra={"user_id": user.id})
    return user, token


async def login(
    db: AsyncSession,
    verifier: CredentialVerifier,
    sessions: SessionStore,
    email: str,
    password: str,
    metadata: DeviceMetadata,
) -> tuple[User, str]:
    """
    Authenticate a user and open a session on the calling device.

    Raises:
        InvalidCredentialsError: Unknown email, wrong password, or disabled user.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for every case, so emails cannot be enumerated
    if not user:
        raise InvalidCredentialsError()

    if not verifier.verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = verifier.mint_token(user.id, user.email, user.name)
    await sessions.create_session(db, user.id, token, metadata)

    logger.info("User logged in", extra={"user_id": user.id})
    return user, token


async def logout(db: AsyncSession, sessions: SessionStore, token: str) -> None:
    revoked = await sessions.revoke(db, token)
    logger.info("Logged out, %d session(s) revoked", revoked)


async def forgot_password(
    db: AsyncSession,
    mailer: EmailSender,
    email: str,
    expire_minutes: int = 15,
) -> None:
    """
    Issue a reset code for a known email and hand it to the mailer.

    Unknown emails return silently so the response can't reveal whether
    an account exists.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        return

    user.reset_code = _generate_reset_code()
    user.reset_code_expires = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    await db.flush()

    await mailer.send_reset_code(user.email, user.reset_code, user.name)


async def reset_forgotten_password(
    db: AsyncSession,
    verifier: CredentialVerifier,
    email: str,
    reset_code: str,
    new_password: str,
) -> None:
    """
    Set a new password using an emailed reset code.

    Raises:
        InvalidResetCodeError: No user with this email holds this unexpired code.
    """
    result = await db.execute(
        select(User).where(
            User.email == email,
            User.reset_code.is_not(None),
            User.reset_code_expires > datetime.now(timezone.utc),
        )
    )
    user = result.scalar_one_or_none()
    if user is None or not secrets.compare_digest(user.reset_code, reset_code):
        raise InvalidResetCodeError()

    user.hashed_password = verifier.hash_password(new_password)
    user.reset_code = None
    user.reset_code_expires = None
    await db.flush()
    logger.info("Password reset with code", extra={"user_id": user.id})


async def change_password(
    db: AsyncSession,
    verifier: CredentialVerifier,
    email: str,
    password: str,
    new_password: str,
) -> None:
    """
    Replace a password when the current one is known.

    Raises:
        InvalidCredentialsError: Unknown email or wrong current password.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or not verifier.verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    user.hashed_password = verifier.hash_password(new_password)
    await db.flush()
    logger.info("Password changed", extra={"user_id": user.id})


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> tuple[User, int]:
    """
    Returns:
        Tuple of (User, number of customers the user owns).
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")

    total_customers = (
        await db.execute(
            select(func.count()).select_from(Customer).where(Customer.user_id == user_id)
        )
    ).scalar_one()
    return user, total_customers
