"""
FastAPI dependencies for authentication and the shared collaborators.

Collaborators:
  The credential verifier, session store, document store and email sender
  are built once from settings and handed out by the get_* providers
  below. Tests swap them through app.dependency_overrides.

Authentication chain (every protected endpoint):

  bearer token ──> CredentialVerifier.check_token   (InvalidToken / Expired)
        │
  request ──> DeviceMetadata ──> SessionStore.validate_session
        │                         (SessionRejected if no active session
        │                          for this token on this device)
        └──> user still exists and is active          (InvalidToken)
                  └──> SessionStore.touch ──> TokenClaims principal

A token that verifies cryptographically is still rejected when replayed
from a device fingerprint it was not issued to.
"""

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from customer_vault.config import settings
from customer_vault.database import get_db
from customer_vault.exceptions import InvalidTokenError, SessionRejectedError
from customer_vault.fingerprint import DeviceMetadata
from customer_vault.models.user import User
from customer_vault.schemas.auth import TokenClaims
from customer_vault.security import CredentialVerifier
from customer_vault.services.email_service import EmailSender, LoggingEmailSender
from customer_vault.services.session_service import SessionStore
from customer_vault.storage import DocumentStore


# "Authorization: Bearer <token>"; tokenUrl feeds Swagger UI's "Authorize" button
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

credential_verifier = CredentialVerifier.from_settings()
session_store = SessionStore.from_settings()
document_store = DocumentStore.from_settings()
email_sender: EmailSender = LoggingEmailSender()


def get_credential_verifier() -> CredentialVerifier:
    return credential_verifier


def get_session_store() -> SessionStore:
    return session_store


def get_document_store() -> DocumentStore:
    return document_store


def get_email_sender() -> EmailSender:
    return email_sender


def get_device_metadata(request: Request) -> DeviceMetadata:
    return DeviceMetadata.from_request(request, trust_forwarded_for=settings.TRUST_FORWARDED_FOR)


async def get_current_principal(
    token: str = Depends(oauth2_scheme),
    metadata: DeviceMetadata = Depends(get_device_metadata),
    db: AsyncSession = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    sessions: SessionStore = Depends(get_session_store),
) -> TokenClaims:
    """
    Authenticate the request: valid token AND an active session for this device.

    Returns:
        The verified claims {user_id, email, name}.

    Raises:
        InvalidTokenError / TokenExpiredError: The token itself is bad.
        SessionRejectedError: No active session matches (token, device).
    """
    claims = verifier.check_token(token)

    session = await sessions.validate_session(db, token, metadata)
    if session is None or session.user_id != claims.user_id:
        raise SessionRejectedError()

    user = await db.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise InvalidTokenError("Invalid token - user not found")

    await sessions.touch(db, session)
    return claims
