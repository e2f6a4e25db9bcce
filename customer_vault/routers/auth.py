"""
Authentication router.

Endpoints:
  POST /auth/signup               — Register and get a token (opens a device session)
  POST /auth/login                — Authenticate and get a token (opens a device session)
  POST /auth/logout               — Revoke the caller's session(s) for this token
  POST /auth/forgot-password      — Email a 6-digit reset code
  POST /auth/reset-forgot-password — Set a new password with the reset code
  POST /auth/reset-password       — Set a new password with the current one
  GET  /auth/user                 — Current user profile

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Tokens appear only in response bodies and Authorization headers,
    neither of which is logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from customer_vault.config import settings
from customer_vault.database import get_db
from customer_vault.dependencies import (
    get_credential_verifier,
    get_current_principal,
    get_device_metadata,
    get_email_sender,
    get_session_store,
    oauth2_scheme,
)
from customer_vault.fingerprint import DeviceMetadata
from customer_vault.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetForgottenPasswordRequest,
    SignupRequest,
    TokenClaims,
    UserResponse,
)
from customer_vault.security import CredentialVerifier
from customer_vault.services import auth_service
from customer_vault.services.email_service import EmailSender
from customer_vault.services.session_service import SessionStore

router = APIRouter()


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: SignupRequest,
    metadata: DeviceMetadata = Depends(get_device_metadata),
    db: AsyncSession = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Register a new user and log them in on this device.

    - **name**: 2-50 characters
    - **email**: Must be a valid email format and not already registered
    - **password**: 8-128 characters
    """
    user, token = await auth_service.signup(
        db=db,
        verifier=verifier,
        sessions=sessions,
        name=request.name,
        email=request.email,
        password=request.password,
        metadata=metadata,
    )
    return AuthResponse(user=UserResponse.model_validate(user), token=token)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: LoginRequest,
    metadata: DeviceMetadata = Depends(get_device_metadata),
    db: AsyncSession = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Authenticate with email and password.

    The returned token only works from this device: include it as

        Authorization: Bearer <token>

    Logging in again on the same device (beyond MAX_DEVICE_SESSIONS)
    retires the least recently used session there.
    """
    user, token = await auth_service.login(
        db=db,
        verifier=verifier,
        sessions=sessions,
        email=request.email,
        password=request.password,
        metadata=metadata,
    )
    return AuthResponse(user=UserResponse.model_validate(user), token=token)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Revoke the current session",
)
async def logout(
    token: str = Depends(oauth2_scheme),
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    await auth_service.logout(db=db, sessions=sessions, token=token)
    return MessageResponse(message="User logged out successfully")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset code",
)
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    mailer: EmailSender = Depends(get_email_sender),
):
    """Always answers the same way, whether or not the email is registered."""
    await auth_service.forgot_password(
        db=db,
        mailer=mailer,
        email=request.email,
        expire_minutes=settings.RESET_CODE_EXPIRE_MINUTES,
    )
    return MessageResponse(message="If the email exists, a reset code will be sent")


@router.post(
    "/reset-forgot-password",
    response_model=MessageResponse,
    summary="Reset a password with an emailed code",
)
async def reset_forgotten_password(
    request: ResetForgottenPasswordRequest,
    db: AsyncSession = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
):
    await auth_service.reset_forgotten_password(
        db=db,
        verifier=verifier,
        email=request.email,
        reset_code=request.reset_code,
        new_password=request.new_password,
    )
    return MessageResponse(message="Password reset successfully")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Change a password using the current one",
)
async def change_password(
    request: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
):
    await auth_service.change_password(
        db=db,
        verifier=verifier,
        email=request.email,
        password=request.password,
        new_password=request.new_password,
    )
    return MessageResponse(message="Password reset successfully")


@router.get(
    "/user",
    response_model=CurrentUserResponse,
    summary="Get the current user",
)
async def get_current_user(
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    user, total_customers = await auth_service.get_profile(db, principal.user_id)
    return CurrentUserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
        total_customers=total_customers,
    )
