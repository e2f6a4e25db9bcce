"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors without importing HTTP
concepts; the handlers registered here translate them into consistent
JSON responses: {"detail": "...", "error_type": "..."}.

Exception hierarchy:
    VaultAPIError (base)
    ├── ConfigError              — required configuration missing (fatal at startup)
    ├── InvalidCredentialsError  — unknown email or wrong password
    ├── InvalidTokenError        — malformed or forged bearer token
    ├── TokenExpiredError        — bearer token past its expiry
    ├── SessionRejectedError     — valid token, but no active session for this device
    ├── InvalidResetCodeError    — password reset code wrong or expired
    ├── DuplicateEmailError      — signup with a registered email
    ├── DuplicateCustomerError   — customer email collision under one owner
    ├── InvalidDocumentError     — unknown document type or bad card number
    ├── InvalidUploadError       — rejected upload (media type, size)
    ├── NotFoundError            — missing, or owned by someone else
    └── PersistenceError         — the datastore transaction failed
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class VaultAPIError(Exception):
    """Base exception for all Customer Vault domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_type: str = "error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


class ConfigError(VaultAPIError):
    """Raised when required configuration (e.g. the signing secret) is missing."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type = "config_error"


# ---------------------------------------------------------------------------
# Authentication errors
# ---------------------------------------------------------------------------

class AuthenticationError(VaultAPIError):
    """Common parent for everything that answers 401."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_failed"


class InvalidCredentialsError(AuthenticationError):
    """
    Raised when login credentials are incorrect.

    The message is identical for "unknown email" and "wrong password" so
    callers cannot enumerate registered accounts.
    """

    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


class InvalidTokenError(AuthenticationError):
    error_type = "invalid_token"

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


class TokenExpiredError(AuthenticationError):
    error_type = "token_expired"

    def __init__(self):
        super().__init__("Token expired")


class SessionRejectedError(AuthenticationError):
    """
    Raised when a token verifies cryptographically but no active session
    matches the (token, device fingerprint) pair — the session was
    superseded, revoked, or never issued for this device.
    """

    error_type = "session_rejected"

    def __init__(self):
        super().__init__("Session is not active for this device")


class InvalidResetCodeError(VaultAPIError):
    error_type = "invalid_reset_code"

    def __init__(self):
        super().__init__("Invalid or expired reset code")


# ---------------------------------------------------------------------------
# Customer aggregate errors
# ---------------------------------------------------------------------------

class DuplicateEmailError(VaultAPIError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class DuplicateCustomerError(VaultAPIError):
    """Raised when the owner already has a customer with this email."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "duplicate_customer"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Customer with email {email} already exists")


class InvalidDocumentError(VaultAPIError):
    error_type = "invalid_document"


class InvalidUploadError(VaultAPIError):
    """Raised by the upload boundary before any bytes reach the file store."""

    error_type = "invalid_upload"

    def __init__(self, detail: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.status_code = status_code
        super().__init__(detail)


class NotFoundError(VaultAPIError):
    """
    Raised when a resource doesn't exist or belongs to another owner.

    Cross-owner access deliberately answers 404 instead of 403 so that
    record ids cannot be tested for existence.
    """

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"

    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(f"{resource} not found")


class PersistenceError(VaultAPIError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type = "persistence_error"

    def __init__(self, detail: str = "Could not save changes"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Every domain error carries its own status code and error_type tag, so
    a handler for the base class plus one for the 401 family (which also
    needs the WWW-Authenticate header) covers the whole hierarchy.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.error_type},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(VaultAPIError)
    async def vault_error_handler(
        request: Request, exc: VaultAPIError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.error_type},
        )
