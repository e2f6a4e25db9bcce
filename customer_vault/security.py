"""
Security utilities: password hashing, bearer tokens, and Fernet encryption.

This module centralizes all cryptographic operations so they're easy to
audit and update.

1. CREDENTIAL VERIFIER (Argon2 + JWT)
   - Passwords are hashed with Argon2id through passlib's CryptContext.
     The cost parameters are fixed by the context, and every hash embeds
     its own salt and parameters.
   - Bearer tokens are HS256 JWTs carrying {id, email, name} plus a random
     jti, valid for a fixed 7 days.
   - The verifier is built with its secret as a constructor argument. A
     missing secret raises ConfigError on mint/check (and at startup, via
     ensure_configured()).

2. FERNET ENCRYPTION (AES-128-CBC + HMAC-SHA256)
   - Used for identity-document card numbers at rest.
   - The key comes from DOCUMENT_ENCRYPTION_KEY, never from source code.
"""

import uuid
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from customer_vault.config import settings
from customer_vault.exceptions import ConfigError, InvalidTokenError, TokenExpiredError
from customer_vault.schemas.auth import TokenClaims


# ---------------------------------------------------------------------------
# 1. Credential verifier
# ---------------------------------------------------------------------------

# "argon2" is the only active scheme. If it ever changes, passlib keeps
# verifying old hashes and re-hashes with the new scheme ("deprecated='auto'").
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

TOKEN_LIFETIME = timedelta(days=7)


class CredentialVerifier:
    """Stateless password hashing/verification and bearer-token mint/check."""

    def __init__(
        self,
        secret_key: str | None,
        algorithm: str = "HS256",
        token_lifetime: timedelta = TOKEN_LIFETIME,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_lifetime = token_lifetime

    @classmethod
    def from_settings(cls) -> "CredentialVerifier":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            token_lifetime=timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS),
        )

    def ensure_configured(self) -> None:
        if not self.secret_key:
            raise ConfigError("SECRET_KEY is not configured")

    # --- passwords ---

    @staticmethod
    def hash_password(plain_password: str) -> str:
        """
        Hash a plaintext password using Argon2id.

        Returns:
            An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
        """
        return pwd_context.hash(plain_password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """
        Verify a plaintext password against a stored hash.

        Returns False (never raises) when the stored value is not a hash
        passlib recognizes.
        """
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            return False

    # --- tokens ---

    def mint_token(self, user_id: uuid.UUID, email: str, name: str) -> str:
        """
        Sign {id, email, name} into a JWT expiring after the token lifetime.

        Raises:
            ConfigError: If no signing secret is configured.
        """
        self.ensure_configured()
        expire = datetime.now(timezone.utc) + self.token_lifetime
        payload = {
            "id": str(user_id),
            "email": email,
            "name": name,
            # Two logins in the same second must still yield distinct tokens
            "jti": uuid.uuid4().hex,
            "exp": expire,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def check_token(self, token: str) -> TokenClaims:
        """
        Decode and verify a bearer token.

        Raises:
            TokenExpiredError: The signature is fine but "exp" has passed.
            InvalidTokenError: Malformed, forged, or missing claims.
            ConfigError: If no signing secret is configured.
        """
        self.ensure_configured()
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError:
            raise InvalidTokenError()

        try:
            return TokenClaims(
                user_id=uuid.UUID(payload["id"]),
                email=payload["email"],
                name=payload["name"],
            )
        except (KeyError, ValueError, TypeError):
            raise InvalidTokenError()


# ---------------------------------------------------------------------------
# 2. Fernet encryption (for card numbers at rest)
# ---------------------------------------------------------------------------

# Fernet keys are URL-safe base64-encoded 32-byte keys.
_fernet = Fernet(settings.DOCUMENT_ENCRYPTION_KEY.encode())


def encrypt_value(plaintext: str) -> bytes:
    """Encrypt a string value for storage in a LargeBinary column."""
    return _fernet.encrypt(plaintext.encode())


def decrypt_value(ciphertext: bytes) -> str:
    """
    Decrypt a Fernet-encrypted value back to plaintext.

    Raises:
        cryptography.fernet.InvalidToken: If the data is corrupted or
            the encryption key doesn't match.
    """
    return _fernet.decrypt(ciphertext).decode()
