"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Secrets (the token signing key and the document encryption key)
never live in source code — the .env file is gitignored.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

The values below are read once at process start and never mutated. The
session store, credential verifier and document store receive the values
they need as constructor arguments (see customer_vault.dependencies), so
they can be built with different settings in tests.

Usage:
    from customer_vault.config import settings
    print(settings.MAX_DEVICE_SESSIONS)
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Customer Vault API.

    Required at startup:
      - SECRET_KEY: Signs bearer tokens. Left optional here so that a
        missing key surfaces as a ConfigError from the credential verifier
        (raised by the lifespan hook before the app accepts traffic).
      - DOCUMENT_ENCRYPTION_KEY: Fernet key for card numbers at rest.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Customer Vault API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # JSON lines for log shippers; human-readable otherwise
    LOG_JSON: bool = False

    # --- Database ---
    # SQLite for local use; swap to a postgresql+asyncpg URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/vault.db"

    # --- Authentication ---
    SECRET_KEY: str | None = None
    ALGORITHM: str = "HS256"
    # Bearer tokens are valid for a fixed 7 days
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    # --- Device sessions ---
    # How many active sessions may share one device fingerprint
    MAX_DEVICE_SESSIONS: int = Field(default=1, ge=1)
    # Only enable behind a reverse proxy that sets X-Forwarded-For
    TRUST_FORWARDED_FOR: bool = False

    # --- Password reset ---
    RESET_CODE_EXPIRE_MINUTES: int = 15

    # --- Document storage ---
    # REQUIRED: Fernet key for encrypting document card numbers at rest
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    DOCUMENT_ENCRYPTION_KEY: str
    UPLOAD_DIR: str = "./uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
