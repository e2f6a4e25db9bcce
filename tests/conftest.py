"""
Test fixtures for the Customer Vault test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - document_store: File store rooted in pytest's tmp_path
  - session_store / verifier / mailer: Fresh collaborators per test
  - client: Async HTTP test client on "device A" (unauthenticated)
  - other_device_client: A second client with a different User-Agent,
    i.e. a different device fingerprint
  - authenticated_client: device A with a signed-up user and bearer token
  - second_authenticated_client: device B with a second user
  - create_customer: posts a valid customer form + document upload
  - stored_files: lists the files currently in the test document store

Key design decisions:
  - get_db and the collaborator providers are overridden, so the
    application code runs exactly as in production but against the test
    database, a temporary upload directory and a recording mailer.
  - Sessions are bound to the device fingerprint, so each simulated user
    gets its own client (own User-Agent). Sharing one client between two
    users would make the second login evict the first.
"""

import os

from cryptography.fernet import Fernet

# Must be in place before customer_vault.config is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DOCUMENT_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from customer_vault.database import Base, get_db
from customer_vault.dependencies import (
    get_credential_verifier,
    get_document_store,
    get_email_sender,
    get_session_store,
)
from customer_vault.main import app
from customer_vault.security import CredentialVerifier
from customer_vault.services.email_service import EmailSender
from customer_vault.services.session_service import SessionStore
from customer_vault.storage import DocumentStore


TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_SECRET = "test-secret-key-not-for-production"

DEVICE_A = "Mozilla/5.0 (pytest device A)"
DEVICE_B = "Mozilla/5.0 (pytest device B)"

PDF_BYTES = b"%PDF-1.4\n% test identity document\n"


class RecordingEmailSender(EmailSender):
    """Keeps sent reset codes in memory instead of mailing them."""

    def __init__(self):
        self.sent: list[dict] = []

    async def send_reset_code(self, email: str, reset_code: str, user_name: str) -> None:
        self.sent.append({"email": email, "reset_code": reset_code, "user_name": user_name})


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def document_store(tmp_path):
    return DocumentStore(tmp_path / "uploads", max_upload_bytes=1024 * 1024)


@pytest.fixture
def session_store():
    return SessionStore(max_device_sessions=1)


@pytest.fixture
def verifier():
    return CredentialVerifier(secret_key=TEST_SECRET)


@pytest.fixture
def mailer():
    return RecordingEmailSender()


@pytest.fixture
def stored_files(document_store):
    """Returns a callable listing the files currently in the test store."""

    def _list() -> list:
        directory = document_store.root / "documents"
        return sorted(directory.iterdir()) if directory.exists() else []

    return _list


@pytest_asyncio.fixture
async def app_overrides(session_factory, document_store, session_store, verifier, mailer):
    """Point the app at the test database and test collaborators."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_credential_verifier] = lambda: verifier
    app.dependency_overrides[get_email_sender] = lambda: mailer
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app_overrides):
    """Async HTTP test client on device A."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"User-Agent": DEVICE_A},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def other_device_client(app_overrides):
    """Async HTTP test client on device B (different fingerprint)."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"User-Agent": DEVICE_B},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Device A with a pre-registered user and bearer token.

    Signs up through the real endpoint, so the device session is created
    exactly as in production.
    """
    response = await client.post(
        "/auth/signup",
        json={
            "name": "Test User",
            "email": "testuser@example.com",
            "password": "SecurePass123!",
        },
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    client.headers["Authorization"] = f"Bearer {response.json()['token']}"
    return client


@pytest_asyncio.fixture
async def second_authenticated_client(other_device_client):
    """A second user on device B, for cross-owner tests."""
    response = await other_device_client.post(
        "/auth/signup",
        json={
            "name": "Second User",
            "email": "seconduser@example.com",
            "password": "SecurePass456!",
        },
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    other_device_client.headers["Authorization"] = f"Bearer {response.json()['token']}"
    return other_device_client


@pytest.fixture
def create_customer():
    """
    Returns an async helper that posts a customer form with a PDF upload.

    Usage:
        response = await create_customer(authenticated_client, email="a@example.com")
    """

    async def _create(
        http_client,
        filename: str = "aadhar_scan.pdf",
        content: bytes = PDF_BYTES,
        content_type: str = "application/pdf",
        **overrides,
    ):
        form = {
            "name": "Ravi Kumar",
            "email": "ravi@example.com",
            "number": "9876543210",
            "street": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pin_code": "560001",
            "country": "India",
            "document_type": "AADHAR",
            "card_number": "123456789012",
        }
        form.update(overrides)
        return await http_client.post(
            "/customers",
            data=form,
            files={"document": (filename, content, content_type)},
        )

    return _create
