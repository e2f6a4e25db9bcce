"""
Tests for the customer aggregate (customer + address + document + file).

These tests verify:
  - Creation stores the rows and exactly one file
  - Every rejected creation leaves neither rows nor files behind
  - A database failure after the upload deletes the uploaded file
  - Customers are private to their owner (404, not 403)
  - Listing supports search and pagination
  - Document updates validate the merged type/number pair and only
    delete the previous file once the update has committed
  - Deleting a customer removes rows first, then files, and tolerates
    files that are already gone
"""

import asyncio
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from starlette.datastructures import UploadFile as StarletteUploadFile

from customer_vault.database import Base
from customer_vault.exceptions import DuplicateCustomerError, NotFoundError, PersistenceError
from customer_vault.models.customer import Customer
from customer_vault.models.document import Document
from customer_vault.models.user import User
from customer_vault.schemas.customer import AddressFields, CustomerFields, CustomerUpdateRequest
from customer_vault.services import customer_service


PDF_BYTES = b"%PDF-1.4\n% test identity document\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n replacement scan"


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        result = await db.execute(select(func.count()).select_from(model))
        return result.scalar_one()


ADDRESS = AddressFields(
    street="12 MG Road", city="Bengaluru", state="Karnataka",
    pin_code="560001", country="India",
)


async def _create_with_upload(db, store, owner_id, email: str = "ravi@example.com"):
    """Store a PDF and create a customer around it through the service."""
    return await customer_service.create_customer_with_document(
        db=db,
        store=store,
        owner_id=owner_id,
        customer_fields=CustomerFields(name="Ravi Kumar", email=email, number="9876543210"),
        address_fields=ADDRESS,
        document_type="AADHAR",
        card_number="123456789012",
        upload=store.save(PDF_BYTES, "scan.pdf"),
    )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

class TestCreateCustomer:
    """Tests for POST /customers."""

    async def test_create_success(self, authenticated_client, create_customer, stored_files):
        response = await create_customer(authenticated_client)

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Ravi Kumar"
        assert data["email"] == "ravi@example.com"
        assert data["address"]["city"] == "Bengaluru"
        assert data["address"]["pin_code"] == "560001"

        assert len(data["documents"]) == 1
        document = data["documents"][0]
        assert document["type"] == "AADHAR"
        assert document["card_number"] == "1234 5678 9012"
        assert document["file_size"] == len(PDF_BYTES)
        assert "file_path" not in document

        assert len(stored_files()) == 1
        assert stored_files()[0].name == document["file_name"]

    async def test_card_number_encrypted_at_rest(
        self, authenticated_client, create_customer, session_factory
    ):
        await create_customer(authenticated_client)

        async with session_factory() as db:
            document = (await db.execute(select(Document))).scalar_one()
            assert b"123456789012" not in document.card_number_encrypted
            assert b"1234 5678 9012" not in document.card_number_encrypted
            assert document.card_number == "1234 5678 9012"

    async def test_invalid_card_number_leaves_nothing(
        self, authenticated_client, create_customer, stored_files, session_factory
    ):
        response = await create_customer(authenticated_client, card_number="12345")

        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_document"
        assert response.json()["detail"] == "Invalid AADHAR card number format"
        assert stored_files() == []
        assert await _count(session_factory, Customer) == 0
        assert await _count(session_factory, Document) == 0

    async def test_invalid_document_type(self, authenticated_client, create_customer, stored_files):
        response = await create_customer(authenticated_client, document_type="VOTER_ID")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid document type"
        assert stored_files() == []

    async def test_lowercase_document_type_accepted(self, authenticated_client, create_customer):
        response = await create_customer(
            authenticated_client, document_type="pan", card_number="abcde1234f"
        )
        assert response.status_code == 201
        assert response.json()["documents"][0]["type"] == "PAN"
        assert response.json()["documents"][0]["card_number"] == "ABCDE1234F"

    async def test_duplicate_email_removes_new_file(
        self, authenticated_client, create_customer, stored_files, session_factory
    ):
        first = await create_customer(authenticated_client)
        kept_file = first.json()["documents"][0]["file_name"]

        second = await create_customer(authenticated_client, name="Another Ravi")

        assert second.status_code == 409
        assert second.json()["error_type"] == "duplicate_customer"
        assert [path.name for path in stored_files()] == [kept_file]
        assert await _count(session_factory, Customer) == 1

    async def test_same_email_allowed_for_different_owners(
        self, authenticated_client, second_authenticated_client, create_customer
    ):
        first = await create_customer(authenticated_client)
        second = await create_customer(second_authenticated_client)

        assert first.status_code == 201
        assert second.status_code == 201

    async def test_rejected_media_type(self, authenticated_client, create_customer, stored_files):
        response = await create_customer(
            authenticated_client,
            filename="notes.txt",
            content=b"plain text",
            content_type="text/plain",
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_upload"
        assert stored_files() == []

    async def test_file_too_large(self, authenticated_client, create_customer, stored_files):
        response = await create_customer(
            authenticated_client,
            content=b"0" * (1024 * 1024 + 1),
        )
        assert response.status_code == 413
        assert stored_files() == []

    async def test_oversized_upload_read_is_bounded(
        self, authenticated_client, create_customer, stored_files, monkeypatch
    ):
        """Only one byte past the limit is pulled from an oversized upload."""
        read_sizes = []
        original_read = StarletteUploadFile.read

        async def recording_read(self, size: int = -1) -> bytes:
            read_sizes.append(size)
            return await original_read(self, size)

        monkeypatch.setattr(StarletteUploadFile, "read", recording_read)

        response = await create_customer(
            authenticated_client,
            content=b"0" * (2 * 1024 * 1024),
        )

        assert response.status_code == 413
        assert read_sizes == [1024 * 1024 + 1]
        assert stored_files() == []

    async def test_missing_field(self, authenticated_client, stored_files):
        response = await authenticated_client.post(
            "/customers",
            data={"name": "Ravi Kumar"},
            files={"document": ("scan.pdf", PDF_BYTES, "application/pdf")},
        )
        assert response.status_code == 422
        assert stored_files() == []

    async def test_requires_auth(self, client, create_customer, stored_files):
        response = await create_customer(client)
        assert response.status_code == 401
        assert stored_files() == []


class TestCreateCompensation:
    """Service-level failure paths that HTTP tests can't easily provoke."""

    @pytest_asyncio.fixture
    async def owner(self, db_session):
        user = User(name="Owner", email="owner@example.com", hashed_password="x")
        db_session.add(user)
        await db_session.commit()
        return user

    async def test_commit_failure_deletes_upload(
        self, db_session, document_store, stored_files, owner, monkeypatch
    ):
        async def failing_commit():
            raise SQLAlchemyError("simulated outage")

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(PersistenceError):
            await _create_with_upload(db_session, document_store, owner.id)

        assert stored_files() == []
        monkeypatch.undo()
        result = await db_session.execute(select(func.count()).select_from(Customer))
        assert result.scalar_one() == 0

    async def test_email_claimed_after_check_is_conflict(
        self, db_session, document_store, stored_files, owner, monkeypatch
    ):
        """The unique constraint still answers 409 when the pre-check misses."""
        first = await _create_with_upload(db_session, document_store, owner.id)
        kept_file = first.document.file_name

        async def not_taken(*args, **kwargs):
            return False

        monkeypatch.setattr(customer_service, "_email_taken", not_taken)

        with pytest.raises(DuplicateCustomerError) as exc_info:
            await _create_with_upload(db_session, document_store, owner.id)

        assert exc_info.value.status_code == 409
        assert [path.name for path in stored_files()] == [kept_file]
        result = await db_session.execute(select(func.count()).select_from(Customer))
        assert result.scalar_one() == 1

    async def test_update_email_claimed_after_check_is_conflict(
        self, db_session, document_store, owner, monkeypatch
    ):
        await _create_with_upload(db_session, document_store, owner.id, email="taken@example.com")
        other = await _create_with_upload(db_session, document_store, owner.id, email="free@example.com")
        # The failed commit rolls back and expires loaded objects
        customer_id, owner_id = other.id, owner.id

        async def not_taken(*args, **kwargs):
            return False

        monkeypatch.setattr(customer_service, "_email_taken", not_taken)

        with pytest.raises(DuplicateCustomerError):
            await customer_service.update_customer(
                db=db_session,
                customer_id=customer_id,
                owner_id=owner_id,
                updates=CustomerUpdateRequest(email="taken@example.com"),
            )

        reloaded = await customer_service.get_customer(db_session, customer_id, owner_id)
        assert reloaded.email == "free@example.com"

    async def test_document_update_commit_failure_keeps_old_file(
        self, db_session, document_store, stored_files, owner, monkeypatch
    ):
        customer = await _create_with_upload(db_session, document_store, owner.id)
        old_document = customer.document
        old_path, old_file_name = old_document.file_path, old_document.file_name
        customer_id, owner_id = customer.id, owner.id
        replacement = document_store.save(PNG_BYTES, "new_scan.png")

        async def failing_commit():
            raise SQLAlchemyError("simulated outage")

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(PersistenceError):
            await customer_service.update_document(
                db=db_session,
                store=document_store,
                customer_id=customer_id,
                owner_id=owner_id,
                card_number="999988887777",
                upload=replacement,
            )

        assert [path.name for path in stored_files()] == [old_file_name]
        monkeypatch.undo()
        reloaded = await customer_service.get_customer(db_session, customer_id, owner_id)
        assert reloaded.document.file_path == old_path
        assert reloaded.document.card_number == "1234 5678 9012"

    async def test_delete_commit_failure_keeps_files(
        self, db_session, document_store, stored_files, owner, monkeypatch
    ):
        customer = await _create_with_upload(db_session, document_store, owner.id)
        file_path = customer.document.file_path
        customer_id, owner_id = customer.id, owner.id

        async def failing_commit():
            raise SQLAlchemyError("simulated outage")

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(PersistenceError):
            await customer_service.delete_customer(
                db=db_session,
                store=document_store,
                customer_id=customer_id,
                owner_id=owner_id,
            )

        assert document_store.exists(file_path)
        assert len(stored_files()) == 1
        monkeypatch.undo()
        reloaded = await customer_service.get_customer(db_session, customer_id, owner_id)
        assert reloaded.document.file_path == file_path

    async def test_cancellation_deletes_upload(self, document_store, stored_files):
        upload = document_store.save(PDF_BYTES, "scan.pdf")

        with pytest.raises(asyncio.CancelledError):
            async with customer_service.compensate_upload(document_store, upload):
                raise asyncio.CancelledError()

        assert stored_files() == []

    async def test_success_keeps_upload(self, document_store, stored_files):
        upload = document_store.save(PDF_BYTES, "scan.pdf")

        async with customer_service.compensate_upload(document_store, upload):
            pass

        assert len(stored_files()) == 1

    async def test_update_without_document(self, db_session, document_store, stored_files, owner):
        """A customer with no document can't have one 'updated' into existence."""
        customer = Customer(
            user_id=owner.id, name="Bare", email="bare@example.com", number="9876543210"
        )
        db_session.add(customer)
        await db_session.commit()
        upload = document_store.save(PDF_BYTES, "scan.pdf")

        with pytest.raises(NotFoundError):
            await customer_service.update_document(
                db=db_session,
                store=document_store,
                customer_id=customer.id,
                owner_id=owner.id,
                upload=upload,
            )
        assert stored_files() == []


class TestConcurrentCreate:
    """Two requests creating the same email race past the duplicate check."""

    async def test_one_create_wins(self, tmp_path, document_store, stored_files, monkeypatch):
        # A file database gives each session its own connection
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

            async with factory() as db:
                owner = User(name="Owner", email="owner@example.com", hashed_password="x")
                db.add(owner)
                await db.commit()

            # Neither insert starts until both checks have seen a free email
            original_check = customer_service._email_taken
            checked = []
            both_checked = asyncio.Event()

            async def check_then_wait(*args, **kwargs):
                taken = await original_check(*args, **kwargs)
                checked.append(taken)
                if len(checked) == 2:
                    both_checked.set()
                await both_checked.wait()
                return taken

            monkeypatch.setattr(customer_service, "_email_taken", check_then_wait)

            async def attempt():
                async with factory() as db:
                    return await _create_with_upload(db, document_store, owner.id)

            outcomes = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

            assert checked == [False, False]
            assert sorted(type(outcome).__name__ for outcome in outcomes) == [
                "Customer",
                "DuplicateCustomerError",
            ]
            winner = next(outcome for outcome in outcomes if isinstance(outcome, Customer))
            assert [path.name for path in stored_files()] == [winner.document.file_name]
            assert await _count(factory, Customer) == 1
            assert await _count(factory, Document) == 1
        finally:
            await engine.dispose()


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

class TestReadCustomers:
    """Tests for GET /customers and GET /customers/{id}."""

    async def test_get_customer(self, authenticated_client, create_customer):
        created = (await create_customer(authenticated_client)).json()

        response = await authenticated_client.get(f"/customers/{created['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
        assert response.json()["documents"][0]["card_number"] == "1234 5678 9012"

    async def test_get_unknown_customer(self, authenticated_client):
        response = await authenticated_client.get(f"/customers/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Customer not found"

    async def test_list_pagination(self, authenticated_client, create_customer):
        for i in range(3):
            await create_customer(authenticated_client, email=f"c{i}@example.com")

        page_one = (await authenticated_client.get("/customers", params={"limit": 2})).json()
        assert len(page_one["customers"]) == 2
        assert page_one["pagination"] == {
            "current_page": 1,
            "total_pages": 2,
            "total_count": 3,
            "has_next": True,
            "has_prev": False,
        }

        page_two = (
            await authenticated_client.get("/customers", params={"limit": 2, "page": 2})
        ).json()
        assert len(page_two["customers"]) == 1
        assert page_two["pagination"]["has_next"] is False
        assert page_two["pagination"]["has_prev"] is True

    async def test_list_empty(self, authenticated_client):
        data = (await authenticated_client.get("/customers")).json()
        assert data["customers"] == []
        assert data["pagination"]["total_pages"] == 0

    async def test_list_search(self, authenticated_client, create_customer):
        await create_customer(authenticated_client, email="ravi@example.com")
        await create_customer(
            authenticated_client, name="Priya Shah", email="priya@example.com", city="Mumbai"
        )

        by_city = (await authenticated_client.get("/customers", params={"search": "mumbai"})).json()
        assert [c["name"] for c in by_city["customers"]] == ["Priya Shah"]

        by_name = (await authenticated_client.get("/customers", params={"search": "RAVI"})).json()
        assert [c["email"] for c in by_name["customers"]] == ["ravi@example.com"]

    async def test_search_wildcards_are_literal(self, authenticated_client, create_customer):
        await create_customer(authenticated_client)

        response = await authenticated_client.get("/customers", params={"search": "%"})
        assert response.json()["pagination"]["total_count"] == 0

    async def test_limit_capped(self, authenticated_client):
        response = await authenticated_client.get("/customers", params={"limit": 500})
        assert response.status_code == 422


class TestOwnership:
    """Another user's customers behave as if they did not exist."""

    async def test_cross_owner_access(
        self, authenticated_client, second_authenticated_client, create_customer
    ):
        created = (await create_customer(authenticated_client)).json()
        customer_id = created["id"]
        document_id = created["documents"][0]["id"]
        intruder = second_authenticated_client

        assert (await intruder.get(f"/customers/{customer_id}")).status_code == 404
        assert (
            await intruder.patch(f"/customers/{customer_id}", json={"name": "Hijacked"})
        ).status_code == 404
        assert (
            await intruder.put(f"/customers/{customer_id}/document", data={"card_number": "999999999999"})
        ).status_code == 404
        assert (
            await intruder.get(f"/customers/{customer_id}/documents/{document_id}/file")
        ).status_code == 404
        assert (await intruder.delete(f"/customers/{customer_id}")).status_code == 404

        listing = (await intruder.get("/customers")).json()
        assert listing["customers"] == []

        # Owner's data untouched
        owned = (await authenticated_client.get(f"/customers/{customer_id}")).json()
        assert owned["name"] == "Ravi Kumar"


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

class TestUpdateCustomer:
    """Tests for PATCH /customers/{id}."""

    async def test_partial_update(self, authenticated_client, create_customer):
        created = (await create_customer(authenticated_client)).json()

        response = await authenticated_client.patch(
            f"/customers/{created['id']}",
            json={"name": "Ravi K", "city": "Mysuru"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Ravi K"
        assert data["address"]["city"] == "Mysuru"
        # Untouched fields survive
        assert data["email"] == "ravi@example.com"
        assert data["address"]["state"] == "Karnataka"

    async def test_update_to_taken_email(self, authenticated_client, create_customer):
        await create_customer(authenticated_client, email="taken@example.com")
        other = (await create_customer(authenticated_client, email="free@example.com")).json()

        response = await authenticated_client.patch(
            f"/customers/{other['id']}", json={"email": "taken@example.com"}
        )
        assert response.status_code == 409

    async def test_update_to_own_email(self, authenticated_client, create_customer):
        created = (await create_customer(authenticated_client)).json()

        response = await authenticated_client.patch(
            f"/customers/{created['id']}", json={"email": "ravi@example.com"}
        )
        assert response.status_code == 200


class TestUpdateDocument:
    """Tests for PUT /customers/{id}/document."""

    async def test_card_number_checked_against_stored_type(
        self, authenticated_client, create_customer
    ):
        """Only the number is sent, so it must satisfy the stored type (PAN)."""
        created = (
            await create_customer(authenticated_client, document_type="PAN", card_number="ABCDE1234F")
        ).json()

        rejected = await authenticated_client.put(
            f"/customers/{created['id']}/document", data={"card_number": "123456789012"}
        )
        assert rejected.status_code == 400
        assert rejected.json()["detail"] == "Invalid PAN card number format"

        accepted = await authenticated_client.put(
            f"/customers/{created['id']}/document", data={"card_number": "pqrst6789z"}
        )
        assert accepted.status_code == 200
        assert accepted.json()["card_number"] == "PQRST6789Z"
        assert accepted.json()["type"] == "PAN"

    async def test_type_change_rechecks_stored_number(self, authenticated_client, create_customer):
        created = (await create_customer(authenticated_client)).json()

        response = await authenticated_client.put(
            f"/customers/{created['id']}/document", data={"document_type": "PAN"}
        )
        assert response.status_code == 400

        unchanged = (await authenticated_client.get(f"/customers/{created['id']}")).json()
        assert unchanged["documents"][0]["type"] == "AADHAR"

    async def test_type_and_number_together(self, authenticated_client, create_customer):
        created = (await create_customer(authenticated_client)).json()

        response = await authenticated_client.put(
            f"/customers/{created['id']}/document",
            data={"document_type": "PASSPORT", "card_number": "k1234567"},
        )
        assert response.status_code == 200
        assert response.json()["type"] == "PASSPORT"
        assert response.json()["card_number"] == "K1234567"

    async def test_replace_file_deletes_old(
        self, authenticated_client, create_customer, stored_files
    ):
        created = (await create_customer(authenticated_client)).json()
        old_name = created["documents"][0]["file_name"]

        response = await authenticated_client.put(
            f"/customers/{created['id']}/document",
            files={"document": ("new_scan.png", PNG_BYTES, "image/png")},
        )
        assert response.status_code == 200
        new_name = response.json()["file_name"]
        assert new_name != old_name
        assert response.json()["file_size"] == len(PNG_BYTES)
        assert [path.name for path in stored_files()] == [new_name]

    async def test_invalid_update_keeps_old_file(
        self, authenticated_client, create_customer, stored_files
    ):
        created = (await create_customer(authenticated_client)).json()
        old_name = created["documents"][0]["file_name"]

        response = await authenticated_client.put(
            f"/customers/{created['id']}/document",
            data={"document_type": "VOTER_ID"},
            files={"document": ("new_scan.png", PNG_BYTES, "image/png")},
        )
        assert response.status_code == 400
        assert [path.name for path in stored_files()] == [old_name]

        unchanged = (await authenticated_client.get(f"/customers/{created['id']}")).json()
        assert unchanged["documents"][0]["file_name"] == old_name

    async def test_download(self, authenticated_client, create_customer):
        created = (await create_customer(authenticated_client)).json()
        document = created["documents"][0]

        response = await authenticated_client.get(
            f"/customers/{created['id']}/documents/{document['id']}/file"
        )
        assert response.status_code == 200
        assert response.content == PDF_BYTES
        assert response.headers["content-type"] == "application/pdf"
        assert document["file_name"] in response.headers["content-disposition"]


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestDeleteCustomer:
    """Tests for DELETE /customers/{id}."""

    async def test_delete_removes_rows_and_file(
        self, authenticated_client, create_customer, stored_files, session_factory
    ):
        created = (await create_customer(authenticated_client)).json()

        response = await authenticated_client.delete(f"/customers/{created['id']}")
        assert response.status_code == 200
        assert response.json()["message"] == "Customer deleted successfully"

        assert stored_files() == []
        assert await _count(session_factory, Customer) == 0
        assert await _count(session_factory, Document) == 0
        assert (await authenticated_client.get(f"/customers/{created['id']}")).status_code == 404

    async def test_delete_with_file_already_gone(
        self, authenticated_client, create_customer, stored_files, session_factory
    ):
        created = (await create_customer(authenticated_client)).json()
        for path in stored_files():
            path.unlink()

        response = await authenticated_client.delete(f"/customers/{created['id']}")
        assert response.status_code == 200
        assert await _count(session_factory, Customer) == 0

    async def test_delete_unknown(self, authenticated_client):
        response = await authenticated_client.delete(f"/customers/{uuid.uuid4()}")
        assert response.status_code == 404
