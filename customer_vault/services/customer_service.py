"""
Customer service — the customer + address + document aggregate.

Every operation is scoped to the requesting owner: a customer that
doesn't exist and a customer that belongs to someone else both raise
NotFoundError, so ids cannot be enumerated.

Two stores, no shared transaction:
  The database rows and the uploaded file cannot commit atomically
  together. Consistency comes from ordering plus compensation:

    create / replace document:  file already written -> validate ->
                                commit DB -> on ANY failure delete the
                                new file (compensate_upload)
    replace document (success): delete the OLD file only after the
                                commit, never before
    delete customer:            commit DB delete -> delete files,
                                best-effort

  When one of these calls returns, a Document row and its file either
  both exist or neither does. File deletions never raise (see
  DocumentStore.delete), so a file-store hiccup can't mask the database
  outcome the caller is told about.
"""

import logging
import math
import uuid
from contextlib import asynccontextmanager

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from customer_vault.exceptions import (
    DuplicateCustomerError,
    InvalidDocumentError,
    NotFoundError,
    PersistenceError,
)
from customer_vault.models.address import Address
from customer_vault.models.customer import Customer
from customer_vault.models.document import Document
from customer_vault.schemas.customer import AddressFields, CustomerFields, CustomerUpdateRequest
from customer_vault.services.document_rules import (
    format_card_number,
    parse_document_type,
    validate_card_number,
)
from customer_vault.storage import DocumentStore, StoredFile


logger = logging.getLogger(__name__)

_CUSTOMER_FIELDS = ("name", "email", "number")
_ADDRESS_FIELDS = ("street", "city", "state", "pin_code", "country")


# ---------------------------------------------------------------------------
# Saga helpers
# ---------------------------------------------------------------------------

@asynccontextmanager
async def compensate_upload(store: DocumentStore, upload: StoredFile | None):
    """
    Delete a freshly stored upload if anything in the block fails.

    Usage:
        async with compensate_upload(store, upload):
            ...validate...
            await _commit(db)
    """
    try:
        yield
    except BaseException:
        # Cancellation included: the file must not outlive a failed request
        if upload is not None:
            store.delete(upload.path)
        raise


async def _commit(db: AsyncSession, conflict: DuplicateCustomerError | None = None) -> None:
    """
    Commit, translating datastore failures into domain errors.

    The email pre-check and the insert are separate statements, so a
    concurrent request can claim the email in between. The unique
    constraint then rejects the commit, which is reported as `conflict`
    when one is given.
    """
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if conflict is None:
            logger.error("Customer transaction failed", exc_info=True)
            raise PersistenceError() from exc
        logger.info("Customer email claimed by a concurrent request")
        raise conflict from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Customer transaction failed", exc_info=True)
        raise PersistenceError() from exc


async def _get_owned_customer(
    db: AsyncSession,
    customer_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Customer:
    result = await db.execute(
        select(Customer)
        .where(Customer.id == customer_id, Customer.user_id == owner_id)
        # Reload children even if the customer is already in the identity map
        .execution_options(populate_existing=True)
    )
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFoundError("Customer")
    return customer


async def _email_taken(
    db: AsyncSession,
    owner_id: uuid.UUID,
    email: str,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    query = select(Customer.id).where(Customer.user_id == owner_id, Customer.email == email)
    if exclude_id is not None:
        query = query.where(Customer.id != exclude_id)
    return (await db.execute(query)).first() is not None


def _require_valid_document(document_type: str, card_number: str):
    doc_type = parse_document_type(document_type)
    if doc_type is None:
        raise InvalidDocumentError("Invalid document type")
    if not validate_card_number(doc_type, card_number):
        raise InvalidDocumentError(f"Invalid {doc_type.value} card number format")
    return doc_type


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def create_customer_with_document(
    db: AsyncSession,
    store: DocumentStore,
    owner_id: uuid.UUID,
    customer_fields: CustomerFields,
    address_fields: AddressFields,
    document_type: str,
    card_number: str,
    upload: StoredFile,
) -> Customer:
    """
    Create a customer, its address and its document in one transaction.

    The upload has already been written to the document store; from here
    on this function owns it and deletes it on every failure path.

    Raises:
        InvalidDocumentError: Unknown type or card number failing the type's rule.
        DuplicateCustomerError: The owner already has a customer with this email.
        PersistenceError: The database transaction failed.
    """
    async with compensate_upload(store, upload):
        doc_type = _require_valid_document(document_type, card_number)

        if await _email_taken(db, owner_id, customer_fields.email):
            raise DuplicateCustomerError(customer_fields.email)

        customer = Customer(
            user_id=owner_id,
            **customer_fields.model_dump(),
            address=Address(**address_fields.model_dump()),
            documents=[
                Document(
                    type=doc_type,
                    card_number=format_card_number(doc_type, card_number),
                    file_name=upload.file_name,
                    file_path=upload.path,
                    file_size=upload.size,
                )
            ],
        )
        db.add(customer)
        await _commit(db, conflict=DuplicateCustomerError(customer_fields.email))

    logger.info("Customer created", extra={"customer_id": customer.id, "user_id": owner_id})
    return await _get_owned_customer(db, customer.id, owner_id)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

async def get_customer(
    db: AsyncSession,
    customer_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Customer:
    return await _get_owned_customer(db, customer_id, owner_id)


async def list_customers(
    db: AsyncSession,
    owner_id: uuid.UUID,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
) -> tuple[list[Customer], dict]:
    """
    List the owner's customers, newest first, with optional search.

    The search is case-insensitive over name, email, number and the
    address city/state.

    Returns:
        Tuple of (customers on this page, pagination dict).
    """
    query = (
        select(Customer)
        .outerjoin(Address, Address.customer_id == Customer.id)
        .where(Customer.user_id == owner_id)
    )
    if search:
        query = query.where(
            or_(
                Customer.name.icontains(search, autoescape=True),
                Customer.email.icontains(search, autoescape=True),
                Customer.number.icontains(search, autoescape=True),
                Address.city.icontains(search, autoescape=True),
                Address.state.icontains(search, autoescape=True),
            )
        )

    total_count = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()

    result = await db.execute(
        query.order_by(Customer.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    customers = list(result.scalars().all())

    total_pages = math.ceil(total_count / limit) if total_count else 0
    pagination = {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total_count,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
    return customers, pagination


async def get_document_file(
    db: AsyncSession,
    store: DocumentStore,
    owner_id: uuid.UUID,
    customer_id: uuid.UUID,
    document_id: uuid.UUID,
) -> tuple[Document, bytes]:
    """
    Fetch a document's bytes after checking it belongs to the owner.

    Raises:
        NotFoundError: Unknown/foreign document, or the file is gone.
    """
    result = await db.execute(
        select(Document)
        .join(Customer, Customer.id == Document.customer_id)
        .where(
            Document.id == document_id,
            Document.customer_id == customer_id,
            Customer.user_id == owner_id,
        )
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document")

    return document, store.read(document.file_path)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

async def update_customer(
    db: AsyncSession,
    customer_id: uuid.UUID,
    owner_id: uuid.UUID,
    updates: CustomerUpdateRequest,
) -> Customer:
    """
    Partially update customer and address fields in one transaction.

    Raises:
        NotFoundError: Unknown or foreign customer.
        DuplicateCustomerError: The new email is taken by another of the owner's customers.
        PersistenceError: The database transaction failed.
    """
    customer = await _get_owned_customer(db, customer_id, owner_id)
    changes = updates.model_dump(exclude_unset=True, exclude_none=True)

    conflict = None
    new_email = changes.get("email")
    if new_email and new_email != customer.email:
        if await _email_taken(db, owner_id, new_email, exclude_id=customer_id):
            raise DuplicateCustomerError(new_email)
        conflict = DuplicateCustomerError(new_email)

    for field in _CUSTOMER_FIELDS:
        if field in changes:
            setattr(customer, field, changes[field])

    if customer.address is not None:
        for field in _ADDRESS_FIELDS:
            if field in changes:
                setattr(customer.address, field, changes[field])

    await _commit(db, conflict=conflict)
    return await _get_owned_customer(db, customer_id, owner_id)


async def update_document(
    db: AsyncSession,
    store: DocumentStore,
    customer_id: uuid.UUID,
    owner_id: uuid.UUID,
    document_type: str | None = None,
    card_number: str | None = None,
    upload: StoredFile | None = None,
) -> Document:
    """
    Change a customer's document type, card number and/or file.

    Validation uses the merged view (new value if given, else the stored
    one), so changing only the card number is checked against the
    document's current type, and changing only the type re-checks the
    stored number.

    Raises:
        NotFoundError: Unknown/foreign customer, or no document to update.
        InvalidDocumentError: The merged type/number pairing is invalid.
        PersistenceError: The database transaction failed.
    """
    async with compensate_upload(store, upload):
        customer = await _get_owned_customer(db, customer_id, owner_id)
        document = customer.document
        if document is None:
            raise NotFoundError("Document")

        merged_type = document_type if document_type is not None else document.type
        merged_number = card_number if card_number is not None else document.card_number
        doc_type = _require_valid_document(merged_type, merged_number)

        old_path = document.file_path
        document.type = doc_type
        document.card_number = format_card_number(doc_type, merged_number)
        if upload is not None:
            document.file_name = upload.file_name
            document.file_path = upload.path
            document.file_size = upload.size

        await _commit(db)

    # Only now is the old file unreferenced
    if upload is not None and old_path != upload.path:
        store.delete(old_path)

    logger.info("Document updated", extra={"customer_id": customer_id, "user_id": owner_id})
    await db.refresh(document)
    return document


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

async def delete_customer(
    db: AsyncSession,
    store: DocumentStore,
    customer_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> None:
    """
    Delete the aggregate, then its files.

    The database is the source of truth for existence: once the delete has
    committed, missing or undeletable files are only logged.

    Raises:
        NotFoundError: Unknown or foreign customer.
        PersistenceError: The database transaction failed (files untouched).
    """
    customer = await _get_owned_customer(db, customer_id, owner_id)
    file_paths = [document.file_path for document in customer.documents]

    await db.delete(customer)
    await _commit(db)

    for path in file_paths:
        store.delete(path)

    logger.info("Customer deleted", extra={"customer_id": customer_id, "user_id": owner_id})
