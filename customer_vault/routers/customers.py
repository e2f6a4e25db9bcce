"""
Customers router — the customer aggregate and its identity document.

Endpoints (all require a valid token AND an active session for this device):
  POST   /customers                                         — Create customer + address + document (multipart)
  GET    /customers                                         — List own customers (page, limit, search)
  GET    /customers/{customer_id}                           — Get one aggregate
  PATCH  /customers/{customer_id}                           — Edit customer/address fields (JSON)
  DELETE /customers/{customer_id}                           — Delete aggregate and its files
  PUT    /customers/{customer_id}/document                  — Change document type/number/file (multipart)
  GET    /customers/{customer_id}/documents/{document_id}/file — Download the document file

Uploads are checked (media type, extension, size) before anything is
written. Once written, the service layer owns the file and deletes it on
every failure path.
"""

import mimetypes
import uuid

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from customer_vault.database import get_db
from customer_vault.dependencies import get_current_principal, get_document_store
from customer_vault.schemas.auth import MessageResponse, TokenClaims
from customer_vault.schemas.customer import (
    AddressFields,
    CustomerFields,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdateRequest,
    DocumentResponse,
    Pagination,
)
from customer_vault.services import customer_service
from customer_vault.storage import DocumentStore, StoredFile

router = APIRouter()


async def _accept_upload(store: DocumentStore, upload: UploadFile) -> StoredFile:
    # Nothing touches the disk before the checks pass. One byte past the
    # limit is enough to reject, so an oversized body is never fully read
    data = await upload.read(store.max_upload_bytes + 1)
    store.check_upload(upload.filename, upload.content_type, len(data))
    return store.save(data, upload.filename or "document")


@router.post(
    "",
    response_model=CustomerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a customer with address and document",
)
async def create_customer(
    name: str = Form(min_length=2, max_length=100),
    email: EmailStr = Form(),
    number: str = Form(min_length=10, max_length=15),
    street: str = Form(min_length=1, max_length=255),
    city: str = Form(min_length=1, max_length=100),
    state: str = Form(min_length=1, max_length=100),
    pin_code: str = Form(min_length=3, max_length=10),
    country: str = Form(min_length=1, max_length=100),
    document_type: str = Form(),
    card_number: str = Form(),
    document: UploadFile = File(description="JPG, PNG, WebP or PDF"),
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    """
    Create the full aggregate in one transaction.

    - **document_type**: AADHAR, PAN, PASSPORT or LICENCE
    - **card_number**: must match the format of the document type
    - **document**: the scanned document, at most MAX_UPLOAD_BYTES
    """
    upload = await _accept_upload(store, document)
    return await customer_service.create_customer_with_document(
        db=db,
        store=store,
        owner_id=principal.user_id,
        customer_fields=CustomerFields(name=name, email=email, number=number),
        address_fields=AddressFields(
            street=street, city=city, state=state, pin_code=pin_code, country=country,
        ),
        document_type=document_type,
        card_number=card_number,
        upload=upload,
    )


@router.get(
    "",
    response_model=CustomerListResponse,
    summary="List your customers",
)
async def list_customers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Newest first. `search` matches name, email, number, city or state."""
    customers, pagination = await customer_service.list_customers(
        db=db,
        owner_id=principal.user_id,
        page=page,
        limit=limit,
        search=search,
    )
    return CustomerListResponse(
        customers=[CustomerResponse.model_validate(c) for c in customers],
        pagination=Pagination(**pagination),
    )


@router.get(
    "/{customer_id}",
    response_model=CustomerResponse,
    summary="Get a customer",
)
async def get_customer(
    customer_id: uuid.UUID,
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await customer_service.get_customer(db, customer_id, principal.user_id)


@router.patch(
    "/{customer_id}",
    response_model=CustomerResponse,
    summary="Update customer and address fields",
)
async def update_customer(
    customer_id: uuid.UUID,
    updates: CustomerUpdateRequest,
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Only the fields present in the body change (PATCH semantics)."""
    return await customer_service.update_customer(
        db=db,
        customer_id=customer_id,
        owner_id=principal.user_id,
        updates=updates,
    )


@router.delete(
    "/{customer_id}",
    response_model=MessageResponse,
    summary="Delete a customer",
)
async def delete_customer(
    customer_id: uuid.UUID,
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    """Removes the customer, its address and document rows, then the files."""
    await customer_service.delete_customer(
        db=db,
        store=store,
        customer_id=customer_id,
        owner_id=principal.user_id,
    )
    return MessageResponse(message="Customer deleted successfully")


@router.put(
    "/{customer_id}/document",
    response_model=DocumentResponse,
    summary="Update the customer's document",
)
async def update_document(
    customer_id: uuid.UUID,
    document_type: str | None = Form(None),
    card_number: str | None = Form(None),
    document: UploadFile | None = File(None),
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    """
    Any subset of type, card number and file may be sent. The type/number
    pair is validated as it will be stored, and a replaced file is deleted
    only after the database update commits.
    """
    upload = await _accept_upload(store, document) if document is not None else None
    return await customer_service.update_document(
        db=db,
        store=store,
        customer_id=customer_id,
        owner_id=principal.user_id,
        document_type=document_type or None,
        card_number=card_number or None,
        upload=upload,
    )


@router.get(
    "/{customer_id}/documents/{document_id}/file",
    summary="Download a document file",
    response_class=Response,
)
async def download_document(
    customer_id: uuid.UUID,
    document_id: uuid.UUID,
    principal: TokenClaims = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    document, data = await customer_service.get_document_file(
        db=db,
        store=store,
        owner_id=principal.user_id,
        customer_id=customer_id,
        document_id=document_id,
    )
    media_type = mimetypes.guess_type(document.file_name)[0] or "application/octet-stream"
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'},
    )
