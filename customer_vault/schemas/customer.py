"""
Pydantic schemas for the customer aggregate (customer + address + document).

Creation and document replacement arrive as multipart forms (they carry a
file), so the create/update field groups are built by the router from
Form parameters. Customer edits without a file use JSON.

Document responses expose the decrypted, formatted card number but never
the storage path.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from customer_vault.models.document import DocumentType


class CustomerFields(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    number: str = Field(min_length=10, max_length=15)


class AddressFields(BaseModel):
    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    pin_code: str = Field(min_length=3, max_length=10)
    country: str = Field(min_length=1, max_length=100)


class CustomerUpdateRequest(BaseModel):
    """PATCH body: only the fields the client sends are changed."""
    name: str | None = Field(default=None, min_length=2, max_length=100)
    email: EmailStr | None = None
    number: str | None = Field(default=None, min_length=10, max_length=15)
    street: str | None = Field(default=None, min_length=1, max_length=255)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    state: str | None = Field(default=None, min_length=1, max_length=100)
    pin_code: str | None = Field(default=None, min_length=3, max_length=10)
    country: str | None = Field(default=None, min_length=1, max_length=100)


class AddressResponse(BaseModel):
    street: str
    city: str
    state: str
    pin_code: str
    country: str

    model_config = {"from_attributes": True}


class DocumentResponse(BaseModel):
    id: uuid.UUID
    type: DocumentType
    card_number: str
    file_name: str
    file_size: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CustomerResponse(BaseModel):
    """The full aggregate."""
    id: uuid.UUID
    name: str
    email: EmailStr
    number: str
    address: AddressResponse | None
    documents: list[DocumentResponse]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class CustomerListResponse(BaseModel):
    customers: list[CustomerResponse]
    pagination: Pagination
