"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from customer_vault.models directly
"""

from customer_vault.models.user import User  # noqa: F401
from customer_vault.models.device import Device  # noqa: F401
from customer_vault.models.user_session import UserSession  # noqa: F401
from customer_vault.models.customer import Customer  # noqa: F401
from customer_vault.models.address import Address  # noqa: F401
from customer_vault.models.document import Document, DocumentType  # noqa: F401
