"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits
  on success and rolls back on exception.

  Services that pair a database write with a file-store action (customer
  creation, document replacement, customer deletion, session creation)
  commit explicitly themselves, because the file action must happen on
  a known side of the commit. The trailing commit in get_db() is then a
  no-op for those requests.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from customer_vault.config import settings


# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# expire_on_commit=False: committed objects keep their loaded attributes,
# since an async session cannot lazy-load them again on access.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any exception,
    then closed when the request completes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
