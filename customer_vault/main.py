"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Logging — configured before anything else logs
  2. Lifespan manager — fails fast on missing secrets, creates tables and
     the upload directory, disposes the engine on shutdown
  3. CORS middleware — allows frontend origins to make cross-origin requests
  4. Exception handlers — maps domain errors to HTTP responses
  5. Router registration — mounts the auth and customer endpoint groups

Running locally:
    uvicorn customer_vault.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import customer_vault.models  # noqa: F401  (registers every table on Base.metadata)
from customer_vault.config import settings
from customer_vault.database import engine, Base
from customer_vault.dependencies import credential_verifier, document_store
from customer_vault.exceptions import register_exception_handlers
from customer_vault.logging_config import setup_logging
from customer_vault.routers import auth, customers


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Refuses to start without a token signing secret (ConfigError), then
      creates missing tables and the document directory. Production
      deployments would manage the schema with migrations instead.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    credential_verifier.ensure_configured()
    document_store.root.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Customer records with identity documents, behind device-bound sessions",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(customers.router, prefix="/customers", tags=["Customers"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
