"""
Crudo - FastAPI Application

Main entry point for the backend API.
Provides the WhatsApp webhook, transcript reports, billing endpoints and
the Stripe webhook.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config.settings import settings
from app.infrastructure.exceptions import (
    CrudoError,
    DatabaseError,
    UpstreamServiceError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    from app.api.dependencies import get_http_client

    logger.info(f"Crudo Backend starting in {settings.environment} mode...")

    database_configured = bool(settings.database_url or settings.supabase_password)
    if database_configured:
        try:
            from app.infrastructure.db.database import init_db
            await init_db()
            logger.info("SQLModel database connection pool initialized")
        except Exception as e:
            logger.warning(f"SQLModel database initialization skipped: {e}")

    yield

    await get_http_client().aclose()
    get_http_client.cache_clear()

    if database_configured:
        try:
            from app.infrastructure.db.database import close_db
            await close_db()
            logger.info("SQLModel database connection pool closed")
        except Exception as e:
            logger.warning(f"SQLModel database shutdown error: {e}")

    logger.info("Crudo Backend shutting down...")


app = FastAPI(
    title="Crudo",
    description="Voice-note sales reports over WhatsApp with metered billing",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(UpstreamServiceError)
async def upstream_error_handler(request: Request, exc: UpstreamServiceError):
    """Vendor failures keep the vendor's status when it is known."""
    logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(CrudoError)
async def general_error_handler(request: Request, exc: CrudoError):
    """Handle all other application errors."""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query parameters render as ValidationError."""
    errors = [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    fields = ", ".join(
        ".".join(part for part in error["loc"] if part != "body") or "body"
        for error in errors
    )
    error = ValidationError(f"Invalid request fields: {fields}", details={"errors": errors})
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Persistence failures that escaped a route render as DatabaseError."""
    logger.error(f"Database error on {request.url.path}: {exc}")
    error = DatabaseError("Database operation failed", original_error=exc)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "crudo"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Crudo API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import (  # noqa: E402
    email,
    subscriptions,
    templates,
    transcripts,
    webhooks,
    whatsapp,
)

app.include_router(whatsapp.router, prefix="/api", tags=["WhatsApp"])
app.include_router(templates.router, prefix="/api", tags=["Templates"])
app.include_router(transcripts.router, prefix="/api", tags=["Transcripts"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(email.router, prefix="/api", tags=["Email"])
