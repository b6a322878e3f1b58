"""
Placement Portal - Main Application

FastAPI backend with:
- PostgreSQL for all structured data
- PRN whitelist ranges gating student registration
- Academic year reset with post-commit photo cleanup on an S3-compatible host
- JWT authentication

Run: uvicorn portal.main:app --reload
"""

import logging

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from portal.api.routes import api_router
from portal.core.config import get_settings
from portal.core.errors import PortalError, TransactionError
from portal.db.postgres import get_session_factory, test_postgres_connection
from portal.schemas.schemas import ErrorResponse
from portal.services.asset_cleaner import get_asset_cleaner

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Placement Portal",
    description="""
    Placement portal administration core.

    ## Features
    - **Authentication**: JWT-based auth for super admins, placement officers and students
    - **PRN Ranges**: Whitelist ranges that decide who may register, per college or global
    - **Eligibility**: Check a PRN against the enabled ranges
    - **Academic Year Reset**: Preview and run the end-of-year reset
    - **Activity Logs**: Audit trail of range changes and resets
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Domain errors -> {"success": false, "message": ...} with the error's status."""
    if isinstance(exc, TransactionError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    elif exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=exc.message).model_dump(),
    )


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": "Placement Portal"}


@app.get("/health", tags=["Health"])
async def health_check(session_factory: sessionmaker = Depends(get_session_factory)):
    """Detailed health check."""
    return {
        "status": "healthy",
        "postgres": "connected" if test_postgres_connection(session_factory) else "disconnected",
        "asset_host": "configured" if get_asset_cleaner().configured else "not configured",
    }
