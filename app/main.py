"""
Stock Ledger API - Main Application

Serves the inventory bucket and stock ledger endpoints under /api/v2.
Every error leaves as an RFC 7807 problem+json body carrying the request id
that also tags the log lines of that request.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.api.v2.router import api_router
from app.config import settings
from app.core.sentry import init_sentry
from app.database import init_db
from app.exceptions import APIException, create_exception_handlers
from app.middleware.request_id import RequestIdMiddleware, RequestIdLogFilter
# Import all models to register them with SQLAlchemy metadata before init_db()
from app.models import (  # noqa: F401
    Product, Warehouse, Shelf, InventoryBucket, StockAdjustment, DocumentCounter
)

# Every record carries the request id, "unknown" outside a request
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Stock Ledger API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    init_sentry()
    # Only the driver part of the URL, never credentials
    if settings.DATABASE_URL:
        logger.info(f"Database driver: {settings.DATABASE_URL.split('://', 1)[0]}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Exception text can echo the connection string
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - stock endpoints will fail")
    yield
    # Shutdown
    logger.info("Shutting down Stock Ledger API...")


# Docs can be switched off per deployment
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Stock Ledger API",
    description="Inventory buckets, stock movements and the append-only stock ledger",
    version=settings.VERSION,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
allowed_origins = [settings.FRONTEND_URL]

# Allow localhost origins for development/testing
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev port
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

# RFC 7807 error responses
handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(APIException, handlers["api"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Stock Ledger API",
        "version": settings.VERSION,
        "health": "/health",
        "buckets": "/api/v2/inventory/buckets",
        "ledger": "/api/v2/inventory/adjustments",
    }
    # Only include docs link if enabled
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
