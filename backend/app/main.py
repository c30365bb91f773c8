"""TaskLynk API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tasklynk import MarketplaceError, __version__

from .config import get_settings
from .database import Market, cancel_all_pollers
from .errors import marketplace_error_handler
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import orders_router, payments_router, pricing_router

logger = get_logger("tasklynk.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    configure_logging("DEBUG" if settings.debug else settings.log_level)
    logger.info(f"Starting TaskLynk API | version={__version__} | debug={settings.debug}")
    yield
    # Shutdown
    cancelled = cancel_all_pollers()
    logger.info(f"Shutting down TaskLynk API | pollers_cancelled={cancelled}")


app = FastAPI(
    title="TaskLynk API",
    description="Order lifecycle, pricing and payments for the TaskLynk marketplace",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Core errors -> HTTP status codes
app.add_exception_handler(MarketplaceError, marketplace_error_handler)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
api = APIRouter(prefix="/api/v1")
api.include_router(pricing_router)
api.include_router(orders_router)
api.include_router(payments_router)
app.include_router(api)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "tasklynk-api",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health(market: Market):
    """Detailed health check with a storage round trip."""
    storage_status = "disconnected"
    try:
        market.storage.list_orders(limit=1)
        storage_status = "connected"
    except Exception as e:
        storage_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if storage_status == "connected" else "degraded",
        "storage": storage_status,
    }
