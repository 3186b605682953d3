"""Application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .api.v1.api import api_v1_router
from .api.v1.middleware import base_error_handler, unhandled_exception_handler, validation_exception_handler
from .core import BaseError, get_settings
from .deps import KVStoreDep
from .infrastructure import MarketplaceClient, get_redis

# Rate limiting
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT_DEFAULT])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    app.state.marketplace = MarketplaceClient()
    logger.info("Checkout API started against %s", settings.MARKETPLACE_API_URL)

    yield

    # Shutdown
    await app.state.marketplace.aclose()
    await get_redis().aclose()


# Create FastAPI app
app = FastAPI(
    title="Tour Checkout API",
    description="Booking pricing, payment and status orchestration",
    version="1.0.0",
    lifespan=lifespan
)

# Attach rate-limiter
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"]
)

# Rate limiting
@app.exception_handler(RateLimitExceeded)
async def ratelimit_handler(request: Request, exc: RateLimitExceeded):
    return PlainTextResponse("Too many requests", status_code=429)

app.add_middleware(SlowAPIMiddleware)

# Exception handling
app.add_exception_handler(BaseError, base_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Include v1 API with all endpoints
app.include_router(api_v1_router, prefix="/api/v1")


# Health check
@app.get("/healthz")
async def healthz(store: KVStoreDep):
    """Health check endpoint."""
    return {"api": "ok", "redis": "ok" if await store.ping() else "error"}


# Root endpoint
@app.get("/")
async def root():
    """API root."""
    return {
        "message": "Tour Checkout API v1",
        "docs": "/docs",
        "health": "/healthz"
    }
