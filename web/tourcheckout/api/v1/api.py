from fastapi import APIRouter

from .endpoints import bookings, cancellations, payments, quotes


# Create main API router
api_v1_router = APIRouter()

# Pricing (no caller identity needed)
api_v1_router.include_router(
    quotes.router,
    tags=["quotes"]
)

# Booking lifecycle
api_v1_router.include_router(
    bookings.router,
    tags=["bookings"]
)

# Payment sessions and provider callbacks
api_v1_router.include_router(
    payments.router,
    tags=["payments"]
)

# Refund preview and cancellation
api_v1_router.include_router(
    cancellations.router,
    tags=["cancellations"]
)
