from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request

from .core.config import get_settings
from .core.exceptions import ValidationError
from .infrastructure import IKeyValueStore, MarketplaceClient, RedisKeyValueStore, get_redis
from .infrastructure.repositories import CancellationPreviewRepository, PendingBookingRepository
from .services import (
    BookingRecoveryService,
    BookingService,
    CancellationService,
    PaymentGuard,
    PaymentService,
)
from .services.guest_validation_service import email_error


def get_client(request: Request) -> MarketplaceClient:
    """Backend client opened for the lifetime of the app"""
    return request.app.state.marketplace


def get_kv_store() -> IKeyValueStore:
    return RedisKeyValueStore(get_redis())


def get_pending_repository(store: Annotated[IKeyValueStore, Depends(get_kv_store)]) -> PendingBookingRepository:
    return PendingBookingRepository(store, ttl=get_settings().PENDING_BOOKING_TTL_SECONDS)


@lru_cache()
def get_payment_guard() -> PaymentGuard:
    return PaymentGuard(ttl=get_settings().PAYMENT_GUARD_TTL_SECONDS)


def get_cancellation_previews(
    store: Annotated[IKeyValueStore, Depends(get_kv_store)]
) -> CancellationPreviewRepository:
    return CancellationPreviewRepository(store, ttl=get_settings().CANCEL_PREVIEW_TTL_SECONDS)


def current_email(x_user_email: Annotated[str, Header()]) -> str:
    """Caller identity forwarded by the app"""
    email = x_user_email.strip()
    problem = email_error(email)
    if problem is not None:
        raise ValidationError(f"X-User-Email header must be a valid email: {problem}", field="X-User-Email")
    return email


ClientDep = Annotated[MarketplaceClient, Depends(get_client)]
PendingDep = Annotated[PendingBookingRepository, Depends(get_pending_repository)]
EmailDep = Annotated[str, Depends(current_email)]
KVStoreDep = Annotated[IKeyValueStore, Depends(get_kv_store)]


def get_booking_service(client: ClientDep, pending: PendingDep) -> BookingService:
    return BookingService(client, pending)


def get_recovery_service(client: ClientDep, pending: PendingDep) -> BookingRecoveryService:
    return BookingRecoveryService(client, pending)


def get_payment_service(
    client: ClientDep,
    pending: PendingDep,
    guard: Annotated[PaymentGuard, Depends(get_payment_guard)],
) -> PaymentService:
    return PaymentService(client, pending, guard)


def get_cancellation_service(
    client: ClientDep,
    previews: Annotated[CancellationPreviewRepository, Depends(get_cancellation_previews)],
) -> CancellationService:
    return CancellationService(client, previews)


BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]
RecoveryServiceDep = Annotated[BookingRecoveryService, Depends(get_recovery_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
CancellationServiceDep = Annotated[CancellationService, Depends(get_cancellation_service)]
