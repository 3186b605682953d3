from decimal import Decimal

import pytest

from tourcheckout.core.exceptions import DataIntegrityError, StateConflictError
from tourcheckout.infrastructure.repositories import CancellationPreviewRepository, preview_key
from tourcheckout.services.cancellation_service import CancellationService


PREVIEW = {
    "refundAmount": 420000,
    "refundPercentage": 70,
    "payedAmount": 600000,
    "depositAmount": 600000,
    "totalAmount": 2000000,
}


PREVIEW_TTL = 900


@pytest.fixture
def previews(store):
    return CancellationPreviewRepository(store, ttl=PREVIEW_TTL)


@pytest.fixture
def service(client, previews):
    return CancellationService(client, previews)


async def test_preview_matches_confirmed_cancellation(marketplace, service):
    marketplace.add_booking(7, bookingStatus="WAITING_FOR_APPROVED", payedAmount=600000)
    marketplace.cancel_previews[7] = PREVIEW

    preview = await service.preview_cancel(7)
    result = await service.confirm_cancel(7)

    assert preview.refund_amount == result.refund_amount == Decimal("420000")
    assert preview.refund_percentage == result.refund_percentage == Decimal("70")
    assert marketplace.status_of(7) == "BOOKING_CANCELLED"


async def test_refund_above_paid_amount_is_a_data_error(marketplace, service):
    marketplace.add_booking(7, bookingStatus="WAITING_FOR_APPROVED")
    marketplace.cancel_previews[7] = {**PREVIEW, "refundAmount": 700000}

    with pytest.raises(DataIntegrityError) as exc_info:
        await service.preview_cancel(7)
    assert exc_info.value.details["payed_amount"] == "600000"


async def test_negative_refund_is_a_data_error(marketplace, service):
    marketplace.add_booking(7, bookingStatus="BOOKING_BALANCE_SUCCESS")
    marketplace.cancel_previews[7] = {**PREVIEW, "refundAmount": -1}

    with pytest.raises(DataIntegrityError):
        await service.preview_cancel(7)


async def test_confirmation_that_differs_from_preview_is_a_conflict(marketplace, service):
    marketplace.add_booking(7, bookingStatus="WAITING_FOR_APPROVED")
    marketplace.cancel_previews[7] = PREVIEW
    await service.preview_cancel(7)

    marketplace.cancel_results[7] = {**PREVIEW, "refundAmount": 300000, "refundPercentage": 50}
    with pytest.raises(StateConflictError) as exc_info:
        await service.confirm_cancel(7)
    assert exc_info.value.details["result"]["refundAmount"] == "300000"


async def test_cancel_requires_cancellable_status(marketplace, service):
    marketplace.add_booking(7, bookingStatus="PENDING_DEPOSIT_PAYMENT")
    marketplace.cancel_previews[7] = PREVIEW

    with pytest.raises(StateConflictError):
        await service.preview_cancel(7)
    assert marketplace.calls("GET", "/api/booking/id/7/cancel-preview") == 0


async def test_preview_is_shared_between_service_instances(marketplace, client, previews, store):
    marketplace.add_booking(7, bookingStatus="WAITING_FOR_UPDATE")
    marketplace.cancel_previews[7] = PREVIEW

    await CancellationService(client, previews).preview_cancel(7)
    assert preview_key(7) in store.data

    await CancellationService(client, previews).confirm_cancel(7)
    assert preview_key(7) not in store.data


async def test_unconfirmed_previews_expire(marketplace, service, store):
    for booking_id in range(1, 51):
        marketplace.add_booking(booking_id, bookingStatus="WAITING_FOR_APPROVED")
        marketplace.cancel_previews[booking_id] = PREVIEW
        await service.preview_cancel(booking_id)

    assert len(store.data) == 50
    assert set(store.ttls.values()) == {PREVIEW_TTL}


async def test_cancel_goes_ahead_when_preview_store_is_down(marketplace, service, store):
    marketplace.add_booking(7, bookingStatus="WAITING_FOR_APPROVED")
    marketplace.cancel_previews[7] = PREVIEW
    store.broken = True

    await service.preview_cancel(7)
    result = await service.confirm_cancel(7)

    assert result.refund_amount == Decimal("420000")
    assert marketplace.status_of(7) == "BOOKING_CANCELLED"
