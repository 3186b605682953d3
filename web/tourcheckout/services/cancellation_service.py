from __future__ import annotations

import logging

from ..core.base import BaseService
from ..core.exceptions import DataIntegrityError, StateConflictError
from ..infrastructure.marketplace_client import MarketplaceClient
from ..infrastructure.repositories import CancellationPreviewRepository
from ..models import CancellationPreview, ZERO
from .booking_state import BookingAction, require_action
from .voucher_service import HUNDRED


logger = logging.getLogger(__name__)


def check_refund(booking_id: int, preview: CancellationPreview) -> CancellationPreview:
    """Refund must stay within what the customer actually paid"""
    if preview.refund_amount < ZERO or preview.refund_amount > preview.payed_amount:
        raise DataIntegrityError(
            f"Refund {preview.refund_amount} for booking {booking_id} exceeds paid amount {preview.payed_amount}",
            booking_id=booking_id,
            refund_amount=str(preview.refund_amount),
            payed_amount=str(preview.payed_amount),
        )
    if not ZERO <= preview.refund_percentage <= HUNDRED:
        raise DataIntegrityError(
            f"Refund percentage {preview.refund_percentage} for booking {booking_id} is out of range",
            booking_id=booking_id,
            refund_percentage=str(preview.refund_percentage),
        )
    return preview


class CancellationService(BaseService):
    """Refund preview and confirmed cancellation.

    The refund policy lives on the backend; this service only checks the
    figures it gets back and that a confirmation matches its preview.
    """

    def __init__(
        self,
        client: MarketplaceClient,
        previews: CancellationPreviewRepository,
    ):
        super().__init__(client)
        self.previews = previews

    async def _cancellable(self, booking_id: int):
        booking = await self.client.get_booking(booking_id)
        require_action(booking, BookingAction.CANCEL)
        return booking

    async def preview_cancel(self, booking_id: int) -> CancellationPreview:
        await self._cancellable(booking_id)
        preview = check_refund(booking_id, await self.client.preview_cancel_booking(booking_id))
        await self.previews.save(booking_id, preview)
        return preview

    async def confirm_cancel(self, booking_id: int) -> CancellationPreview:
        booking = await self._cancellable(booking_id)
        result = check_refund(booking_id, await self.client.cancel_booking(booking_id))
        logger.info(
            "Booking %s cancelled, refund %s (%s%%)",
            booking_id, result.refund_amount, result.refund_percentage,
        )

        preview = await self.previews.pop(booking_id)
        if preview is None:
            return result
        if (preview.refund_amount, preview.refund_percentage) != (result.refund_amount, result.refund_percentage):
            logger.warning(
                "Booking %s refund changed after preview: previewed %s (%s%%), got %s (%s%%)",
                booking_id,
                preview.refund_amount, preview.refund_percentage,
                result.refund_amount, result.refund_percentage,
            )
            raise StateConflictError(
                f"Refund for booking {booking_id} changed since it was previewed",
                status=booking.status,
                previewed=preview.model_dump(mode="json", by_alias=True),
                result=result.model_dump(mode="json", by_alias=True),
            )
        return result
