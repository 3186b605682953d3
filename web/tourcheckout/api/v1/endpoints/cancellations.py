from fastapi import APIRouter

from ....deps import CancellationServiceDep, EmailDep
from ..schemas.checkout_schemas import CancellationOut


router = APIRouter()


@router.get("/bookings/{booking_id}/cancellation", response_model=CancellationOut)
async def preview_cancellation(booking_id: int, email: EmailDep, service: CancellationServiceDep):
    """Refund the customer would get if they cancelled now."""
    preview = await service.preview_cancel(booking_id)
    return CancellationOut.from_preview(booking_id, preview)


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationOut)
async def cancel_booking(booking_id: int, email: EmailDep, service: CancellationServiceDep):
    result = await service.confirm_cancel(booking_id)
    return CancellationOut.from_preview(booking_id, result)
