from fastapi import APIRouter

from ....core.config import get_settings
from ....deps import BookingServiceDep
from ....models import GuestComposition
from ..schemas.checkout_schemas import QuoteIn, QuoteOut


router = APIRouter()


@router.post("/quotes", response_model=QuoteOut)
async def quote(payload: QuoteIn, service: BookingServiceDep):
    """Price breakdown for a guest composition and an optional voucher."""
    composition = GuestComposition(adults=payload.adults, children=payload.children, babies=payload.babies)
    result = await service.quote(
        payload.tour_id,
        composition,
        voucher=payload.voucher,
        vouchers=payload.vouchers,
        booking_id=payload.booking_id,
    )
    return QuoteOut.from_quote(result, get_settings().CURRENCY)
