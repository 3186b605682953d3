"""Payment endpoints."""

from fastapi import APIRouter, status

from ....deps import EmailDep, PaymentServiceDep
from ..schemas.checkout_schemas import AbandonIn, CallbackIn, CallbackOut, PaymentIn, PaymentOut


router = APIRouter()


@router.post("/bookings/{booking_id}/payment", response_model=PaymentOut)
async def create_payment(booking_id: int, payload: PaymentIn, email: EmailDep, service: PaymentServiceDep):
    """Open a provider session for whichever leg the booking is waiting on."""
    checkout = await service.create_payment(booking_id, email, payload.voucher_code)
    return PaymentOut.from_checkout(checkout)


@router.post("/bookings/{booking_id}/payment/retry", response_model=PaymentOut)
async def retry_payment(booking_id: int, payload: PaymentIn, email: EmailDep, service: PaymentServiceDep):
    checkout = await service.retry(booking_id, email, payload.voucher_code)
    return PaymentOut.from_checkout(checkout)


@router.post(
    "/bookings/{booking_id}/payment/abandon",
    status_code=status.HTTP_202_ACCEPTED,
)
async def abandon_payment(booking_id: int, payload: AbandonIn, email: EmailDep, service: PaymentServiceDep):
    """Leave the payment page; cleanup runs in the background."""
    service.abandon(booking_id, payload.order_id)
    return {"booking_id": booking_id, "accepted": True}


@router.post("/payments/callback", response_model=CallbackOut)
async def payment_callback(payload: CallbackIn, email: EmailDep, service: PaymentServiceDep):
    """Interpret a redirect of the payment page."""
    result = await service.handle_callback(
        payload.url, payload.booking_id, email, payload.last_known_status
    )
    return CallbackOut.from_result(result)
