from .booking_schemas import BookingIn, BookingOut, ComplaintIn, GuestIn, GuestOut, TourBookedOut
from .checkout_schemas import (
    QuoteIn, QuoteOut, VoucherPreviewOut, PaymentIn, PaymentOut,
    CallbackIn, CallbackOut, AbandonIn, CancellationOut
)

__all__ = [
    # Booking schemas
    "BookingIn",
    "BookingOut",
    "ComplaintIn",
    "GuestIn",
    "GuestOut",
    "TourBookedOut",

    # Checkout schemas
    "QuoteIn",
    "QuoteOut",
    "VoucherPreviewOut",
    "PaymentIn",
    "PaymentOut",
    "CallbackIn",
    "CallbackOut",
    "AbandonIn",
    "CancellationOut",
]
