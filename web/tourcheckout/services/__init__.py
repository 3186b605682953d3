from .booking_service import BookingRecoveryService, BookingService, BookingView, Quote
from .cancellation_service import CancellationService
from .guest_validation_service import GuestValidator, ValidationResult
from .payment_service import PaymentGuard, PaymentService, parse_callback, route_payment
from .pricing_service import compute_base_total
from .voucher_service import VoucherBreakdown, apply_voucher, reconcile

__all__ = [
    "BookingService",
    "BookingRecoveryService",
    "BookingView",
    "Quote",
    "CancellationService",
    "GuestValidator",
    "ValidationResult",
    "PaymentGuard",
    "PaymentService",
    "parse_callback",
    "route_payment",
    "compute_base_total",
    "VoucherBreakdown",
    "apply_voucher",
    "reconcile",
]
