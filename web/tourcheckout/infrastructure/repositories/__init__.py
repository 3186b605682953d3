from .cancellation_preview_repository import CancellationPreviewRepository, preview_key
from .pending_booking_repository import PendingBookingRepository, normalize_email, pending_key

__all__ = [
    "CancellationPreviewRepository",
    "PendingBookingRepository",
    "normalize_email",
    "pending_key",
    "preview_key",
]
