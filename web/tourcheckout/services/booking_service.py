from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import FrozenSet, Iterable, List, Optional, Tuple

from ..core.base import BaseService
from ..core.exceptions import BaseError, NotFoundError, ValidationError
from ..infrastructure.marketplace_client import MarketplaceClient
from ..infrastructure.repositories import PendingBookingRepository
from ..models import (
    Booking,
    BookingRequest,
    BookingStatus,
    Contact,
    GuestComposition,
    TourPricing,
    Voucher,
    VoucherPreview,
)
from .booking_state import (
    CLOSED_STATUSES,
    BookingAction,
    actions_for,
    observe_transition,
    require_action,
)
from .guest_validation_service import GuestValidator, normalize_date
from .pricing_service import compute_base_total
from .voucher_service import VoucherBreakdown, best_voucher, quote as quote_breakdown


logger = logging.getLogger(__name__)


@dataclass
class BookingView:
    """Server-confirmed booking plus the actions its status allows"""

    booking: Booking
    actions: FrozenSet[BookingAction] = field(default_factory=frozenset)

    @classmethod
    def of(cls, booking: Booking) -> "BookingView":
        return cls(booking=booking, actions=actions_for(booking))


@dataclass
class Quote:
    tour_id: int
    base_total: Decimal
    breakdown: VoucherBreakdown
    earliest_departure: date
    latest_departure: Optional[date]


def composition_of(request: BookingRequest) -> GuestComposition:
    """Counts from the request, guest records matched to them by position"""
    composition = GuestComposition.from_guests(list(request.booking_guest_requests))
    composition.adults = request.adults_count
    composition.children = request.children_count
    composition.babies = request.babies_count
    return composition


def contact_of(request: BookingRequest) -> Contact:
    return Contact(
        name=request.contact_name,
        phone=request.contact_phone,
        email=request.contact_email,
        address=request.contact_address,
    )


def _normalized(request: BookingRequest, composition: GuestComposition) -> BookingRequest:
    guests = [
        guest.model_copy(update={"birth_date": normalize_date(guest.birth_date) or guest.birth_date})
        for guest in composition.all_guests()
    ]
    return request.model_copy(update={
        "departure_date": normalize_date(request.departure_date) or request.departure_date,
        "booking_guest_requests": guests,
    })


def _newest_first(bookings: Iterable[Booking]) -> List[Booking]:
    def key(booking: Booking):
        created = booking.created_at.timestamp() if booking.created_at else float("-inf")
        return created, booking.booking_id

    return sorted(bookings, key=key, reverse=True)


class BookingRecoveryService(BaseService):
    """Finds the in-flight booking a user should be sent back to"""

    def __init__(self, client: MarketplaceClient, pending: PendingBookingRepository):
        super().__init__(client)
        self.pending = pending

    async def _open_booking(self, booking_id: int) -> Optional[Booking]:
        try:
            booking = await self.client.get_booking(booking_id)
        except NotFoundError:
            logger.info("Pending booking %s no longer exists", booking_id)
            return None
        if booking.booking_status is None or booking.booking_status in CLOSED_STATUSES:
            return None
        return booking

    async def _latest_unpaid(self, email: str) -> Optional[Booking]:
        latest = await self.pending.scan_latest(email)
        if latest is not None:
            booking = await self._open_booking(latest[0])
            if booking is not None:
                return booking

        try:
            bookings = await self.client.get_bookings_by_email(email)
        except BaseError as exc:
            logger.warning("Booking list for recovery unavailable: %s", exc.message)
            return None

        for booking in _newest_first(bookings):
            status = booking.booking_status
            if status is not None and status not in CLOSED_STATUSES:
                return booking
        return None

    async def scan_latest_unpaid(self, email: str) -> Optional[Tuple[int, int]]:
        """(booking_id, tour_id) of the most recent booking still in progress"""
        booking = await self._latest_unpaid(email)
        if booking is None:
            return None
        return booking.booking_id, booking.tour_id

    async def recover(self, email: str, tour_id: Optional[int] = None) -> Optional[BookingView]:
        if tour_id is not None:
            booking_id = await self.pending.get(email, tour_id)
            if booking_id is not None:
                booking = await self._open_booking(booking_id)
                if booking is not None:
                    return BookingView.of(booking)

        booking = await self._latest_unpaid(email)
        return BookingView.of(booking) if booking else None


class BookingService(BaseService):
    """Booking form submission and the post-booking user actions"""

    def __init__(self, client: MarketplaceClient, pending: PendingBookingRepository):
        super().__init__(client)
        self.pending = pending

    def validator(self) -> GuestValidator:
        return GuestValidator(today=self.today())

    async def _refetch(self, booking_id: int, previous: Optional[str]) -> BookingView:
        booking = await self.client.get_booking(booking_id)
        observe_transition(booking_id, previous, booking.status)
        return BookingView.of(booking)

    async def quote(
        self,
        tour_id: int,
        composition: GuestComposition,
        voucher: Optional[Voucher] = None,
        vouchers: Iterable[Voucher] = (),
        booking_id: Optional[int] = None,
    ) -> Quote:
        pricing = await self.client.get_tour(tour_id)
        base_total = compute_base_total(pricing, composition)
        today = self.today()

        if voucher is None:
            voucher = best_voucher(base_total, vouchers, pricing.deposit_percentage, today)

        preview: Optional[VoucherPreview] = None
        if voucher is not None and booking_id is not None:
            try:
                preview = await self.client.preview_voucher_apply(booking_id, voucher.code)
            except BaseError as exc:
                logger.warning("Voucher preview for booking %s unavailable: %s", booking_id, exc.message)

        breakdown = quote_breakdown(base_total, voucher, pricing.deposit_percentage, preview, today)
        earliest, latest = GuestValidator(today=today).departure_window(pricing)
        return Quote(
            tour_id=tour_id,
            base_total=base_total,
            breakdown=breakdown,
            earliest_departure=earliest,
            latest_departure=latest,
        )

    def _validate_form(self, request: BookingRequest, composition: GuestComposition) -> None:
        validator = self.validator()
        result = validator.validate(composition)
        result.extend(validator.validate_contact(contact_of(request), request.pickup_point, request.departure_date))
        result.raise_for_errors()

    def _validate_against_tour(
        self, pricing: TourPricing, request: BookingRequest, composition: GuestComposition
    ) -> None:
        validator = self.validator()
        result = validator.validate_guest_bounds(pricing, composition)
        result.extend(validator.validate_departure(pricing, request.departure_date))
        result.raise_for_errors()

    async def submit_booking(self, request: BookingRequest) -> BookingView:
        composition = composition_of(request)
        # Form errors never reach the backend
        self._validate_form(request, composition)

        pricing = await self.client.get_tour(request.tour_id)
        self._validate_against_tour(pricing, request, composition)

        booking = await self.client.create_booking(_normalized(request, composition))
        logger.info(
            "Booking %s created for tour %s with status %s",
            booking.booking_id, booking.tour_id, booking.status,
        )
        await self.pending.put(request.user_email, booking.tour_id, booking.booking_id)
        return BookingView.of(booking)

    async def get_booking(self, booking_id: int) -> BookingView:
        return BookingView.of(await self.client.get_booking(booking_id))

    async def update_booking(self, booking_id: int, request: BookingRequest) -> BookingView:
        booking = await self.client.get_booking(booking_id)
        require_action(booking, BookingAction.UPDATE_INFO)

        composition = composition_of(request)
        pricing = await self.client.get_tour(booking.tour_id)
        self.validator().validate_booking(
            pricing, composition, contact_of(request), request.pickup_point, request.departure_date
        ).raise_for_errors()

        await self.client.update_booking(booking_id, _normalized(request, composition))
        await self.client.change_booking_status(booking_id, BookingStatus.WAITING_FOR_APPROVED.value)
        return await self._refetch(booking_id, booking.status)

    async def confirm_completion(self, booking_id: int) -> BookingView:
        booking = await self.client.get_booking(booking_id)
        require_action(booking, BookingAction.CONFIRM_COMPLETION)
        await self.client.confirm_booking_completion(booking_id)
        return await self._refetch(booking_id, booking.status)

    async def file_complaint(self, booking_id: int, message: str) -> BookingView:
        if not (message or "").strip():
            raise ValidationError("Complaint message is required", field="message")
        booking = await self.client.get_booking(booking_id)
        require_action(booking, BookingAction.FILE_COMPLAINT)
        await self.client.create_complaint(booking_id, message.strip())
        return await self._refetch(booking_id, booking.status)

    async def preview_vouchers(self, booking_id: int) -> List[VoucherPreview]:
        try:
            previews = await self.client.preview_all_vouchers(booking_id)
        except BaseError as exc:
            logger.warning("Voucher previews for booking %s unavailable: %s", booking_id, exc.message)
            return []
        return sorted(previews, key=lambda p: p.discount_amount, reverse=True)

    async def history(self, email: str) -> List[BookingView]:
        bookings = await self.client.get_bookings_by_email(email)
        return [BookingView.of(booking) for booking in _newest_first(bookings)]

    async def has_completed_booking(self, email: str, tour_id: int) -> bool:
        bookings = await self.client.get_bookings_by_email(email)
        return any(
            booking.tour_id == tour_id and booking.booking_status is BookingStatus.BOOKING_SUCCESS
            for booking in bookings
        )
