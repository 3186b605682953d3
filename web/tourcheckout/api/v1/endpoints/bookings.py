"""Booking endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from ....deps import BookingServiceDep, EmailDep, RecoveryServiceDep
from ..schemas.booking_schemas import BookingIn, BookingOut, ComplaintIn, TourBookedOut
from ..schemas.checkout_schemas import VoucherPreviewOut


router = APIRouter()


@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(payload: BookingIn, email: EmailDep, service: BookingServiceDep):
    """Validate the booking form and create the booking on the backend."""
    view = await service.submit_booking(payload.to_request(email))
    return BookingOut.from_view(view)


@router.get("/bookings/history", response_model=List[BookingOut])
async def booking_history(email: EmailDep, service: BookingServiceDep):
    """Bookings of the caller, newest first."""
    return [BookingOut.from_view(view) for view in await service.history(email)]


@router.get("/bookings/pending", response_model=Optional[BookingOut])
async def pending_booking(
    email: EmailDep,
    service: RecoveryServiceDep,
    tour_id: Optional[int] = Query(None, alias="tourId"),
):
    """Booking the caller left unfinished, if any."""
    view = await service.recover(email, tour_id)
    return BookingOut.from_view(view) if view else None


@router.get("/tours/{tour_id}/booked", response_model=TourBookedOut)
async def tour_booked(tour_id: int, email: EmailDep, service: BookingServiceDep):
    return TourBookedOut(tour_id=tour_id, booked=await service.has_completed_booking(email, tour_id))


@router.get("/bookings/{booking_id}", response_model=BookingOut)
async def get_booking(booking_id: int, email: EmailDep, service: BookingServiceDep):
    return BookingOut.from_view(await service.get_booking(booking_id))


@router.put("/bookings/{booking_id}", response_model=BookingOut)
async def update_booking(booking_id: int, payload: BookingIn, email: EmailDep, service: BookingServiceDep):
    """Edit a booking the operator sent back and resubmit it for approval."""
    view = await service.update_booking(booking_id, payload.to_request(email))
    return BookingOut.from_view(view)


@router.get("/bookings/{booking_id}/vouchers", response_model=List[VoucherPreviewOut])
async def booking_vouchers(booking_id: int, email: EmailDep, service: BookingServiceDep):
    previews = await service.preview_vouchers(booking_id)
    return [VoucherPreviewOut.from_preview(preview) for preview in previews]


@router.post("/bookings/{booking_id}/complete", response_model=BookingOut)
async def confirm_completion(booking_id: int, email: EmailDep, service: BookingServiceDep):
    return BookingOut.from_view(await service.confirm_completion(booking_id))


@router.post("/bookings/{booking_id}/complaint", response_model=BookingOut)
async def file_complaint(booking_id: int, payload: ComplaintIn, email: EmailDep, service: BookingServiceDep):
    return BookingOut.from_view(await service.file_complaint(booking_id, payload.message))
