from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from ....models import Booking, BookingRequest, Guest, GuestType
from ....services.booking_service import BookingView


class GuestIn(BaseModel):
    """Schema for one traveller on a booking form"""
    full_name: str = ""
    birth_date: str = ""
    gender: str = ""
    nationality: str = ""
    id_number: str = ""
    guest_type: GuestType = GuestType.ADULT


class BookingIn(BaseModel):
    """Schema for creating or updating a booking"""
    tour_id: int
    contact_name: str = ""
    contact_phone: str = ""
    contact_email: str = ""
    contact_address: str = ""
    pickup_point: str = ""
    note: str = ""
    departure_date: str = ""
    adults_count: int = Field(1, ge=0)
    children_count: int = Field(0, ge=0)
    babies_count: int = Field(0, ge=0)
    guests: List[GuestIn] = []

    def to_request(self, user_email: str) -> BookingRequest:
        return BookingRequest(
            tour_id=self.tour_id,
            user_email=user_email,
            contact_name=self.contact_name,
            contact_phone=self.contact_phone,
            contact_email=self.contact_email,
            contact_address=self.contact_address,
            pickup_point=self.pickup_point,
            note=self.note,
            departure_date=self.departure_date,
            adults_count=self.adults_count,
            children_count=self.children_count,
            babies_count=self.babies_count,
            booking_guest_requests=[Guest(**guest.model_dump()) for guest in self.guests],
        )


class GuestOut(BaseModel):
    full_name: str
    birth_date: str
    gender: str
    nationality: str
    guest_type: GuestType


class BookingOut(BaseModel):
    """Schema for booking responses with the actions its status allows"""
    booking_id: int
    tour_id: int
    tour_name: Optional[str] = None
    status: Optional[str] = None
    contact_name: str
    contact_phone: str
    contact_email: str
    contact_address: str
    pickup_point: str
    note: str
    departure_date: Optional[str] = None
    adults_count: int
    children_count: int
    babies_count: int
    guests: List[GuestOut] = []
    total_amount: Optional[Decimal] = None
    final_total: Decimal
    final_deposit: Optional[Decimal] = None
    payed_amount: Optional[Decimal] = None
    voucher_code: Optional[str] = None
    user_confirmed_completion: bool = False
    created_at: Optional[datetime] = None
    actions: List[str] = []

    @classmethod
    def from_view(cls, view: BookingView) -> "BookingOut":
        booking: Booking = view.booking
        return cls(
            booking_id=booking.booking_id,
            tour_id=booking.tour_id,
            tour_name=booking.tour_name,
            status=booking.status,
            contact_name=booking.contact_name,
            contact_phone=booking.contact_phone,
            contact_email=booking.contact_email,
            contact_address=booking.contact_address,
            pickup_point=booking.pickup_point,
            note=booking.note,
            departure_date=booking.departure_date,
            adults_count=booking.adults_count,
            children_count=booking.children_count,
            babies_count=booking.babies_count,
            guests=[
                GuestOut(
                    full_name=guest.full_name,
                    birth_date=guest.birth_date,
                    gender=guest.gender,
                    nationality=guest.nationality,
                    guest_type=guest.guest_type,
                )
                for guest in booking.guests
            ],
            total_amount=booking.total_amount,
            final_total=booking.final_total,
            final_deposit=booking.final_deposit,
            payed_amount=booking.payed_amount,
            voucher_code=booking.voucher_code,
            user_confirmed_completion=booking.user_confirmed_completion,
            created_at=booking.created_at,
            actions=sorted(action.value for action in view.actions),
        )


class ComplaintIn(BaseModel):
    """Schema for filing a complaint on a finished tour"""
    message: str = Field(..., max_length=2000)


class TourBookedOut(BaseModel):
    tour_id: int
    booked: bool
