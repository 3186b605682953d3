"""Domain models shared by the checkout services.

The marketplace backend owns the wire format, so every model accepts the
backend's camelCase names as well as the Python field names.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


ZERO = Decimal("0")


def enum_text(value: object) -> str:
    """Upper-cased wire text of a string or enum member"""
    if isinstance(value, enum.Enum):
        value = value.value
    return str(value or "").strip().upper()


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class GuestType(str, enum.Enum):
    ADULT = "ADULT"
    CHILD = "CHILD"
    BABY = "BABY"

    @classmethod
    def parse(cls, value: object) -> "GuestType":
        if isinstance(value, cls):
            return value
        raw = enum_text(value)
        if raw == "CHILDREN":
            raw = "CHILD"
        return cls(raw)


class DiscountType(str, enum.Enum):
    PERCENT = "PERCENT"
    FIXED = "FIXED"


class VoucherStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"


class BookingStatus(str, enum.Enum):
    # Payment statuses
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PENDING_DEPOSIT_PAYMENT = "PENDING_DEPOSIT_PAYMENT"
    PENDING_BALANCE_PAYMENT = "PENDING_BALANCE_PAYMENT"

    # Approval statuses
    WAITING_FOR_UPDATE = "WAITING_FOR_UPDATE"
    WAITING_FOR_APPROVED = "WAITING_FOR_APPROVED"

    # Success statuses
    BOOKING_SUCCESS_WAIT_FOR_CONFIRMED = "BOOKING_SUCCESS_WAIT_FOR_CONFIRMED"
    BOOKING_BALANCE_SUCCESS = "BOOKING_BALANCE_SUCCESS"
    BOOKING_SUCCESS_PENDING = "BOOKING_SUCCESS_PENDING"
    BOOKING_SUCCESS = "BOOKING_SUCCESS"

    # Complaint, cancellation and failure
    BOOKING_UNDER_COMPLAINT = "BOOKING_UNDER_COMPLAINT"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_FAILED = "BOOKING_FAILED"

    @classmethod
    def parse(cls, value: object) -> Optional["BookingStatus"]:
        """Case-insensitive lookup; unknown strings yield None"""
        raw = enum_text(value)
        try:
            return cls(raw)
        except ValueError:
            return None


class TourPricing(WireModel):
    """Price table and date constraints of one tour snapshot"""

    model_config = ConfigDict(frozen=True)

    tour_id: int = Field(validation_alias=AliasChoices("id", "tourId", "tour_id"))
    tour_name: Optional[str] = None
    adult_price: Decimal = ZERO
    children_price: Decimal = ZERO
    baby_price: Decimal = ZERO
    deposit_percentage: Decimal = ZERO
    booking_deadline_days: int = Field(
        default=0,
        validation_alias=AliasChoices("tourDeadline", "bookingDeadlineDays", "booking_deadline_days"),
    )
    min_advance_days: int = Field(
        default=0,
        validation_alias=AliasChoices("minAdvancedDays", "minAdvanceDays", "min_advance_days"),
    )
    expiration_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("tourExpirationDate", "expirationDate", "expiration_date"),
    )
    min_guests: Optional[int] = None
    max_guests: Optional[int] = None

    @field_validator(
        "adult_price", "children_price", "baby_price", "deposit_percentage", mode="before"
    )
    @classmethod
    def _none_is_zero(cls, value):
        return ZERO if value is None else value

    @field_validator("booking_deadline_days", "min_advance_days", mode="before")
    @classmethod
    def _none_is_zero_days(cls, value):
        return 0 if value is None else value

    @field_validator("expiration_date", mode="before")
    @classmethod
    def _date_part(cls, value):
        # Backend sends either a date or a full timestamp
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        if isinstance(value, datetime):
            return value.date()
        return value


class Guest(WireModel):
    full_name: str = ""
    birth_date: str = ""
    gender: str = ""
    nationality: str = ""
    id_number: str = ""
    guest_type: GuestType = Field(
        default=GuestType.ADULT,
        validation_alias=AliasChoices("bookingGuestType", "guestType", "guest_type"),
        serialization_alias="bookingGuestType",
    )

    @field_validator("guest_type", mode="before")
    @classmethod
    def _parse_guest_type(cls, value):
        return GuestType.parse(value)

    @field_validator("full_name", "birth_date", "gender", "nationality", "id_number", mode="before")
    @classmethod
    def _none_is_blank(cls, value):
        return "" if value is None else value


GUEST_COUNT_FLOORS = {GuestType.ADULT: 1, GuestType.CHILD: 0, GuestType.BABY: 0}


class GuestComposition(WireModel):
    """Guest counts plus one positional record list per guest type.

    Records are created lazily as counts grow. Shrinking a count drops the
    trailing records; growing again creates fresh blank ones, so a record is
    never carried over to a different position.
    """

    adults: int = Field(default=1, ge=0)
    children: int = Field(default=0, ge=0)
    babies: int = Field(default=0, ge=0)
    adult_guests: List[Guest] = Field(default_factory=list)
    child_guests: List[Guest] = Field(default_factory=list)
    baby_guests: List[Guest] = Field(default_factory=list)

    def count(self, guest_type: GuestType) -> int:
        return {
            GuestType.ADULT: self.adults,
            GuestType.CHILD: self.children,
            GuestType.BABY: self.babies,
        }[guest_type]

    def _set_count(self, guest_type: GuestType, value: int) -> None:
        if guest_type is GuestType.ADULT:
            self.adults = value
        elif guest_type is GuestType.CHILD:
            self.children = value
        else:
            self.babies = value

    def _records(self, guest_type: GuestType) -> List[Guest]:
        return {
            GuestType.ADULT: self.adult_guests,
            GuestType.CHILD: self.child_guests,
            GuestType.BABY: self.baby_guests,
        }[guest_type]

    def increment(self, guest_type: GuestType) -> int:
        self._set_count(guest_type, self.count(guest_type) + 1)
        return self.count(guest_type)

    def decrement(self, guest_type: GuestType) -> int:
        floor = GUEST_COUNT_FLOORS[guest_type]
        self._set_count(guest_type, max(floor, self.count(guest_type) - 1))
        del self._records(guest_type)[self.count(guest_type):]
        return self.count(guest_type)

    def guests_for(self, guest_type: GuestType) -> List[Guest]:
        records = self._records(guest_type)
        wanted = self.count(guest_type)
        del records[wanted:]
        while len(records) < wanted:
            records.append(Guest(guest_type=guest_type))
        return records

    def all_guests(self) -> List[Guest]:
        return [
            guest
            for guest_type in GuestType
            for guest in self.guests_for(guest_type)
        ]

    @property
    def total_guests(self) -> int:
        return self.adults + self.children + self.babies

    @classmethod
    def from_guests(cls, guests: List[Guest]) -> "GuestComposition":
        composition = cls(adults=0)
        for guest in guests:
            composition._records(guest.guest_type).append(guest)
        composition.adults = len(composition.adult_guests)
        composition.children = len(composition.child_guests)
        composition.babies = len(composition.baby_guests)
        return composition


class Voucher(WireModel):
    voucher_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("voucherId", "id", "voucher_id"))
    code: str = Field(validation_alias=AliasChoices("code", "voucherCode"))
    name: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = ZERO
    min_order_value: Decimal = ZERO
    remaining_quantity: int = 0
    deposit_percentage: Optional[Decimal] = None
    status: VoucherStatus = VoucherStatus.ACTIVE
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("discount_type", mode="before")
    @classmethod
    def _parse_discount_type(cls, value):
        return enum_text(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_part(cls, value):
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value


class VoucherPreview(WireModel):
    """Server-computed discount and deposit breakdown for one voucher"""

    voucher_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("voucherCode", "code"))
    discount_amount: Decimal = ZERO
    final_total: Decimal = Field(validation_alias=AliasChoices("finalTotal", "finalTotalAmount"))
    final_deposit_amount: Decimal = ZERO
    final_remaining_amount: Decimal = ZERO
    deposit_percentage: Decimal = ZERO
    applicable: bool = True
    message: Optional[str] = None


class Contact(WireModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""


class Booking(WireModel):
    booking_id: int = Field(validation_alias=AliasChoices("bookingId", "id"))
    tour_id: int = Field(validation_alias=AliasChoices("tourId", "tour_id"))
    tour_name: Optional[str] = None
    contact_name: str = ""
    contact_phone: str = ""
    contact_email: str = ""
    contact_address: str = ""
    pickup_point: str = ""
    note: str = ""
    departure_date: Optional[str] = None
    adults_count: int = 0
    children_count: int = 0
    babies_count: int = 0
    guests: List[Guest] = Field(default_factory=list)
    status: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("bookingStatus", "status"),
    )
    total_amount: Optional[Decimal] = None
    deposit_amount: Optional[Decimal] = None
    payed_amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    refund_percentage: Optional[Decimal] = None
    voucher_discount_applied: Optional[Decimal] = None
    total_discount_amount: Optional[Decimal] = None
    deposit_discount_amount: Optional[Decimal] = None
    voucher_code: Optional[str] = None
    user_confirmed_completion: bool = False
    created_at: Optional[datetime] = None

    @field_validator(
        "contact_name", "contact_phone", "contact_email", "contact_address",
        "pickup_point", "note", mode="before",
    )
    @classmethod
    def _none_is_blank(cls, value):
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, value):
        return enum_text(value) or None

    @field_validator("user_confirmed_completion", mode="before")
    @classmethod
    def _none_is_false(cls, value):
        return bool(value)

    @property
    def booking_status(self) -> Optional[BookingStatus]:
        return BookingStatus.parse(self.status)

    @property
    def contact(self) -> Contact:
        return Contact(
            name=self.contact_name,
            phone=self.contact_phone,
            email=self.contact_email,
            address=self.contact_address,
        )

    @property
    def composition(self) -> GuestComposition:
        if self.guests:
            return GuestComposition.from_guests(list(self.guests))
        return GuestComposition(
            adults=self.adults_count,
            children=self.children_count,
            babies=self.babies_count,
        )

    @property
    def final_total(self) -> Decimal:
        """Voucher-adjusted total when the backend reports one"""
        if self.total_discount_amount is not None:
            return self.total_discount_amount
        return self.total_amount or ZERO

    @property
    def final_deposit(self) -> Optional[Decimal]:
        if self.deposit_discount_amount is not None:
            return self.deposit_discount_amount
        return self.deposit_amount


class BookingRequest(WireModel):
    """Payload the backend accepts for create and update"""

    tour_id: int
    user_email: str
    contact_name: str
    contact_phone: str
    contact_email: str = ""
    contact_address: str = ""
    pickup_point: str = ""
    note: str = ""
    departure_date: str
    adults_count: int
    children_count: int
    babies_count: int
    booking_guest_requests: List[Guest] = Field(default_factory=list)


class PendingBookingRecord(WireModel):
    booking_id: int
    ts: int


class CancellationPreview(WireModel):
    refund_amount: Decimal = ZERO
    refund_percentage: Decimal = ZERO
    payed_amount: Decimal = ZERO
    deposit_amount: Decimal = ZERO
    total_amount: Decimal = ZERO

    @field_validator(
        "refund_amount", "refund_percentage", "payed_amount", "deposit_amount",
        "total_amount", mode="before",
    )
    @classmethod
    def _none_is_zero(cls, value):
        return ZERO if value is None else value


class PaymentSession(WireModel):
    success: bool = False
    pay_url: Optional[str] = None
    order_id: Optional[str] = None
    message: Optional[str] = None


class Transaction(WireModel):
    order_id: str
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    payment_method: Optional[str] = None
