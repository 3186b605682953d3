"""Local validation of guests, contact details and departure date.

Nothing here talks to the backend: a booking that fails these checks is
never submitted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, asdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..core.base import market_today
from ..core.exceptions import ValidationError
from ..models import Contact, Guest, GuestComposition, GuestType, TourPricing


DMY_PATTERN = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
ISO_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
EMAIL_ADAPTER = TypeAdapter(EmailStr)

PHONE_DIGITS = 10
MIN_NAME_LENGTH = 2

# Inclusive (min, max) age in whole years; None means unbounded
AGE_BANDS: Dict[GuestType, Tuple[Optional[int], Optional[int]]] = {
    GuestType.ADULT: (18, None),
    GuestType.CHILD: (2, 17),
    GuestType.BABY: (None, 1),
}


@dataclass
class ValidationFailure:
    scope: str
    field: str
    message: str
    guest_type: Optional[GuestType] = None
    index: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.guest_type is not None:
            data["guest_type"] = self.guest_type.value
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class ValidationResult:
    failures: List[ValidationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def extend(self, other: "ValidationResult") -> "ValidationResult":
        self.failures.extend(other.failures)
        return self

    def raise_for_errors(self) -> None:
        if self.failures:
            first = self.failures[0]
            raise ValidationError(
                first.message,
                field=first.field,
                errors=[f.as_dict() for f in self.failures],
            )


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse DD/MM/YYYY or YYYY-MM-DD, None for anything else"""
    if not value:
        return None
    text = str(value).strip()
    match = DMY_PATTERN.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
    else:
        match = ISO_PATTERN.match(text)
        if not match:
            return None
        year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(value: Optional[str]) -> Optional[str]:
    """ISO string the backend expects, None when unparsable"""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def age_on(birth_date: date, today: date) -> int:
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def in_age_band(guest_type: GuestType, age: int) -> bool:
    low, high = AGE_BANDS[guest_type]
    if low is not None and age < low:
        return False
    if high is not None and age > high:
        return False
    return True


def sanitize_phone(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def email_error(value: Optional[str]) -> Optional[str]:
    """Why the address is rejected, None when it is a valid email"""
    try:
        EMAIL_ADAPTER.validate_python((value or "").strip())
    except PydanticValidationError as exc:
        return exc.errors()[0]["msg"]
    return None


class GuestValidator:
    """Checks a booking form before it is sent to the backend"""

    def __init__(self, today: Optional[date] = None):
        self._today = today

    @property
    def today(self) -> date:
        return self._today or market_today()

    def validate_guest(self, guest: Guest, guest_type: GuestType, index: int) -> Optional[ValidationFailure]:
        """First failing rule for one guest, or None"""
        label = f"{guest_type.value.title()} {index + 1}"

        def fail(field_name: str, message: str) -> ValidationFailure:
            return ValidationFailure(
                scope="guest",
                field=field_name,
                message=f"{label}: {message}",
                guest_type=guest_type,
                index=index,
            )

        if len(guest.full_name.strip()) < MIN_NAME_LENGTH:
            return fail("fullName", "full name is required")
        if not guest.gender.strip():
            return fail("gender", "gender is required")
        if len(guest.nationality.strip()) < MIN_NAME_LENGTH:
            return fail("nationality", "nationality is required")

        birth_date = parse_date(guest.birth_date)
        if birth_date is None:
            return fail("birthDate", "date of birth is missing or invalid")
        age = age_on(birth_date, self.today)
        if not in_age_band(guest_type, age):
            low, high = AGE_BANDS[guest_type]
            if high is None:
                band = f"at least {low} years old"
            elif low is None:
                band = f"under {high + 1} years old"
            else:
                band = f"between {low} and {high} years old"
            return fail("birthDate", f"must be {band}")
        return None

    def validate(self, composition: GuestComposition) -> ValidationResult:
        """Per guest type report the first failing guest; types aggregate"""
        result = ValidationResult()
        if composition.adults < 1:
            result.failures.append(
                ValidationFailure(
                    scope="composition",
                    field="adultsCount",
                    message="At least one adult is required",
                    guest_type=GuestType.ADULT,
                )
            )

        for guest_type in GuestType:
            for index, guest in enumerate(composition.guests_for(guest_type)):
                failure = self.validate_guest(guest, guest_type, index)
                if failure is not None:
                    result.failures.append(failure)
                    break
        return result

    def validate_guest_bounds(self, pricing: TourPricing, composition: GuestComposition) -> ValidationResult:
        result = ValidationResult()
        total = composition.total_guests
        if pricing.min_guests and total < pricing.min_guests:
            result.failures.append(
                ValidationFailure("composition", "totalGuests", f"At least {pricing.min_guests} guests are required")
            )
        if pricing.max_guests and total > pricing.max_guests:
            result.failures.append(
                ValidationFailure("composition", "totalGuests", f"At most {pricing.max_guests} guests are allowed")
            )
        return result

    def validate_contact(
        self, contact: Contact, pickup_point: Optional[str], departure_date: Optional[str]
    ) -> ValidationResult:
        result = ValidationResult()

        def fail(field_name: str, message: str) -> None:
            result.failures.append(ValidationFailure("contact", field_name, message))

        if len(contact.name.strip()) < MIN_NAME_LENGTH:
            fail("contactName", "Full name is required")
        if len(sanitize_phone(contact.phone)) != PHONE_DIGITS:
            fail("contactPhone", f"Phone number must have {PHONE_DIGITS} digits")
        email_problem = email_error(contact.email)
        if email_problem is not None:
            fail("contactEmail", f"Email is invalid: {email_problem}")
        if not contact.address.strip():
            fail("contactAddress", "Address is required")
        if not (pickup_point or "").strip():
            fail("pickupPoint", "Pick-up point is required")
        if not (departure_date or "").strip():
            fail("departureDate", "Departure date is required")
        return result

    def departure_window(self, pricing: TourPricing) -> Tuple[date, Optional[date]]:
        """Inclusive (earliest, latest) legal departure dates"""
        lead_days = max(pricing.booking_deadline_days + 1, pricing.min_advance_days, 1)
        return self.today + timedelta(days=lead_days), pricing.expiration_date

    def validate_departure(self, pricing: TourPricing, departure_date: Optional[str]) -> ValidationResult:
        result = ValidationResult()
        if not (departure_date or "").strip():
            # reported by validate_contact
            return result

        parsed = parse_date(departure_date)
        if parsed is None:
            result.failures.append(
                ValidationFailure("departure", "departureDate", "Departure date is invalid")
            )
            return result

        earliest, latest = self.departure_window(pricing)
        if parsed < earliest:
            result.failures.append(
                ValidationFailure(
                    "departure",
                    "departureDate",
                    f"Departure date must be on or after {earliest.strftime('%d/%m/%Y')}",
                )
            )
        elif latest is not None and parsed > latest:
            result.failures.append(
                ValidationFailure(
                    "departure",
                    "departureDate",
                    f"Departure date must be on or before {latest.strftime('%d/%m/%Y')}",
                )
            )
        return result

    def validate_booking(
        self,
        pricing: TourPricing,
        composition: GuestComposition,
        contact: Contact,
        pickup_point: Optional[str],
        departure_date: Optional[str],
    ) -> ValidationResult:
        result = ValidationResult()
        result.extend(self.validate(composition))
        result.extend(self.validate_guest_bounds(pricing, composition))
        result.extend(self.validate_contact(contact, pickup_point, departure_date))
        result.extend(self.validate_departure(pricing, departure_date))
        return result
