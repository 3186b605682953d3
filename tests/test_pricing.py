from decimal import Decimal

import pytest

from tourcheckout.models import GuestComposition, TourPricing
from tourcheckout.services.pricing_service import compute_base_total


PRICING = TourPricing(
    tour_id=1,
    adult_price=Decimal("1000000"),
    children_price=Decimal("650000.50"),
    baby_price=Decimal("120000"),
    deposit_percentage=Decimal("30"),
)


def test_base_total_sums_every_guest_type():
    composition = GuestComposition(adults=2, children=1, babies=1)
    assert compute_base_total(PRICING, composition) == Decimal("2770000.50")


@pytest.mark.parametrize("adults,children,babies,extra", [
    (1, 0, 0, 1),
    (2, 3, 1, 4),
    (5, 0, 2, 0),
])
def test_base_total_is_additive_in_adults(adults, children, babies, extra):
    before = compute_base_total(PRICING, GuestComposition(adults=adults, children=children, babies=babies))
    after = compute_base_total(PRICING, GuestComposition(adults=adults + extra, children=children, babies=babies))
    assert after == before + extra * PRICING.adult_price


def test_base_total_keeps_exact_decimals():
    composition = GuestComposition(adults=0, children=3, babies=0)
    assert compute_base_total(PRICING, composition) == Decimal("1950001.50")


def test_tour_pricing_reads_backend_names():
    pricing = TourPricing.model_validate({
        "id": 7,
        "adultPrice": 100,
        "childrenPrice": None,
        "depositPercentage": 50,
        "tourDeadline": 3,
        "minAdvancedDays": 5,
        "tourExpirationDate": "2026-12-31T17:00:00",
    })
    assert pricing.tour_id == 7
    assert pricing.children_price == Decimal("0")
    assert pricing.booking_deadline_days == 3
    assert pricing.min_advance_days == 5
    assert pricing.expiration_date.isoformat() == "2026-12-31"
