from decimal import Decimal

from ..models import GuestComposition, TourPricing


def compute_base_total(pricing: TourPricing, composition: GuestComposition) -> Decimal:
    """Price of the guest composition before any voucher, no rounding"""
    return (
        composition.adults * pricing.adult_price
        + composition.children * pricing.children_price
        + composition.babies * pricing.baby_price
    )
