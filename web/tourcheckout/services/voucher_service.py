"""Voucher discount and deposit/remaining split.

Every screen of the checkout flow reads its figures from here so the
booking, confirmation and payment steps can never disagree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Iterable, Optional

from ..core.exceptions import VoucherInapplicableError
from ..models import DiscountType, Voucher, VoucherPreview, VoucherStatus, ZERO


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
WHOLE = Decimal("1")


@dataclass(frozen=True)
class VoucherBreakdown:
    base_total: Decimal
    discount_amount: Decimal
    final_total: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    deposit_percentage: Decimal
    voucher_code: Optional[str] = None
    from_server: bool = False
    voucher_error: Optional[str] = None

    @property
    def is_split(self) -> bool:
        return is_split_percentage(self.deposit_percentage)


def clamp_percentage(value: Optional[Decimal]) -> Decimal:
    if value is None:
        return ZERO
    return min(max(Decimal(value), ZERO), HUNDRED)


def is_split_percentage(pct: Decimal) -> bool:
    """0 and 100 both mean a single full payment"""
    return ZERO < pct < HUNDRED


def effective_deposit_percentage(
    voucher: Optional[Voucher], tour_deposit_pct: Optional[Decimal]
) -> Decimal:
    # voucher override wins over the tour default
    if voucher is not None and voucher.deposit_percentage is not None:
        return clamp_percentage(voucher.deposit_percentage)
    return clamp_percentage(tour_deposit_pct)


def split_deposit(final_total: Decimal, pct: Decimal) -> tuple[Decimal, Decimal]:
    """Return (deposit, remaining) for a final total and deposit percentage"""
    pct = clamp_percentage(pct)
    if not is_split_percentage(pct):
        return final_total, ZERO
    deposit = (final_total * pct / HUNDRED).quantize(WHOLE, rounding=ROUND_HALF_UP)
    return deposit, final_total - deposit


def discount_for(base_total: Decimal, voucher: Optional[Voucher]) -> Decimal:
    if voucher is None:
        return ZERO
    if voucher.discount_type is DiscountType.PERCENT:
        discount = (base_total * voucher.discount_value / HUNDRED).to_integral_value(rounding=ROUND_FLOOR)
    else:
        discount = voucher.discount_value
    return min(max(discount, ZERO), base_total)


def check_applicable(
    base_total: Decimal, voucher: Voucher, today: Optional[date] = None
) -> None:
    """Raise VoucherInapplicableError when the voucher can't be used"""
    if voucher.remaining_quantity <= 0:
        raise VoucherInapplicableError(voucher.code, "no remaining quantity")
    if voucher.status is not VoucherStatus.ACTIVE:
        raise VoucherInapplicableError(voucher.code, f"voucher is {voucher.status.value.lower()}")
    if base_total < voucher.min_order_value:
        raise VoucherInapplicableError(
            voucher.code, f"order total below minimum {voucher.min_order_value}"
        )
    if today is not None:
        if voucher.start_date and today < voucher.start_date:
            raise VoucherInapplicableError(voucher.code, "voucher not yet valid")
        if voucher.end_date and today > voucher.end_date:
            raise VoucherInapplicableError(voucher.code, "voucher expired")


def apply_voucher(
    base_total: Decimal,
    voucher: Optional[Voucher],
    tour_deposit_pct: Optional[Decimal],
    today: Optional[date] = None,
) -> VoucherBreakdown:
    """Discount, final total and deposit split computed locally"""
    if voucher is not None:
        check_applicable(base_total, voucher, today)

    discount = discount_for(base_total, voucher)
    final_total = base_total - discount
    pct = effective_deposit_percentage(voucher, tour_deposit_pct)
    deposit, remaining = split_deposit(final_total, pct)
    return VoucherBreakdown(
        base_total=base_total,
        discount_amount=discount,
        final_total=final_total,
        deposit_amount=deposit,
        remaining_amount=remaining,
        deposit_percentage=pct,
        voucher_code=voucher.code if voucher else None,
    )


def reconcile(local: VoucherBreakdown, preview: Optional[VoucherPreview]) -> VoucherBreakdown:
    """Prefer the server preview and report every field it disagrees on"""
    if preview is None:
        return local

    server = VoucherBreakdown(
        base_total=local.base_total,
        discount_amount=preview.discount_amount,
        final_total=preview.final_total,
        deposit_amount=preview.final_deposit_amount,
        remaining_amount=preview.final_remaining_amount,
        deposit_percentage=clamp_percentage(preview.deposit_percentage),
        voucher_code=preview.voucher_code or local.voucher_code,
        from_server=True,
    )
    # Full payment previews may leave the split fields empty
    if not server.is_split and server.deposit_amount == ZERO and server.remaining_amount == ZERO:
        server = replace(server, deposit_amount=server.final_total)

    for field in ("discount_amount", "final_total", "deposit_amount", "remaining_amount", "deposit_percentage"):
        ours, theirs = getattr(local, field), getattr(server, field)
        if ours != theirs:
            logger.warning(
                "Voucher %s preview mismatch on %s: local=%s server=%s",
                server.voucher_code, field, ours, theirs,
            )
    return server


def quote(
    base_total: Decimal,
    voucher: Optional[Voucher],
    tour_deposit_pct: Optional[Decimal],
    preview: Optional[VoucherPreview] = None,
    today: Optional[date] = None,
) -> VoucherBreakdown:
    """Breakdown for checkout; an unusable voucher degrades to no discount"""
    try:
        local = apply_voucher(base_total, voucher, tour_deposit_pct, today)
    except VoucherInapplicableError as exc:
        logger.info("Continuing without voucher: %s", exc.message)
        fallback = apply_voucher(base_total, None, tour_deposit_pct)
        return replace(fallback, voucher_error=exc.reason)
    if preview is not None and not preview.applicable:
        logger.info("Server rejected voucher %s: %s", preview.voucher_code, preview.message)
        fallback = apply_voucher(base_total, None, tour_deposit_pct)
        return replace(fallback, voucher_error=preview.message or "rejected by server")
    return reconcile(local, preview)


def best_voucher(
    base_total: Decimal,
    vouchers: Iterable[Voucher],
    tour_deposit_pct: Optional[Decimal],
    today: Optional[date] = None,
) -> Optional[Voucher]:
    """Applicable voucher with the largest discount, or None"""
    candidates = []
    for voucher in vouchers:
        try:
            breakdown = apply_voucher(base_total, voucher, tour_deposit_pct, today)
        except VoucherInapplicableError:
            continue
        candidates.append((-breakdown.discount_amount, breakdown.deposit_amount, voucher.code, voucher))
    if not candidates:
        return None
    candidates.sort(key=lambda item: item[:3])
    return candidates[0][3]
