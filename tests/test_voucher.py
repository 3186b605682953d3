import logging
from datetime import date
from decimal import Decimal

import pytest

from tourcheckout.core.exceptions import VoucherInapplicableError
from tourcheckout.models import Voucher, VoucherPreview
from tourcheckout.services.voucher_service import (
    apply_voucher,
    best_voucher,
    effective_deposit_percentage,
    quote,
    reconcile,
    split_deposit,
)


def make_voucher(**overrides) -> Voucher:
    data = {
        "code": "SUMMER10",
        "discountType": "PERCENT",
        "discountValue": 10,
        "minOrderValue": 500000,
        "remainingQuantity": 5,
    }
    data.update(overrides)
    return Voucher.model_validate(data)


def test_percent_voucher_with_deposit_split():
    breakdown = apply_voucher(Decimal("2000000"), make_voucher(), Decimal("30"))

    assert breakdown.base_total == Decimal("2000000")
    assert breakdown.discount_amount == Decimal("200000")
    assert breakdown.final_total == Decimal("1800000")
    assert breakdown.deposit_amount == Decimal("540000")
    assert breakdown.remaining_amount == Decimal("1260000")
    assert breakdown.is_split


def test_percent_discount_is_floored():
    breakdown = apply_voucher(Decimal("999999"), make_voucher(discountValue=15, minOrderValue=0), None)
    # 149999.85 floors to 149999
    assert breakdown.discount_amount == Decimal("149999")
    assert breakdown.final_total == Decimal("850000")


def test_fixed_discount_is_clamped_to_base_total():
    voucher = make_voucher(discountType="FIXED", discountValue=5000000, minOrderValue=0)
    breakdown = apply_voucher(Decimal("1200000"), voucher, Decimal("30"))
    assert breakdown.discount_amount == Decimal("1200000")
    assert breakdown.final_total == Decimal("0")
    assert breakdown.deposit_amount + breakdown.remaining_amount == Decimal("0")


def test_no_voucher_means_no_discount():
    breakdown = apply_voucher(Decimal("750000"), None, Decimal("0"))
    assert breakdown.discount_amount == Decimal("0")
    assert breakdown.final_total == Decimal("750000")
    assert breakdown.deposit_amount == Decimal("750000")
    assert breakdown.remaining_amount == Decimal("0")


@pytest.mark.parametrize("pct", ["0", "1", "12.5", "33", "50", "99", "100"])
def test_deposit_and_remaining_add_up_to_final_total(pct):
    final_total = Decimal("1234567")
    deposit, remaining = split_deposit(final_total, Decimal(pct))
    assert deposit + remaining == final_total
    assert deposit >= 0 and remaining >= 0


@pytest.mark.parametrize("pct", ["0", "100", "150", "-5"])
def test_edge_percentages_mean_single_full_payment(pct):
    assert split_deposit(Decimal("900000"), Decimal(pct)) == (Decimal("900000"), Decimal("0"))


def test_voucher_deposit_percentage_overrides_tour_default():
    voucher = make_voucher(depositPercentage=50)
    assert effective_deposit_percentage(voucher, Decimal("30")) == Decimal("50")
    assert effective_deposit_percentage(make_voucher(), Decimal("30")) == Decimal("30")

    breakdown = apply_voucher(Decimal("2000000"), voucher, Decimal("30"))
    assert breakdown.deposit_amount == Decimal("900000")


def test_voucher_below_minimum_order_is_inapplicable():
    with pytest.raises(VoucherInapplicableError) as exc_info:
        apply_voucher(Decimal("400000"), make_voucher(), Decimal("30"))
    assert exc_info.value.code == "SUMMER10"
    assert exc_info.value.status_code == 422


def test_voucher_without_remaining_quantity_is_inapplicable():
    with pytest.raises(VoucherInapplicableError):
        apply_voucher(Decimal("2000000"), make_voucher(remainingQuantity=0), Decimal("30"))


def test_inactive_or_out_of_range_voucher_is_inapplicable():
    with pytest.raises(VoucherInapplicableError):
        apply_voucher(Decimal("2000000"), make_voucher(status="EXPIRED"), Decimal("30"))
    with pytest.raises(VoucherInapplicableError):
        apply_voucher(
            Decimal("2000000"),
            make_voucher(endDate="2025-01-01"),
            Decimal("30"),
            today=date(2025, 2, 1),
        )


def test_quote_continues_without_inapplicable_voucher():
    breakdown = quote(Decimal("400000"), make_voucher(), Decimal("30"))
    assert breakdown.discount_amount == Decimal("0")
    assert breakdown.final_total == Decimal("400000")
    assert breakdown.voucher_code is None
    assert "minimum" in breakdown.voucher_error


def test_server_preview_wins_and_mismatch_is_logged(caplog):
    local = apply_voucher(Decimal("2000000"), make_voucher(), Decimal("30"))
    preview = VoucherPreview.model_validate({
        "voucherCode": "SUMMER10",
        "discountAmount": 200000,
        "finalTotal": 1800000,
        "finalDepositAmount": 540001,
        "finalRemainingAmount": 1259999,
        "depositPercentage": 30,
    })

    with caplog.at_level(logging.WARNING, logger="tourcheckout.services.voucher_service"):
        result = reconcile(local, preview)

    assert result.from_server
    assert result.deposit_amount == Decimal("540001")
    assert result.remaining_amount == Decimal("1259999")
    assert any("deposit_amount" in record.getMessage() for record in caplog.records)


def test_matching_preview_logs_nothing(caplog):
    local = apply_voucher(Decimal("2000000"), make_voucher(), Decimal("30"))
    preview = VoucherPreview(
        voucher_code="SUMMER10",
        discount_amount=Decimal("200000"),
        final_total=Decimal("1800000"),
        final_deposit_amount=Decimal("540000"),
        final_remaining_amount=Decimal("1260000"),
        deposit_percentage=Decimal("30"),
    )
    with caplog.at_level(logging.WARNING):
        reconcile(local, preview)
    assert not caplog.records


def test_server_rejected_preview_degrades_to_no_voucher():
    preview = VoucherPreview(final_total=Decimal("0"), applicable=False, message="used up")
    breakdown = quote(Decimal("2000000"), make_voucher(), Decimal("30"), preview=preview)
    assert breakdown.discount_amount == Decimal("0")
    assert breakdown.voucher_error == "used up"


def test_best_voucher_picks_largest_applicable_discount():
    vouchers = [
        make_voucher(code="TEN"),
        make_voucher(code="FLAT300", discountType="FIXED", discountValue=300000),
        make_voucher(code="BIG", discountValue=50, minOrderValue=5000000),
        make_voucher(code="EMPTY", discountValue=90, remainingQuantity=0),
    ]
    best = best_voucher(Decimal("2000000"), vouchers, Decimal("30"))
    assert best.code == "FLAT300"


def test_best_voucher_none_when_nothing_applies():
    assert best_voucher(Decimal("100"), [make_voucher()], Decimal("30")) is None
