from typing import List, Optional
from datetime import date
from decimal import Decimal
from pydantic import BaseModel, Field

from ....models import CancellationPreview, Voucher, VoucherPreview
from ....services.booking_service import BookingView, Quote
from ....services.payment_service import CallbackResult, PaymentCheckout
from .booking_schemas import BookingOut


class QuoteIn(BaseModel):
    """Schema for a price quote of a guest composition"""
    tour_id: int
    adults: int = Field(1, ge=0)
    children: int = Field(0, ge=0)
    babies: int = Field(0, ge=0)
    voucher: Optional[Voucher] = None
    vouchers: List[Voucher] = []
    booking_id: Optional[int] = None


class QuoteOut(BaseModel):
    tour_id: int
    base_total: Decimal
    discount_amount: Decimal
    final_total: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    deposit_percentage: Decimal
    voucher_code: Optional[str] = None
    voucher_error: Optional[str] = None
    from_server: bool = False
    earliest_departure: date
    latest_departure: Optional[date] = None
    currency: str

    @classmethod
    def from_quote(cls, quote: Quote, currency: str) -> "QuoteOut":
        breakdown = quote.breakdown
        return cls(
            tour_id=quote.tour_id,
            base_total=quote.base_total,
            discount_amount=breakdown.discount_amount,
            final_total=breakdown.final_total,
            deposit_amount=breakdown.deposit_amount,
            remaining_amount=breakdown.remaining_amount,
            deposit_percentage=breakdown.deposit_percentage,
            voucher_code=breakdown.voucher_code,
            voucher_error=breakdown.voucher_error,
            from_server=breakdown.from_server,
            earliest_departure=quote.earliest_departure,
            latest_departure=quote.latest_departure,
            currency=currency,
        )


class VoucherPreviewOut(BaseModel):
    voucher_code: Optional[str] = None
    discount_amount: Decimal
    final_total: Decimal
    final_deposit_amount: Decimal
    final_remaining_amount: Decimal
    deposit_percentage: Decimal
    applicable: bool = True
    message: Optional[str] = None

    @classmethod
    def from_preview(cls, preview: VoucherPreview) -> "VoucherPreviewOut":
        return cls(**preview.model_dump())


class PaymentIn(BaseModel):
    voucher_code: Optional[str] = None


class PaymentOut(BaseModel):
    """Schema for a created payment session"""
    booking_id: int
    pay_url: str
    order_id: Optional[str] = None
    amount: Decimal
    stage: str
    currency: str
    voucher_code: Optional[str] = None

    @classmethod
    def from_checkout(cls, checkout: PaymentCheckout) -> "PaymentOut":
        return cls(
            booking_id=checkout.booking_id,
            pay_url=checkout.pay_url,
            order_id=checkout.order_id,
            amount=checkout.amount,
            stage=checkout.stage.value,
            currency=checkout.currency,
            voucher_code=checkout.voucher_code,
        )


class CallbackIn(BaseModel):
    """Redirect URL the payment page navigated to"""
    url: str
    booking_id: int
    last_known_status: Optional[str] = None


class CallbackOut(BaseModel):
    intercepted: bool
    status: Optional[str] = None
    order_id: Optional[str] = None
    payment_method: Optional[str] = None
    reason: Optional[str] = None
    booking: Optional[BookingOut] = None

    @classmethod
    def from_result(cls, result: CallbackResult) -> "CallbackOut":
        return cls(
            intercepted=result.intercepted,
            status=result.status.value if result.status else None,
            order_id=result.order_id,
            payment_method=result.payment_method,
            reason=result.reason,
            booking=BookingOut.from_view(BookingView.of(result.booking)) if result.booking else None,
        )


class AbandonIn(BaseModel):
    order_id: Optional[str] = None


class CancellationOut(BaseModel):
    """Schema for refund figures of a (previewed) cancellation"""
    booking_id: int
    refund_amount: Decimal
    refund_percentage: Decimal
    payed_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal

    @classmethod
    def from_preview(cls, booking_id: int, preview: CancellationPreview) -> "CancellationOut":
        return cls(booking_id=booking_id, **preview.model_dump())
