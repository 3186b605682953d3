"""Payment leg routing, payment-session guard and provider callback handling."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union
from urllib.parse import parse_qs, urlparse

from ..core.base import BaseService
from ..core.config import get_settings
from ..core.exceptions import BaseError, ExternalServiceError, NetworkError, StateConflictError
from ..infrastructure.marketplace_client import SERVICE_NAME, MarketplaceClient
from ..infrastructure.repositories import PendingBookingRepository
from ..models import Booking, BookingStatus, VoucherPreview, ZERO, enum_text
from .booking_state import PAY_ACTIONS, BookingAction, actions_for, observe_transition
from .voucher_service import clamp_percentage, is_split_percentage, split_deposit


logger = logging.getLogger(__name__)

RESULT_MARKER = "transaction-result"
FAIL_MARKERS = ("fail", "access-denied")
VNPAY_SUCCESS_CODE = "00"
DEFAULT_PAYMENT_METHOD = "vnpay"

# Statuses an abandoned payment may cancel
UNPAID_STATUSES = frozenset({BookingStatus.PENDING_PAYMENT, BookingStatus.PENDING_DEPOSIT_PAYMENT})

# Strong references to detached cleanup tasks until they finish
_background_tasks: Set[asyncio.Task] = set()


class PaymentStage(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    BALANCE = "BALANCE"
    FULL = "FULL"


class PaymentStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: object) -> Optional["PaymentStatus"]:
        try:
            return cls(enum_text(value))
        except ValueError:
            return None


@dataclass(frozen=True)
class PaymentRoute:
    amount: Decimal
    stage: PaymentStage

    @property
    def is_deposit(self) -> bool:
        return self.stage is PaymentStage.DEPOSIT


def route_payment(
    booking: Booking,
    preview: Optional[VoucherPreview] = None,
    tour_deposit_pct: Optional[Decimal] = None,
) -> PaymentRoute:
    """Pick the payment leg and the amount to send to the provider"""
    if booking.booking_status is BookingStatus.PENDING_BALANCE_PAYMENT:
        # 0 paid is read as unknown
        already_paid = booking.payed_amount
        if not already_paid:
            already_paid = booking.final_deposit or ZERO
        amount = max(booking.final_total - already_paid, ZERO)
        return PaymentRoute(amount=amount, stage=PaymentStage.BALANCE)

    if preview is not None:
        if is_split_percentage(clamp_percentage(preview.deposit_percentage)):
            return PaymentRoute(amount=preview.final_deposit_amount, stage=PaymentStage.DEPOSIT)
        return PaymentRoute(amount=preview.final_total, stage=PaymentStage.FULL)

    pct = clamp_percentage(tour_deposit_pct)
    if not is_split_percentage(pct):
        return PaymentRoute(amount=booking.final_total, stage=PaymentStage.FULL)

    deposit = booking.final_deposit
    if deposit is None:
        deposit, _ = split_deposit(booking.final_total, pct)
    return PaymentRoute(amount=deposit, stage=PaymentStage.DEPOSIT)


# Provider callback classification


@dataclass(frozen=True)
class PaymentResult:
    order_id: Optional[str]
    status: PaymentStatus
    payment_method: str = DEFAULT_PAYMENT_METHOD


@dataclass(frozen=True)
class PaymentFailed:
    order_id: Optional[str] = None
    reason: str = "payment failed"


@dataclass(frozen=True)
class Unrecognized:
    url: str = ""


CallbackOutcome = Union[PaymentResult, PaymentFailed, Unrecognized]


def _first(params: Dict[str, List[str]], *names: str) -> Optional[str]:
    for name in names:
        values = params.get(name)
        if values and values[0].strip():
            return values[0].strip()
    return None


def parse_callback(url: Optional[str]) -> CallbackOutcome:
    """Classify a provider redirect by its URL markers.

    Anything that can't be parsed is Unrecognized, meaning the navigation is
    left alone. It never means the payment failed.
    """
    if not url:
        return Unrecognized("")
    try:
        parsed = urlparse(url)
        params = parse_qs(parsed.query)
    except ValueError:
        logger.debug("Unparseable callback url %s", url)
        return Unrecognized(url)

    path = parsed.path.lower()
    order_id = _first(params, "orderId", "order_id", "vnp_TxnRef")
    explicit = PaymentStatus.parse(_first(params, "status"))
    failed = explicit is PaymentStatus.FAILED or any(marker in path for marker in FAIL_MARKERS)

    if RESULT_MARKER in path:
        if failed:
            status = PaymentStatus.FAILED
        elif explicit is not None:
            status = explicit
        else:
            code = _first(params, "responseCode", "vnp_ResponseCode")
            if code is None:
                status = PaymentStatus.PENDING
            elif code == VNPAY_SUCCESS_CODE:
                status = PaymentStatus.SUCCESS
            else:
                status = PaymentStatus.FAILED
        method = _first(params, "paymentMethod") or DEFAULT_PAYMENT_METHOD
        return PaymentResult(order_id=order_id, status=status, payment_method=method.lower())

    if failed:
        reason = "access denied" if "access-denied" in path else "payment failed"
        return PaymentFailed(order_id=order_id, reason=reason)

    return Unrecognized(url)


# In-flight guard


class GuardState(str, enum.Enum):
    IN_FLIGHT = "IN_FLIGHT"
    FAILED = "FAILED"


class PaymentGuard:
    """At most one payment session being created per booking.

    A failed attempt keeps the booking locked until an explicit retry.
    Entries untouched for `ttl` seconds are forgotten.
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._states: Dict[int, Tuple[GuardState, float]] = {}
        self._sessions: Dict[int, "PaymentCheckout"] = {}

    def _evict(self) -> None:
        if self.ttl is None:
            return
        cutoff = self._clock() - self.ttl
        expired = [booking_id for booking_id, (_, at) in self._states.items() if at < cutoff]
        for booking_id in expired:
            self.complete(booking_id)

    def _set(self, booking_id: int, state: GuardState) -> None:
        self._states[booking_id] = (state, self._clock())

    def begin(self, booking_id: int) -> bool:
        self._evict()
        if booking_id in self._states:
            return False
        self._set(booking_id, GuardState.IN_FLIGHT)
        return True

    def fail(self, booking_id: int) -> None:
        self._set(booking_id, GuardState.FAILED)
        self._sessions.pop(booking_id, None)

    def retry(self, booking_id: int) -> bool:
        """Unlock the booking; False when nothing was locked"""
        self._sessions.pop(booking_id, None)
        return self._states.pop(booking_id, None) is not None

    def complete(self, booking_id: int) -> None:
        self._states.pop(booking_id, None)
        self._sessions.pop(booking_id, None)

    def state(self, booking_id: int) -> Optional[GuardState]:
        self._evict()
        entry = self._states.get(booking_id)
        return entry[0] if entry else None

    def remember(self, booking_id: int, checkout: "PaymentCheckout") -> None:
        self._sessions[booking_id] = checkout

    def session(self, booking_id: int) -> Optional["PaymentCheckout"]:
        return self._sessions.get(booking_id)

    def __len__(self) -> int:
        return len(self._states)


@dataclass(frozen=True)
class PaymentCheckout:
    booking_id: int
    pay_url: str
    order_id: Optional[str]
    amount: Decimal
    stage: PaymentStage
    currency: str
    voucher_code: Optional[str] = None


@dataclass
class CallbackResult:
    intercepted: bool
    status: Optional[PaymentStatus] = None
    order_id: Optional[str] = None
    payment_method: Optional[str] = None
    reason: Optional[str] = None
    booking: Optional[Booking] = None


class PaymentService(BaseService):
    """Creates provider sessions and interprets their outcome"""

    def __init__(
        self,
        client: MarketplaceClient,
        pending: PendingBookingRepository,
        guard: Optional[PaymentGuard] = None,
    ):
        super().__init__(client)
        self.pending = pending
        self.guard = guard or PaymentGuard()

    async def _voucher_preview(self, booking_id: int, voucher_code: Optional[str]) -> Optional[VoucherPreview]:
        if not voucher_code:
            return None
        try:
            preview = await self.client.preview_voucher_apply(booking_id, voucher_code)
        except BaseError as exc:
            logger.warning(
                "Voucher preview for booking %s failed, paying without voucher: %s",
                booking_id, exc.message,
            )
            return None
        if not preview.applicable:
            logger.info("Voucher %s not applicable to booking %s: %s", voucher_code, booking_id, preview.message)
            return None
        return preview

    async def create_payment(
        self, booking_id: int, email: str, voucher_code: Optional[str] = None
    ) -> PaymentCheckout:
        booking = await self.client.get_booking(booking_id)
        tour = await self.client.get_tour(booking.tour_id)

        pay_actions = actions_for(booking, tour.deposit_percentage) & PAY_ACTIONS
        if not pay_actions:
            self.guard.complete(booking_id)
            raise StateConflictError(
                f"Booking {booking_id} is not awaiting payment",
                status=booking.status,
            )

        # Preview has to settle before the provider session is requested
        preview = None
        code = voucher_code or booking.voucher_code
        if BookingAction.PAY_BALANCE not in pay_actions:
            preview = await self._voucher_preview(booking_id, code)
        if preview is None:
            code = None

        route = route_payment(booking, preview, tour.deposit_percentage)

        if not self.guard.begin(booking_id):
            existing = self.guard.session(booking_id)
            if existing is None:
                raise StateConflictError(
                    f"A payment for booking {booking_id} is already being created",
                    status=booking.status,
                    guard=self.guard.state(booking_id).value,
                )
            if existing.stage is route.stage and existing.amount == route.amount:
                logger.info("Reusing payment session %s for booking %s", existing.order_id, booking_id)
                return existing
            logger.info(
                "Dropping stale %s session %s for booking %s, now %s %s",
                existing.stage.value, existing.order_id, booking_id, route.stage.value, route.amount,
            )
            self.guard.complete(booking_id)
            self.guard.begin(booking_id)

        try:
            session = await self.client.create_booking_payment(
                booking_id, email, deposit=route.is_deposit, voucher_code=code
            )
        except NetworkError:
            self.guard.retry(booking_id)
            raise
        except BaseError:
            self.guard.fail(booking_id)
            raise

        if not session.success or not session.pay_url:
            self.guard.fail(booking_id)
            raise ExternalServiceError(SERVICE_NAME, session.message or "payment session was not created")

        checkout = PaymentCheckout(
            booking_id=booking_id,
            pay_url=session.pay_url,
            order_id=session.order_id,
            amount=route.amount,
            stage=route.stage,
            currency=get_settings().CURRENCY,
            voucher_code=code,
        )
        self.guard.remember(booking_id, checkout)
        logger.info(
            "Payment session %s created for booking %s: %s %s",
            checkout.order_id, booking_id, route.stage.value, route.amount,
        )
        return checkout

    async def retry(self, booking_id: int, email: str, voucher_code: Optional[str] = None) -> PaymentCheckout:
        self.guard.retry(booking_id)
        return await self.create_payment(booking_id, email, voucher_code)

    async def _refetch(self, booking_id: int, previous: Optional[str]) -> Optional[Booking]:
        try:
            booking = await self.client.get_booking(booking_id)
        except NetworkError as exc:
            logger.warning("Could not refresh booking %s after payment: %s", booking_id, exc.message)
            return None
        observe_transition(booking_id, previous, booking.status)
        if not actions_for(booking) & PAY_ACTIONS:
            # no payment step left, nothing to guard
            self.guard.complete(booking_id)
        return booking

    async def _send_confirmation(self, booking_id: int) -> None:
        try:
            await self.client.send_booking_email(booking_id)
        except BaseError as exc:
            logger.warning("Booking email for %s not sent: %s", booking_id, exc.message)

    async def handle_callback(
        self,
        url: str,
        booking_id: int,
        email: str,
        last_known_status: Optional[str] = None,
    ) -> CallbackResult:
        outcome = parse_callback(url)

        if isinstance(outcome, Unrecognized):
            return CallbackResult(intercepted=False)

        if isinstance(outcome, PaymentFailed):
            logger.info("Payment for booking %s failed: %s", booking_id, outcome.reason)
            self.guard.fail(booking_id)
            return CallbackResult(
                intercepted=True,
                status=PaymentStatus.FAILED,
                order_id=outcome.order_id,
                reason=outcome.reason,
                booking=await self._refetch(booking_id, last_known_status),
            )

        status = outcome.status
        if status is PaymentStatus.PENDING and outcome.order_id:
            try:
                transaction = await self.client.get_transaction(outcome.order_id)
            except BaseError as exc:
                logger.warning("Transaction %s lookup failed: %s", outcome.order_id, exc.message)
            else:
                status = PaymentStatus.parse(transaction.status) or PaymentStatus.PENDING

        if status is PaymentStatus.SUCCESS:
            self.guard.complete(booking_id)
            await self.pending.purge(email)
            await self._send_confirmation(booking_id)
        elif status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            self.guard.fail(booking_id)

        logger.info("Payment %s for booking %s returned %s", outcome.order_id, booking_id, status.value)
        return CallbackResult(
            intercepted=True,
            status=status,
            order_id=outcome.order_id,
            payment_method=outcome.payment_method,
            booking=await self._refetch(booking_id, last_known_status),
        )

    def _detach(self, coro: Awaitable[None], description: str) -> asyncio.Task:
        async def runner():
            try:
                await coro
            except BaseError as exc:
                logger.warning("%s failed: %s", description, exc.message)
            except Exception:
                logger.exception("%s failed", description)

        task = asyncio.create_task(runner())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task

    async def _cancel_unpaid(self, booking_id: int) -> None:
        booking = await self.client.get_booking(booking_id)
        if booking.booking_status not in UNPAID_STATUSES:
            logger.info("Booking %s is %s, not cancelling it", booking_id, booking.status)
            return
        await self.client.change_booking_status(booking_id, BookingStatus.BOOKING_CANCELLED.value)

    def abandon(self, booking_id: int, order_id: Optional[str] = None) -> List[asyncio.Task]:
        """Cancel the transaction, and the booking while unpaid, without waiting"""
        self.guard.complete(booking_id)
        tasks = []
        if order_id:
            tasks.append(self._detach(
                self.client.change_transaction_status(order_id, PaymentStatus.CANCELLED.value),
                f"Cancelling transaction {order_id}",
            ))
        tasks.append(self._detach(
            self._cancel_unpaid(booking_id),
            f"Cancelling booking {booking_id}",
        ))
        logger.info("Payment for booking %s abandoned", booking_id)
        return tasks
