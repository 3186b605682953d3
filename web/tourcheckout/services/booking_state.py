"""Booking status rules.

The backend drives every transition. The client only derives which actions
a status allows, and always from a freshly fetched booking.
"""

from __future__ import annotations

import enum
import logging
from decimal import Decimal
from typing import Dict, FrozenSet, Optional, Union

from ..core.exceptions import StateConflictError
from ..models import Booking, BookingStatus
from .voucher_service import clamp_percentage, is_split_percentage


logger = logging.getLogger(__name__)


class BookingAction(str, enum.Enum):
    PAY_FULL = "PAY_FULL"
    PAY_DEPOSIT = "PAY_DEPOSIT"
    PAY_BALANCE = "PAY_BALANCE"
    UPDATE_INFO = "UPDATE_INFO"
    RESUBMIT = "RESUBMIT"
    CANCEL = "CANCEL"
    CONFIRM_COMPLETION = "CONFIRM_COMPLETION"
    FILE_COMPLAINT = "FILE_COMPLAINT"


PAY_ACTIONS = frozenset({BookingAction.PAY_FULL, BookingAction.PAY_DEPOSIT, BookingAction.PAY_BALANCE})

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.BOOKING_SUCCESS,
    BookingStatus.BOOKING_CANCELLED,
    BookingStatus.BOOKING_REJECTED,
    BookingStatus.BOOKING_FAILED,
})

# Statuses a recovered booking can't be resumed from
CLOSED_STATUSES: FrozenSet[BookingStatus] = TERMINAL_STATUSES | {BookingStatus.BOOKING_UNDER_COMPLAINT}

_S = BookingStatus

TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    _S.PENDING_PAYMENT: frozenset({
        _S.WAITING_FOR_APPROVED, _S.BOOKING_SUCCESS_PENDING, _S.BOOKING_FAILED, _S.BOOKING_CANCELLED,
    }),
    _S.PENDING_DEPOSIT_PAYMENT: frozenset({
        _S.PENDING_BALANCE_PAYMENT, _S.WAITING_FOR_APPROVED, _S.BOOKING_FAILED, _S.BOOKING_CANCELLED,
    }),
    _S.PENDING_BALANCE_PAYMENT: frozenset({
        _S.BOOKING_BALANCE_SUCCESS, _S.WAITING_FOR_APPROVED, _S.BOOKING_FAILED, _S.BOOKING_CANCELLED,
    }),
    _S.WAITING_FOR_APPROVED: frozenset({
        _S.PENDING_BALANCE_PAYMENT, _S.WAITING_FOR_UPDATE, _S.BOOKING_SUCCESS_PENDING,
        _S.BOOKING_SUCCESS_WAIT_FOR_CONFIRMED, _S.BOOKING_REJECTED, _S.BOOKING_CANCELLED,
    }),
    _S.WAITING_FOR_UPDATE: frozenset({
        _S.WAITING_FOR_APPROVED, _S.BOOKING_REJECTED, _S.BOOKING_CANCELLED,
    }),
    _S.BOOKING_BALANCE_SUCCESS: frozenset({
        _S.BOOKING_SUCCESS_PENDING, _S.BOOKING_SUCCESS_WAIT_FOR_CONFIRMED, _S.BOOKING_CANCELLED,
    }),
    _S.BOOKING_SUCCESS_PENDING: frozenset({
        _S.BOOKING_SUCCESS_WAIT_FOR_CONFIRMED, _S.BOOKING_CANCELLED,
    }),
    _S.BOOKING_SUCCESS_WAIT_FOR_CONFIRMED: frozenset({
        _S.BOOKING_SUCCESS, _S.BOOKING_UNDER_COMPLAINT,
    }),
    _S.BOOKING_UNDER_COMPLAINT: frozenset({
        _S.BOOKING_SUCCESS, _S.BOOKING_CANCELLED,
    }),
    _S.BOOKING_SUCCESS: frozenset(),
    _S.BOOKING_CANCELLED: frozenset(),
    _S.BOOKING_REJECTED: frozenset(),
    _S.BOOKING_FAILED: frozenset(),
}

StatusLike = Union[BookingStatus, str, None]


def _as_status(status: StatusLike) -> Optional[BookingStatus]:
    if isinstance(status, BookingStatus):
        return status
    return BookingStatus.parse(status)


def is_terminal(status: StatusLike) -> bool:
    return _as_status(status) in TERMINAL_STATUSES


def allowed_actions(
    status: StatusLike,
    user_confirmed_completion: bool = False,
    deposit_percentage: Optional[Decimal] = None,
) -> FrozenSet[BookingAction]:
    """Actions the client may offer for a server-confirmed status.

    Unknown statuses are read-only.
    """
    status = _as_status(status)

    if status in (BookingStatus.PENDING_PAYMENT, BookingStatus.PENDING_DEPOSIT_PAYMENT):
        if deposit_percentage is None:
            split = status is BookingStatus.PENDING_DEPOSIT_PAYMENT
        else:
            split = is_split_percentage(clamp_percentage(deposit_percentage))
        return frozenset({BookingAction.PAY_DEPOSIT if split else BookingAction.PAY_FULL})

    if status is BookingStatus.PENDING_BALANCE_PAYMENT:
        return frozenset({BookingAction.PAY_BALANCE})

    if status is BookingStatus.WAITING_FOR_UPDATE:
        return frozenset({BookingAction.UPDATE_INFO, BookingAction.RESUBMIT, BookingAction.CANCEL})

    if status in (BookingStatus.WAITING_FOR_APPROVED, BookingStatus.BOOKING_BALANCE_SUCCESS):
        return frozenset({BookingAction.CANCEL})

    if status is BookingStatus.BOOKING_SUCCESS_WAIT_FOR_CONFIRMED:
        if user_confirmed_completion:
            return frozenset()
        return frozenset({BookingAction.CONFIRM_COMPLETION, BookingAction.FILE_COMPLAINT})

    return frozenset()


def actions_for(booking: Booking, deposit_percentage: Optional[Decimal] = None) -> FrozenSet[BookingAction]:
    return allowed_actions(booking.status, booking.user_confirmed_completion, deposit_percentage)


def is_legal_transition(old: StatusLike, new: StatusLike) -> bool:
    old_status, new_status = _as_status(old), _as_status(new)
    if old_status is None or new_status is None:
        return False
    if old_status is new_status:
        return True
    return new_status in TRANSITIONS[old_status]


def check_transition(old: StatusLike, new: StatusLike) -> None:
    if not is_legal_transition(old, new):
        raise StateConflictError(
            f"Booking can't move from {old} to {new}",
            status=str(new) if new else None,
            previous_status=str(old) if old else None,
        )


def observe_transition(booking_id: int, old: StatusLike, new: StatusLike) -> None:
    """Log a status change seen after a refetch; the server value is kept"""
    if old == new:
        return
    if is_legal_transition(old, new):
        logger.info("Booking %s moved %s -> %s", booking_id, old, new)
    else:
        logger.warning("Booking %s reported unexpected move %s -> %s", booking_id, old, new)


def require_action(
    booking: Booking,
    action: BookingAction,
    deposit_percentage: Optional[Decimal] = None,
) -> None:
    """Raise StateConflictError unless the action is allowed right now"""
    allowed = actions_for(booking, deposit_percentage)
    if action in allowed:
        return
    # Paying either leg is fine while the backend still awaits the first payment
    if action in PAY_ACTIONS and action is not BookingAction.PAY_BALANCE and allowed & PAY_ACTIONS - {BookingAction.PAY_BALANCE}:
        return
    raise StateConflictError(
        f"{action.value} is not allowed while booking {booking.booking_id} is {booking.status or 'UNKNOWN'}",
        status=booking.status,
        action=action.value,
        allowed=sorted(a.value for a in allowed),
    )
