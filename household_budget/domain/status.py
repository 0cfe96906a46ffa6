"""Payment status state machine"""

from datetime import date
from typing import Dict, FrozenSet

from household_budget.domain.exceptions import ValidationError
from household_budget.domain.models import PaymentStatus

ALLOWED_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.PAYING, PaymentStatus.PAID, PaymentStatus.OVERDUE, PaymentStatus.CANCELLED}
    ),
    PaymentStatus.PAYING: frozenset({PaymentStatus.PAID, PaymentStatus.CANCELLED}),
    PaymentStatus.OVERDUE: frozenset({PaymentStatus.PAYING, PaymentStatus.PAID, PaymentStatus.CANCELLED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.PENDING, PaymentStatus.CANCELLED}),
    PaymentStatus.CANCELLED: frozenset(),
}


def parse_status(value: str) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError as e:
        raise ValidationError(f"Unknown payment status: {value!r}") from e


def check_transition(current: str, target: str) -> PaymentStatus:
    """
    Validate a status change and return the target status.

    Re-asserting the current status is always allowed. Cancelled is terminal.

    Raises:
        ValidationError: On unknown status or a transition the lifecycle forbids
    """
    current_status = parse_status(current)
    target_status = parse_status(target)

    if current_status == target_status:
        return target_status

    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise ValidationError(
            f"Cannot change payment status from {current_status.value} to {target_status.value}"
        )
    return target_status


def is_overdue(status: str, due_date: date, today: date) -> bool:
    """Pending payments whose due date has passed become overdue"""
    return status == PaymentStatus.PENDING.value and due_date < today


def counts_toward_totals(status: str) -> bool:
    return status != PaymentStatus.CANCELLED.value
