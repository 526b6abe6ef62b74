"""
Payment state machine (``booking_kernel.domain.payment_status``).

Responsibility
--------------
Owns the booking ``payment_status`` enum, change detection, the optional
transition table, and the optional status derivation from tranche sums.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Behavior
--------
* Baseline: any status may follow any status.  The caller (a person
  recording a payment, or a correction) is the source of truth.
* A change is detected by value inequality between the stored status and
  the requested one -- never by the mere presence of the field in an
  update payload.
* ``PAYMENT_STATUS_TRANSITIONS`` is only consulted when the
  ``enforce_transition_table`` policy flag is on.
* ``derive_payment_status`` is only consulted when the
  ``derive_from_tranches`` policy flag is on.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from booking_kernel.db.types import ZERO


class PaymentStatus(str, Enum):
    """Booking payment lifecycle states."""

    DEPOSIT_PENDING = "DEPOSIT_PENDING"
    DEPOSIT_PAID = "DEPOSIT_PAID"
    FULLY_PAID = "FULLY_PAID"
    CANCELLED = "CANCELLED"


INITIAL_PAYMENT_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.DEPOSIT_PENDING,
    PaymentStatus.DEPOSIT_PAID,
})

PAYMENT_STATUS_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.DEPOSIT_PENDING: frozenset({
        PaymentStatus.DEPOSIT_PAID,
        PaymentStatus.FULLY_PAID,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.DEPOSIT_PAID: frozenset({
        PaymentStatus.FULLY_PAID,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.FULLY_PAID: frozenset({
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.CANCELLED: frozenset(),
}


class ReconciliationReason(str, Enum):
    """Which commission entry point a status change calls for."""

    FULLY_PAID = "fully_paid"
    STATUS_CHANGE = "status_change"


@dataclass(frozen=True)
class PaymentStatusChange:
    """Observed payment status before and after an update."""

    previous: PaymentStatus
    current: PaymentStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.current

    @property
    def became_fully_paid(self) -> bool:
        return (
            self.current == PaymentStatus.FULLY_PAID
            and self.previous != PaymentStatus.FULLY_PAID
        )

    @property
    def reconciliation_reason(self) -> ReconciliationReason | None:
        """FULLY_PAID for a fresh arrival, STATUS_CHANGE for any other change."""
        if not self.changed:
            return None
        if self.became_fully_paid:
            return ReconciliationReason.FULLY_PAID
        return ReconciliationReason.STATUS_CHANGE


def detect_status_change(
    previous: PaymentStatus | str,
    requested: PaymentStatus | str | None,
) -> PaymentStatusChange:
    """Compare the stored status with the requested one (None = not requested)."""
    previous = PaymentStatus(previous)
    current = previous if requested is None else PaymentStatus(requested)
    return PaymentStatusChange(previous=previous, current=current)


def is_transition_allowed(from_status: PaymentStatus, to_status: PaymentStatus) -> bool:
    """Transition-table check; a no-op "transition" is always allowed."""
    if from_status == to_status:
        return True
    return to_status in PAYMENT_STATUS_TRANSITIONS[from_status]


def derive_payment_status(
    paid_amount: Decimal,
    total_amount: Decimal,
    current: PaymentStatus,
) -> PaymentStatus:
    """
    Status as a pure function of ``(paid, total)``.

    CANCELLED is never derived and never overridden.
    """
    if current == PaymentStatus.CANCELLED:
        return current
    if paid_amount >= total_amount:
        return PaymentStatus.FULLY_PAID
    if paid_amount > ZERO:
        return PaymentStatus.DEPOSIT_PAID
    return PaymentStatus.DEPOSIT_PENDING
