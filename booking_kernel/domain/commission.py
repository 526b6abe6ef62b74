"""
Commission domain rules (``booking_kernel.domain.commission``).

Pure decision functions used by ``CommissionEngine``.  ZERO I/O.

Rules
-----
* A commission is owed only when the agent's per-head rate is a positive
  amount.  The rate is a flat per-booking amount, not a percentage.
* Reconciliation applies at most one status transition per call, by
  priority:

  1. booking CANCELLED           -> PENDING (whatever the current status)
  2. FULLY_PAID and PENDING      -> APPROVED
  3. not FULLY_PAID and APPROVED -> PENDING
  4. otherwise                   -> unchanged

* PAID is reached only through an explicit payout from APPROVED.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from booking_kernel.db.types import ZERO
from booking_kernel.domain.payment_status import PaymentStatus

AUTO_COMMISSION_NOTE = "Auto-generated commission for sales user (FULLY_PAID)"


class CommissionStatus(str, Enum):
    """Commission lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"


def commission_amount_for(commission_per_head: Decimal | None) -> Decimal | None:
    """Amount owed for one booking, or None when no commission is due."""
    if commission_per_head is None or commission_per_head <= ZERO:
        return None
    return commission_per_head


def next_commission_status(
    payment_status: PaymentStatus,
    current: CommissionStatus,
) -> CommissionStatus:
    """Apply exactly one reconciliation transition (see module docstring)."""
    if payment_status == PaymentStatus.CANCELLED:
        return CommissionStatus.PENDING

    is_fully_paid = payment_status == PaymentStatus.FULLY_PAID
    if is_fully_paid and current == CommissionStatus.PENDING:
        return CommissionStatus.APPROVED
    if not is_fully_paid and current == CommissionStatus.APPROVED:
        return CommissionStatus.PENDING
    return current


def can_mark_paid(current: CommissionStatus) -> bool:
    return current == CommissionStatus.APPROVED
