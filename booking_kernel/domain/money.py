"""
Money model -- booking price and payment arithmetic.

Responsibility:
    Pure functions computing a booking's total price, the amount paid to
    date, and the advisory expected first payment.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Functions accept any
    object exposing the pricing / tranche attributes (ORM ``Booking`` and
    ``Trip`` rows, or the frozen views in ``domain.dtos``).

Invariants enforced:
    - Exact Decimal arithmetic only.  Absent extras, discount, or tranches
      count as zero.
    - The total depends only on pricing inputs (trip base price, extras,
      discount); the paid amount depends only on tranche amounts.  The two
      read disjoint attribute sets.
    - The total is always recomputed at the moment of use; nothing here reads
      a cached total.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from booking_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money

PRICING_EXTRA_FIELDS: tuple[str, ...] = (
    "extra_price_for_single_traveller",
    "extra_price_per_bed",
    "extra_price_per_seat",
    "extra_price_per_bag",
)

TRANCHE_FIELDS: tuple[str, ...] = (
    "first_payment",
    "second_payment",
    "third_payment",
)


class FirstPaymentRatio(str, Enum):
    """Fraction of the total the first tranche is expected to cover."""

    FULL = "100"
    HALF = "50"
    THIRTY = "30"

    @property
    def fraction(self) -> Decimal:
        return Decimal(self.value) / Decimal(100)


def _amount(value: Decimal | None) -> Decimal:
    return ZERO if value is None else value


def compute_total_amount(booking: Any, trip: Any) -> Decimal:
    """
    Total price: trip base price + extras - discount.

    Reads ``trip.base_price`` and the booking's extra/discount fields only.
    """
    total = _amount(trip.base_price)
    for field in PRICING_EXTRA_FIELDS:
        total += _amount(getattr(booking, field))
    total -= _amount(booking.discount_price)
    return total


def compute_paid_amount(booking: Any) -> Decimal:
    """Sum of the amounts of whichever tranches exist."""
    paid = ZERO
    for field in TRANCHE_FIELDS:
        tranche = getattr(booking, field)
        if tranche is not None:
            paid += tranche.amount
    return paid


def compute_expected_first_payment(
    total_amount: Decimal,
    ratio: FirstPaymentRatio | str,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> Decimal:
    """
    Expected first tranche for the given ratio.

    Advisory only: used to pre-fill forms and to flag deviations.  Nothing
    rejects a first payment that differs from this value.
    """
    ratio = FirstPaymentRatio(ratio)
    return round_money(total_amount * ratio.fraction, decimal_places)


def compute_outstanding_amount(total_amount: Decimal, paid_amount: Decimal) -> Decimal:
    """Remaining balance; negative when the customer overpaid."""
    return total_amount - paid_amount


def first_payment_deviation(
    actual: Decimal,
    expected: Decimal,
    tolerance: Decimal = ZERO,
) -> Decimal | None:
    """Signed deviation ``actual - expected``, or None when within tolerance."""
    deviation = actual - expected
    if abs(deviation) <= tolerance:
        return None
    return deviation
