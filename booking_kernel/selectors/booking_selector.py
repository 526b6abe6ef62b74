"""
Module: booking_kernel.selectors.booking_selector
Responsibility: Booking read model with money figures computed at read time.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Total, paid and outstanding amounts are never read from storage; they
      are recomputed from the current pricing inputs and tranches.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from booking_kernel.domain.dtos import BookingView
from booking_kernel.domain.money import (
    compute_expected_first_payment,
    compute_outstanding_amount,
    compute_paid_amount,
    compute_total_amount,
    first_payment_deviation,
)
from booking_kernel.domain.policy import PaymentPolicy
from booking_kernel.domain.tranche import TrancheSlot
from booking_kernel.exceptions import BookingNotFoundError
from booking_kernel.models.booking import Booking
from booking_kernel.selectors.base import BaseSelector


def build_booking_view(booking: Booking, policy: PaymentPolicy | None = None) -> BookingView:
    """Project a loaded booking onto a ``BookingView``."""
    policy = policy or PaymentPolicy()
    total = compute_total_amount(booking, booking.trip)
    paid = compute_paid_amount(booking)
    expected = compute_expected_first_payment(
        total, booking.ratio, policy.money_decimal_places,
    )

    tranches = []
    for slot in TrancheSlot:
        payment = booking.tranche(slot)
        if payment is None:
            continue
        if slot == TrancheSlot.FIRST:
            tranches.append(payment.to_dto(
                expected_amount=expected,
                deviation=first_payment_deviation(
                    payment.amount, expected, policy.first_payment_tolerance,
                ),
            ))
        else:
            tranches.append(payment.to_dto())

    return BookingView(
        booking_id=booking.id,
        customer_id=booking.customer_id,
        trip_id=booking.trip_id,
        sales_user_id=booking.sales_user_id,
        referrer_id=booking.referrer_id,
        lead_id=booking.lead_id,
        payment_status=booking.status,
        first_payment_ratio=booking.ratio,
        total_amount=total,
        paid_amount=paid,
        outstanding_amount=compute_outstanding_amount(total, paid),
        expected_first_payment=expected,
        companion_customer_ids=tuple(c.id for c in booking.companion_customers),
        tranches=tuple(tranches),
        note=booking.note,
    )


class BookingSelector(BaseSelector):
    """Booking queries."""

    def __init__(self, session: Session, policy: PaymentPolicy | None = None):
        super().__init__(session)
        self._policy = policy or PaymentPolicy()

    def get_booking_view(self, booking_id: UUID) -> BookingView:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return build_booking_view(booking, self._policy)
