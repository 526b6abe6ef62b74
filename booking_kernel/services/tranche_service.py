"""
TrancheService -- append-only payment tranche store.

Responsibility:
    Attaches payment tranches (first, second, third) to a booking and
    enforces their ordering.  The amount of a tranche is never capped
    against the booking total; overpayment is representable.

Architecture position:
    Kernel > Services.  Called by BookingService while creating and
    updating bookings.

Invariants enforced:
    - second requires first; third requires second.
    - A slot, once filled, is never replaced (UNIQUE(booking_id, slot) and
      the Payment immutability listeners back this up).

Failure modes:
    - InvalidTrancheOrderError: predecessor slot is empty.
    - TrancheAlreadyExistsError: slot is already filled.
    - InvalidAmountError: amount is negative or not a decimal.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from booking_kernel.domain.clock import Clock, SystemClock
from booking_kernel.domain.dtos import TrancheInput, TrancheRecord
from booking_kernel.domain.money import (
    compute_expected_first_payment,
    compute_total_amount,
    first_payment_deviation,
)
from booking_kernel.domain.policy import PaymentPolicy
from booking_kernel.domain.tranche import TrancheSlot, missing_predecessor
from booking_kernel.exceptions import InvalidTrancheOrderError, TrancheAlreadyExistsError
from booking_kernel.logging_config import get_logger
from booking_kernel.models.booking import Booking
from booking_kernel.models.payment import Payment
from booking_kernel.services.base import BaseService, coerce_amount

logger = get_logger("services.tranche")


class TrancheService(BaseService):
    """Adds payment tranches to bookings."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: PaymentPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or PaymentPolicy()

    def add_tranche(
        self,
        booking: Booking,
        slot: TrancheSlot | str,
        amount,
        paid_at: datetime | None = None,
        proof_url: str | None = None,
    ) -> TrancheRecord:
        """
        Append one tranche to ``booking``.

        ``paid_at`` defaults to the clock's current time.  For the first
        slot the deviation from the expected first payment is computed and
        logged; it is advisory and never rejects the payment.
        """
        slot = TrancheSlot(slot)
        amount = coerce_amount(slot.attribute, amount, allow_none=False)

        existing = booking.tranche(slot)
        if existing is not None:
            raise TrancheAlreadyExistsError(
                booking_id=str(booking.id),
                slot=slot.value,
                payment_id=str(existing.id),
            )

        missing = missing_predecessor(slot, booking.occupied_slots)
        if missing is not None:
            raise InvalidTrancheOrderError(
                booking_id=str(booking.id),
                slot=slot.value,
                missing_slot=missing.value,
            )

        payment = Payment(
            booking_id=booking.id,
            slot=slot.value,
            amount=amount,
            paid_at=paid_at or self._clock.now(),
            proof_url=proof_url,
        )
        self.session.add(payment)
        booking.payments.append(payment)
        self.session.flush()

        logger.info(
            "tranche_added",
            extra={
                "booking_id": str(booking.id),
                "slot": slot.value,
                "amount": str(amount),
            },
        )

        if slot != TrancheSlot.FIRST:
            return payment.to_dto()

        expected = compute_expected_first_payment(
            compute_total_amount(booking, booking.trip),
            booking.ratio,
            self._policy.money_decimal_places,
        )
        deviation = first_payment_deviation(
            amount, expected, self._policy.first_payment_tolerance,
        )
        if deviation is not None:
            logger.warning(
                "first_payment_deviation",
                extra={
                    "booking_id": str(booking.id),
                    "expected_amount": str(expected),
                    "actual_amount": str(amount),
                    "deviation": str(deviation),
                    "first_payment_ratio": booking.first_payment_ratio,
                },
            )
        return payment.to_dto(expected_amount=expected, deviation=deviation)

    def add_input(self, booking: Booking, slot: TrancheSlot | str, tranche: TrancheInput) -> TrancheRecord:
        return self.add_tranche(
            booking, slot, tranche.amount, tranche.paid_at, tranche.proof_url,
        )
