"""
CommissionEngine -- at-most-one commission per booking, kept in step with
the booking's payment status.

Responsibility:
    Creates the sales agent's commission when a booking first becomes
    FULLY_PAID, moves it between PENDING and APPROVED as the payment status
    changes, and records the explicit payout (APPROVED -> PAID).

Architecture position:
    Kernel > Services.  Called by ReconciliationOrchestrator after the
    booking transaction commits, in a transaction of its own.

Invariants enforced:
    - Idempotency: ``reconcile_on_fully_paid`` returns an existing
      commission unchanged; calling it N times leaves one record.
    - A concurrent duplicate insert hits UNIQUE(booking_id) inside a
      savepoint; the savepoint is rolled back and the winning row returned.
    - Cancellation dominance: a CANCELLED booking forces PENDING.
    - PAID is reachable only from APPROVED, via ``mark_paid``.

Failure modes:
    - BookingNotFoundError, AgentNotFoundError, CommissionNotFoundError.
    - InvalidCommissionStateError on payout of a non-APPROVED commission.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_kernel.domain.clock import Clock, SystemClock
from booking_kernel.domain.commission import (
    AUTO_COMMISSION_NOTE,
    CommissionStatus,
    can_mark_paid,
    commission_amount_for,
    next_commission_status,
)
from booking_kernel.domain.payment_status import PaymentStatus
from booking_kernel.exceptions import (
    AgentNotFoundError,
    BookingNotFoundError,
    CommissionNotFoundError,
    InvalidCommissionStateError,
)
from booking_kernel.logging_config import get_logger
from booking_kernel.models.booking import Booking
from booking_kernel.models.commission import Commission
from booking_kernel.models.party import SalesUser
from booking_kernel.services.base import BaseService

logger = get_logger("services.commission")


class CommissionEngine(BaseService):
    """
    Commission lifecycle for bookings.

    Contract:
        Methods flush within the caller's transaction and never commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _load_booking(self, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    def get_for_booking(self, booking_id: UUID) -> Commission | None:
        return self.session.execute(
            select(Commission).where(Commission.booking_id == booking_id)
        ).scalar_one_or_none()

    def reconcile_on_fully_paid(self, booking_id: UUID) -> Commission | None:
        """
        Create the booking's commission if it is due and does not exist yet.

        Returns:
            The existing or newly created commission, or None when no
            commission is due (booking not FULLY_PAID, or the agent's rate
            is absent or zero).
        """
        booking = self._load_booking(booking_id)

        existing = self.get_for_booking(booking.id)
        if existing is not None:
            logger.debug(
                "commission_already_exists",
                extra={"booking_id": str(booking.id), "commission_id": str(existing.id)},
            )
            return existing

        if booking.status != PaymentStatus.FULLY_PAID:
            logger.info(
                "commission_skipped_not_fully_paid",
                extra={"booking_id": str(booking.id), "payment_status": booking.payment_status},
            )
            return None

        agent = self.session.get(SalesUser, booking.sales_user_id)
        if agent is None:
            raise AgentNotFoundError(str(booking.sales_user_id))

        amount = commission_amount_for(agent.commission_per_head)
        if amount is None:
            logger.info(
                "commission_skipped_no_rate",
                extra={"booking_id": str(booking.id), "agent_id": str(agent.id)},
            )
            return None

        commission = Commission(
            booking_id=booking.id,
            agent_id=agent.id,
            amount=amount,
            status=CommissionStatus.APPROVED.value,
            note=AUTO_COMMISSION_NOTE,
            created_at=self._clock.now(),
        )
        try:
            with self.session.begin_nested():
                self.session.add(commission)
        except IntegrityError:
            winner = self.get_for_booking(booking.id)
            if winner is None:
                raise
            logger.info(
                "commission_create_race_resolved",
                extra={"booking_id": str(booking.id), "commission_id": str(winner.id)},
            )
            return winner

        logger.info(
            "commission_created",
            extra={
                "booking_id": str(booking.id),
                "commission_id": str(commission.id),
                "agent_id": str(agent.id),
                "amount": str(amount),
                "status": commission.status,
            },
        )
        return commission

    def reconcile_on_status_change(self, booking_id: UUID) -> Commission | None:
        """
        Align an existing commission with the booking's payment status.

        No commission means nothing to do.  At most one transition is
        applied and the row is written only if the status differs.
        """
        booking = self._load_booking(booking_id)
        commission = self.get_for_booking(booking.id)
        if commission is None:
            logger.debug("commission_absent", extra={"booking_id": str(booking.id)})
            return None

        current = commission.commission_status
        target = next_commission_status(booking.status, current)
        if target == current:
            return commission

        commission.status = target.value
        self.session.flush()
        logger.info(
            "commission_status_changed",
            extra={
                "booking_id": str(booking.id),
                "commission_id": str(commission.id),
                "from_status": current.value,
                "to_status": target.value,
                "payment_status": booking.payment_status,
            },
        )
        return commission

    def mark_paid(self, commission_id: UUID) -> Commission:
        """Pay out an APPROVED commission; ``paid_at`` comes from the clock."""
        commission = self.session.get(Commission, commission_id)
        if commission is None:
            raise CommissionNotFoundError(str(commission_id))
        if not can_mark_paid(commission.commission_status):
            raise InvalidCommissionStateError(
                commission_id=str(commission.id),
                current_status=commission.status,
                required_status=CommissionStatus.APPROVED.value,
            )

        commission.status = CommissionStatus.PAID.value
        commission.paid_at = self._clock.now()
        self.session.flush()
        logger.info(
            "commission_paid",
            extra={
                "commission_id": str(commission.id),
                "booking_id": str(commission.booking_id),
                "amount": str(commission.amount),
            },
        )
        return commission
