"""
BookingService -- creates bookings and applies partial updates.

Responsibility:
    Validates and writes booking fields, companions, and payment tranches,
    and owns the payment state machine as applied to a stored booking.
    Reports the observed ``PaymentStatusChange`` so the orchestrator can
    decide which side effects to fire.

Architecture position:
    Kernel > Services.  Called by ReconciliationOrchestrator inside its
    transaction.  Uses TrancheService for tranche writes.

Invariants enforced:
    - All validation (references, companions, amounts, tranche order,
      optional transition table) happens before the first write.
    - A status change is detected by value inequality, never by the
      presence of ``payment_status`` in the update.
    - The booking row is locked (``SELECT ... FOR UPDATE``) for the
      duration of an update.

Failure modes:
    - BookingNotFoundError, TripNotFoundError, CustomerNotFoundError,
      AgentNotFoundError for unknown references.
    - MissingAgentError, MissingFirstPaymentError, InvalidInitialStatusError.
    - InvalidCompanionCustomersError, InvalidAmountError.
    - InvalidPaymentStatusError, InvalidFirstPaymentRatioError for unknown
      enum values.
    - InvalidTrancheOrderError, TrancheAlreadyExistsError.
    - InvalidPaymentTransitionError (only with enforce_transition_table).
"""

from types import SimpleNamespace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_kernel.db.types import ZERO
from booking_kernel.domain.clock import Clock, SystemClock
from booking_kernel.domain.dtos import BookingUpdate, NewBooking, TrancheInput
from booking_kernel.domain.money import (
    PRICING_EXTRA_FIELDS,
    compute_paid_amount,
    compute_total_amount,
)
from booking_kernel.domain.payment_status import (
    INITIAL_PAYMENT_STATUSES,
    PaymentStatusChange,
    derive_payment_status,
    detect_status_change,
    is_transition_allowed,
)
from booking_kernel.domain.policy import PaymentPolicy
from booking_kernel.domain.tranche import TrancheSlot, missing_predecessor
from booking_kernel.exceptions import (
    AgentNotFoundError,
    BookingNotFoundError,
    CustomerNotFoundError,
    InvalidCompanionCustomersError,
    InvalidInitialStatusError,
    InvalidPaymentTransitionError,
    InvalidTrancheOrderError,
    MissingAgentError,
    MissingFirstPaymentError,
    TrancheAlreadyExistsError,
    TripNotFoundError,
)
from booking_kernel.logging_config import get_logger
from booking_kernel.models.booking import Booking
from booking_kernel.models.party import Customer, SalesUser, Trip
from booking_kernel.services.base import (
    BaseService,
    coerce_amount,
    coerce_first_payment_ratio,
    coerce_payment_status,
)
from booking_kernel.services.tranche_service import TrancheService

logger = get_logger("services.booking")

_MONEY_FIELDS = PRICING_EXTRA_FIELDS + ("discount_price",)

# Plain columns copied from a BookingUpdate once validated
_SCALAR_FIELDS = (
    "customer_id",
    "trip_id",
    "sales_user_id",
    "referrer_id",
    "lead_id",
    "note",
) + _MONEY_FIELDS

_REFERENCE_RELATIONSHIPS = ["customer", "trip", "sales_user", "referrer", "lead"]

_LATER_SLOTS = (TrancheSlot.SECOND, TrancheSlot.THIRD)


class BookingService(BaseService):
    """
    Booking writes.

    Contract:
        ``create_booking`` and ``apply_update`` flush but never commit.

    Non-goals:
        - Does NOT resync leads or touch commissions; that is the
          orchestrator's job once the change is known.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: PaymentPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or PaymentPolicy()
        self._tranches = TrancheService(session, self._clock, self._policy)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: UUID, *, for_update: bool = False) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update()
        booking = self.session.execute(stmt).scalar_one_or_none()
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    def _require_trip(self, trip_id: UUID) -> Trip:
        trip = self.session.get(Trip, trip_id)
        if trip is None:
            raise TripNotFoundError(str(trip_id))
        return trip

    def _require_customer(self, customer_id: UUID) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def _require_agent(self, agent_id: UUID) -> SalesUser:
        agent = self.session.get(SalesUser, agent_id)
        if agent is None:
            raise AgentNotFoundError(str(agent_id))
        return agent

    # ------------------------------------------------------------------
    # Companions
    # ------------------------------------------------------------------

    def _validate_companions(
        self,
        trip_id: UUID,
        companion_ids,
        exclude_booking_id: UUID | None = None,
    ) -> list[Customer]:
        """
        Every companion must hold another booking on ``trip_id``.

        Returns the companion customers in the given order, de-duplicated.
        """
        wanted = list(dict.fromkeys(companion_ids))
        if not wanted:
            return []

        stmt = select(Booking.customer_id).where(
            Booking.trip_id == trip_id,
            Booking.customer_id.in_(wanted),
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        holders = set(self.session.execute(stmt).scalars())

        invalid = [str(cid) for cid in wanted if cid not in holders]
        if invalid:
            raise InvalidCompanionCustomersError(
                trip_id=str(trip_id), invalid_customer_ids=invalid,
            )
        return [self.session.get(Customer, cid) for cid in wanted]

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_booking(self, new: NewBooking) -> Booking:
        """
        Create a booking together with its first tranche.

        The initial status must be DEPOSIT_PENDING or DEPOSIT_PAID.
        """
        if new.sales_user_id is None:
            raise MissingAgentError()
        if new.first_payment is None:
            raise MissingFirstPaymentError()
        status = coerce_payment_status(new.payment_status)
        ratio = coerce_first_payment_ratio(new.first_payment_ratio)
        if status not in INITIAL_PAYMENT_STATUSES:
            raise InvalidInitialStatusError(status.value)

        trip = self._require_trip(new.trip_id)
        self._require_customer(new.customer_id)
        self._require_agent(new.sales_user_id)
        if new.referrer_id is not None:
            self._require_agent(new.referrer_id)

        amounts = {
            name: coerce_amount(name, getattr(new, name)) for name in _MONEY_FIELDS
        }
        coerce_amount("first_payment", new.first_payment.amount, allow_none=False)
        companions = self._validate_companions(trip.id, new.companion_customer_ids)

        booking = Booking(
            customer_id=new.customer_id,
            trip_id=trip.id,
            sales_user_id=new.sales_user_id,
            referrer_id=new.referrer_id,
            lead_id=new.lead_id,
            first_payment_ratio=ratio.value,
            payment_status=status.value,
            note=new.note,
            **amounts,
        )
        booking.companion_customers = companions
        self.session.add(booking)
        self.session.flush()

        self._tranches.add_input(booking, TrancheSlot.FIRST, new.first_payment)

        if self._policy.derive_from_tranches:
            derived = derive_payment_status(
                compute_paid_amount(booking),
                compute_total_amount(booking, trip),
                booking.status,
            )
            booking.payment_status = derived.value
            self.session.flush()

        logger.info(
            "booking_created",
            extra={
                "booking_id": str(booking.id),
                "trip_id": str(trip.id),
                "sales_user_id": str(booking.sales_user_id),
                "payment_status": booking.payment_status,
                "companion_count": len(companions),
            },
        )
        return booking

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def apply_update(
        self,
        booking_id: UUID,
        update: BookingUpdate,
    ) -> tuple[Booking, PaymentStatusChange]:
        """
        Apply a partial update to a locked booking.

        Returns:
            The booking and the observed payment status change (which may
            be a no-op).
        """
        booking = self.get_booking(booking_id, for_update=True)
        present = update.present_fields()

        # -- validation, no writes ------------------------------------
        if "sales_user_id" in present:
            if present["sales_user_id"] is None:
                raise MissingAgentError(str(booking.id))
            self._require_agent(present["sales_user_id"])
        if present.get("referrer_id") is not None:
            self._require_agent(present["referrer_id"])
        if "customer_id" in present:
            self._require_customer(present["customer_id"])
        trip = (
            self._require_trip(present["trip_id"])
            if "trip_id" in present
            else booking.trip
        )

        amounts = {
            name: coerce_amount(name, present[name])
            for name in _MONEY_FIELDS
            if name in present
        }
        ratio = (
            coerce_first_payment_ratio(present["first_payment_ratio"])
            if "first_payment_ratio" in present
            else None
        )

        companions = None
        if "companion_customer_ids" in present:
            companions = self._validate_companions(
                trip.id, present["companion_customer_ids"], exclude_booking_id=booking.id,
            )

        new_tranches = self._plan_tranches(booking, update)

        change = self._plan_status(booking, trip, present, amounts, new_tranches)

        # -- writes ---------------------------------------------------
        for name in _SCALAR_FIELDS:
            if name in amounts:
                setattr(booking, name, amounts[name])
            elif name in present:
                setattr(booking, name, present[name])
        if ratio is not None:
            booking.first_payment_ratio = ratio.value
        if companions is not None:
            booking.companion_customers = companions
        self.session.flush()
        # Reference relationships reload from the new foreign keys
        self.session.expire(booking, _REFERENCE_RELATIONSHIPS)

        for slot, tranche in new_tranches:
            self._tranches.add_input(booking, slot, tranche)

        if change.changed:
            booking.payment_status = change.current.value
        self.session.flush()

        logger.info(
            "booking_updated",
            extra={
                "booking_id": str(booking.id),
                "fields": sorted(present),
                "payment_status": booking.payment_status,
            },
        )
        if change.changed:
            logger.info(
                "payment_status_changed",
                extra={
                    "booking_id": str(booking.id),
                    "from_status": change.previous.value,
                    "to_status": change.current.value,
                },
            )
        return booking, change

    def _plan_tranches(
        self,
        booking: Booking,
        update: BookingUpdate,
    ) -> list[tuple[TrancheSlot, TrancheInput]]:
        """Check order and occupancy of the tranches this update adds."""
        occupied = set(booking.occupied_slots)
        planned = []
        for slot in _LATER_SLOTS:
            if not update.is_present(slot.attribute):
                continue
            tranche = getattr(update, slot.attribute)
            existing = booking.tranche(slot)
            if existing is not None:
                raise TrancheAlreadyExistsError(
                    booking_id=str(booking.id),
                    slot=slot.value,
                    payment_id=str(existing.id),
                )
            missing = missing_predecessor(slot, frozenset(occupied))
            if missing is not None:
                raise InvalidTrancheOrderError(
                    booking_id=str(booking.id),
                    slot=slot.value,
                    missing_slot=missing.value,
                )
            coerce_amount(slot.attribute, tranche.amount, allow_none=False)
            occupied.add(slot)
            planned.append((slot, tranche))
        return planned

    def _plan_status(
        self,
        booking: Booking,
        trip: Trip,
        present: dict,
        amounts: dict,
        new_tranches: list[tuple[TrancheSlot, TrancheInput]],
    ) -> PaymentStatusChange:
        """Resulting payment status, computed from the prospective booking."""
        requested = present.get("payment_status")
        if requested is not None:
            requested = coerce_payment_status(requested)
        change = detect_status_change(booking.payment_status, requested)

        if self._policy.derive_from_tranches:
            pricing = SimpleNamespace(**{
                name: amounts[name] if name in amounts else getattr(booking, name)
                for name in _MONEY_FIELDS
            })
            total = compute_total_amount(pricing, trip)
            paid = compute_paid_amount(booking) + sum(
                (coerce_amount(slot.attribute, t.amount) for slot, t in new_tranches),
                ZERO,
            )
            derived = derive_payment_status(paid, total, change.current)
            change = PaymentStatusChange(previous=change.previous, current=derived)

        if (
            self._policy.enforce_transition_table
            and change.changed
            and not is_transition_allowed(change.previous, change.current)
        ):
            raise InvalidPaymentTransitionError(
                booking_id=str(booking.id),
                from_status=change.previous.value,
                to_status=change.current.value,
            )
        return change
