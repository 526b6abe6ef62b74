"""
Integration tests for ReconciliationOrchestrator.

Verifies:
- The worked example: deposit, full payment, cancellation, re-payment
- No status change means no side effects at all
- Lead resync covers every lead of the customer, inside the booking transaction
- A failing commission step never fails the committed booking write
- Payout and the repair entry point
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from booking_kernel.domain.commission import CommissionStatus
from booking_kernel.domain.dtos import BookingUpdate, NewBooking, TrancheInput
from booking_kernel.domain.money import FirstPaymentRatio
from booking_kernel.domain.payment_status import PaymentStatus, ReconciliationReason
from booking_kernel.domain.policy import PaymentPolicy
from booking_kernel.exceptions import (
    BookingNotFoundError,
    CommissionReconciliationError,
    InvalidCommissionStateError,
    InvalidTrancheOrderError,
)
from booking_kernel.models.booking import Booking
from booking_kernel.models.reconciliation import ReconciliationTaskStatus
from booking_kernel.services.commission_service import CommissionEngine


def _pay_in_full(orchestrator, booking_id, **kwargs):
    return orchestrator.update_booking(booking_id, BookingUpdate(
        second_payment=TrancheInput(amount=Decimal("5000")),
        payment_status=PaymentStatus.FULLY_PAID,
        **kwargs,
    ))


class TestWorkedExample:
    def test_full_lifecycle(self, orchestrator, seeded_booking):
        booking_id = seeded_booking.id

        # Deposit recorded, nothing owed yet
        assert orchestrator.get_commission(booking_id) is None

        # Fully paid: commission created, APPROVED, at the agent's flat rate
        result = _pay_in_full(orchestrator, booking_id)
        assert result.status_change.became_fully_paid
        assert result.reconciled
        assert result.booking.payment_status == PaymentStatus.FULLY_PAID
        assert result.booking.outstanding_amount == Decimal("0")
        assert result.commission.amount == Decimal("500")
        assert result.commission.status == CommissionStatus.APPROVED
        commission_id = result.commission.commission_id

        # Cancelled: same commission, forced back to PENDING
        result = orchestrator.update_booking(
            booking_id, BookingUpdate(payment_status=PaymentStatus.CANCELLED),
        )
        assert result.commission.commission_id == commission_id
        assert result.commission.status == CommissionStatus.PENDING

        # Fully paid again: the existing commission is returned untouched
        result = orchestrator.update_booking(
            booking_id, BookingUpdate(payment_status=PaymentStatus.FULLY_PAID),
        )
        assert result.status_change.reconciliation_reason == ReconciliationReason.FULLY_PAID
        assert result.commission.commission_id == commission_id
        assert result.commission.status == CommissionStatus.PENDING

        # The repair entry point re-approves it
        repaired = orchestrator.reconcile_booking(booking_id)
        assert repaired.commission_id == commission_id
        assert repaired.status == CommissionStatus.APPROVED

    def test_expected_first_payment_for_half_ratio(self, orchestrator, seeded_booking):
        result = orchestrator.update_booking(seeded_booking.id, BookingUpdate(note="hello"))
        assert result.booking.total_amount == Decimal("10000")
        assert result.booking.expected_first_payment == Decimal("5000")
        assert result.booking.first_payment_ratio == FirstPaymentRatio.HALF

    def test_fully_paid_update_repeated_leaves_one_commission(self, orchestrator, seeded_booking, tasks_for):
        first = _pay_in_full(orchestrator, seeded_booking.id)
        again = orchestrator.update_booking(
            seeded_booking.id, BookingUpdate(payment_status=PaymentStatus.FULLY_PAID, note="resent"),
        )
        assert not again.status_change.changed
        assert again.commission.commission_id == first.commission.commission_id
        assert len(tasks_for(seeded_booking.id)) == 1


class TestAgentWithoutRate:
    @pytest.mark.parametrize("rate", [None, Decimal("0")])
    def test_no_commission_across_transitions(
        self, orchestrator, create_booking, create_trip, create_sales_user, commit_seed, rate
    ):
        booking = create_booking(
            trip=create_trip(base_price=Decimal("10000")),
            agent=create_sales_user(commission_per_head=rate),
            first_payment=Decimal("5000"),
        )
        commit_seed()

        result = _pay_in_full(orchestrator, booking.id)
        assert result.status_change.became_fully_paid
        assert result.reconciled
        assert result.commission is None

        result = orchestrator.update_booking(
            booking.id, BookingUpdate(payment_status=PaymentStatus.CANCELLED),
        )
        assert result.commission is None

        result = orchestrator.update_booking(
            booking.id, BookingUpdate(payment_status=PaymentStatus.FULLY_PAID),
        )
        assert result.commission is None

        assert orchestrator.reconcile_booking(booking.id) is None
        assert orchestrator.get_commission(booking.id) is None


class TestNoStatusChange:
    def test_no_side_effects(self, session, orchestrator, lead_sync, create_booking, create_lead, commit_seed, tasks_for):
        booking = create_booking()
        create_lead(booking.customer)
        commit_seed()

        result = orchestrator.update_booking(booking.id, BookingUpdate(
            discount_price=Decimal("200"),
            payment_status=PaymentStatus.DEPOSIT_PENDING,
        ))
        assert not result.status_change.changed
        assert result.reconciliation_task_id is None
        assert result.commission is None
        assert result.booking.total_amount == Decimal("9800")
        assert lead_sync.calls == []
        assert tasks_for(booking.id) == []


class TestLeadResync:
    def test_every_lead_of_customer_synced(
        self, orchestrator, lead_sync, create_booking, create_customer, create_lead, commit_seed,
    ):
        customer = create_customer()
        other = create_customer(first_name_en="Other")
        leads = [create_lead(customer), create_lead(customer), create_lead(customer)]
        create_lead(other)
        booking = create_booking(customer=customer)
        commit_seed()

        orchestrator.update_booking(booking.id, BookingUpdate(payment_status=PaymentStatus.DEPOSIT_PAID))
        assert sorted(lead_sync.calls) == sorted(lead.id for lead in leads)

    def test_customer_without_leads(self, orchestrator, lead_sync, seeded_booking, captured_logs):
        orchestrator.update_booking(
            seeded_booking.id, BookingUpdate(payment_status=PaymentStatus.DEPOSIT_PAID),
        )
        assert lead_sync.calls == []
        dispatched = [r for r in captured_logs() if r["message"] == "lead_resync_dispatched"]
        assert dispatched[0]["lead_count"] == 0

    def test_sync_failure_rolls_back_update(
        self, make_orchestrator, failing_lead_sync, create_booking, create_lead, commit_seed, fetch, tasks_for,
    ):
        booking = create_booking(note="original")
        create_lead(booking.customer)
        commit_seed()
        failing = make_orchestrator(sync=failing_lead_sync)

        with pytest.raises(RuntimeError, match="lead store down"):
            _pay_in_full(failing, booking.id, note="changed")

        stored = fetch(Booking, booking.id)
        assert stored.payment_status == PaymentStatus.DEPOSIT_PENDING.value
        assert stored.note == "original"
        assert tasks_for(booking.id) == []
        assert failing.get_commission(booking.id) is None


class TestValidationFailures:
    def test_nothing_written(self, orchestrator, lead_sync, seeded_booking, fetch):
        with pytest.raises(InvalidTrancheOrderError):
            orchestrator.update_booking(seeded_booking.id, BookingUpdate(
                payment_status=PaymentStatus.FULLY_PAID,
                third_payment=TrancheInput(amount=Decimal("5000")),
            ))
        assert fetch(Booking, seeded_booking.id).payment_status == PaymentStatus.DEPOSIT_PENDING.value
        assert lead_sync.calls == []

    def test_unknown_booking(self, orchestrator, engine):
        with pytest.raises(BookingNotFoundError):
            orchestrator.update_booking(uuid4(), BookingUpdate(note="x"))


class TestReconciliationFailure:
    @pytest.fixture
    def broken_engine(self, monkeypatch):
        def _boom(self, booking_id):
            raise RuntimeError("commission store unavailable")

        monkeypatch.setattr(CommissionEngine, "reconcile_on_fully_paid", _boom)
        return monkeypatch

    def test_update_still_committed(self, orchestrator, seeded_booking, broken_engine, fetch, captured_logs):
        result = _pay_in_full(orchestrator, seeded_booking.id)

        assert not result.reconciled
        assert isinstance(result.reconciliation_error, CommissionReconciliationError)
        assert result.reconciliation_error.cause == "RuntimeError: commission store unavailable"
        assert isinstance(result.reconciliation_error.__cause__, RuntimeError)
        assert result.commission is None
        assert fetch(Booking, seeded_booking.id).payment_status == PaymentStatus.FULLY_PAID.value
        assert "commission_reconciliation_failed" in [r["message"] for r in captured_logs()]

    def test_task_left_pending_with_error(self, orchestrator, seeded_booking, broken_engine, tasks_for):
        result = _pay_in_full(orchestrator, seeded_booking.id)

        (task,) = tasks_for(seeded_booking.id)
        assert task.id == result.reconciliation_task_id
        assert task.status == ReconciliationTaskStatus.PENDING.value
        assert task.reason == ReconciliationReason.FULLY_PAID.value
        assert task.attempts == 1
        assert "commission store unavailable" in task.last_error

    def test_sweep_recovers_after_fix(self, orchestrator, seeded_booking, broken_engine, tasks_for):
        _pay_in_full(orchestrator, seeded_booking.id)
        broken_engine.undo()

        sweep = orchestrator.run_pending_reconciliations()
        assert sweep.processed == 1
        assert sweep.succeeded == 1

        (task,) = tasks_for(seeded_booking.id)
        assert task.status == ReconciliationTaskStatus.DONE.value
        assert task.attempts == 2
        assert task.last_error is None
        assert orchestrator.get_commission(seeded_booking.id).amount == Decimal("500")

    def test_repair_closes_pending_task(self, orchestrator, seeded_booking, broken_engine, tasks_for):
        _pay_in_full(orchestrator, seeded_booking.id)
        broken_engine.undo()

        commission = orchestrator.reconcile_booking(seeded_booking.id)
        assert commission.status == CommissionStatus.APPROVED
        (task,) = tasks_for(seeded_booking.id)
        assert task.status == ReconciliationTaskStatus.DONE.value


class TestCreateBooking:
    def test_create_without_status_change(
        self, orchestrator, lead_sync, create_customer, create_trip, create_sales_user, commit_seed, tasks_for,
    ):
        customer, trip, agent = create_customer(), create_trip(), create_sales_user()
        commit_seed()

        result = orchestrator.create_booking(NewBooking(
            customer_id=customer.id,
            trip_id=trip.id,
            sales_user_id=agent.id,
            first_payment=TrancheInput(amount=Decimal("3000")),
        ))
        assert not result.status_change.changed
        assert result.booking.paid_amount == Decimal("3000")
        assert result.booking.payment_status == PaymentStatus.DEPOSIT_PENDING
        assert tasks_for(result.booking.booking_id) == []
        assert lead_sync.calls == []

    def test_derived_full_payment_creates_commission(
        self, make_orchestrator, create_customer, create_trip, create_sales_user, commit_seed, fetch, test_actor_id,
    ):
        customer, trip, agent = create_customer(), create_trip(), create_sales_user()
        commit_seed()
        orchestrator = make_orchestrator(payment_policy=PaymentPolicy(derive_from_tranches=True))

        result = orchestrator.create_booking(NewBooking(
            customer_id=customer.id,
            trip_id=trip.id,
            sales_user_id=agent.id,
            first_payment=TrancheInput(amount=Decimal("10000")),
        ), actor_id=test_actor_id)
        assert result.status_change.became_fully_paid
        assert result.commission.status == CommissionStatus.APPROVED
        assert fetch(Booking, result.booking.booking_id).created_by_id == test_actor_id


class TestActor:
    def test_updated_by_recorded(self, orchestrator, seeded_booking, fetch, test_actor_id):
        orchestrator.update_booking(seeded_booking.id, BookingUpdate(note="x"), actor_id=test_actor_id)
        assert fetch(Booking, seeded_booking.id).updated_by_id == test_actor_id


class TestMarkCommissionPaid:
    def test_payout(self, orchestrator, seeded_booking, deterministic_clock):
        commission_id = _pay_in_full(orchestrator, seeded_booking.id).commission.commission_id
        payout_time = datetime(2024, 3, 1, 8, 30, tzinfo=UTC)
        deterministic_clock.set_time(payout_time)

        paid = orchestrator.mark_commission_paid(commission_id)
        assert paid.status == CommissionStatus.PAID
        assert paid.paid_at == payout_time

        with pytest.raises(InvalidCommissionStateError):
            orchestrator.mark_commission_paid(commission_id)

    def test_pending_cannot_be_paid(self, orchestrator, seeded_booking):
        commission_id = _pay_in_full(orchestrator, seeded_booking.id).commission.commission_id
        orchestrator.update_booking(seeded_booking.id, BookingUpdate(payment_status=PaymentStatus.CANCELLED))

        with pytest.raises(InvalidCommissionStateError):
            orchestrator.mark_commission_paid(commission_id)
        assert orchestrator.get_commission(seeded_booking.id).status == CommissionStatus.PENDING
