"""
Fixtures for orchestrator tests.

The orchestrator opens its own sessions.  The in-memory database has a
single shared connection, so seed data is committed and the seeding
session closed before the orchestrator runs.
"""

from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import select

from booking_kernel.db.engine import transaction
from booking_kernel.domain.policy import PaymentPolicy, ReconciliationPolicy
from booking_kernel.models.reconciliation import CommissionReconciliationTask
from booking_kernel.services.reconciliation_orchestrator import ReconciliationOrchestrator


class RecordingLeadSync:
    """Lead synchronizer that remembers which leads it was asked about."""

    def __init__(self, fail_with: Exception | None = None):
        self.calls: list[UUID] = []
        self.fail_with = fail_with

    def sync_lead_status(self, lead_id, session) -> None:
        self.calls.append(lead_id)
        if self.fail_with is not None:
            raise self.fail_with


@pytest.fixture
def lead_sync():
    return RecordingLeadSync()


@pytest.fixture
def failing_lead_sync():
    return RecordingLeadSync(fail_with=RuntimeError("lead store down"))


@pytest.fixture
def make_orchestrator(session_factory, lead_sync, deterministic_clock):
    def _make(
        payment_policy: PaymentPolicy | None = None,
        reconciliation_policy: ReconciliationPolicy | None = None,
        sync=None,
    ) -> ReconciliationOrchestrator:
        return ReconciliationOrchestrator(
            session_factory,
            lead_sync=sync or lead_sync,
            clock=deterministic_clock,
            payment_policy=payment_policy,
            reconciliation_policy=reconciliation_policy,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


@pytest.fixture
def commit_seed(session):
    """Commit and close the seeding session; objects stay readable (no expiry)."""

    def _commit() -> None:
        session.commit()
        session.close()

    return _commit


@pytest.fixture
def seeded_booking(create_booking, create_trip, create_sales_user, commit_seed):
    """Worked-example booking: base 10,000, HALF ratio, 5,000 paid, agent rate 500."""
    booking = create_booking(
        trip=create_trip(base_price=Decimal("10000")),
        agent=create_sales_user(commission_per_head=Decimal("500")),
        first_payment=Decimal("5000"),
    )
    commit_seed()
    return booking


@pytest.fixture
def fetch(session_factory):
    """Read a row in a fresh transaction."""

    def _fetch(model, ident):
        with transaction(session_factory) as s:
            return s.get(model, ident)

    return _fetch


@pytest.fixture
def tasks_for(session_factory):
    def _tasks(booking_id: UUID) -> list[CommissionReconciliationTask]:
        with transaction(session_factory) as s:
            return list(s.execute(
                select(CommissionReconciliationTask)
                .where(CommissionReconciliationTask.booking_id == booking_id)
                .order_by(CommissionReconciliationTask.attempts)
            ).scalars())

    return _tasks
