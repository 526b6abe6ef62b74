"""
Pytest fixtures for the booking kernel test suite.

Provides:
- A fresh in-memory SQLite database per test (tables created, immutability
  listeners registered)
- ``session`` for service/selector tests (never committed)
- ``session_factory`` for orchestrator tests, which own their transactions
- Reference data factories and a booking factory
- Structured log capture
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from booking_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from booking_kernel.domain.clock import DeterministicClock
from booking_kernel.domain.dtos import NewBooking, TrancheInput
from booking_kernel.domain.money import FirstPaymentRatio
from booking_kernel.domain.payment_status import PaymentStatus
from booking_kernel.domain.policy import PaymentPolicy
from booking_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from booking_kernel.models.party import Customer, Lead, LeadStatus, SalesUser, Trip
from booking_kernel.services.booking_service import BookingService

TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture booking_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "commission_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("booking_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database for each test."""
    reset_engine()
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture(scope="function")
def session_factory(engine):
    return get_session_factory()


@pytest.fixture(scope="function")
def session(session_factory) -> Generator[Session, None, None]:
    """
    Session for service and selector tests.

    Services only flush; whatever the test leaves uncommitted is rolled
    back on close.  Orchestrator tests commit their seed data explicitly
    so the orchestrator's own sessions can see it.
    """
    sess = session_factory()
    yield sess
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def payment_policy() -> PaymentPolicy:
    return PaymentPolicy()


# =============================================================================
# Reference data factories
# =============================================================================


@pytest.fixture
def create_customer(session: Session):
    def _create(
        first_name_en: str = "Somchai",
        last_name_en: str = "Jaidee",
        first_name_th: str | None = None,
        last_name_th: str | None = None,
    ) -> Customer:
        customer = Customer(
            first_name_en=first_name_en,
            last_name_en=last_name_en,
            first_name_th=first_name_th,
            last_name_th=last_name_th,
        )
        session.add(customer)
        session.flush()
        return customer

    return _create


@pytest.fixture
def create_trip(session: Session):
    counter = {"n": 0}

    def _create(base_price: Decimal = Decimal("10000"), code: str | None = None) -> Trip:
        counter["n"] += 1
        trip = Trip(
            code=code or f"TRIP-{counter['n']:03d}",
            name=f"Test trip {counter['n']}",
            base_price=base_price,
        )
        session.add(trip)
        session.flush()
        return trip

    return _create


@pytest.fixture
def create_sales_user(session: Session):
    def _create(
        commission_per_head: Decimal | None = Decimal("500"),
        first_name: str = "Anong",
        last_name: str = "Sales",
    ) -> SalesUser:
        agent = SalesUser(
            first_name=first_name,
            last_name=last_name,
            commission_per_head=commission_per_head,
        )
        session.add(agent)
        session.flush()
        return agent

    return _create


@pytest.fixture
def create_lead(session: Session):
    def _create(customer: Customer, agent: SalesUser | None = None) -> Lead:
        lead = Lead(
            customer_id=customer.id,
            agent_id=agent.id if agent else None,
            status=LeadStatus.QUOTED.value,
        )
        session.add(lead)
        session.flush()
        return lead

    return _create


@pytest.fixture
def create_booking(session: Session, deterministic_clock, create_customer, create_trip, create_sales_user):
    """
    Factory creating a booking through BookingService.

    Missing references are created on the fly.
    """

    def _create(
        customer: Customer | None = None,
        trip: Trip | None = None,
        agent: SalesUser | None = None,
        first_payment: Decimal = Decimal("5000"),
        ratio: FirstPaymentRatio = FirstPaymentRatio.HALF,
        status: PaymentStatus = PaymentStatus.DEPOSIT_PENDING,
        companions: tuple = (),
        policy: PaymentPolicy | None = None,
        **extra,
    ):
        customer = customer or create_customer()
        trip = trip or create_trip()
        agent = agent or create_sales_user()
        service = BookingService(session, deterministic_clock, policy)
        return service.create_booking(NewBooking(
            customer_id=customer.id,
            trip_id=trip.id,
            sales_user_id=agent.id,
            first_payment=TrancheInput(amount=first_payment),
            first_payment_ratio=ratio,
            payment_status=status,
            companion_customer_ids=tuple(c.id for c in companions),
            **extra,
        ))

    return _create
