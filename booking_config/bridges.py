"""
Config -> kernel bridges.

Convert ``EngineSettings`` into kernel inputs.  These live in
booking_config because the kernel must never import booking_config.

Usage:
    settings = get_engine_settings()
    init_engine(settings)
    orchestrator = build_orchestrator(settings, get_session_factory())
"""

from __future__ import annotations

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from booking_config.schema import EngineSettings
from booking_kernel.db.engine import init_engine_from_url
from booking_kernel.domain.clock import Clock
from booking_kernel.domain.policy import PaymentPolicy, ReconciliationPolicy
from booking_kernel.logging_config import configure_logging
from booking_kernel.services.lead_sync import LeadStatusSynchronizer
from booking_kernel.services.reconciliation_orchestrator import ReconciliationOrchestrator


def build_payment_policy(settings: EngineSettings) -> PaymentPolicy:
    return PaymentPolicy(
        enforce_transition_table=settings.payment_status.enforce_transition_table,
        derive_from_tranches=settings.payment_status.derive_from_tranches,
        money_decimal_places=settings.money.decimal_places,
        first_payment_tolerance=settings.money.first_payment_tolerance,
    )


def build_reconciliation_policy(settings: EngineSettings) -> ReconciliationPolicy:
    return ReconciliationPolicy(
        max_attempts=settings.reconciliation.max_attempts,
        batch_size=settings.reconciliation.batch_size,
        retention_days=settings.reconciliation.retention_days,
    )


def init_engine(settings: EngineSettings) -> Engine:
    """Configure logging at the configured level, then create the engine."""
    configure_logging(level=settings.logging.level.upper())
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def build_orchestrator(
    settings: EngineSettings,
    session_factory: sessionmaker[Session],
    lead_sync: LeadStatusSynchronizer | None = None,
    clock: Clock | None = None,
) -> ReconciliationOrchestrator:
    return ReconciliationOrchestrator(
        session_factory,
        lead_sync=lead_sync,
        clock=clock,
        payment_policy=build_payment_policy(settings),
        reconciliation_policy=build_reconciliation_policy(settings),
    )
