"""
Module: booking_kernel.models.reconciliation
Responsibility: Durable "needs commission reconciliation" markers (outbox).
Architecture position: Kernel > Models.  May import from db/base.py only.

A task is written in the same transaction as the booking update whose
payment status changed.  It survives a crash between commit and the
post-commit reconciliation call, and the sweep in
ReconciliationOrchestrator.run_pending_reconciliations() consumes it.

State machine:
    PENDING -> DONE | ABANDONED
    DONE: terminal
    ABANDONED: terminal (max attempts reached)

Retention:
    Terminal tasks stay until
    ReconciliationOrchestrator.purge_finished_reconciliations() deletes
    those processed more than ``reconciliation.retention_days`` ago.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from booking_kernel.db.base import Base, UUIDString
from booking_kernel.db.types import UTCDateTime


class ReconciliationTaskStatus(str, Enum):
    """Outbox task lifecycle."""

    PENDING = "pending"
    DONE = "done"
    ABANDONED = "abandoned"


class CommissionReconciliationTask(Base):
    """One pending commission reconciliation for a booking."""

    __tablename__ = "commission_reconciliation_tasks"

    __table_args__ = (
        Index("ix_reconciliation_tasks_status_created", "status", "created_at"),
        Index("ix_reconciliation_tasks_booking", "booking_id"),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False,
    )
    # ReconciliationReason value: which engine entry point to call
    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReconciliationTaskStatus.PENDING.value,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CommissionReconciliationTask {self.id} booking={self.booking_id} "
            f"reason={self.reason} status={self.status} attempts={self.attempts}>"
        )
