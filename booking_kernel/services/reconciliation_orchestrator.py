"""
ReconciliationOrchestrator -- transaction boundary for booking writes and
their side effects.

Flow for a booking update:

    [transaction 1]
        BookingService.apply_update()        validate, write, detect change
        if payment_status changed:
            LeadStatusSynchronizer x N       every lead of the customer
            CommissionReconciliationTask     durable outbox marker
    COMMIT
    [transaction 2, best effort]
        CommissionEngine.reconcile_on_fully_paid()     FULLY_PAID arrival
        CommissionEngine.reconcile_on_status_change()  any other change
        task -> done
    on failure: task.attempts += 1, error captured on the result

A failure in transaction 1 (validation, lead sync) rolls everything back and
propagates.  A failure in transaction 2 never fails the update; the pending
task is picked up later by ``run_pending_reconciliations()``.
"""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from booking_kernel.db.engine import transaction
from booking_kernel.domain.clock import Clock, SystemClock
from booking_kernel.domain.dtos import BookingUpdate, BookingView, CommissionRecord, NewBooking
from booking_kernel.domain.payment_status import (
    PaymentStatus,
    PaymentStatusChange,
    ReconciliationReason,
)
from booking_kernel.domain.policy import PaymentPolicy, ReconciliationPolicy
from booking_kernel.exceptions import CommissionReconciliationError
from booking_kernel.logging_config import LogContext, get_logger
from booking_kernel.models.booking import Booking
from booking_kernel.models.party import Lead
from booking_kernel.models.reconciliation import (
    CommissionReconciliationTask,
    ReconciliationTaskStatus,
)
from booking_kernel.selectors.booking_selector import build_booking_view
from booking_kernel.services.booking_service import BookingService
from booking_kernel.services.commission_service import CommissionEngine
from booking_kernel.services.lead_sync import (
    LeadStatusSynchronizer,
    LoggingLeadStatusSynchronizer,
)

logger = get_logger("services.reconciliation_orchestrator")

_MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class BookingUpdateResult:
    """
    Outcome of a committed booking write.

    ``reconciliation_error`` is set when the post-commit commission step
    failed; the booking write itself succeeded regardless.
    """

    booking: BookingView
    status_change: PaymentStatusChange
    commission: CommissionRecord | None = None
    reconciliation_error: CommissionReconciliationError | None = None
    reconciliation_task_id: UUID | None = None

    @property
    def reconciled(self) -> bool:
        return self.reconciliation_error is None


@dataclass(frozen=True)
class ReconciliationSweepResult:
    """Counts from one pass over pending reconciliation tasks."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0


class ReconciliationOrchestrator:
    """
    Runs booking writes, lead resync and commission reconciliation.

    Contract:
        Owns every transaction it uses; callers pass a session factory and
        never a live session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lead_sync: LeadStatusSynchronizer | None = None,
        clock: Clock | None = None,
        payment_policy: PaymentPolicy | None = None,
        reconciliation_policy: ReconciliationPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._lead_sync = lead_sync or LoggingLeadStatusSynchronizer()
        self._clock = clock or SystemClock()
        self._payment_policy = payment_policy or PaymentPolicy()
        self._reconciliation_policy = reconciliation_policy or ReconciliationPolicy()

    # ------------------------------------------------------------------
    # Booking writes
    # ------------------------------------------------------------------

    def update_booking(
        self,
        booking_id: UUID,
        update: BookingUpdate,
        actor_id: UUID | None = None,
    ) -> BookingUpdateResult:
        """
        Apply ``update`` and fire the side effects of a payment status change.

        Raises:
            Any validation or not-found error from BookingService, and any
            error from the lead synchronizer.  Nothing is written then.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            booking_id=str(booking_id),
            actor_id=str(actor_id) if actor_id else None,
        ):
            with transaction(self._session_factory) as session:
                service = BookingService(session, self._clock, self._payment_policy)
                booking, change = service.apply_update(booking_id, update)
                if actor_id is not None:
                    booking.updated_by_id = actor_id
                task_id = self._on_status_change(session, booking, change)
                view = build_booking_view(booking, self._payment_policy)

            return self._after_commit(view, change, task_id)

    def create_booking(
        self,
        new: NewBooking,
        actor_id: UUID | None = None,
    ) -> BookingUpdateResult:
        """
        Create a booking with its first tranche.

        The status change on the result compares the requested initial
        status with the stored one; they differ only when the status is
        derived from tranches.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
        ):
            with transaction(self._session_factory) as session:
                service = BookingService(session, self._clock, self._payment_policy)
                booking = service.create_booking(new)
                if actor_id is not None:
                    booking.created_by_id = actor_id
                    booking.updated_by_id = actor_id
                change = PaymentStatusChange(
                    previous=PaymentStatus(new.payment_status),
                    current=booking.status,
                )
                task_id = self._on_status_change(session, booking, change)
                view = build_booking_view(booking, self._payment_policy)

            return self._after_commit(view, change, task_id)

    def _on_status_change(
        self,
        session: Session,
        booking: Booking,
        change: PaymentStatusChange,
    ) -> UUID | None:
        """In-transaction effects of a status change; returns the task id."""
        if not change.changed:
            return None

        self._resync_leads(session, booking.customer_id)

        task = CommissionReconciliationTask(
            booking_id=booking.id,
            reason=change.reconciliation_reason.value,
            status=ReconciliationTaskStatus.PENDING.value,
            attempts=0,
            created_at=self._clock.now(),
        )
        session.add(task)
        session.flush()
        return task.id

    def _resync_leads(self, session: Session, customer_id: UUID) -> None:
        lead_ids = session.execute(
            select(Lead.id)
            .where(Lead.customer_id == customer_id)
            .order_by(Lead.created_at, Lead.id)
        ).scalars().all()
        for lead_id in lead_ids:
            self._lead_sync.sync_lead_status(lead_id, session)
        logger.info(
            "lead_resync_dispatched",
            extra={"customer_id": str(customer_id), "lead_count": len(lead_ids)},
        )

    def _after_commit(
        self,
        view: BookingView,
        change: PaymentStatusChange,
        task_id: UUID | None,
    ) -> BookingUpdateResult:
        if task_id is None:
            return BookingUpdateResult(
                booking=view,
                status_change=change,
                commission=self.get_commission(view.booking_id),
            )

        commission, error = self._run_task(
            task_id, view.booking_id, change.reconciliation_reason,
        )
        return BookingUpdateResult(
            booking=view,
            status_change=change,
            commission=commission,
            reconciliation_error=error,
            reconciliation_task_id=task_id,
        )

    # ------------------------------------------------------------------
    # Commission reconciliation
    # ------------------------------------------------------------------

    def _run_task(
        self,
        task_id: UUID,
        booking_id: UUID,
        reason: ReconciliationReason,
    ) -> tuple[CommissionRecord | None, CommissionReconciliationError | None]:
        """Run one reconciliation; failures are captured, never raised."""
        try:
            with transaction(self._session_factory) as session:
                engine = CommissionEngine(session, self._clock)
                if reason == ReconciliationReason.FULLY_PAID:
                    commission = engine.reconcile_on_fully_paid(booking_id)
                else:
                    commission = engine.reconcile_on_status_change(booking_id)
                record = commission.to_dto() if commission is not None else None

                task = session.get(CommissionReconciliationTask, task_id)
                task.status = ReconciliationTaskStatus.DONE.value
                task.attempts += 1
                task.last_error = None
                task.processed_at = self._clock.now()
        except Exception as exc:
            error = CommissionReconciliationError(
                booking_id=str(booking_id),
                reason=reason.value,
                cause=f"{type(exc).__name__}: {exc}",
            )
            error.__cause__ = exc
            logger.error(
                "commission_reconciliation_failed",
                extra={
                    "booking_id": str(booking_id),
                    "reason": reason.value,
                    "task_id": str(task_id),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            self._record_failure(task_id, error.cause)
            return None, error

        logger.info(
            "commission_reconciled",
            extra={
                "booking_id": str(booking_id),
                "reason": reason.value,
                "task_id": str(task_id),
                "commission_id": str(record.commission_id) if record else None,
            },
        )
        return record, None

    def _record_failure(self, task_id: UUID, cause: str) -> ReconciliationTaskStatus | None:
        """Count a failed attempt; abandon the task at max_attempts."""
        try:
            with transaction(self._session_factory) as session:
                task = session.get(CommissionReconciliationTask, task_id)
                task.attempts += 1
                task.last_error = cause[:_MAX_ERROR_LENGTH]
                if task.attempts >= self._reconciliation_policy.max_attempts:
                    task.status = ReconciliationTaskStatus.ABANDONED.value
                    task.processed_at = self._clock.now()
                    logger.warning(
                        "reconciliation_task_abandoned",
                        extra={
                            "task_id": str(task_id),
                            "booking_id": str(task.booking_id),
                            "attempts": task.attempts,
                        },
                    )
                return ReconciliationTaskStatus(task.status)
        except Exception:
            # The task stays pending with its previous attempt count
            logger.exception("reconciliation_task_update_failed", extra={"task_id": str(task_id)})
            return None

    def run_pending_reconciliations(self, limit: int | None = None) -> ReconciliationSweepResult:
        """
        Process pending outbox tasks, oldest first.

        Idempotent: every engine entry point is safe to repeat, so a task
        whose earlier attempt partly succeeded is simply run again.
        """
        limit = limit or self._reconciliation_policy.batch_size
        with transaction(self._session_factory) as session:
            pending = session.execute(
                select(
                    CommissionReconciliationTask.id,
                    CommissionReconciliationTask.booking_id,
                    CommissionReconciliationTask.reason,
                )
                .where(CommissionReconciliationTask.status == ReconciliationTaskStatus.PENDING.value)
                .order_by(CommissionReconciliationTask.created_at, CommissionReconciliationTask.id)
                .limit(limit)
            ).all()

        succeeded = failed = abandoned = 0
        for task_id, booking_id, reason in pending:
            with LogContext.bind(booking_id=str(booking_id)):
                _, error = self._run_task(task_id, booking_id, ReconciliationReason(reason))
            if error is None:
                succeeded += 1
                continue
            failed += 1
            if self._task_status(task_id) == ReconciliationTaskStatus.ABANDONED:
                abandoned += 1

        result = ReconciliationSweepResult(
            processed=len(pending),
            succeeded=succeeded,
            failed=failed,
            abandoned=abandoned,
        )
        logger.info(
            "reconciliation_sweep_completed",
            extra={
                "processed": result.processed,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "abandoned": result.abandoned,
            },
        )
        return result

    def _task_status(self, task_id: UUID) -> ReconciliationTaskStatus:
        with transaction(self._session_factory) as session:
            return ReconciliationTaskStatus(
                session.get(CommissionReconciliationTask, task_id).status
            )

    def purge_finished_reconciliations(self, retention_days: int | None = None) -> int:
        """
        Delete done and abandoned tasks processed more than
        ``retention_days`` ago (default: the policy's).  Pending tasks are
        never touched.

        Returns:
            Number of tasks deleted.
        """
        if retention_days is None:
            retention_days = self._reconciliation_policy.retention_days
        cutoff = self._clock.now() - timedelta(days=retention_days)
        with transaction(self._session_factory) as session:
            deleted = session.execute(
                delete(CommissionReconciliationTask).where(
                    CommissionReconciliationTask.status.in_((
                        ReconciliationTaskStatus.DONE.value,
                        ReconciliationTaskStatus.ABANDONED.value,
                    )),
                    CommissionReconciliationTask.processed_at < cutoff,
                )
            ).rowcount

        logger.info(
            "reconciliation_tasks_purged",
            extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
        )
        return deleted

    def reconcile_booking(self, booking_id: UUID) -> CommissionRecord | None:
        """
        Repair entry point: bring the commission in line with the booking.

        A FULLY_PAID booking gets its commission created if due, then
        approved if it was left PENDING.  Pending tasks for the booking are
        marked done.  Errors propagate.
        """
        with LogContext.bind(correlation_id=str(uuid4()), booking_id=str(booking_id)):
            with transaction(self._session_factory) as session:
                engine = CommissionEngine(session, self._clock)
                booking = BookingService(session).get_booking(booking_id)
                if booking.status == PaymentStatus.FULLY_PAID:
                    engine.reconcile_on_fully_paid(booking_id)
                commission = engine.reconcile_on_status_change(booking_id)

                tasks = session.execute(
                    select(CommissionReconciliationTask).where(
                        CommissionReconciliationTask.booking_id == booking_id,
                        CommissionReconciliationTask.status == ReconciliationTaskStatus.PENDING.value,
                    )
                ).scalars().all()
                for task in tasks:
                    task.status = ReconciliationTaskStatus.DONE.value
                    task.processed_at = self._clock.now()

                logger.info(
                    "booking_reconciled",
                    extra={
                        "commission_id": str(commission.id) if commission else None,
                        "tasks_closed": len(tasks),
                    },
                )
                return commission.to_dto() if commission is not None else None

    # ------------------------------------------------------------------
    # Commission payout and reads
    # ------------------------------------------------------------------

    def mark_commission_paid(self, commission_id: UUID) -> CommissionRecord:
        """Pay out an APPROVED commission.  Errors propagate."""
        with LogContext.bind(correlation_id=str(uuid4()), commission_id=str(commission_id)):
            with transaction(self._session_factory) as session:
                commission = CommissionEngine(session, self._clock).mark_paid(commission_id)
                return commission.to_dto()

    def get_commission(self, booking_id: UUID) -> CommissionRecord | None:
        with transaction(self._session_factory) as session:
            commission = CommissionEngine(session, self._clock).get_for_booking(booking_id)
            return commission.to_dto() if commission is not None else None
