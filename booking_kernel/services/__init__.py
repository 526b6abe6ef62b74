"""Booking kernel services.  Services flush; the orchestrator commits."""

from booking_kernel.services.booking_service import BookingService
from booking_kernel.services.commission_service import CommissionEngine
from booking_kernel.services.lead_sync import (
    LeadStatusSynchronizer,
    LoggingLeadStatusSynchronizer,
)
from booking_kernel.services.reconciliation_orchestrator import (
    BookingUpdateResult,
    ReconciliationOrchestrator,
    ReconciliationSweepResult,
)
from booking_kernel.services.tranche_service import TrancheService

__all__ = [
    "BookingService",
    "BookingUpdateResult",
    "CommissionEngine",
    "LeadStatusSynchronizer",
    "LoggingLeadStatusSynchronizer",
    "ReconciliationOrchestrator",
    "ReconciliationSweepResult",
    "TrancheService",
]
