"""ORM models.  Importing this package registers every table on Base.metadata."""

from booking_kernel.models.booking import Booking, booking_companions
from booking_kernel.models.commission import Commission
from booking_kernel.models.party import Customer, Lead, LeadStatus, SalesUser, Trip
from booking_kernel.models.payment import Payment
from booking_kernel.models.reconciliation import (
    CommissionReconciliationTask,
    ReconciliationTaskStatus,
)

__all__ = [
    "Booking",
    "booking_companions",
    "Commission",
    "CommissionReconciliationTask",
    "Customer",
    "Lead",
    "LeadStatus",
    "Payment",
    "ReconciliationTaskStatus",
    "SalesUser",
    "Trip",
]
