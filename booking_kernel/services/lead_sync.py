"""
Lead status synchronization seam.

The booking engine does not own lead statuses.  When a booking's payment
status changes it asks a ``LeadStatusSynchronizer`` to recompute the status
of every lead belonging to the booking's customer.  The call happens inside
the booking transaction; an exception from the synchronizer rolls the whole
update back.
"""

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from booking_kernel.logging_config import get_logger

logger = get_logger("services.lead_sync")


@runtime_checkable
class LeadStatusSynchronizer(Protocol):
    """Recomputes one lead's status from its customer's bookings."""

    def sync_lead_status(self, lead_id: UUID, session: Session) -> None:
        ...


class LoggingLeadStatusSynchronizer:
    """Default synchronizer: records the request and changes nothing."""

    def sync_lead_status(self, lead_id: UUID, session: Session) -> None:
        logger.debug("lead_sync_skipped", extra={"lead_id": str(lead_id)})
