"""
Module: booking_kernel.models.commission
Responsibility: ORM persistence for sales-agent commissions.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models.

Invariants enforced:
    - At most one commission per booking: CommissionEngine looks up before
      creating, and UNIQUE(booking_id) backs the lookup under concurrency.
    - status is restricted to PENDING/APPROVED/PAID by a check constraint.
    - amount is a copy of the agent's rate at calculation time; it is never
      recomputed.

Failure modes:
    - IntegrityError on a second commission for the same booking (handled by
      CommissionEngine as an idempotent success).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_kernel.db.base import TrackedBase, UUIDString
from booking_kernel.db.types import MoneyType, UTCDateTime
from booking_kernel.domain.commission import CommissionStatus
from booking_kernel.models.party import SalesUser

if TYPE_CHECKING:
    from booking_kernel.domain.dtos import CommissionRecord
    from booking_kernel.models.booking import Booking


class Commission(TrackedBase):
    """Commission owed to the booking's sales agent."""

    __tablename__ = "commissions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PAID')",
            name="ck_commissions_valid_status",
        ),
        Index("ix_commissions_agent_created", "agent_id", "created_at"),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False, unique=True,
    )
    agent_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sales_users.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CommissionStatus.PENDING.value,
    )
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    booking: Mapped[Booking] = relationship("Booking", back_populates="commission")
    agent: Mapped[SalesUser] = relationship(SalesUser)

    @property
    def commission_status(self) -> CommissionStatus:
        return CommissionStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<Commission {self.id} booking={self.booking_id} "
            f"amount={self.amount} status={self.status}>"
        )

    def to_dto(self) -> CommissionRecord:
        """Convert ORM model to frozen domain DTO."""
        from booking_kernel.domain.dtos import CommissionRecord

        return CommissionRecord(
            commission_id=self.id,
            booking_id=self.booking_id,
            agent_id=self.agent_id,
            amount=self.amount,
            status=self.commission_status,
            created_at=self.created_at,
            paid_at=self.paid_at,
            note=self.note,
        )
