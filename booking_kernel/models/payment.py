"""
Module: booking_kernel.models.payment
Responsibility: ORM persistence for payment tranches.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one payment per (booking, slot): UNIQUE(booking_id, slot).
    - Immutable once created: UPDATE and DELETE are rejected by the ORM
      listeners in db/immutability.py.

Failure modes:
    - IntegrityError on a second payment for an occupied slot.
    - ImmutabilityViolationError on UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_kernel.db.base import Base, UUIDString
from booking_kernel.db.types import MoneyType, UTCDateTime
from booking_kernel.domain.tranche import TrancheSlot

if TYPE_CHECKING:
    from booking_kernel.domain.dtos import TrancheRecord
    from booking_kernel.models.booking import Booking


class Payment(Base):
    """
    One payment tranche of a booking.

    Contract:
        Created once by TrancheService and never changed afterwards.

    Guarantees:
        - ``slot`` is one of first/second/third.
        - ``amount`` is exact (MoneyType).
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("booking_id", "slot", name="uq_payments_booking_slot"),
        CheckConstraint(
            "slot IN ('first', 'second', 'third')",
            name="ck_payments_valid_slot",
        ),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False,
    )
    slot: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    proof_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    booking: Mapped[Booking] = relationship("Booking", back_populates="payments")

    @property
    def tranche_slot(self) -> TrancheSlot:
        return TrancheSlot(self.slot)

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.slot} amount={self.amount}>"

    def to_dto(
        self,
        expected_amount: Decimal | None = None,
        deviation: Decimal | None = None,
    ) -> TrancheRecord:
        from booking_kernel.domain.dtos import TrancheRecord

        return TrancheRecord(
            payment_id=self.id,
            booking_id=self.booking_id,
            slot=self.tranche_slot,
            amount=self.amount,
            paid_at=self.paid_at,
            proof_url=self.proof_url,
            expected_amount=expected_amount,
            deviation=deviation,
        )
