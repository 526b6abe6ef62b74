"""
Module: booking_kernel.models.booking
Responsibility: ORM persistence for bookings and their companion customers.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models.

Invariants enforced:
    - payment_status and first_payment_ratio are restricted to their enum
      values by check constraints.
    - Tranches live in ``payments`` keyed by (booking_id, slot); the
      first/second/third accessors are read-only views over that list.
    - There is no stored total or paid amount.  Both are recomputed by the
      money model whenever they are needed.

Failure modes:
    - IntegrityError on an unknown customer/trip/agent/lead reference.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_kernel.db.base import Base, TrackedBase, UUIDString
from booking_kernel.db.types import MoneyType
from booking_kernel.domain.money import FirstPaymentRatio
from booking_kernel.domain.payment_status import PaymentStatus
from booking_kernel.domain.tranche import TrancheSlot
from booking_kernel.models.party import Customer, Lead, SalesUser, Trip
from booking_kernel.models.payment import Payment

if TYPE_CHECKING:
    from booking_kernel.models.commission import Commission


booking_companions = Table(
    "booking_companions",
    Base.metadata,
    Column("booking_id", UUIDString(), ForeignKey("bookings.id"), primary_key=True),
    Column("customer_id", UUIDString(), ForeignKey("customers.id"), primary_key=True),
)


class Booking(TrackedBase):
    """
    A customer's booking on a trip, sold by a sales agent.

    Contract:
        ``payment_status`` is set by the caller; it is the single source of
        truth for whether the booking is paid.

    Guarantees:
        - Up to three payments, one per slot.
        - Pricing extras and discount are exact decimals or None.
    """

    __tablename__ = "bookings"

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('DEPOSIT_PENDING', 'DEPOSIT_PAID', "
            "'FULLY_PAID', 'CANCELLED')",
            name="ck_bookings_valid_payment_status",
        ),
        CheckConstraint(
            "first_payment_ratio IN ('100', '50', '30')",
            name="ck_bookings_valid_first_payment_ratio",
        ),
        # Companion validation: "does customer X hold a booking on trip Y"
        Index("ix_bookings_trip_customer", "trip_id", "customer_id"),
        Index("ix_bookings_customer", "customer_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=False,
    )
    trip_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("trips.id"), nullable=False,
    )
    sales_user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sales_users.id"), nullable=False,
    )
    referrer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("sales_users.id"), nullable=True,
    )
    lead_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("leads.id"), nullable=True,
    )

    extra_price_for_single_traveller: Mapped[Decimal | None] = mapped_column(
        MoneyType(), nullable=True,
    )
    extra_price_per_bed: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    extra_price_per_seat: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    extra_price_per_bag: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)
    discount_price: Mapped[Decimal | None] = mapped_column(MoneyType(), nullable=True)

    first_payment_ratio: Mapped[str] = mapped_column(
        String(5), nullable=False, default=FirstPaymentRatio.FULL.value,
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.DEPOSIT_PENDING.value,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer: Mapped[Customer] = relationship(Customer, foreign_keys=[customer_id])
    trip: Mapped[Trip] = relationship(Trip)
    sales_user: Mapped[SalesUser] = relationship(SalesUser, foreign_keys=[sales_user_id])
    referrer: Mapped[SalesUser | None] = relationship(SalesUser, foreign_keys=[referrer_id])
    lead: Mapped[Lead | None] = relationship(Lead)
    companion_customers: Mapped[list[Customer]] = relationship(
        Customer, secondary=booking_companions, lazy="selectin",
    )
    payments: Mapped[list[Payment]] = relationship(
        Payment, back_populates="booking", lazy="selectin",
    )
    commission: Mapped[Commission | None] = relationship(
        "Commission", back_populates="booking", uselist=False,
    )

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus(self.payment_status)

    @property
    def ratio(self) -> FirstPaymentRatio:
        return FirstPaymentRatio(self.first_payment_ratio)

    def tranche(self, slot: TrancheSlot) -> Payment | None:
        for payment in self.payments:
            if payment.slot == slot.value:
                return payment
        return None

    @property
    def first_payment(self) -> Payment | None:
        return self.tranche(TrancheSlot.FIRST)

    @property
    def second_payment(self) -> Payment | None:
        return self.tranche(TrancheSlot.SECOND)

    @property
    def third_payment(self) -> Payment | None:
        return self.tranche(TrancheSlot.THIRD)

    @property
    def occupied_slots(self) -> frozenset[TrancheSlot]:
        return frozenset(TrancheSlot(p.slot) for p in self.payments)

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} trip={self.trip_id} "
            f"payment_status={self.payment_status}>"
        )
