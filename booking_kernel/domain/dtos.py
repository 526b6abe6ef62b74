"""
Data transfer objects for the booking kernel.

Frozen dataclasses crossing the service boundary.  Services accept the
request DTOs (``NewBooking``, ``BookingUpdate``, ``TrancheInput``) and
return the view DTOs (``BookingView``, ``TrancheRecord``,
``CommissionRecord``); ORM rows never leave a transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from booking_kernel.domain.commission import CommissionStatus
from booking_kernel.domain.money import FirstPaymentRatio
from booking_kernel.domain.payment_status import PaymentStatus
from booking_kernel.domain.tranche import TrancheSlot


class _Unset:
    """Marker for "field not present in the update payload"."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# =========================================================================
# Requests
# =========================================================================


@dataclass(frozen=True)
class TrancheInput:
    """A payment to record in a tranche slot."""

    amount: Decimal
    paid_at: datetime | None = None
    proof_url: str | None = None


@dataclass(frozen=True)
class NewBooking:
    """Fields for creating a booking together with its first tranche."""

    customer_id: UUID
    trip_id: UUID
    sales_user_id: UUID | None
    first_payment: TrancheInput | None
    first_payment_ratio: FirstPaymentRatio = FirstPaymentRatio.FULL
    payment_status: PaymentStatus = PaymentStatus.DEPOSIT_PENDING
    referrer_id: UUID | None = None
    lead_id: UUID | None = None
    companion_customer_ids: tuple[UUID, ...] = ()
    extra_price_for_single_traveller: Decimal | None = None
    extra_price_per_bed: Decimal | None = None
    extra_price_per_seat: Decimal | None = None
    extra_price_per_bag: Decimal | None = None
    discount_price: Decimal | None = None
    note: str | None = None


@dataclass(frozen=True)
class BookingUpdate:
    """
    Partial booking update.

    Only fields explicitly given (not ``UNSET``) are applied; passing None
    clears an optional field.  Tranches can only be added, never replaced.
    """

    customer_id: UUID | Any = UNSET
    trip_id: UUID | Any = UNSET
    sales_user_id: UUID | None | Any = UNSET
    referrer_id: UUID | None | Any = UNSET
    lead_id: UUID | None | Any = UNSET
    companion_customer_ids: tuple[UUID, ...] | Any = UNSET
    extra_price_for_single_traveller: Decimal | None | Any = UNSET
    extra_price_per_bed: Decimal | None | Any = UNSET
    extra_price_per_seat: Decimal | None | Any = UNSET
    extra_price_per_bag: Decimal | None | Any = UNSET
    discount_price: Decimal | None | Any = UNSET
    first_payment_ratio: FirstPaymentRatio | Any = UNSET
    payment_status: PaymentStatus | Any = UNSET
    note: str | None | Any = UNSET
    second_payment: TrancheInput | Any = UNSET
    third_payment: TrancheInput | Any = UNSET

    def present_fields(self) -> dict[str, Any]:
        """Fields explicitly present in this update."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_present(self, name: str) -> bool:
        return getattr(self, name) is not UNSET


# =========================================================================
# Views
# =========================================================================


@dataclass(frozen=True)
class TrancheRecord:
    """A recorded payment tranche."""

    payment_id: UUID
    booking_id: UUID
    slot: TrancheSlot
    amount: Decimal
    paid_at: datetime
    proof_url: str | None = None
    expected_amount: Decimal | None = None
    deviation: Decimal | None = None


@dataclass(frozen=True)
class BookingView:
    """Booking with its money figures computed at read time."""

    booking_id: UUID
    customer_id: UUID
    trip_id: UUID
    sales_user_id: UUID | None
    referrer_id: UUID | None
    lead_id: UUID | None
    payment_status: PaymentStatus
    first_payment_ratio: FirstPaymentRatio
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    expected_first_payment: Decimal
    companion_customer_ids: tuple[UUID, ...] = ()
    tranches: tuple[TrancheRecord, ...] = ()
    note: str | None = None


@dataclass(frozen=True)
class CommissionRecord:
    """A commission owed to a sales agent for one booking."""

    commission_id: UUID
    booking_id: UUID
    agent_id: UUID
    amount: Decimal
    status: CommissionStatus
    created_at: datetime
    paid_at: datetime | None = None
    note: str | None = None


@dataclass(frozen=True)
class AgentCommissionSummary:
    """Commission amounts for one agent, summed by status."""

    agent_id: UUID
    pending: Decimal
    approved: Decimal
    paid: Decimal
    count: int

    @property
    def total(self) -> Decimal:
        return self.pending + self.approved + self.paid


@dataclass(frozen=True)
class AgentCommissionReportRow:
    """One agent's line in the commission report."""

    agent_id: UUID
    agent_name: str
    total_trips: int
    total_people: int
    total_commission_amount: Decimal


@dataclass(frozen=True)
class CommissionDetail:
    """One commission in an agent's detail listing."""

    commission_id: UUID
    booking_id: UUID
    trip_code: str
    customer_name: str
    total_people: int
    commission_amount: Decimal
    status: CommissionStatus
    created_at: datetime
