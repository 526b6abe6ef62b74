"""
Module: booking_kernel.selectors.commission_selector
Responsibility: Commission query surface: per-agent summary by status, the
    all-agents commission report, and an agent's commission detail list.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Amounts are summed in Python over exact Decimals (MoneyType values are
      not aggregated in SQL).
    - People on a booking = the primary customer + its companions.
    - Date filters are inclusive whole UTC days on ``created_at``.
"""

from collections import defaultdict
from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from booking_kernel.db.types import ZERO
from booking_kernel.domain.commission import CommissionStatus
from booking_kernel.domain.dtos import (
    AgentCommissionReportRow,
    AgentCommissionSummary,
    CommissionDetail,
)
from booking_kernel.models.booking import Booking
from booking_kernel.models.commission import Commission
from booking_kernel.selectors.base import BaseSelector


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def _people_on(booking: Booking) -> int:
    return 1 + len(booking.companion_customers)


class CommissionSelector(BaseSelector):
    """Read-only commission queries."""

    def _commissions(
        self,
        agent_id: UUID | None = None,
        created_from: date | None = None,
        created_to: date | None = None,
    ) -> list[Commission]:
        stmt = select(Commission).options(
            selectinload(Commission.agent),
            selectinload(Commission.booking).selectinload(Booking.customer),
            selectinload(Commission.booking).selectinload(Booking.trip),
            selectinload(Commission.booking).selectinload(Booking.companion_customers),
        )
        if agent_id is not None:
            stmt = stmt.where(Commission.agent_id == agent_id)
        if created_from is not None:
            stmt = stmt.where(Commission.created_at >= _start_of_day(created_from))
        if created_to is not None:
            stmt = stmt.where(
                Commission.created_at < _start_of_day(created_to + timedelta(days=1))
            )
        stmt = stmt.order_by(Commission.created_at.desc(), Commission.id)
        return list(self.session.execute(stmt).scalars())

    def agent_summary(self, agent_id: UUID) -> AgentCommissionSummary:
        """Sum of an agent's commissions by status, plus the record count."""
        totals = {status: ZERO for status in CommissionStatus}
        commissions = self.session.execute(
            select(Commission).where(Commission.agent_id == agent_id)
        ).scalars().all()
        for commission in commissions:
            totals[commission.commission_status] += commission.amount

        return AgentCommissionSummary(
            agent_id=agent_id,
            pending=totals[CommissionStatus.PENDING],
            approved=totals[CommissionStatus.APPROVED],
            paid=totals[CommissionStatus.PAID],
            count=len(commissions),
        )

    def agent_report(
        self,
        created_from: date | None = None,
        created_to: date | None = None,
    ) -> list[AgentCommissionReportRow]:
        """
        One row per agent holding commissions in the range.

        Sorted by agent name, then agent id.
        """
        grouped: dict[UUID, dict] = defaultdict(
            lambda: {"name": "", "trips": 0, "people": 0, "amount": ZERO}
        )
        for commission in self._commissions(None, created_from, created_to):
            row = grouped[commission.agent_id]
            row["name"] = commission.agent.full_name
            row["trips"] += 1
            row["people"] += _people_on(commission.booking)
            row["amount"] += commission.amount

        rows = [
            AgentCommissionReportRow(
                agent_id=agent_id,
                agent_name=data["name"],
                total_trips=data["trips"],
                total_people=data["people"],
                total_commission_amount=data["amount"],
            )
            for agent_id, data in grouped.items()
        ]
        rows.sort(key=lambda r: (r.agent_name, str(r.agent_id)))
        return rows

    def agent_details(
        self,
        agent_id: UUID,
        created_from: date | None = None,
        created_to: date | None = None,
    ) -> list[CommissionDetail]:
        """An agent's commissions, newest first."""
        return [
            CommissionDetail(
                commission_id=commission.id,
                booking_id=commission.booking_id,
                trip_code=commission.booking.trip.code,
                customer_name=commission.booking.customer.display_name,
                total_people=_people_on(commission.booking),
                commission_amount=commission.amount,
                status=commission.commission_status,
                created_at=commission.created_at,
            )
            for commission in self._commissions(agent_id, created_from, created_to)
        ]
