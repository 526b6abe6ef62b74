"""
Module: booking_kernel.models.party
Responsibility: ORM persistence for the reference entities a booking points
    at: customers, trips, sales agents, and leads.
Architecture position: Kernel > Models.  May import from db/base.py only.

These rows are owned by the surrounding CRUD application; the engine reads
them (trip base price, agent commission rate, customer leads) and never
mutates them.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from booking_kernel.db.base import TrackedBase, UUIDString
from booking_kernel.db.types import MoneyType


class LeadStatus(str, Enum):
    """Lead pipeline states (synchronized by the lead subsystem)."""

    NEW = "NEW"
    QUOTED = "QUOTED"
    FOLLOW_UP = "FOLLOW_UP"
    CLOSED_WON = "CLOSED_WON"
    CLOSED_LOST = "CLOSED_LOST"


class Customer(TrackedBase):
    """A traveller; may be a booking's primary customer or a companion."""

    __tablename__ = "customers"

    first_name_en: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name_en: Mapped[str] = mapped_column(String(100), nullable=False)
    first_name_th: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name_th: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def display_name(self) -> str:
        """Thai name when both parts are present, English name otherwise."""
        if self.first_name_th and self.last_name_th:
            return f"{self.first_name_th} {self.last_name_th}"
        return f"{self.first_name_en} {self.last_name_en}"

    def __repr__(self) -> str:
        return f"<Customer {self.id} {self.first_name_en} {self.last_name_en}>"


class Trip(TrackedBase):
    """A sellable trip; ``base_price`` is the per-booking standard price."""

    __tablename__ = "trips"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Trip {self.code} base_price={self.base_price}>"


class SalesUser(TrackedBase):
    """
    A sales agent.

    ``commission_per_head`` is a flat amount owed per fully paid booking.
    None or zero means no commission is due.
    """

    __tablename__ = "sales_users"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    commission_per_head: Mapped[Decimal | None] = mapped_column(
        MoneyType(), nullable=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<SalesUser {self.id} {self.full_name}>"


class Lead(TrackedBase):
    """A sales lead for a customer.  Its status belongs to the lead subsystem."""

    __tablename__ = "leads"

    __table_args__ = (
        Index("ix_leads_customer", "customer_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=False,
    )
    agent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("sales_users.id"), nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LeadStatus.NEW.value,
    )

    def __repr__(self) -> str:
        return f"<Lead {self.id} customer={self.customer_id} status={self.status}>"
