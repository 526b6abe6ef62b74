"""
Engine policies (``booking_kernel.domain.policy``).

Frozen, kernel-side views of the configurable behavior.  The kernel never
reads configuration files; ``booking_config.bridges`` builds these objects
from the loaded settings.  The defaults are the compatibility baseline.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from booking_kernel.db.types import MONEY_DECIMAL_PLACES


@dataclass(frozen=True)
class PaymentPolicy:
    """Payment status and money handling switches."""

    enforce_transition_table: bool = False
    derive_from_tranches: bool = False
    money_decimal_places: int = MONEY_DECIMAL_PLACES
    first_payment_tolerance: Decimal = Decimal("0")


@dataclass(frozen=True)
class ReconciliationPolicy:
    """Outbox sweep limits."""

    max_attempts: int = 10
    batch_size: int = 100
    # done and abandoned tasks older than this are purgeable
    retention_days: int = 30
