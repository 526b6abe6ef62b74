"""
Engine settings schema.

Frozen dataclasses parsed from YAML by ``booking_config.loader``.  These
are the configuration artifact; ``booking_config.bridges`` converts them
into the kernel's policy objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters for ``init_engine_from_url``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class PaymentStatusSettings:
    """Payment state machine switches (both off = compatibility baseline)."""

    enforce_transition_table: bool = False
    derive_from_tranches: bool = False


@dataclass(frozen=True)
class MoneySettings:
    decimal_places: int = 2
    first_payment_tolerance: Decimal = Decimal("0")


@dataclass(frozen=True)
class ReconciliationSettings:
    """Outbox sweep limits."""

    max_attempts: int = 10
    batch_size: int = 100
    retention_days: int = 30


@dataclass(frozen=True)
class EngineSettings:
    """Complete engine configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    payment_status: PaymentStatusSettings = field(default_factory=PaymentStatusSettings)
    money: MoneySettings = field(default_factory=MoneySettings)
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    source: str | None = None
