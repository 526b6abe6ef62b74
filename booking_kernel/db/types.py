"""
Module: booking_kernel.db.types
Responsibility: Column types and utility functions for money and timestamps.
    Centralizes precision and rounding so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the booking kernel.  All monetary amounts use
      Decimal; to_money() rejects float input outright.
    - round_money() is the ONLY sanctioned rounding function for monetary
      values.
    - Timestamps are always timezone-aware UTC when read back, regardless of
      backend.

Failure modes:
    - TypeError when a float is passed to to_money().
    - decimal.InvalidOperation on a non-numeric string.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# Rounding constants
MONEY_DECIMAL_PLACES = 2
STORAGE_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


class MoneyType(TypeDecorator):
    """
    Exact decimal money column.

    Contract:
        Stored as Numeric(38, 9) on PostgreSQL.  Backends without a native
        decimal type (SQLite) store the canonical string form instead, so a
        value never passes through a binary float.

    Guarantees:
        - process_result_value always returns Decimal (or None).
        - Aggregation over MoneyType columns is done in Python, never in SQL,
          so both storage forms behave identically.
    """

    impl = Numeric(38, STORAGE_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(38, STORAGE_DECIMAL_PLACES))
        return dialect.type_descriptor(String(64))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = to_money(value)
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp column.

    SQLite drops tzinfo on write; values are normalized to UTC before binding
    and re-tagged as UTC on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "postgresql":
            return value
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def utc_now() -> datetime:
    """Column default for audit timestamps (not for business time)."""
    return datetime.now(UTC)


def money_from_str(value: str) -> Decimal:
    """
    Create a money value from string.

    Postconditions: Returns a Decimal (not rounded -- callers apply
        rounding via round_money() if needed).

    Raises:
        decimal.InvalidOperation: If value is not numeric.
    """
    return Decimal(value)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce a Decimal, int, or numeric string to Decimal.

    Raises:
        TypeError: If value is a float (binary floats are never money).
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money must not be constructed from {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return money_from_str(str(value).strip())


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for monetary values in
    the kernel.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
