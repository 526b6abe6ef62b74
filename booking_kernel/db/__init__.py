"""Database layer - engine, base classes, and column types."""

from booking_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from booking_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
    transaction,
)
from booking_kernel.db.types import MoneyType, UTCDateTime

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "transaction",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MoneyType",
    "UTCDateTime",
]
