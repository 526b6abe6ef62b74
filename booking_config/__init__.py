"""
booking_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_engine_settings()`` is the only way to obtain settings at runtime,
    and the only place that reads the ``BOOKING_ENGINE_CONFIG`` environment
    variable.

Architecture position:
    Sits above ``booking_kernel``.  The kernel never imports this package;
    ``booking_config.bridges`` translates settings into kernel policies.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ConfigValidationError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import os
from pathlib import Path

from booking_config.loader import ConfigValidationError, load_settings
from booking_config.schema import (
    DatabaseSettings,
    EngineSettings,
    LoggingSettings,
    MoneySettings,
    PaymentStatusSettings,
    ReconciliationSettings,
)

CONFIG_ENV_VAR = "BOOKING_ENGINE_CONFIG"


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """
    Load engine settings.

    Args:
        path: Override file layered over the packaged defaults.  When
            omitted, ``$BOOKING_ENGINE_CONFIG`` is used if set.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    return load_settings(Path(path) if path is not None else None)


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigValidationError",
    "DatabaseSettings",
    "EngineSettings",
    "LoggingSettings",
    "MoneySettings",
    "PaymentStatusSettings",
    "ReconciliationSettings",
    "get_engine_settings",
]
