"""
Settings loader (``booking_config.loader``).

Responsibility
--------------
Reads YAML files and parses them into the frozen ``booking_config.schema``
dataclasses.  Callers use ``booking_config.get_engine_settings()``; the
loader is its implementation.

Invariants enforced
-------------------
* Unknown sections and keys are rejected, so a typo never silently falls
  back to a default.
* Every value is type-checked; numeric limits are range-checked.
* Money values are parsed to ``Decimal`` from their text form.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid structure or values  -> ``ConfigValidationError``.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from booking_config.schema import (
    DatabaseSettings,
    EngineSettings,
    LoggingSettings,
    MoneySettings,
    PaymentStatusSettings,
    ReconciliationSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults" / "engine.yaml"

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "logging": LoggingSettings,
    "payment_status": PaymentStatusSettings,
    "money": MoneySettings,
    "reconciliation": ReconciliationSettings,
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ConfigValidationError(ValueError):
    """Settings file is structurally or semantically invalid."""

    def __init__(self, errors: list[str], source: str | None = None):
        self.errors = list(errors)
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(
            f"Invalid engine settings{where}:\n" + "\n".join(f"  - {e}" for e in self.errors)
        )


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigValidationError(["top level must be a mapping"], str(path))
    return data


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {name: dict(section or {}) for name, section in base.items()}
    for name, section in override.items():
        if isinstance(section, dict) and isinstance(merged.get(name), dict):
            merged[name].update(section)
        else:
            merged[name] = section
    return merged


def _parse_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(value) from exc


def _coerce(section: str, key: str, value: Any, expected: Any, errors: list[str]) -> Any:
    label = f"{section}.{key}"
    if expected is bool or expected == "bool":
        if not isinstance(value, bool):
            errors.append(f"{label} must be true or false, got {value!r}")
        return value
    if expected is int or expected == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{label} must be an integer, got {value!r}")
        return value
    if expected is Decimal or expected == "Decimal":
        try:
            return _parse_decimal(value)
        except ValueError:
            errors.append(f"{label} must be a decimal number, got {value!r}")
            return value
    if not isinstance(value, str):
        errors.append(f"{label} must be a string, got {value!r}")
    return value


def parse_section(name: str, data: Any, errors: list[str]):
    """Parse one section mapping into its dataclass; problems go to ``errors``."""
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{name} must be a mapping, got {type(data).__name__}")
        return cls()

    known = {f.name: f.type for f in fields(cls)}
    values = {}
    for key, value in data.items():
        if key not in known:
            errors.append(f"unknown key {name}.{key}")
            continue
        values[key] = _coerce(name, key, value, known[key], errors)
    return cls(**values)


def _validate(settings: EngineSettings, errors: list[str]) -> None:
    if settings.logging.level.upper() not in _LOG_LEVELS:
        errors.append(f"logging.level must be one of {sorted(_LOG_LEVELS)}")
    if not settings.database.url:
        errors.append("database.url must not be empty")
    if settings.database.pool_size < 1:
        errors.append("database.pool_size must be at least 1")
    if not 0 <= settings.money.decimal_places <= 9:
        errors.append("money.decimal_places must be between 0 and 9")
    if settings.money.first_payment_tolerance < 0:
        errors.append("money.first_payment_tolerance must not be negative")
    if settings.reconciliation.max_attempts < 1:
        errors.append("reconciliation.max_attempts must be at least 1")
    if settings.reconciliation.batch_size < 1:
        errors.append("reconciliation.batch_size must be at least 1")
    if settings.reconciliation.retention_days < 0:
        errors.append("reconciliation.retention_days must not be negative")


def parse_settings(data: dict[str, Any], source: str | None = None) -> EngineSettings:
    """
    Build validated ``EngineSettings`` from a merged settings mapping.

    Raises:
        ConfigValidationError: listing every problem found.
    """
    errors: list[str] = []
    for name in data:
        if name not in _SECTIONS:
            errors.append(f"unknown section {name}")

    sections = {name: parse_section(name, data.get(name), errors) for name in _SECTIONS}
    if errors:
        raise ConfigValidationError(errors, source)

    settings = EngineSettings(**sections, source=source)
    _validate(settings, errors)
    if errors:
        raise ConfigValidationError(errors, source)
    return settings


def load_settings(path: Path | None = None) -> EngineSettings:
    """Defaults, overlaid with the file at ``path`` when given."""
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if path is not None:
        data = merge_settings(data, load_yaml_file(Path(path)))
        source = str(path)
    settings = parse_settings(data, source)
    logging.getLogger("booking_kernel.config").info(
        "engine_settings_loaded",
        extra={
            "source": source,
            "enforce_transition_table": settings.payment_status.enforce_transition_table,
            "derive_from_tranches": settings.payment_status.derive_from_tranches,
        },
    )
    return settings
