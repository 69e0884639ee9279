"""
Configuration Loader (``fuel_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``fuel_config.schema`` dataclasses.  Runtime callers go through
``fuel_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` naming the offending key.
* Missing sections and keys fall back to the schema defaults; unknown keys
  are rejected so a typo never silently reverts to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the source
  document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fuel_config.schema import (
    BootstrapPolicy,
    DatabaseSettings,
    FeeBoundsConfig,
    LedgerConfig,
    LoggingSettings,
    VoucherPolicy,
)

_PREFIX_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")

_SECTIONS = frozenset(
    {"config_id", "version", "ledger", "voucher", "fees", "bootstrap", "logging", "database"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(section).__name__}")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"{name}: unknown keys {sorted(unknown)}")
    return section


def _where(section: str, key: str) -> str:
    return f"{section}.{key}" if section else key


def _int(section: str, key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{_where(section, key)}: expected an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{_where(section, key)}: must be >= {minimum}, got {value}")
    return value


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{_where(section, key)}: expected true/false, got {value!r}")
    return value


def _text(section: str, key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{_where(section, key)}: expected a non-empty string")
    return value.strip()


def _percent(key: str, value: Any) -> str:
    try:
        dec = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"fees.{key}: not a number: {value!r}") from e
    if not dec.is_finite() or dec < 0 or dec > 100:
        raise ValueError(f"fees.{key}: must be within [0, 100], got {value!r}")
    return str(value)


def parse_voucher_policy(data: dict[str, Any]) -> VoucherPolicy:
    section = _section(data, "voucher", {"prefix", "suffix_length", "max_attempts"})
    default = VoucherPolicy()
    prefix = section.get("prefix", default.prefix)
    if not isinstance(prefix, str) or not _PREFIX_PATTERN.match(prefix):
        raise ValueError(
            f"voucher.prefix: expected 1-10 upper-case letters or digits, got {prefix!r}"
        )
    return VoucherPolicy(
        prefix=prefix,
        suffix_length=_int(
            "voucher", "suffix_length", section.get("suffix_length", default.suffix_length), 4
        ),
        max_attempts=_int(
            "voucher", "max_attempts", section.get("max_attempts", default.max_attempts), 1
        ),
    )


def parse_fee_bounds(data: dict[str, Any]) -> FeeBoundsConfig:
    keys = {"base_min", "base_max", "advance_min", "advance_max"}
    section = _section(data, "fees", keys)
    default = FeeBoundsConfig()
    values = {key: _percent(key, section.get(key, getattr(default, key))) for key in keys}
    for low, high in (("base_min", "base_max"), ("advance_min", "advance_max")):
        if Decimal(values[low]) > Decimal(values[high]):
            raise ValueError(f"fees.{low} ({values[low]}) exceeds fees.{high} ({values[high]})")
    return FeeBoundsConfig(**values)


def parse_bootstrap_policy(data: dict[str, Any]) -> BootstrapPolicy:
    section = _section(
        data, "bootstrap", {"admin_username", "admin_display_name", "seed_on_init"}
    )
    default = BootstrapPolicy()
    return BootstrapPolicy(
        admin_username=_text(
            "bootstrap", "admin_username", section.get("admin_username", default.admin_username)
        ),
        admin_display_name=_text(
            "bootstrap",
            "admin_display_name",
            section.get("admin_display_name", default.admin_display_name),
        ),
        seed_on_init=_bool(
            "bootstrap", "seed_on_init", section.get("seed_on_init", default.seed_on_init)
        ),
    )


def parse_logging_settings(data: dict[str, Any]) -> LoggingSettings:
    section = _section(data, "logging", {"level"})
    level = str(section.get("level", LoggingSettings().level)).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"logging.level: unknown level {level!r}")
    return LoggingSettings(level=level)


def parse_database_settings(data: dict[str, Any]) -> DatabaseSettings:
    section = _section(data, "database", {"url", "echo", "pool_size", "max_overflow"})
    default = DatabaseSettings()
    return DatabaseSettings(
        url=_text("database", "url", section.get("url", default.url)),
        echo=_bool("database", "echo", section.get("echo", default.echo)),
        pool_size=_int("database", "pool_size", section.get("pool_size", default.pool_size), 1),
        max_overflow=_int(
            "database", "max_overflow", section.get("max_overflow", default.max_overflow), 0
        ),
    )


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a whole configuration document.

    Raises:
        ValueError: Unknown sections or keys, or malformed values.
    """
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"unknown configuration sections {sorted(unknown)}")

    ledger = _section(data, "ledger", {"verify_after_mutation"})
    return LedgerConfig(
        config_id=_text("", "config_id", data.get("config_id", "fuel-ledger")),
        version=_int("", "version", data.get("version", 1), 1),
        verify_after_mutation=_bool(
            "ledger",
            "verify_after_mutation",
            ledger.get("verify_after_mutation", True),
        ),
        voucher=parse_voucher_policy(data),
        fees=parse_fee_bounds(data),
        bootstrap=parse_bootstrap_policy(data),
        logging=parse_logging_settings(data),
        database=parse_database_settings(data),
        checksum=compute_checksum(data),
    )
