"""
LedgerConfig schema.

The typed form of a fuel-ledger configuration file.  YAML documents are
parsed into these frozen dataclasses by the loader; bridges turn them into
kernel inputs.  Decimal bounds are kept as strings here, exactly as written
in the source file, and converted at the bridge.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class VoucherPolicy:
    """Shape of voucher codes: ``<prefix>-<YYYYMMDD>-<suffix>``."""

    prefix: str = "FRT"
    suffix_length: int = 5
    max_attempts: int = 10


@dataclass(frozen=True)
class FeeBoundsConfig:
    """Inclusive bounds on station fee percentages."""

    base_min: str = "1.5"
    base_max: str = "15"
    advance_min: str = "0"
    advance_max: str = "15"


@dataclass(frozen=True)
class BootstrapPolicy:
    admin_username: str = "admin"
    admin_display_name: str = "Master Administrator"
    seed_on_init: bool = True


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///fuel_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LedgerConfig:
    """A complete, validated configuration.  ``checksum`` identifies the source."""

    config_id: str
    version: int
    verify_after_mutation: bool = True
    voucher: VoucherPolicy = field(default_factory=VoucherPolicy)
    fees: FeeBoundsConfig = field(default_factory=FeeBoundsConfig)
    bootstrap: BootstrapPolicy = field(default_factory=BootstrapPolicy)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    checksum: str = ""
