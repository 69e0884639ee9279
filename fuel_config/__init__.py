"""
fuel_config -- single public entrypoint for fuel-ledger configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration sits above ``fuel_kernel``.  The kernel MUST NEVER import
    from ``fuel_config``; ``fuel_config.bridges`` translates a LedgerConfig
    into kernel inputs (LedgerOptions, FeeBounds, engine, logging).

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or value validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``FUEL_LEDGER_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fuel_config.loader import load_yaml_file, parse_ledger_config
from fuel_config.schema import LedgerConfig

_logger = logging.getLogger("fuel_kernel.config")

CONFIG_ENV_VAR = "FUEL_LEDGER_CONFIG"

# Bundled configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: ``path``, then ``$FUEL_LEDGER_CONFIG``, then the
    bundled ``sets/default.yaml``.

    Raises:
        FileNotFoundError: The resolved file does not exist.
        ValueError: The file fails validation.
    """
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = parse_ledger_config(load_yaml_file(source))

    _logger.info(
        "FUEL_LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "FUEL_LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(source),
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "LedgerConfig",
    "get_active_config",
]
