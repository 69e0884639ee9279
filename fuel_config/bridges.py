"""
Config -> Kernel Bridges.

Functions that convert a LedgerConfig into kernel-compatible inputs.  These
live in fuel_config (the producer) because the kernel must NEVER import
fuel_config.

Usage:
    from fuel_config import get_active_config
    from fuel_config.bridges import build_ledger, init_engine

    config = get_active_config()
    init_engine(config)
    ledger = build_ledger(config)
"""

from __future__ import annotations

import random
from decimal import Decimal

from sqlalchemy.engine import Engine

from fuel_config.schema import LedgerConfig
from fuel_kernel.db.engine import get_session_factory, init_engine_from_url
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.fees import FeeBounds
from fuel_kernel.logging_config import configure_logging
from fuel_kernel.services.ledger_orchestrator import FuelLedger, LedgerOptions


def build_fee_bounds(config: LedgerConfig) -> FeeBounds:
    fees = config.fees
    return FeeBounds(
        base_min=Decimal(fees.base_min),
        base_max=Decimal(fees.base_max),
        advance_min=Decimal(fees.advance_min),
        advance_max=Decimal(fees.advance_max),
    )


def build_ledger_options(config: LedgerConfig) -> LedgerOptions:
    return LedgerOptions(
        voucher_prefix=config.voucher.prefix,
        suffix_length=config.voucher.suffix_length,
        max_attempts=config.voucher.max_attempts,
        verify_after_mutation=config.verify_after_mutation,
        fee_bounds=build_fee_bounds(config),
        admin_username=config.bootstrap.admin_username,
        admin_display_name=config.bootstrap.admin_display_name,
    )


def apply_logging(config: LedgerConfig) -> None:
    configure_logging(level=config.logging.level)


def init_engine(config: LedgerConfig, database_url: str | None = None) -> Engine:
    """Initialize the module-level engine; ``database_url`` overrides the config."""
    db = config.database
    url = database_url or db.url
    if url.startswith("sqlite"):
        return init_engine_from_url(url, echo=db.echo)
    return init_engine_from_url(
        url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )


def build_ledger(
    config: LedgerConfig,
    clock: Clock | None = None,
    rng: random.Random | None = None,
) -> FuelLedger:
    """A FuelLedger on the module-level engine (call ``init_engine`` first)."""
    return FuelLedger(
        get_session_factory(),
        clock=clock,
        rng=rng,
        options=build_ledger_options(config),
    )
