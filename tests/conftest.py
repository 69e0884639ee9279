"""
Pytest fixtures for the fuel ledger test suite.

Provides:
- A session-scoped in-memory SQLite engine with per-test rollback sessions
  for service and selector tests
- A per-test file-backed store with a FuelLedger orchestrator for tests that
  need real commits (orchestrator, backup, concurrency)
- Deterministic clock, seeded random source and captured JSON logs
- A small directory "world": one organization, one station, one vehicle
"""

import json
import logging
import random
from io import StringIO
from types import SimpleNamespace
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from fuel_kernel.db.engine import build_engine, create_tables
from fuel_kernel.domain.clock import DeterministicClock
from fuel_kernel.domain.lifecycle import FuelType
from fuel_kernel.domain.voucher import VoucherCodeGenerator
from fuel_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fuel_kernel.services import (
    ApprovalWorkflow,
    BalanceLedger,
    DirectoryService,
    FillValidator,
    FuelLedger,
    InvoiceAggregator,
    VoucherIssuer,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fuel_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.bootstrap()
            logs = captured_logs()
            assert any(r["message"] == "bootstrap_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fuel_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time and randomness
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


# =============================================================================
# Session-scoped in-memory store, per-test rollback
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory engine for service-level tests.

    StaticPool keeps the one connection alive, so every session sees the
    same database.
    """
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction; ``session.commit()`` inside the
    test only releases a savepoint, and the outer transaction is rolled back
    at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(
        bind=conn,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield sess
    sess.close()
    trans.rollback()
    conn.close()


@pytest.fixture
def services(session, deterministic_clock, rng):
    """The ledger components wired onto the rollback session."""
    ledger = BalanceLedger(session, deterministic_clock)
    return SimpleNamespace(
        session=session,
        clock=deterministic_clock,
        ledger=ledger,
        directory=DirectoryService(session, deterministic_clock),
        issuer=VoucherIssuer(
            session,
            deterministic_clock,
            VoucherCodeGenerator(rng=rng),
            ledger,
        ),
        validator=FillValidator(session, deterministic_clock, ledger),
        aggregator=InvoiceAggregator(session, deterministic_clock, ledger),
        workflow=ApprovalWorkflow(session, deterministic_clock, ledger),
    )


@pytest.fixture
def service_world(services):
    """Organization, station (5 % base, 2.5 % advance), vehicle, diesel price."""
    directory = services.directory
    org = directory.create_organization("City Hall", "11.111.111/0001-11")
    station = directory.create_station("Central Station", "22.222.222/0001-22", "5", "2.5")
    vehicle = directory.register_vehicle(org.id, "abc1d23", "Pickup", department="Health")
    directory.set_fuel_price(station.id, FuelType.DIESEL, "5.000")
    return SimpleNamespace(
        organization_id=org.id,
        station_id=station.id,
        vehicle_id=vehicle.id,
    )


# =============================================================================
# Per-test committed store behind a FuelLedger
# =============================================================================


@pytest.fixture
def ledger_engine(tmp_path):
    """A fresh file-backed SQLite store; threads get their own connections."""
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(ledger_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=ledger_engine, expire_on_commit=False)


@pytest.fixture
def ledger(session_factory, deterministic_clock, rng) -> FuelLedger:
    return FuelLedger(session_factory, clock=deterministic_clock, rng=rng)


@pytest.fixture
def world(ledger):
    """Organization, station (5 % base, 2.5 % advance), vehicle, diesel price."""
    with ledger.directory() as directory:
        org = directory.create_organization("City Hall", "11.111.111/0001-11")
        station = directory.create_station(
            "Central Station", "22.222.222/0001-22", "5", "2.5"
        )
        vehicle = directory.register_vehicle(org.id, "abc1d23", "Pickup", department="Health")
        directory.set_fuel_price(station.id, FuelType.DIESEL, "5.000")
        ids = SimpleNamespace(
            organization_id=org.id,
            station_id=station.id,
            vehicle_id=vehicle.id,
        )
    return ids


@pytest.fixture
def request_fuel(ledger, world):
    """Open a diesel request for the world's vehicle."""

    def _request(liters="20", requester="J. Driver", fuel_type=FuelType.DIESEL):
        return ledger.request_fuel(
            world.organization_id,
            world.station_id,
            world.vehicle_id,
            requester,
            fuel_type,
            liters,
        )

    return _request


@pytest.fixture
def fill(ledger, request_fuel):
    """Request and validate a fill; returns the VALIDATED TransactionInfo."""

    def _fill(liters="20", price="5.000", odometer="1000"):
        txn = request_fuel(liters=liters)
        return ledger.validate_fill(txn.id, liters, price, odometer)

    return _fill


@pytest.fixture
def counters_match(ledger):
    """True when a station's stored counters equal a full recomputation."""

    def _check(station_id) -> bool:
        stored = ledger.station_balances(station_id)
        return stored.as_tuple() == ledger.recompute_balances(station_id).as_tuple()

    return _check
