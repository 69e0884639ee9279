"""
Concurrent ledger mutations.

Threads drive one file-backed store through separate sessions.  A Barrier
releases every worker at once so the calls really overlap; the shared
mutation lock must turn each race into a clean winner and clean losers,
with station counters moved exactly once.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest

from fuel_kernel.db.engine import mutation_lock_for, unit_of_work
from fuel_kernel.domain.lifecycle import TransactionStatus
from fuel_kernel.exceptions import (
    ConflictError,
    IntegrityViolationError,
    InvalidStateError,
    NothingToInvoiceError,
)
from fuel_kernel.invariants import LedgerInvariant
from fuel_kernel.models.organization import Organization
from fuel_kernel.models.station import FuelStation
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.services import FuelLedger

pytestmark = pytest.mark.slow_locks


def _race(count, fn):
    """Run ``fn(i)`` on ``count`` threads released together.

    Returns (results, errors) with exceptions collected rather than raised.
    """
    barrier = Barrier(count)

    def worker(i):
        barrier.wait(timeout=10)
        try:
            return "ok", fn(i)
        except Exception as exc:  # collected and asserted by the caller
            return "error", exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        outcomes = list(pool.map(worker, range(count)))
    results = [value for kind, value in outcomes if kind == "ok"]
    errors = [value for kind, value in outcomes if kind == "error"]
    return results, errors


class TestDoubleValidation:
    def test_one_fill_wins(self, ledger, world, request_fuel, counters_match):
        txn = request_fuel("30")

        results, errors = _race(
            2, lambda i: ledger.validate_fill(txn.id, "30", "5.000", str(1000 + i))
        )

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], (InvalidStateError, ConflictError))
        assert ledger.get_transaction(txn.id).status == TransactionStatus.VALIDATED
        assert ledger.station_balances(world.station_id).pending == Decimal("150.00")
        assert counters_match(world.station_id)

    def test_many_threads_one_winner(self, ledger, world, request_fuel, counters_match):
        txn = request_fuel("10")

        results, errors = _race(8, lambda i: ledger.validate_fill(txn.id, "10", None, "500"))

        assert len(results) == 1
        assert all(isinstance(e, (InvalidStateError, ConflictError)) for e in errors)
        assert ledger.station_balances(world.station_id).pending == Decimal("50.00")
        assert counters_match(world.station_id)

    def test_ledgers_sharing_an_engine_share_the_lock(
        self, session_factory, ledger_engine, ledger, deterministic_clock
    ):
        other = FuelLedger(session_factory, clock=deterministic_clock)
        assert other._lock is ledger._lock
        assert mutation_lock_for(ledger_engine) is ledger._lock


class TestConcurrentInvoicing:
    def test_one_invoice_per_batch(self, ledger, world, fill, counters_match):
        for _ in range(3):
            fill("10")

        results, errors = _race(
            2,
            lambda i: ledger.generate_invoice(
                world.station_id, world.organization_id, False, f"NF-{i}", None
            ),
        )

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], (NothingToInvoiceError, ConflictError))
        assert len(results[0].transaction_ids) == 3
        balances = ledger.station_balances(world.station_id)
        assert balances.pending == Decimal("0.00")
        assert balances.invoiced == Decimal("142.50")
        assert counters_match(world.station_id)

    def test_attest_and_reject_race(self, ledger, world, fill, counters_match):
        fill("10")
        invoice = ledger.generate_invoice(
            world.station_id, world.organization_id, False, "NF-1", None
        )

        def act(i):
            if i == 0:
                return ledger.attest(invoice.id)
            return ledger.reject(invoice.id, "duplicate document")

        results, errors = _race(2, act)

        assert len(results) == 1
        assert isinstance(errors[0], (InvalidStateError, ConflictError))
        assert counters_match(world.station_id)


class TestConcurrentRequests:
    def test_codes_unique_under_load(self, ledger, world, counters_match):
        results, errors = _race(
            10,
            lambda i: ledger.request_fuel(
                world.organization_id,
                world.station_id,
                world.vehicle_id,
                f"Driver {i}",
                "diesel",
                "5",
            ),
        )

        assert errors == []
        assert len({t.voucher_code for t in results}) == 10
        assert ledger.station_balances(world.station_id).pending == Decimal("0.00")
        assert counters_match(world.station_id)


class TestOptimisticVersioning:
    def test_stale_write_is_a_conflict(self, ledger, session_factory, world, fill):
        stale = session_factory()
        station = stale.get(FuelStation, world.station_id)
        stale.commit()

        fill("10")

        with pytest.raises(ConflictError) as exc_info:
            with unit_of_work(lambda: stale):
                station.contact_name = "Late Writer"
        assert exc_info.value.code == "CONFLICT"
        assert ledger.station_balances(world.station_id).pending == Decimal("50.00")

    def test_unique_key_collision_is_a_conflict(self, session_factory, world):
        with pytest.raises(ConflictError):
            with unit_of_work(session_factory) as session:
                session.add(Organization(name="Copy", tax_id="11.111.111/0001-11"))

    def test_dangling_foreign_key_is_not_a_conflict(self, session_factory, world):
        with pytest.raises(IntegrityViolationError) as exc_info:
            with unit_of_work(session_factory) as session:
                session.add(Vehicle(organization_id=uuid4(), plate="ZZZ9Z99", model="Van"))
        assert exc_info.value.code == "INTEGRITY_VIOLATION"
        assert exc_info.value.invariant == LedgerInvariant.STORE_CONSTRAINTS_HOLD.value
        assert exc_info.value.station_id is None

    def test_missing_required_column_is_not_a_conflict(self, session_factory, world):
        with pytest.raises(IntegrityViolationError) as exc_info:
            with unit_of_work(session_factory) as session:
                session.add(Organization(name="No Tax Id"))
        assert not isinstance(exc_info.value, ConflictError)
