"""
FuelLedger -- the public mutation surface of the ledger.

The orchestrator ties together:
- VoucherIssuer: fuel requests and cancellations
- FillValidator: recording the fill
- InvoiceAggregator: consolidating validated fills into an invoice
- ApprovalWorkflow: attestation, rejection and settlement
- BalanceLedger: counters, verification, quarantine and repair

Every mutation defines its own transaction boundary: it takes the store-wide
mutation lock, opens a session, runs one component, verifies the stations it
touched and commits.  Any exception rolls the whole unit back.

Integrity violations are never retried: the unit is rolled back, the station
named by the violation is quarantined in a separate unit, and the violation
is re-raised.  Further mutations on that station fail with
StationQuarantinedError until ``reconcile_station`` repairs it.
"""

import random
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Generator, Iterable, TypeVar
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from fuel_kernel.db.engine import mutation_lock_for, unit_of_work
from fuel_kernel.db.types import MONEY_PLACES
from fuel_kernel.domain.clock import Clock, SystemClock
from fuel_kernel.domain.dtos import (
    InvoiceInfo,
    ReconciliationReport,
    StationBalances,
    TransactionInfo,
)
from fuel_kernel.domain.fees import FeeBounds, FeeQuote, apply_fee
from fuel_kernel.domain.lifecycle import FuelType
from fuel_kernel.domain.voucher import VoucherCodeGenerator
from fuel_kernel.exceptions import (
    FuelLedgerError,
    IntegrityViolationError,
    InvoiceNotFoundError,
    StationNotFoundError,
    StationQuarantinedError,
    TransactionNotFoundError,
)
from fuel_kernel.logging_config import LogContext, get_logger
from fuel_kernel.models.invoice import Invoice
from fuel_kernel.models.station import FuelStation
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.services.approval_workflow import ApprovalWorkflow
from fuel_kernel.services.backup_service import BackupService
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.base import coerce_uuid, require_non_negative
from fuel_kernel.services.bootstrap_service import BootstrapService, SeedResult
from fuel_kernel.services.directory_service import DirectoryService
from fuel_kernel.services.fill_validator import FillValidator
from fuel_kernel.services.invoice_aggregator import InvoiceAggregator
from fuel_kernel.services.voucher_issuer import VoucherIssuer

logger = get_logger("services.ledger_orchestrator")

T = TypeVar("T")


@dataclass(frozen=True)
class LedgerOptions:
    """Tunables of a FuelLedger.  Built from configuration by fuel_config.bridges."""

    voucher_prefix: str = "FRT"
    suffix_length: int = 5
    max_attempts: int = 10
    verify_after_mutation: bool = True
    fee_bounds: FeeBounds = field(default_factory=FeeBounds)
    admin_username: str = "admin"
    admin_display_name: str = "Master Administrator"


class FuelLedger:
    """
    Orchestrates the fuel request -> fill -> invoice -> settlement flow.

    Contract:
        Accepts plain values and returns frozen DTOs; no ORM object escapes
        a mutation.  Each public mutation is one indivisible unit of work.

    Non-goals:
        - Does NOT retry on ConflictError; callers re-read and retry.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        rng: random.Random | None = None,
        options: LedgerOptions | None = None,
    ):
        """
        Args:
            session_factory: Factory bound to the store.  Every FuelLedger
                sharing the factory's engine shares one mutation lock.
            clock: Clock for timestamps.  Defaults to SystemClock.
            rng: Random source for voucher suffixes.  Defaults to a fresh
                ``random.Random``.
            options: Voucher, fee-bound, bootstrap and verification settings.
        """
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._options = options or LedgerOptions()
        self._generator = VoucherCodeGenerator(
            prefix=self._options.voucher_prefix,
            suffix_length=self._options.suffix_length,
            rng=rng,
        )
        bind = session_factory.kw.get("bind")
        self._lock = mutation_lock_for(bind if bind is not None else session_factory)

    @property
    def options(self) -> LedgerOptions:
        return self._options

    # ------------------------------------------------------------------
    # Unit-of-work plumbing
    # ------------------------------------------------------------------

    def _mutate(
        self,
        operation: str,
        work: Callable[[Session], tuple[T, Iterable[UUID]]],
        **context: Any,
    ) -> T:
        """
        Run ``work`` as one unit of work.

        ``work`` returns its result together with the ids of the stations
        whose counters it touched; those are verified before commit.
        """
        correlation_id = str(_uuid4())
        with LogContext.bind(correlation_id=correlation_id, operation=operation, **context):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                with unit_of_work(self._session_factory, self._lock) as session:
                    result, station_ids = work(session)
                    if self._options.verify_after_mutation:
                        ledger = BalanceLedger(session, self._clock)
                        for station_id in dict.fromkeys(station_ids):
                            ledger.verify(station_id)
            except StationQuarantinedError as exc:
                self._log_failure(operation, t0, exc)
                raise
            except IntegrityViolationError as exc:
                self._log_failure(operation, t0, exc)
                if exc.station_id is not None:
                    self._quarantine(exc)
                raise
            except FuelLedgerError as exc:
                self._log_failure(operation, t0, exc)
                raise
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms})
            return result

    @staticmethod
    def _log_failure(operation: str, t0: float, exc: FuelLedgerError) -> None:
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        level = logger.error if isinstance(exc, IntegrityViolationError) else logger.warning
        level(
            f"{operation}_failed",
            extra={"duration_ms": duration_ms, "error_code": exc.code, "error": str(exc)},
        )

    def _quarantine(self, violation: IntegrityViolationError) -> None:
        reason = f"{violation.invariant}: {violation.detail}"
        try:
            with unit_of_work(self._session_factory, self._lock) as session:
                BalanceLedger(session, self._clock).quarantine(
                    UUID(str(violation.station_id)), reason
                )
        except (FuelLedgerError, ValueError):
            # The caller still gets the integrity violation
            logger.exception(
                "station_quarantine_failed",
                extra={"station_id": violation.station_id},
            )

    @contextmanager
    def _read(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Ledger mutations
    # ------------------------------------------------------------------

    def request_fuel(
        self,
        organization_id: UUID,
        station_id: UUID,
        vehicle_id: UUID,
        requester_name: str,
        fuel_type: FuelType | str,
        estimated_liters: Decimal | int | str,
    ) -> TransactionInfo:
        def work(session):
            issuer = self._issuer(session)
            info = issuer.request_fuel(
                organization_id,
                station_id,
                vehicle_id,
                requester_name,
                fuel_type,
                estimated_liters,
            )
            return info, ()

        return self._mutate("request_fuel", work, station_id=station_id)

    def cancel_request(self, transaction_id: UUID, reason: str) -> TransactionInfo:
        def work(session):
            return self._issuer(session).cancel_request(transaction_id, reason), ()

        return self._mutate("cancel_request", work, transaction_id=transaction_id)

    def validate_fill(
        self,
        transaction_id: UUID,
        filled_liters: Decimal | int | str,
        price_per_liter: Decimal | int | str | None,
        odometer: Decimal | int | str,
    ) -> TransactionInfo:
        def work(session):
            ledger = BalanceLedger(session, self._clock)
            info = FillValidator(session, self._clock, ledger).validate_fill(
                transaction_id, filled_liters, price_per_liter, odometer
            )
            return info, (info.station_id,)

        return self._mutate("validate_fill", work, transaction_id=transaction_id)

    def generate_invoice(
        self,
        station_id: UUID,
        organization_id: UUID,
        is_advance: bool,
        document_number: str,
        attached_file_ref: str | None,
        access_key: str | None = None,
    ) -> InvoiceInfo:
        def work(session):
            ledger = BalanceLedger(session, self._clock)
            info = InvoiceAggregator(session, self._clock, ledger).generate_invoice(
                station_id,
                organization_id,
                is_advance,
                document_number,
                attached_file_ref,
                access_key,
            )
            return info, (info.station_id,)

        return self._mutate("generate_invoice", work, station_id=station_id)

    def attest(self, invoice_id: UUID) -> InvoiceInfo:
        return self._approval("attest", invoice_id)

    def reject(self, invoice_id: UUID, reason: str) -> InvoiceInfo:
        return self._approval("reject", invoice_id, reason)

    def settle(self, invoice_id: UUID) -> InvoiceInfo:
        return self._approval("settle", invoice_id)

    def _approval(self, action: str, invoice_id: UUID, *args: Any) -> InvoiceInfo:
        def work(session):
            ledger = BalanceLedger(session, self._clock)
            workflow = ApprovalWorkflow(session, self._clock, ledger)
            info = getattr(workflow, action)(invoice_id, *args)
            return info, (info.station_id,)

        return self._mutate(f"invoice_{action}", work, invoice_id=invoice_id)

    def _issuer(self, session: Session) -> VoucherIssuer:
        return VoucherIssuer(
            session,
            self._clock,
            self._generator,
            BalanceLedger(session, self._clock),
            max_attempts=self._options.max_attempts,
        )

    # ------------------------------------------------------------------
    # Fee quote (read-only)
    # ------------------------------------------------------------------

    def quote_fee(
        self,
        station_id: UUID,
        amount: Decimal | int | str,
        is_advance: bool,
    ) -> FeeQuote:
        """What the station's current schedule would charge on ``amount``."""
        value = require_non_negative(amount, MONEY_PLACES, "amount")
        with self._read() as session:
            station = session.get(FuelStation, coerce_uuid(station_id, StationNotFoundError))
            if station is None:
                raise StationNotFoundError(str(station_id))
            return apply_fee(value, station.fee_schedule, bool(is_advance))

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @contextmanager
    def directory(self) -> Generator[DirectoryService, None, None]:
        """
        Directory maintenance as one unit of work.

        Usage:
            with ledger.directory() as directory:
                org = directory.create_organization("City Hall", "12.345/0001")
        """
        with LogContext.bind(correlation_id=str(_uuid4()), operation="directory"):
            with unit_of_work(self._session_factory, self._lock) as session:
                yield DirectoryService(
                    session,
                    self._clock,
                    fee_bounds=self._options.fee_bounds,
                    master_admin_username=self._options.admin_username,
                )

    def bootstrap(self) -> SeedResult:
        """Ensure the master administrator exists.  Idempotent."""

        def work(session):
            return self._seeder(session).seed(), ()

        return self._mutate("bootstrap", work)

    def reconcile_station(self, station_id: UUID) -> ReconciliationReport:
        """
        Repair a station's counters from its transactions and lift quarantine.

        Returns:
            The report as it stood before the repair.
        """

        def work(session):
            return BalanceLedger(session, self._clock).repair(station_id), ()

        return self._mutate("reconcile_station", work, station_id=station_id)

    def audit(self, station_id: UUID | None = None) -> list[ReconciliationReport]:
        """Reports for one station, or every station when ``station_id`` is None."""
        with self._read() as session:
            ledger = BalanceLedger(session, self._clock)
            if station_id is not None:
                return [ledger.audit(coerce_uuid(station_id, StationNotFoundError))]
            ids = session.execute(
                select(FuelStation.id).order_by(FuelStation.name, FuelStation.id)
            ).scalars().all()
            return [ledger.audit(sid) for sid in ids]

    def export_state(self) -> dict[str, Any]:
        with self._read() as session:
            return BackupService(session, BalanceLedger(session, self._clock)).export_state()

    def import_state(self, document: dict[str, Any]) -> dict[str, int]:
        """Replace the store contents with ``document`` and re-run the seed."""

        def work(session):
            ledger = BalanceLedger(session, self._clock)
            counts = BackupService(session, ledger).import_state(document)
            self._seeder(session).seed()
            return counts, ()

        return self._mutate("import_state", work)

    def _seeder(self, session: Session) -> BootstrapService:
        return BootstrapService(
            session,
            self._clock,
            admin_username=self._options.admin_username,
            admin_display_name=self._options.admin_display_name,
        )

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: UUID) -> TransactionInfo:
        with self._read() as session:
            txn = session.get(
                FuelTransaction, coerce_uuid(transaction_id, TransactionNotFoundError)
            )
            if txn is None:
                raise TransactionNotFoundError(str(transaction_id))
            return TransactionInfo.from_model(txn)

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        with self._read() as session:
            invoice = session.get(Invoice, coerce_uuid(invoice_id, InvoiceNotFoundError))
            if invoice is None:
                raise InvoiceNotFoundError(str(invoice_id))
            return InvoiceInfo.from_model(invoice)

    def station_balances(self, station_id: UUID) -> StationBalances:
        with self._read() as session:
            station = session.get(FuelStation, coerce_uuid(station_id, StationNotFoundError))
            if station is None:
                raise StationNotFoundError(str(station_id))
            return StationBalances.from_model(station)

    def recompute_balances(self, station_id: UUID) -> StationBalances:
        with self._read() as session:
            return BalanceLedger(session, self._clock).recompute(
                coerce_uuid(station_id, StationNotFoundError)
            )
