"""
BalanceLedger -- sole writer of station balance counters.

Responsibility:
    Applies the incremental counter adjustment that belongs to each ledger
    transition, recomputes counters from scratch, verifies one against the
    other, and repairs a station after a detected divergence.

Architecture position:
    Kernel > Services -- imperative shell.  Called by VoucherIssuer (quarantine
    check), FillValidator, InvoiceAggregator, ApprovalWorkflow and the
    FuelLedger orchestrator.  No other code assigns to ``balance_*``.

Invariants enforced:
    balance_pending  == sum(total_value) over VALIDATED transactions
    balance_invoiced == sum(net_value)   over INVOICED transactions
    balance_paid     == sum(net_value)   over PAID transactions
    No counter is ever negative.
    fee_amount + net_value == total_value on invoiced/paid transactions.
    Invoice totals equal the sums over the transactions they still hold.

Adjustments (incremental form, used consistently):

    Transition            pending      invoiced     paid
    --------------------  -----------  -----------  --------
    validated             + total
    invoiced              - gross      + net
    rejected              + gross      - net
    settled                            - net        + net

Failure modes:
    - StationNotFoundError: unknown station id.
    - StationQuarantinedError: mutation on a quarantined station.
    - IntegrityViolationError: an adjustment would go negative, or verify()
      found a mismatch.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select

from fuel_kernel.db.types import ZERO_MONEY
from fuel_kernel.domain.clock import Clock, SystemClock
from fuel_kernel.domain.dtos import Discrepancy, ReconciliationReport, StationBalances
from fuel_kernel.domain.lifecycle import InvoiceStatus, TransactionStatus
from fuel_kernel.exceptions import (
    IntegrityViolationError,
    StationNotFoundError,
    StationQuarantinedError,
)
from fuel_kernel.invariants import LedgerInvariant
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.invoice import Invoice
from fuel_kernel.models.station import FuelStation
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.services.base import BaseService

logger = get_logger("services.balance_ledger")


class BalanceLedger(BaseService[FuelStation]):
    """
    Station counter maintenance.

    Contract:
        Every ``record_*`` method takes a station already loaded through
        ``lock_station`` in the current session, applies one adjustment and
        flushes.  The station's version stamp makes the flush a
        compare-and-swap.

    Non-goals:
        - Does NOT commit.  Does NOT decide whether a transition is legal;
          callers check the lifecycle tables first.
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def lock_station(self, station_id: UUID, allow_quarantined: bool = False) -> FuelStation:
        """
        Load a station with a row lock (``SELECT ... FOR UPDATE`` where the
        backend supports it) and fresh counters.

        Raises:
            StationNotFoundError: Unknown id.
            StationQuarantinedError: Station is quarantined and
                ``allow_quarantined`` is False.
        """
        station = self._get_for_update(FuelStation, station_id, StationNotFoundError)
        if not allow_quarantined:
            self.require_writable(station)
        return station

    @staticmethod
    def require_writable(station: FuelStation) -> None:
        if station.quarantine_reason is not None:
            raise StationQuarantinedError(str(station.id), station.quarantine_reason)

    # ------------------------------------------------------------------
    # Incremental adjustments
    # ------------------------------------------------------------------

    def record_validated(self, station: FuelStation, total_value: Decimal) -> None:
        self._apply(station, "validated", pending=total_value)

    def record_invoiced(self, station: FuelStation, gross: Decimal, net: Decimal) -> None:
        self._apply(station, "invoiced", pending=-gross, invoiced=net)

    def record_rejected(self, station: FuelStation, gross: Decimal, net: Decimal) -> None:
        self._apply(station, "rejected", pending=gross, invoiced=-net)

    def record_settled(self, station: FuelStation, net: Decimal) -> None:
        self._apply(station, "settled", invoiced=-net, paid=net)

    def _apply(
        self,
        station: FuelStation,
        transition: str,
        pending: Decimal = ZERO_MONEY,
        invoiced: Decimal = ZERO_MONEY,
        paid: Decimal = ZERO_MONEY,
    ) -> None:
        self.require_writable(station)
        new_pending = station.balance_pending + pending
        new_invoiced = station.balance_invoiced + invoiced
        new_paid = station.balance_paid + paid

        for name, value in (
            ("balance_pending", new_pending),
            ("balance_invoiced", new_invoiced),
            ("balance_paid", new_paid),
        ):
            # INVARIANT: counters never go below zero
            if value < 0:
                raise IntegrityViolationError(
                    LedgerInvariant.NON_NEGATIVE_BALANCE.value,
                    str(station.id),
                    f"{transition} would set {name} to {value}",
                )

        station.balance_pending = new_pending
        station.balance_invoiced = new_invoiced
        station.balance_paid = new_paid
        station.updated_at = self._clock.now()
        self.session.flush()

        logger.debug(
            "station_balances_adjusted",
            extra={
                "station_id": str(station.id),
                "transition": transition,
                "pending": new_pending,
                "invoiced": new_invoiced,
                "paid": new_paid,
            },
        )

    # ------------------------------------------------------------------
    # Recompute / verify / repair
    # ------------------------------------------------------------------

    def recompute(self, station_id: UUID) -> StationBalances:
        """Counters derived from the transaction rows alone.  Read-only."""
        self._get(FuelStation, station_id, StationNotFoundError)
        sums = {
            TransactionStatus.VALIDATED: self._sum(
                station_id, TransactionStatus.VALIDATED, FuelTransaction.total_value
            ),
            TransactionStatus.INVOICED: self._sum(
                station_id, TransactionStatus.INVOICED, FuelTransaction.net_value
            ),
            TransactionStatus.PAID: self._sum(
                station_id, TransactionStatus.PAID, FuelTransaction.net_value
            ),
        }
        return StationBalances(
            station_id=station_id,
            pending=sums[TransactionStatus.VALIDATED],
            invoiced=sums[TransactionStatus.INVOICED],
            paid=sums[TransactionStatus.PAID],
        )

    def _sum(self, station_id: UUID, status: TransactionStatus, column) -> Decimal:
        total = self.session.execute(
            select(func.sum(column)).where(
                FuelTransaction.station_id == station_id,
                FuelTransaction.status == status.value,
            )
        ).scalar_one()
        return total if total is not None else ZERO_MONEY

    def audit(self, station_id: UUID) -> ReconciliationReport:
        """Compare stored counters with a recomputation without raising."""
        station = self._get(FuelStation, station_id, StationNotFoundError)
        self.session.refresh(station)
        stored = StationBalances.from_model(station)
        recomputed = self.recompute(station.id)

        discrepancies: list[Discrepancy] = []
        checks = (
            (LedgerInvariant.PENDING_MATCHES_VALIDATED, stored.pending, recomputed.pending),
            (LedgerInvariant.INVOICED_MATCHES_INVOICED, stored.invoiced, recomputed.invoiced),
            (LedgerInvariant.PAID_MATCHES_PAID, stored.paid, recomputed.paid),
        )
        for invariant, have, want in checks:
            if have != want:
                discrepancies.append(
                    Discrepancy(invariant.value, f"stored {have}, recomputed {want}")
                )
        for name, value in zip(("pending", "invoiced", "paid"), stored.as_tuple()):
            if value < 0:
                discrepancies.append(
                    Discrepancy(
                        LedgerInvariant.NON_NEGATIVE_BALANCE.value,
                        f"balance_{name} is {value}",
                    )
                )
        discrepancies.extend(self._fee_split_discrepancies(station.id))
        discrepancies.extend(self._invoice_sum_discrepancies(station.id))

        return ReconciliationReport(
            station_id=station.id,
            stored=stored,
            recomputed=recomputed,
            discrepancies=tuple(discrepancies),
            quarantine_reason=station.quarantine_reason,
        )

    def _fee_split_discrepancies(self, station_id: UUID) -> list[Discrepancy]:
        # Scaled columns share MONEY_PLACES, so the SQL sum compares raw units
        rows = self.session.execute(
            select(FuelTransaction.voucher_code).where(
                FuelTransaction.station_id == station_id,
                FuelTransaction.status.in_(
                    (TransactionStatus.INVOICED.value, TransactionStatus.PAID.value)
                ),
                (FuelTransaction.fee_amount + FuelTransaction.net_value)
                != FuelTransaction.total_value,
            )
        ).scalars()
        return [
            Discrepancy(
                LedgerInvariant.FEE_PLUS_NET_EQUALS_TOTAL.value,
                f"transaction {code}: fee + net != total",
            )
            for code in rows
        ]

    def _invoice_sum_discrepancies(self, station_id: UUID) -> list[Discrepancy]:
        rows = self.session.execute(
            select(
                Invoice.document_number,
                Invoice.total_value,
                Invoice.fee_amount,
                Invoice.net_value,
                func.sum(FuelTransaction.total_value),
                func.sum(FuelTransaction.fee_amount),
                func.sum(FuelTransaction.net_value),
            )
            .join(
                FuelTransaction,
                and_(
                    FuelTransaction.invoice_id == Invoice.id,
                    FuelTransaction.station_id == Invoice.station_id,
                ),
            )
            .where(
                Invoice.station_id == station_id,
                Invoice.status != InvoiceStatus.REJECTED.value,
            )
            .group_by(
                Invoice.id,
                Invoice.document_number,
                Invoice.total_value,
                Invoice.fee_amount,
                Invoice.net_value,
            )
        ).all()
        found = []
        for number, total, fee, net, m_total, m_fee, m_net in rows:
            if (total, fee, net) != (m_total, m_fee, m_net):
                found.append(
                    Discrepancy(
                        LedgerInvariant.INVOICE_SUMS_MATCH_MEMBERS.value,
                        f"invoice {number}: header {total}/{fee}/{net}, "
                        f"members {m_total}/{m_fee}/{m_net}",
                    )
                )
        return found

    def verify(self, station_id: UUID) -> ReconciliationReport:
        """
        Audit the station and raise on the first discrepancy.

        Raises:
            IntegrityViolationError: Any discrepancy was found.
        """
        report = self.audit(station_id)
        if not report.is_consistent:
            first = report.discrepancies[0]
            raise IntegrityViolationError(first.invariant, str(station_id), first.detail)
        return report

    def quarantine(self, station_id: UUID, reason: str) -> None:
        """Halt further mutations on the station until it is repaired."""
        station = self.lock_station(station_id, allow_quarantined=True)
        station.quarantine_reason = reason
        station.updated_at = self._clock.now()
        self.session.flush()
        logger.critical(
            "station_quarantined",
            extra={"station_id": str(station.id), "reason": reason},
        )

    def repair(self, station_id: UUID) -> ReconciliationReport:
        """
        Overwrite the counters with the recomputed values and lift quarantine.

        Returns:
            The report as it stood before the repair.
        """
        station = self.lock_station(station_id, allow_quarantined=True)
        before = self.audit(station.id)
        recomputed = before.recomputed

        station.balance_pending = recomputed.pending
        station.balance_invoiced = recomputed.invoiced
        station.balance_paid = recomputed.paid
        station.quarantine_reason = None
        station.updated_at = self._clock.now()
        self.session.flush()

        logger.warning(
            "station_repaired",
            extra={
                "station_id": str(station.id),
                "discrepancies": [d.invariant for d in before.discrepancies],
                "previous_quarantine": before.quarantine_reason,
            },
        )
        return before
