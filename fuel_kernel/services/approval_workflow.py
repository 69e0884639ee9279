"""
ApprovalWorkflow -- attestation, rejection and settlement of invoices.

Responsibility:
    Drives an invoice through PENDING_MANAGER -> PENDING_ADMIN -> PAID, or
    PENDING_MANAGER -> REJECTED, moving its member transactions and the
    station counters along with it.

Architecture position:
    Kernel > Services -- last step of the ledger flow.

Invariants enforced:
    - attest: no balance change.
    - reject: members return to VALIDATED with the fee snapshot and invoice
      id cleared; ``invoiced -= net``, ``pending += gross``.  Membership rows
      remain, so the rejected invoice still lists what it held.
    - settle: members become PAID; ``invoiced -= net``, ``paid += net``.
    - A wrong source state raises InvalidStateError before anything is
      written (double attestation, double payment, rejecting a paid invoice).

Failure modes:
    - InvoiceNotFoundError, InvalidStateError, ValidationError (empty reason),
      StationQuarantinedError.
"""

from uuid import UUID

from sqlalchemy import select

from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dtos import InvoiceInfo
from fuel_kernel.domain.lifecycle import require_invoice_action, require_transaction_action
from fuel_kernel.exceptions import IntegrityViolationError, InvoiceNotFoundError
from fuel_kernel.invariants import LedgerInvariant
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.invoice import Invoice
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.base import BaseService, require_text

logger = get_logger("services.approval_workflow")


class ApprovalWorkflow(BaseService[Invoice]):
    def __init__(self, session, clock: Clock, ledger: BalanceLedger):
        super().__init__(session)
        self._clock = clock
        self._ledger = ledger

    def attest(self, invoice_id: UUID) -> InvoiceInfo:
        """Fleet manager confirms the invoice.  PENDING_MANAGER -> PENDING_ADMIN."""
        invoice = self._get_for_update(Invoice, invoice_id, InvoiceNotFoundError)
        target = require_invoice_action(invoice.id, invoice.status, "attest")
        station = self._ledger.lock_station(invoice.station_id)

        now = self._clock.now()
        invoice.status = target.value
        invoice.attested_at = now
        invoice.updated_at = now
        self.session.flush()

        logger.info(
            "invoice_attested",
            extra={"invoice_id": str(invoice.id), "station_id": str(station.id)},
        )
        return InvoiceInfo.from_model(invoice)

    def reject(self, invoice_id: UUID, reason: str) -> InvoiceInfo:
        """Fleet manager refuses the invoice.  PENDING_MANAGER -> REJECTED."""
        why = require_text(reason, "reason")
        invoice = self._get_for_update(Invoice, invoice_id, InvoiceNotFoundError)
        target = require_invoice_action(invoice.id, invoice.status, "reject")
        station = self._ledger.lock_station(invoice.station_id)

        now = self._clock.now()
        for txn in self._members(invoice):
            member_target = require_transaction_action(txn.id, txn.status, "revert")
            txn.status = member_target.value
            txn.fee_percentage_applied = None
            txn.fee_amount = None
            txn.net_value = None
            txn.is_advanced = False
            txn.invoice_id = None
            txn.updated_at = now

        invoice.status = target.value
        invoice.rejected_at = now
        invoice.rejection_reason = why
        invoice.updated_at = now
        self.session.flush()

        self._ledger.record_rejected(station, invoice.total_value, invoice.net_value)

        logger.info(
            "invoice_rejected",
            extra={
                "invoice_id": str(invoice.id),
                "station_id": str(station.id),
                "reason": why,
                "member_count": len(invoice.members),
            },
        )
        return InvoiceInfo.from_model(invoice)

    def settle(self, invoice_id: UUID) -> InvoiceInfo:
        """Platform pays the station.  PENDING_ADMIN -> PAID."""
        invoice = self._get_for_update(Invoice, invoice_id, InvoiceNotFoundError)
        target = require_invoice_action(invoice.id, invoice.status, "settle")
        station = self._ledger.lock_station(invoice.station_id)

        now = self._clock.now()
        for txn in self._members(invoice):
            member_target = require_transaction_action(txn.id, txn.status, "pay")
            txn.status = member_target.value
            txn.payment_date = now
            txn.updated_at = now

        invoice.status = target.value
        invoice.settled_at = now
        invoice.updated_at = now
        self.session.flush()

        self._ledger.record_settled(station, invoice.net_value)

        logger.info(
            "invoice_settled",
            extra={
                "invoice_id": str(invoice.id),
                "station_id": str(station.id),
                "net_value": invoice.net_value,
            },
        )
        return InvoiceInfo.from_model(invoice)

    def _members(self, invoice: Invoice) -> list[FuelTransaction]:
        """Lock the member transactions, in invoice order."""
        ids = [m.transaction_id for m in invoice.members]
        rows = {
            t.id: t
            for t in self.session.execute(
                select(FuelTransaction)
                .where(FuelTransaction.id.in_(ids))
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        }
        members = []
        for txn_id in ids:
            txn = rows.get(txn_id)
            if txn is None or txn.invoice_id != invoice.id:
                raise IntegrityViolationError(
                    LedgerInvariant.INVOICE_SUMS_MATCH_MEMBERS.value,
                    str(invoice.station_id),
                    f"invoice {invoice.id} lists transaction {txn_id} it does not hold",
                )
            members.append(txn)
        return members
