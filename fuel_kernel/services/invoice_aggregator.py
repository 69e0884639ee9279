"""
InvoiceAggregator -- consolidates a station's validated fills into one invoice.

Responsibility:
    Selects every VALIDATED transaction for a (station, organization) pair,
    quotes the platform fee once on the aggregate, freezes each member's
    share onto it, creates the invoice and moves the gross from pending to
    net-invoiced, all in one unit of work.

Architecture position:
    Kernel > Services -- third step of the ledger flow.  The only caller of
    FeeCalculator.

Invariants enforced:
    - All-or-none selection: the caller never picks members.
    - Member order: validation date, then voucher code.
    - Member fees/nets sum exactly to the invoice fee/net (fees rounded on
      the running gross); fee + net == total on every member.
    - The fee percent is snapshotted onto every member; later fee schedule
      edits never touch it.

Failure modes:
    - ValidationError: empty document number.
    - StationNotFoundError, OrganizationNotFoundError.
    - NothingToInvoiceError: no VALIDATED transaction for the pair.
    - StationQuarantinedError.
    - IntegrityViolationError: a member fee fell outside its total (fee
      percent above 100).
"""

from uuid import UUID

from sqlalchemy import select

from fuel_kernel.db.types import ZERO_MONEY
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dtos import InvoiceInfo
from fuel_kernel.domain.fees import allocate_fee, apply_fee
from fuel_kernel.domain.lifecycle import (
    InvoiceStatus,
    TransactionStatus,
    require_transaction_action,
)
from fuel_kernel.exceptions import NothingToInvoiceError, OrganizationNotFoundError
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.invoice import Invoice, InvoiceMember
from fuel_kernel.models.organization import Organization
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.base import BaseService, require_text

logger = get_logger("services.invoice_aggregator")


class InvoiceAggregator(BaseService[Invoice]):
    def __init__(self, session, clock: Clock, ledger: BalanceLedger):
        super().__init__(session)
        self._clock = clock
        self._ledger = ledger

    def generate_invoice(
        self,
        station_id: UUID,
        organization_id: UUID,
        is_advance: bool,
        document_number: str,
        attached_file_ref: str | None,
        access_key: str | None = None,
    ) -> InvoiceInfo:
        """
        Invoice everything the station validated for the organization.

        Postconditions:
            Invoice exists in PENDING_MANAGER; every member is INVOICED with
            its fee snapshot and invoice id; ``pending -= gross`` and
            ``invoiced += net`` on the station.
        """
        number = require_text(document_number, "document_number")
        station = self._ledger.lock_station(station_id)
        org = self._get(Organization, organization_id, OrganizationNotFoundError)

        members = list(
            self.session.execute(
                select(FuelTransaction)
                .where(
                    FuelTransaction.station_id == station.id,
                    FuelTransaction.organization_id == org.id,
                    FuelTransaction.status == TransactionStatus.VALIDATED.value,
                )
                .order_by(FuelTransaction.validation_date, FuelTransaction.voucher_code)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
        if not members:
            raise NothingToInvoiceError(str(station.id), str(org.id))

        gross = sum((t.total_value for t in members), ZERO_MONEY)
        quote = apply_fee(gross, station.fee_schedule, bool(is_advance))
        shares = allocate_fee([t.total_value for t in members], quote)

        now = self._clock.now()
        invoice = Invoice(
            station_id=station.id,
            organization_id=org.id,
            document_number=number,
            attached_file_ref=attached_file_ref,
            access_key=access_key,
            total_value=gross,
            fee_amount=quote.fee_amount,
            net_value=quote.net_value,
            fee_percent_applied=quote.fee_percent,
            is_advance=bool(is_advance),
            status=InvoiceStatus.PENDING_MANAGER.value,
            issue_date=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(invoice)
        self.session.flush()

        for position, (txn, share) in enumerate(zip(members, shares)):
            target = require_transaction_action(txn.id, txn.status, "invoice")
            txn.status = target.value
            txn.fee_percentage_applied = quote.fee_percent
            txn.fee_amount = share.fee_amount
            txn.net_value = share.net_value
            txn.is_advanced = bool(is_advance)
            txn.invoice_id = invoice.id
            txn.updated_at = now
            self.session.add(
                InvoiceMember(invoice_id=invoice.id, transaction_id=txn.id, position=position)
            )
        self.session.flush()
        self.session.refresh(invoice, attribute_names=["members"])

        self._ledger.record_invoiced(station, gross, quote.net_value)

        logger.info(
            "invoice_generated",
            extra={
                "invoice_id": str(invoice.id),
                "station_id": str(station.id),
                "organization_id": str(org.id),
                "document_number": number,
                "member_count": len(members),
                "total_value": gross,
                "fee_percent": quote.fee_percent,
                "fee_amount": quote.fee_amount,
                "net_value": quote.net_value,
                "is_advance": bool(is_advance),
            },
        )
        return InvoiceInfo.from_model(invoice)
