"""
Module: fuel_kernel.selectors.invoice_selector
Responsibility: Read-only access to invoices and their approval queues.

Invoice membership is read from the membership rows, so a rejected invoice
still lists the transactions it once held even though those transactions no
longer point back to it.
"""

from uuid import UUID

from sqlalchemy import select

from fuel_kernel.domain.dtos import InvoiceInfo, TransactionInfo
from fuel_kernel.domain.lifecycle import InvoiceStatus
from fuel_kernel.models.invoice import Invoice, InvoiceMember
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector[Invoice]):
    def get(self, invoice_id: UUID) -> InvoiceInfo | None:
        invoice = self.session.get(Invoice, invoice_id)
        return InvoiceInfo.from_model(invoice) if invoice is not None else None

    def list_for_station(
        self,
        station_id: UUID,
        status: InvoiceStatus | None = None,
    ) -> list[InvoiceInfo]:
        return self._list(Invoice.station_id == station_id, status)

    def list_for_organization(
        self,
        organization_id: UUID,
        status: InvoiceStatus | None = None,
    ) -> list[InvoiceInfo]:
        return self._list(Invoice.organization_id == organization_id, status)

    def awaiting_manager(self, organization_id: UUID) -> list[InvoiceInfo]:
        """Invoices the organization's fleet manager has to attest or reject."""
        return self.list_for_organization(organization_id, InvoiceStatus.PENDING_MANAGER)

    def awaiting_settlement(self) -> list[InvoiceInfo]:
        """Attested invoices the platform has yet to pay."""
        return self._list(None, InvoiceStatus.PENDING_ADMIN)

    def members(self, invoice_id: UUID) -> list[TransactionInfo]:
        """Transactions listed on the invoice, in invoice order."""
        rows = self.session.execute(
            select(FuelTransaction)
            .join(InvoiceMember, InvoiceMember.transaction_id == FuelTransaction.id)
            .where(InvoiceMember.invoice_id == invoice_id)
            .order_by(InvoiceMember.position)
        ).scalars()
        return [TransactionInfo.from_model(t) for t in rows]

    def _list(self, criterion, status: InvoiceStatus | None) -> list[InvoiceInfo]:
        query = select(Invoice)
        if criterion is not None:
            query = query.where(criterion)
        if status is not None:
            query = query.where(Invoice.status == InvoiceStatus(status).value)
        query = query.order_by(Invoice.issue_date.desc(), Invoice.document_number)
        return [InvoiceInfo.from_model(i) for i in self.session.execute(query).scalars()]
