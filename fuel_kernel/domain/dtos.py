"""
DTOs -- immutable views of ledger records.

Responsibility:
    The frozen dataclasses returned by every service operation and selector.
    Callers never receive ORM entities, so nothing they hold can be flushed
    back by accident.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked from services/ and selectors/ only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from fuel_kernel.domain.lifecycle import FuelType, InvoiceStatus, TransactionStatus

if TYPE_CHECKING:
    from fuel_kernel.models.invoice import Invoice
    from fuel_kernel.models.station import FuelStation
    from fuel_kernel.models.transaction import FuelTransaction


@dataclass(frozen=True)
class TransactionInfo:
    id: UUID
    voucher_code: str
    organization_id: UUID
    station_id: UUID
    vehicle_id: UUID
    requester_name: str
    fuel_type: FuelType
    status: TransactionStatus
    requested_liters: Decimal
    request_date: datetime
    validation_date: datetime | None = None
    filled_liters: Decimal | None = None
    price_per_liter: Decimal | None = None
    total_value: Decimal | None = None
    odometer: Decimal | None = None
    fee_percentage_applied: Decimal | None = None
    fee_amount: Decimal | None = None
    net_value: Decimal | None = None
    is_advanced: bool = False
    invoice_id: UUID | None = None
    payment_date: datetime | None = None
    cancelled_date: datetime | None = None
    cancel_reason: str | None = None

    @classmethod
    def from_model(cls, txn: FuelTransaction) -> TransactionInfo:
        return cls(
            id=txn.id,
            voucher_code=txn.voucher_code,
            organization_id=txn.organization_id,
            station_id=txn.station_id,
            vehicle_id=txn.vehicle_id,
            requester_name=txn.requester_name,
            fuel_type=FuelType(txn.fuel_type),
            status=TransactionStatus(txn.status),
            requested_liters=txn.requested_liters,
            request_date=txn.request_date,
            validation_date=txn.validation_date,
            filled_liters=txn.filled_liters,
            price_per_liter=txn.price_per_liter,
            total_value=txn.total_value,
            odometer=txn.odometer,
            fee_percentage_applied=txn.fee_percentage_applied,
            fee_amount=txn.fee_amount,
            net_value=txn.net_value,
            is_advanced=bool(txn.is_advanced),
            invoice_id=txn.invoice_id,
            payment_date=txn.payment_date,
            cancelled_date=txn.cancelled_date,
            cancel_reason=txn.cancel_reason,
        )


@dataclass(frozen=True)
class InvoiceInfo:
    id: UUID
    station_id: UUID
    organization_id: UUID
    document_number: str
    attached_file_ref: str | None
    access_key: str | None
    total_value: Decimal
    fee_amount: Decimal
    net_value: Decimal
    fee_percent_applied: Decimal
    is_advance: bool
    status: InvoiceStatus
    issue_date: datetime
    transaction_ids: tuple[UUID, ...]
    attested_at: datetime | None = None
    rejected_at: datetime | None = None
    settled_at: datetime | None = None
    rejection_reason: str | None = None

    @classmethod
    def from_model(cls, invoice: Invoice) -> InvoiceInfo:
        return cls(
            id=invoice.id,
            station_id=invoice.station_id,
            organization_id=invoice.organization_id,
            document_number=invoice.document_number,
            attached_file_ref=invoice.attached_file_ref,
            access_key=invoice.access_key,
            total_value=invoice.total_value,
            fee_amount=invoice.fee_amount,
            net_value=invoice.net_value,
            fee_percent_applied=invoice.fee_percent_applied,
            is_advance=bool(invoice.is_advance),
            status=InvoiceStatus(invoice.status),
            issue_date=invoice.issue_date,
            transaction_ids=invoice.transaction_ids,
            attested_at=invoice.attested_at,
            rejected_at=invoice.rejected_at,
            settled_at=invoice.settled_at,
            rejection_reason=invoice.rejection_reason,
        )


@dataclass(frozen=True)
class StationBalances:
    """The three station counters, stored or recomputed."""

    station_id: UUID
    pending: Decimal
    invoiced: Decimal
    paid: Decimal

    @classmethod
    def from_model(cls, station: FuelStation) -> StationBalances:
        return cls(
            station_id=station.id,
            pending=station.balance_pending,
            invoiced=station.balance_invoiced,
            paid=station.balance_paid,
        )

    def as_tuple(self) -> tuple[Decimal, Decimal, Decimal]:
        return (self.pending, self.invoiced, self.paid)


@dataclass(frozen=True)
class Discrepancy:
    """One broken invariant found by verification."""

    invariant: str
    detail: str


@dataclass(frozen=True)
class ReconciliationReport:
    """Result of comparing a station's counters with a full recomputation."""

    station_id: UUID
    stored: StationBalances
    recomputed: StationBalances
    discrepancies: tuple[Discrepancy, ...] = field(default_factory=tuple)
    quarantine_reason: str | None = None

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies
