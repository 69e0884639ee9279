"""
Module: fuel_kernel.models.invoice
Responsibility: ORM persistence for consolidated station invoices and their
    ordered member list.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycle.py only.

Invariants enforced:
    - total_value, fee_amount and net_value equal the sums over the members
      (checked by the aggregator and by BalanceLedger verification).
    - Monetary fields, parties and the document reference never change after
      creation; InvoiceMember rows are immutable and never deleted, so a
      REJECTED invoice still lists the transactions it once held.  Enforced
      by ORM listeners in fuel_kernel.db.immutability.
    - PAID and REJECTED are terminal: nothing changes afterwards.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fuel_kernel.db.base import Base, ScaledDecimal, TrackedBase, UUIDString
from fuel_kernel.db.types import MONEY_PLACES, PERCENT_PLACES
from fuel_kernel.domain.lifecycle import InvoiceStatus

# Never change after the invoice is created
INVOICE_FROZEN_FIELDS = frozenset({
    "station_id",
    "organization_id",
    "document_number",
    "attached_file_ref",
    "access_key",
    "total_value",
    "fee_amount",
    "net_value",
    "fee_percent_applied",
    "is_advance",
    "issue_date",
})


class Invoice(TrackedBase):
    """
    A station's invoice for everything it validated for one organization.

    Lifecycle:
        PENDING_MANAGER --attest--> PENDING_ADMIN --settle--> PAID
        PENDING_MANAGER --reject--> REJECTED
    """

    __tablename__ = "invoices"

    __table_args__ = (
        Index("idx_invoice_pair_status", "station_id", "organization_id", "status"),
    )

    station_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fuel_stations.id"),
        nullable=False,
    )
    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # Fiscal document (NF-e number, file reference and access key); opaque here
    document_number: Mapped[str] = mapped_column(String(100), nullable=False)
    attached_file_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    access_key: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_value: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
    )
    fee_amount: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
    )
    net_value: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
    )
    fee_percent_applied: Mapped[Decimal] = mapped_column(
        ScaledDecimal(PERCENT_PLACES),
        nullable=False,
    )
    is_advance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.PENDING_MANAGER,
    )

    issue_date: Mapped[datetime] = mapped_column(nullable=False)
    attested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    members: Mapped[list["InvoiceMember"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceMember.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def transaction_ids(self) -> tuple[UUID, ...]:
        return tuple(m.transaction_id for m in self.members)

    def __repr__(self) -> str:
        return f"<Invoice {self.document_number} status={self.status}>"


class InvoiceMember(Base):
    """Position of one transaction inside one invoice.  Immutable."""

    __tablename__ = "invoice_members"

    __table_args__ = (
        UniqueConstraint("invoice_id", "position", name="uq_invoice_member_position"),
        UniqueConstraint("invoice_id", "transaction_id", name="uq_invoice_member_transaction"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
    )
    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fuel_transactions.id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="members")

    def __repr__(self) -> str:
        return f"<InvoiceMember {self.invoice_id}#{self.position}>"
