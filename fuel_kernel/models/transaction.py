"""
Module: fuel_kernel.models.transaction
Responsibility: ORM persistence for fuel transactions, from voucher request
    through validation, invoicing and payment.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycle.py only.

Invariants enforced:
    - voucher_code is unique (uq_transaction_voucher_code); the issuer checks
      first and this constraint is the backstop.
    - Optimistic compare-and-swap through ``version`` (version_id_col).
    - Fill fields are frozen once VALIDATED; the fee snapshot is frozen once
      INVOICED and may only be cleared by an invoice rejection.  Both are
      enforced by ORM listeners in fuel_kernel.db.immutability.

Field groups by lifecycle stage:
    request     voucher_code, organization/station/vehicle, requester_name,
                fuel_type, requested_liters, request_date
    validation  validation_date, filled_liters, price_per_liter, total_value,
                odometer
    invoicing   fee_percentage_applied, fee_amount, net_value, is_advanced,
                invoice_id
    payment     payment_date
    cancel      cancelled_date, cancel_reason
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import ScaledDecimal, TrackedBase, UUIDString
from fuel_kernel.db.types import (
    LITERS_PLACES,
    MONEY_PLACES,
    ODOMETER_PLACES,
    PERCENT_PLACES,
    PRICE_PLACES,
)
from fuel_kernel.domain.lifecycle import FuelType, TransactionStatus

# Populated at validation; frozen from VALIDATED on
FILL_FIELDS = frozenset({
    "validation_date",
    "filled_liters",
    "price_per_liter",
    "total_value",
    "odometer",
})

# Populated at invoicing; frozen from INVOICED on, cleared only on rejection
FEE_SNAPSHOT_FIELDS = frozenset({
    "fee_percentage_applied",
    "fee_amount",
    "net_value",
    "is_advanced",
    "invoice_id",
})

# Never change after the request is recorded
REQUEST_FIELDS = frozenset({
    "voucher_code",
    "organization_id",
    "station_id",
    "vehicle_id",
    "requester_name",
    "fuel_type",
    "requested_liters",
    "request_date",
})


class FuelTransaction(TrackedBase):
    """
    A single fuel event.

    Guarantees (once the matching stage is reached):
        - total_value == round_half_up(filled_liters * price_per_liter, 2).
        - fee_amount + net_value == total_value.
    """

    __tablename__ = "fuel_transactions"

    __table_args__ = (
        UniqueConstraint("voucher_code", name="uq_transaction_voucher_code"),
        Index("idx_transaction_pair_status", "station_id", "organization_id", "status"),
        Index("idx_transaction_invoice", "invoice_id"),
    )

    voucher_code: Mapped[str] = mapped_column(String(40), nullable=False)

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )
    station_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fuel_stations.id"),
        nullable=False,
    )
    vehicle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vehicles.id"),
        nullable=False,
    )

    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)
    fuel_type: Mapped[FuelType] = mapped_column(String(20), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.REQUESTED,
    )

    requested_liters: Mapped[Decimal] = mapped_column(
        ScaledDecimal(LITERS_PLACES),
        nullable=False,
    )
    request_date: Mapped[datetime] = mapped_column(nullable=False)

    # Validation
    validation_date: Mapped[datetime | None] = mapped_column(nullable=True)
    filled_liters: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(LITERS_PLACES),
        nullable=True,
    )
    price_per_liter: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(PRICE_PLACES),
        nullable=True,
    )
    total_value: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=True,
    )
    odometer: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(ODOMETER_PLACES),
        nullable=True,
    )

    # Invoicing
    fee_percentage_applied: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(PERCENT_PLACES),
        nullable=True,
    )
    fee_amount: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=True,
    )
    net_value: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=True,
    )
    is_advanced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    # Payment
    payment_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Cancellation
    cancelled_date: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<FuelTransaction {self.voucher_code} status={self.status}>"
