"""
Module: fuel_kernel.models.station
Responsibility: ORM persistence for accredited fuel stations, their fee
    schedule, posted fuel prices and the three running balance counters.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycle.py only.

Invariants enforced:
    - Counters are written by BalanceLedger only (not enforceable here;
      verified after every mutation against a full recomputation).
    - Optimistic compare-and-swap: ``version`` is the mapper's version_id_col,
      so every UPDATE carries ``WHERE version = :expected`` and a lost race
      raises StaleDataError (mapped to ConflictError by unit_of_work).
    - One product row per (station, fuel type).

Failure modes:
    - IntegrityError on duplicate tax_id or duplicate fuel type per station.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fuel_kernel.db.base import ScaledDecimal, TrackedBase, UUIDString
from fuel_kernel.db.types import MONEY_PLACES, PERCENT_PLACES, PRICE_PLACES, ZERO_MONEY
from fuel_kernel.domain.fees import FeeSchedule
from fuel_kernel.domain.lifecycle import FuelType, PartyStatus


class FuelStation(TrackedBase):
    """
    A fuel station accredited on the platform.

    Contract:
        ``balance_pending`` is what the station is owed for validated fills not
        yet invoiced (gross); ``balance_invoiced`` the net awaiting payment;
        ``balance_paid`` the net already settled.  None of them is ever
        negative.

    Guarantees:
        - ``quarantine_reason`` is non-null while mutations on this station
          are halted pending reconciliation.
    """

    __tablename__ = "fuel_stations"

    __table_args__ = (
        UniqueConstraint("tax_id", name="uq_station_tax_id"),
        Index("idx_station_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tax_id: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Fee schedule (percent, e.g. 5.0000 means 5 %)
    base_fee_percent: Mapped[Decimal] = mapped_column(
        ScaledDecimal(PERCENT_PLACES),
        nullable=False,
    )
    advance_fee_percent: Mapped[Decimal] = mapped_column(
        ScaledDecimal(PERCENT_PLACES),
        nullable=False,
    )

    # Running counters, see BalanceLedger
    balance_pending: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
        default=ZERO_MONEY,
    )
    balance_invoiced: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
        default=ZERO_MONEY,
    )
    balance_paid: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
        default=ZERO_MONEY,
    )

    status: Mapped[PartyStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PartyStatus.ACTIVE,
    )

    quarantine_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    products: Mapped[list["StationProduct"]] = relationship(
        back_populates="station",
        cascade="all, delete-orphan",
        order_by="StationProduct.fuel_type",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def fee_schedule(self) -> FeeSchedule:
        return FeeSchedule(
            base_fee_percent=self.base_fee_percent,
            advance_fee_percent=self.advance_fee_percent,
        )

    @property
    def is_active(self) -> bool:
        return self.status == PartyStatus.ACTIVE

    @property
    def is_quarantined(self) -> bool:
        return self.quarantine_reason is not None

    def __repr__(self) -> str:
        return f"<FuelStation {self.tax_id}: {self.name} v{self.version}>"


class StationProduct(TrackedBase):
    """Posted price of one fuel type at one station."""

    __tablename__ = "station_products"

    __table_args__ = (
        UniqueConstraint("station_id", "fuel_type", name="uq_station_product"),
    )

    station_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fuel_stations.id"),
        nullable=False,
    )

    fuel_type: Mapped[FuelType] = mapped_column(String(20), nullable=False)

    price_per_liter: Mapped[Decimal] = mapped_column(
        ScaledDecimal(PRICE_PLACES),
        nullable=False,
    )

    last_updated: Mapped[datetime] = mapped_column(nullable=False)

    station: Mapped["FuelStation"] = relationship(back_populates="products")

    def __repr__(self) -> str:
        return f"<StationProduct {self.fuel_type} @ {self.price_per_liter}>"
