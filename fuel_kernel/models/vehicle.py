"""
Module: fuel_kernel.models.vehicle
Responsibility: ORM persistence for fleet vehicles.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycle.py only.

Vehicles are directory-owned and read-only to the ledger: a fuel request
checks that the vehicle belongs to the requesting organization, and a fill
compares its odometer reading against ``current_odometer``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import ScaledDecimal, TrackedBase, UUIDString
from fuel_kernel.db.types import CONSUMPTION_PLACES, ODOMETER_PLACES
from fuel_kernel.domain.lifecycle import VehicleKind


class Vehicle(TrackedBase):
    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("plate", name="uq_vehicle_plate"),
        Index("idx_vehicle_organization", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    plate: Mapped[str] = mapped_column(String(20), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    kind: Mapped[VehicleKind] = mapped_column(
        String(20),
        nullable=False,
        default=VehicleKind.LIGHT,
    )

    current_odometer: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(ODOMETER_PLACES),
        nullable=True,
    )

    # Kilometres per liter (hours per liter for machines)
    avg_consumption: Mapped[Decimal | None] = mapped_column(
        ScaledDecimal(CONSUMPTION_PLACES),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Vehicle {self.plate} ({self.model})>"
