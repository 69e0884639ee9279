"""
DirectoryService -- maintenance of organizations, stations, vehicles, users.

Responsibility:
    Creates and edits the directory records the ledger reads: organizations,
    fuel stations (fee schedule, posted prices, status), vehicles and users.
    The ledger core never writes these records; this service is the
    collaborator that does.

Architecture position:
    Kernel > Services.  Invoked through ``FuelLedger.directory()``.

Invariants enforced:
    - Fee schedules respect the configured FeeBounds.
    - A fee schedule edit never touches already-invoiced transactions (their
      percent is a frozen snapshot).
    - Counters of a new station start at zero; nothing here assigns them.
    - The master administrator and the last super administrator cannot be
      removed.

Failure modes:
    - ValidationError / FeeScheduleError / ProtectedUserError.
    - *NotFoundError for unknown references.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, func, select

from fuel_kernel.db.types import (
    CONSUMPTION_PLACES,
    ODOMETER_PLACES,
    PERCENT_PLACES,
    PRICE_PLACES,
    ZERO_MONEY,
)
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.fees import FeeBounds, FeeSchedule
from fuel_kernel.domain.lifecycle import FuelType, PartyStatus, UserRole, VehicleKind
from fuel_kernel.exceptions import (
    OrganizationNotFoundError,
    ProtectedUserError,
    StationNotFoundError,
    UserNotFoundError,
    ValidationError,
    VehicleNotFoundError,
)
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.organization import Organization
from fuel_kernel.models.station import FuelStation, StationProduct
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.user import User
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.services.base import (
    BaseService,
    require_enum,
    require_non_negative,
    require_positive,
    require_text,
)

logger = get_logger("services.directory")


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class DirectoryService(BaseService):
    def __init__(
        self,
        session,
        clock: Clock,
        fee_bounds: FeeBounds | None = None,
        master_admin_username: str = "admin",
    ):
        super().__init__(session)
        self._clock = clock
        self._fee_bounds = fee_bounds or FeeBounds()
        self._master_admin_username = master_admin_username

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def create_organization(
        self,
        name: str,
        tax_id: str,
        address: str | None = None,
        contact_name: str | None = None,
        contact_phone: str | None = None,
    ) -> Organization:
        tax = require_text(tax_id, "tax_id")
        self._require_unused(Organization.tax_id, tax, "tax_id")
        now = self._clock.now()
        org = Organization(
            name=require_text(name, "name"),
            tax_id=tax,
            address=_optional_text(address),
            contact_name=_optional_text(contact_name),
            contact_phone=_optional_text(contact_phone),
            balance_due=ZERO_MONEY,
            status=PartyStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(org)
        self.session.flush()
        logger.info(
            "organization_created",
            extra={"organization_id": str(org.id), "tax_id": tax},
        )
        return org

    def set_organization_status(
        self, organization_id: UUID, status: PartyStatus | str
    ) -> Organization:
        new_status = require_enum(PartyStatus, status, "status")
        org = self._get(Organization, organization_id, OrganizationNotFoundError)
        org.status = new_status.value
        org.updated_at = self._clock.now()
        self.session.flush()
        logger.info(
            "organization_status_changed",
            extra={"organization_id": str(org.id), "status": new_status.value},
        )
        return org

    # ------------------------------------------------------------------
    # Stations
    # ------------------------------------------------------------------

    def create_station(
        self,
        name: str,
        tax_id: str,
        base_fee_percent: Decimal | str,
        advance_fee_percent: Decimal | str,
        address: str | None = None,
        contact_name: str | None = None,
    ) -> FuelStation:
        tax = require_text(tax_id, "tax_id")
        schedule = self._schedule(base_fee_percent, advance_fee_percent)
        self._require_unused(FuelStation.tax_id, tax, "tax_id")
        now = self._clock.now()
        station = FuelStation(
            name=require_text(name, "name"),
            tax_id=tax,
            address=_optional_text(address),
            contact_name=_optional_text(contact_name),
            base_fee_percent=schedule.base_fee_percent,
            advance_fee_percent=schedule.advance_fee_percent,
            balance_pending=ZERO_MONEY,
            balance_invoiced=ZERO_MONEY,
            balance_paid=ZERO_MONEY,
            status=PartyStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(station)
        self.session.flush()
        logger.info(
            "station_created",
            extra={
                "station_id": str(station.id),
                "tax_id": tax,
                "base_fee_percent": schedule.base_fee_percent,
                "advance_fee_percent": schedule.advance_fee_percent,
            },
        )
        return station

    def set_fee_schedule(
        self,
        station_id: UUID,
        base_fee_percent: Decimal | str,
        advance_fee_percent: Decimal | str,
    ) -> FuelStation:
        """Change the percentages used by future invoices only."""
        schedule = self._schedule(base_fee_percent, advance_fee_percent)
        station = self._get_for_update(FuelStation, station_id, StationNotFoundError)
        previous = station.fee_schedule
        station.base_fee_percent = schedule.base_fee_percent
        station.advance_fee_percent = schedule.advance_fee_percent
        station.updated_at = self._clock.now()
        self.session.flush()
        logger.info(
            "fee_schedule_changed",
            extra={
                "station_id": str(station.id),
                "previous_base": previous.base_fee_percent,
                "previous_advance": previous.advance_fee_percent,
                "base_fee_percent": schedule.base_fee_percent,
                "advance_fee_percent": schedule.advance_fee_percent,
            },
        )
        return station

    def set_station_status(self, station_id: UUID, status: PartyStatus | str) -> FuelStation:
        new_status = require_enum(PartyStatus, status, "status")
        station = self._get_for_update(FuelStation, station_id, StationNotFoundError)
        station.status = new_status.value
        station.updated_at = self._clock.now()
        self.session.flush()
        logger.info(
            "station_status_changed",
            extra={"station_id": str(station.id), "status": new_status.value},
        )
        return station

    def set_fuel_price(
        self,
        station_id: UUID,
        fuel_type: FuelType | str,
        price_per_liter: Decimal | str,
    ) -> StationProduct:
        """Post (or re-post) the station's price for one fuel type."""
        fuel = require_enum(FuelType, fuel_type, "fuel_type")
        price = require_positive(price_per_liter, PRICE_PLACES, "price_per_liter")
        station = self._get(FuelStation, station_id, StationNotFoundError)
        now = self._clock.now()

        product = next((p for p in station.products if p.fuel_type == fuel.value), None)
        if product is None:
            product = StationProduct(
                fuel_type=fuel.value,
                price_per_liter=price,
                last_updated=now,
                created_at=now,
                updated_at=now,
            )
            station.products.append(product)
        else:
            product.price_per_liter = price
            product.last_updated = now
            product.updated_at = now
        self.session.flush()
        logger.info(
            "fuel_price_posted",
            extra={
                "station_id": str(station.id),
                "fuel_type": fuel.value,
                "price_per_liter": price,
            },
        )
        return product

    def _schedule(self, base, advance) -> FeeSchedule:
        schedule = FeeSchedule(
            base_fee_percent=require_non_negative(base, PERCENT_PLACES, "base_fee_percent"),
            advance_fee_percent=require_non_negative(
                advance, PERCENT_PLACES, "advance_fee_percent"
            ),
        )
        self._fee_bounds.check(schedule)
        return schedule

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    def register_vehicle(
        self,
        organization_id: UUID,
        plate: str,
        model: str,
        department: str | None = None,
        kind: VehicleKind | str = VehicleKind.LIGHT,
        current_odometer: Decimal | str | None = None,
        avg_consumption: Decimal | str | None = None,
    ) -> Vehicle:
        plate_norm = require_text(plate, "plate").upper()
        vehicle_kind = require_enum(VehicleKind, kind, "kind")
        odometer = (
            require_non_negative(current_odometer, ODOMETER_PLACES, "current_odometer")
            if current_odometer is not None
            else None
        )
        consumption = (
            require_positive(avg_consumption, CONSUMPTION_PLACES, "avg_consumption")
            if avg_consumption is not None
            else None
        )
        org = self._get(Organization, organization_id, OrganizationNotFoundError)
        self._require_unused(Vehicle.plate, plate_norm, "plate")

        now = self._clock.now()
        vehicle = Vehicle(
            organization_id=org.id,
            plate=plate_norm,
            model=require_text(model, "model"),
            department=_optional_text(department),
            kind=vehicle_kind.value,
            current_odometer=odometer,
            avg_consumption=consumption,
            created_at=now,
            updated_at=now,
        )
        self.session.add(vehicle)
        self.session.flush()
        logger.info(
            "vehicle_registered",
            extra={
                "vehicle_id": str(vehicle.id),
                "organization_id": str(org.id),
                "plate": plate_norm,
            },
        )
        return vehicle

    def delete_vehicle(self, vehicle_id: UUID) -> None:
        """Remove a vehicle that never took part in a transaction."""
        vehicle = self._get(Vehicle, vehicle_id, VehicleNotFoundError)
        used = self.session.execute(
            select(exists().where(FuelTransaction.vehicle_id == vehicle.id))
        ).scalar()
        if used:
            raise ValidationError(
                "vehicle_id", f"vehicle {vehicle.id} has transactions and cannot be removed"
            )
        self.session.delete(vehicle)
        self.session.flush()
        logger.info("vehicle_deleted", extra={"vehicle_id": str(vehicle_id)})

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        display_name: str,
        role: UserRole | str,
        organization_id: UUID | None = None,
        station_id: UUID | None = None,
    ) -> User:
        name = require_text(username, "username")
        user_role = require_enum(UserRole, role, "role")
        self._require_unused(User.username, name, "username")
        org_id = (
            self._get(Organization, organization_id, OrganizationNotFoundError).id
            if organization_id is not None
            else None
        )
        st_id = (
            self._get(FuelStation, station_id, StationNotFoundError).id
            if station_id is not None
            else None
        )
        now = self._clock.now()
        user = User(
            username=name,
            display_name=require_text(display_name, "display_name"),
            role=user_role.value,
            organization_id=org_id,
            station_id=st_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(user)
        self.session.flush()
        logger.info(
            "user_created",
            extra={"user_id": str(user.id), "username": name, "role": user_role.value},
        )
        return user

    def delete_user(self, user_id: UUID) -> None:
        """
        Remove a user.

        Raises:
            ProtectedUserError: The user is the master administrator, or the
                last remaining super administrator.
        """
        user = self._get(User, user_id, UserNotFoundError)
        if user.username == self._master_admin_username:
            raise ProtectedUserError(str(user.id), "the master administrator cannot be removed")
        if UserRole(user.role) == UserRole.SUPER_ADMIN:
            admins = self.session.execute(
                select(func.count())
                .select_from(User)
                .where(User.role == UserRole.SUPER_ADMIN.value)
            ).scalar_one()
            if admins <= 1:
                raise ProtectedUserError(
                    str(user.id), "the last super administrator cannot be removed"
                )
        self.session.delete(user)
        self.session.flush()
        logger.info(
            "user_deleted",
            extra={"user_id": str(user_id), "username": user.username},
        )

    def _require_unused(self, column, value: str, field: str) -> None:
        taken = self.session.execute(select(exists().where(column == value))).scalar()
        if taken:
            raise ValidationError(field, f"{value!r} is already registered")
