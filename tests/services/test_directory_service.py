"""
Tests for DirectoryService.

Covers:
- Organization, station, vehicle and user registration
- Fee schedule bounds
- Posted fuel prices (create and re-post)
- Protected users and vehicles with history
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fuel_kernel.domain.fees import FeeBounds
from fuel_kernel.domain.lifecycle import FuelType, PartyStatus, UserRole, VehicleKind
from fuel_kernel.exceptions import (
    FeeScheduleError,
    OrganizationNotFoundError,
    ProtectedUserError,
    StationNotFoundError,
    ValidationError,
)
from fuel_kernel.services import BootstrapService, DirectoryService


class TestOrganizations:
    def test_create(self, services):
        org = services.directory.create_organization(
            "  City Hall ", "11.111.111/0001-11", contact_phone=" "
        )
        assert org.name == "City Hall"
        assert org.status == PartyStatus.ACTIVE
        assert org.balance_due == Decimal("0.00")
        assert org.contact_phone is None

    def test_duplicate_tax_id(self, services):
        services.directory.create_organization("A", "11.111.111/0001-11")
        with pytest.raises(ValidationError) as exc_info:
            services.directory.create_organization("B", "11.111.111/0001-11")
        assert exc_info.value.field == "tax_id"

    def test_status_change(self, services):
        org = services.directory.create_organization("A", "1")
        services.directory.set_organization_status(org.id, "inactive")
        assert org.is_active is False

    def test_bad_status(self, services):
        org = services.directory.create_organization("A", "1")
        with pytest.raises(ValidationError):
            services.directory.set_organization_status(org.id, "frozen")


class TestStations:
    def test_create(self, services):
        station = services.directory.create_station("Central", "99", "5", "2.5")
        assert station.base_fee_percent == Decimal("5")
        assert station.advance_fee_percent == Decimal("2.5")
        assert (station.balance_pending, station.balance_invoiced, station.balance_paid) == (
            Decimal("0.00"),
            Decimal("0.00"),
            Decimal("0.00"),
        )
        assert station.quarantine_reason is None

    @pytest.mark.parametrize("base,advance", [("1.4", "0"), ("15.5", "0"), ("5", "16")])
    def test_fee_out_of_bounds(self, services, base, advance):
        with pytest.raises(FeeScheduleError):
            services.directory.create_station("Central", "99", base, advance)

    def test_custom_bounds(self, session, deterministic_clock):
        directory = DirectoryService(
            session,
            deterministic_clock,
            fee_bounds=FeeBounds(base_min=Decimal("0"), base_max=Decimal("50")),
        )
        station = directory.create_station("Wide", "77", "40", "0")
        assert station.base_fee_percent == Decimal("40")

    def test_negative_fee(self, services):
        with pytest.raises(ValidationError):
            services.directory.create_station("Central", "99", "-5", "0")

    def test_set_fee_schedule(self, services, service_world):
        station = services.directory.set_fee_schedule(service_world.station_id, "7", "3")
        assert station.fee_schedule.percent_for(True) == Decimal("10")

    def test_set_fee_schedule_unknown(self, services):
        with pytest.raises(StationNotFoundError):
            services.directory.set_fee_schedule(uuid4(), "5", "0")


class TestFuelPrices:
    def test_post_and_repost(self, services, service_world, deterministic_clock):
        deterministic_clock.advance(60)
        product = services.directory.set_fuel_price(
            service_world.station_id, FuelType.DIESEL, "5.190"
        )
        assert product.price_per_liter == Decimal("5.190")
        assert product.last_updated == deterministic_clock.now()

        product = services.directory.set_fuel_price(service_world.station_id, "gasoline", "6.09")
        station = product.station
        assert [p.fuel_type for p in station.products] == ["diesel", "gasoline"]

    def test_price_must_be_positive(self, services, service_world):
        with pytest.raises(ValidationError):
            services.directory.set_fuel_price(service_world.station_id, FuelType.DIESEL, "0")


class TestVehicles:
    def test_register_uppercases_plate(self, services, service_world):
        vehicle = services.directory.register_vehicle(
            service_world.organization_id,
            "qwe4r56",
            "Ambulance",
            kind=VehicleKind.HEAVY,
            current_odometer="1200.5",
            avg_consumption="8.25",
        )
        assert vehicle.plate == "QWE4R56"
        assert vehicle.kind == "heavy"
        assert vehicle.department is None

    def test_duplicate_plate(self, services, service_world):
        with pytest.raises(ValidationError) as exc_info:
            services.directory.register_vehicle(service_world.organization_id, "ABC1D23", "Van")
        assert exc_info.value.field == "plate"

    def test_unknown_organization(self, services):
        with pytest.raises(OrganizationNotFoundError):
            services.directory.register_vehicle(uuid4(), "AAA0000", "Van")

    def test_delete_unused_vehicle(self, services, service_world):
        vehicle = services.directory.register_vehicle(
            service_world.organization_id, "DEL0001", "Van"
        )
        services.directory.delete_vehicle(vehicle.id)
        assert services.session.get(type(vehicle), vehicle.id) is None

    def test_delete_vehicle_with_history(self, services, service_world):
        services.issuer.request_fuel(
            service_world.organization_id,
            service_world.station_id,
            service_world.vehicle_id,
            "J. Driver",
            FuelType.DIESEL,
            "10",
        )
        with pytest.raises(ValidationError):
            services.directory.delete_vehicle(service_world.vehicle_id)


class TestUsers:
    def test_create_station_user(self, services, service_world):
        user = services.directory.create_user(
            "attendant", "Pump Attendant", UserRole.FUEL_STATION, station_id=service_world.station_id
        )
        assert user.role == "fuel_station"
        assert user.station_id == service_world.station_id

    def test_duplicate_username(self, services):
        services.directory.create_user("mgr", "Manager", "fleet_manager")
        with pytest.raises(ValidationError):
            services.directory.create_user("mgr", "Other", "fleet_manager")

    def test_master_admin_protected(self, services):
        seed = BootstrapService(services.session, services.clock).seed()
        services.directory.create_user("second", "Second Admin", UserRole.SUPER_ADMIN)
        with pytest.raises(ProtectedUserError):
            services.directory.delete_user(seed.user_id)

    def test_last_super_admin_protected(self, services):
        only = services.directory.create_user("root2", "Root", UserRole.SUPER_ADMIN)
        with pytest.raises(ProtectedUserError) as exc_info:
            services.directory.delete_user(only.id)
        assert exc_info.value.code == "PROTECTED_USER"

    def test_delete_regular_user(self, services):
        user = services.directory.create_user("mgr", "Manager", "fleet_manager")
        services.directory.delete_user(user.id)
        assert services.session.get(type(user), user.id) is None
