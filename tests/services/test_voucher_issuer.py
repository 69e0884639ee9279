"""
Tests for VoucherIssuer: fuel requests and cancellations.

Covers:
- Request creates a REQUESTED transaction with no financial fields
- Input and party validation (ownership, inactive parties, unknown ids)
- Voucher code collisions and exhaustion
- Cancellation only from REQUESTED, with no balance effect
"""

import random
from decimal import Decimal
from uuid import uuid4

import pytest

from fuel_kernel.domain.lifecycle import FuelType, PartyStatus, TransactionStatus
from fuel_kernel.domain.voucher import VoucherCodeGenerator, is_well_formed
from fuel_kernel.exceptions import (
    InactivePartyError,
    InvalidStateError,
    StationNotFoundError,
    StationQuarantinedError,
    TransactionNotFoundError,
    ValidationError,
    VehicleOwnershipError,
    VoucherCodeExhaustedError,
)
from fuel_kernel.models.station import FuelStation
from fuel_kernel.services import VoucherIssuer


def _request(services, world, **overrides):
    args = dict(
        organization_id=world.organization_id,
        station_id=world.station_id,
        vehicle_id=world.vehicle_id,
        requester_name="J. Driver",
        fuel_type=FuelType.DIESEL,
        estimated_liters="40",
    )
    args.update(overrides)
    return services.issuer.request_fuel(**args)


class TestRequestFuel:
    def test_creates_requested_transaction(self, services, service_world):
        info = _request(services, service_world)

        assert info.status == TransactionStatus.REQUESTED
        assert info.requested_liters == Decimal("40.000")
        assert info.request_date == services.clock.now()
        assert is_well_formed(info.voucher_code, "FRT", 5)
        assert info.voucher_code.split("-")[1] == "20240101"
        for field in ("filled_liters", "price_per_liter", "total_value", "fee_amount", "net_value"):
            assert getattr(info, field) is None

    def test_balances_untouched(self, services, service_world):
        _request(services, service_world)
        station = services.session.get(FuelStation, service_world.station_id)
        assert station.balance_pending == Decimal("0.00")

    def test_fuel_type_by_value(self, services, service_world):
        info = _request(services, service_world, fuel_type="gasoline")
        assert info.fuel_type == FuelType.GASOLINE

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"estimated_liters": "0"}, "estimated_liters"),
            ({"estimated_liters": "-5"}, "estimated_liters"),
            ({"estimated_liters": "1.0001"}, "estimated_liters"),
            ({"requester_name": "   "}, "requester_name"),
            ({"fuel_type": "kerosene"}, "fuel_type"),
        ],
    )
    def test_invalid_input(self, services, service_world, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            _request(services, service_world, **overrides)
        assert exc_info.value.field == field

    def test_vehicle_of_other_organization(self, services, service_world):
        other = services.directory.create_organization("Port Authority", "33.333.333/0001-33")
        with pytest.raises(VehicleOwnershipError):
            _request(services, service_world, organization_id=other.id)

    def test_inactive_station(self, services, service_world):
        services.directory.set_station_status(service_world.station_id, PartyStatus.INACTIVE)
        with pytest.raises(InactivePartyError) as exc_info:
            _request(services, service_world)
        assert exc_info.value.party_type == "station"

    def test_inactive_organization(self, services, service_world):
        services.directory.set_organization_status(service_world.organization_id, "inactive")
        with pytest.raises(InactivePartyError) as exc_info:
            _request(services, service_world)
        assert exc_info.value.party_type == "organization"

    def test_unknown_station(self, services, service_world):
        with pytest.raises(StationNotFoundError):
            _request(services, service_world, station_id=uuid4())

    def test_malformed_id_is_not_found(self, services, service_world):
        with pytest.raises(StationNotFoundError):
            _request(services, service_world, station_id="not-a-uuid")

    def test_quarantined_station(self, services, service_world):
        services.ledger.quarantine(service_world.station_id, "manual hold")
        with pytest.raises(StationQuarantinedError):
            _request(services, service_world)

    def test_voucher_codes_are_unique(self, services, service_world):
        codes = {_request(services, service_world).voucher_code for _ in range(10)}
        assert len(codes) == 10


class TestVoucherCollisions:
    def test_exhausted_after_max_attempts(self, services, service_world):
        # Two-letter alphabet, one character: only two codes exist per day
        generator = VoucherCodeGenerator(suffix_length=1, alphabet="AB", rng=random.Random(3))
        issuer = VoucherIssuer(
            services.session, services.clock, generator, services.ledger, max_attempts=5
        )
        args = (
            service_world.organization_id,
            service_world.station_id,
            service_world.vehicle_id,
            "J. Driver",
            FuelType.DIESEL,
            "10",
        )
        seen = set()
        while len(seen) < 2:
            try:
                seen.add(issuer.request_fuel(*args).voucher_code)
            except VoucherCodeExhaustedError:
                continue
        assert seen == {"FRT-20240101-A", "FRT-20240101-B"}

        with pytest.raises(VoucherCodeExhaustedError) as exc_info:
            issuer.request_fuel(*args)
        assert exc_info.value.attempts == 5
        assert exc_info.value.code == "VOUCHER_CODE_EXHAUSTED"


class TestCancelRequest:
    def test_cancel(self, services, service_world):
        info = _request(services, service_world)
        services.clock.advance(60)

        cancelled = services.issuer.cancel_request(info.id, "vehicle broke down")

        assert cancelled.status == TransactionStatus.CANCELLED
        assert cancelled.cancel_reason == "vehicle broke down"
        assert cancelled.cancelled_date == services.clock.now()
        station = services.session.get(FuelStation, service_world.station_id)
        assert (station.balance_pending, station.balance_invoiced, station.balance_paid) == (
            Decimal("0.00"),
            Decimal("0.00"),
            Decimal("0.00"),
        )

    def test_cancel_twice(self, services, service_world):
        info = _request(services, service_world)
        services.issuer.cancel_request(info.id, "duplicate")
        with pytest.raises(InvalidStateError) as exc_info:
            services.issuer.cancel_request(info.id, "duplicate")
        assert exc_info.value.current_state == "CANCELLED"

    def test_cancel_after_fill_refused(self, services, service_world):
        info = _request(services, service_world)
        services.validator.validate_fill(info.id, "10", "5.000", "1000")
        with pytest.raises(InvalidStateError):
            services.issuer.cancel_request(info.id, "too late")

    def test_reason_required(self, services, service_world):
        info = _request(services, service_world)
        with pytest.raises(ValidationError):
            services.issuer.cancel_request(info.id, "")

    def test_unknown_transaction(self, services, service_world):
        with pytest.raises(TransactionNotFoundError):
            services.issuer.cancel_request(uuid4(), "gone")
