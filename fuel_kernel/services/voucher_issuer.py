"""
VoucherIssuer -- opens and cancels fuel requests.

Responsibility:
    Creates REQUESTED transactions carrying a unique voucher code, and
    cancels requests that were never filled.  Neither operation touches the
    station counters.

Architecture position:
    Kernel > Services -- first step of the ledger flow.

Invariants enforced:
    - Voucher codes are unique: each candidate is checked against existing
      codes and redrawn up to ``max_attempts`` times; the unique constraint
      on ``voucher_code`` is the backstop for concurrent issuers (a collision
      at flush surfaces as ConflictError through the unit of work).
    - Vehicle ownership: the vehicle must belong to the requesting
      organization.

Failure modes:
    - ValidationError: non-positive liters, empty requester name, unknown
      fuel type.
    - Organization/Station/VehicleNotFoundError.
    - VehicleOwnershipError, InactivePartyError.
    - StationQuarantinedError.
    - VoucherCodeExhaustedError: no free code within ``max_attempts``.
    - InvalidStateError: cancelling anything but a REQUESTED transaction.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, select

from fuel_kernel.db.types import LITERS_PLACES
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dtos import TransactionInfo
from fuel_kernel.domain.lifecycle import FuelType, TransactionStatus, require_transaction_action
from fuel_kernel.domain.voucher import VoucherCodeGenerator
from fuel_kernel.exceptions import (
    InactivePartyError,
    OrganizationNotFoundError,
    StationNotFoundError,
    TransactionNotFoundError,
    VehicleNotFoundError,
    VehicleOwnershipError,
    VoucherCodeExhaustedError,
)
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.organization import Organization
from fuel_kernel.models.station import FuelStation
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.base import (
    BaseService,
    require_enum,
    require_positive,
    require_text,
)

logger = get_logger("services.voucher_issuer")


class VoucherIssuer(BaseService[FuelTransaction]):
    def __init__(
        self,
        session,
        clock: Clock,
        generator: VoucherCodeGenerator,
        ledger: BalanceLedger,
        max_attempts: int = 10,
    ):
        super().__init__(session)
        self._clock = clock
        self._generator = generator
        self._ledger = ledger
        self._max_attempts = max_attempts

    def request_fuel(
        self,
        organization_id: UUID,
        station_id: UUID,
        vehicle_id: UUID,
        requester_name: str,
        fuel_type: FuelType | str,
        estimated_liters: Decimal | int | str,
    ) -> TransactionInfo:
        """
        Open a fuel request.

        Postconditions:
            A REQUESTED transaction with a fresh voucher code exists; no
            financial field is set and no counter changed.
        """
        liters = require_positive(estimated_liters, LITERS_PLACES, "estimated_liters")
        requester = require_text(requester_name, "requester_name")
        fuel = require_enum(FuelType, fuel_type, "fuel_type")

        org = self._get(Organization, organization_id, OrganizationNotFoundError)
        station = self._get(FuelStation, station_id, StationNotFoundError)
        vehicle = self._get(Vehicle, vehicle_id, VehicleNotFoundError)

        if vehicle.organization_id != org.id:
            raise VehicleOwnershipError(str(vehicle.id), str(org.id))
        if not org.is_active:
            raise InactivePartyError("organization", str(org.id))
        if not station.is_active:
            raise InactivePartyError("station", str(station.id))
        self._ledger.require_writable(station)

        now = self._clock.now()
        code = self._draw_code(now)
        txn = FuelTransaction(
            voucher_code=code,
            organization_id=org.id,
            station_id=station.id,
            vehicle_id=vehicle.id,
            requester_name=requester,
            fuel_type=fuel.value,
            status=TransactionStatus.REQUESTED.value,
            requested_liters=liters,
            request_date=now,
            is_advanced=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(txn)
        self.session.flush()

        logger.info(
            "fuel_requested",
            extra={
                "transaction_id": str(txn.id),
                "voucher_code": code,
                "organization_id": str(org.id),
                "station_id": str(station.id),
                "vehicle_id": str(vehicle.id),
                "fuel_type": fuel.value,
                "requested_liters": liters,
            },
        )
        return TransactionInfo.from_model(txn)

    def _draw_code(self, now) -> str:
        for attempt in range(1, self._max_attempts + 1):
            candidate = self._generator.candidate(now)
            taken = self.session.execute(
                select(exists().where(FuelTransaction.voucher_code == candidate))
            ).scalar()
            if not taken:
                return candidate
            logger.debug(
                "voucher_code_collision",
                extra={"voucher_code": candidate, "attempt": attempt},
            )
        logger.warning(
            "voucher_code_exhausted",
            extra={"attempts": self._max_attempts},
        )
        raise VoucherCodeExhaustedError(self._max_attempts)

    def cancel_request(self, transaction_id: UUID, reason: str) -> TransactionInfo:
        """REQUESTED -> CANCELLED.  No balance effect."""
        why = require_text(reason, "reason")
        txn = self._get_for_update(FuelTransaction, transaction_id, TransactionNotFoundError)
        target = require_transaction_action(txn.id, txn.status, "cancel")

        station = self._get(FuelStation, txn.station_id, StationNotFoundError)
        self._ledger.require_writable(station)

        now = self._clock.now()
        txn.status = target.value
        txn.cancelled_date = now
        txn.cancel_reason = why
        txn.updated_at = now
        self.session.flush()

        logger.info(
            "fuel_request_cancelled",
            extra={"transaction_id": str(txn.id), "voucher_code": txn.voucher_code},
        )
        return TransactionInfo.from_model(txn)
