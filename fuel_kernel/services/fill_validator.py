"""
FillValidator -- records the actual fill against an open voucher.

Responsibility:
    Moves a REQUESTED transaction to VALIDATED with the pumped volume, the
    price per liter and the odometer reading, and credits the gross value to
    the station's pending balance in the same unit of work.

Architecture position:
    Kernel > Services -- second step of the ledger flow.

Invariants enforced:
    - total_value == round_half_up(filled_liters * price_per_liter, 2),
      computed in Decimal, never float.
    - balance_pending grows by exactly total_value.

Failure modes:
    - TransactionNotFoundError.
    - InvalidStateError: transaction not REQUESTED (double validation).
    - ValidationError: non-positive or over-precise input, no price given
      and none posted for the fuel type, or a fill worth less than one
      minor unit.
    - StationQuarantinedError.
"""

from decimal import Decimal
from uuid import UUID

from fuel_kernel.db.types import LITERS_PLACES, ODOMETER_PLACES, PRICE_PLACES, round_money
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dtos import TransactionInfo
from fuel_kernel.domain.lifecycle import require_transaction_action
from fuel_kernel.exceptions import TransactionNotFoundError, ValidationError
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.station import FuelStation
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.base import BaseService, require_positive

logger = get_logger("services.fill_validator")


class FillValidator(BaseService[FuelTransaction]):
    def __init__(self, session, clock: Clock, ledger: BalanceLedger):
        super().__init__(session)
        self._clock = clock
        self._ledger = ledger

    def validate_fill(
        self,
        transaction_id: UUID,
        filled_liters: Decimal | int | str,
        price_per_liter: Decimal | int | str | None,
        odometer: Decimal | int | str,
    ) -> TransactionInfo:
        """
        Record the fill.

        Args:
            price_per_liter: Price charged.  None means "the station's posted
                price for this fuel type".

        Postconditions:
            Transaction is VALIDATED with every fill field set;
            ``station.balance_pending`` increased by ``total_value``.
        """
        liters = require_positive(filled_liters, LITERS_PLACES, "filled_liters")
        reading = require_positive(odometer, ODOMETER_PLACES, "odometer")

        txn = self._get_for_update(FuelTransaction, transaction_id, TransactionNotFoundError)
        target = require_transaction_action(txn.id, txn.status, "validate")
        station = self._ledger.lock_station(txn.station_id)

        if price_per_liter is None:
            price = self._posted_price(station, txn.fuel_type)
        else:
            price = require_positive(price_per_liter, PRICE_PLACES, "price_per_liter")

        total = round_money(liters * price)
        if total <= 0:
            raise ValidationError(
                "filled_liters",
                f"{liters} L at {price} is worth less than one minor unit",
            )

        vehicle = self.session.get(Vehicle, txn.vehicle_id)
        if (
            vehicle is not None
            and vehicle.current_odometer is not None
            and reading < vehicle.current_odometer
        ):
            logger.warning(
                "odometer_below_recorded",
                extra={
                    "transaction_id": str(txn.id),
                    "vehicle_id": str(vehicle.id),
                    "odometer": reading,
                    "recorded_odometer": vehicle.current_odometer,
                },
            )

        now = self._clock.now()
        txn.status = target.value
        txn.validation_date = now
        txn.filled_liters = liters
        txn.price_per_liter = price
        txn.total_value = total
        txn.odometer = reading
        txn.updated_at = now
        self.session.flush()

        self._ledger.record_validated(station, total)

        logger.info(
            "fill_validated",
            extra={
                "transaction_id": str(txn.id),
                "voucher_code": txn.voucher_code,
                "station_id": str(station.id),
                "filled_liters": liters,
                "price_per_liter": price,
                "total_value": total,
            },
        )
        return TransactionInfo.from_model(txn)

    @staticmethod
    def _posted_price(station: FuelStation, fuel_type: str) -> Decimal:
        for product in station.products:
            if product.fuel_type == fuel_type:
                return product.price_per_liter
        raise ValidationError(
            "price_per_liter",
            f"no price given and station posts none for {fuel_type}",
        )
