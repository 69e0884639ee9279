"""
Module: fuel_kernel.selectors.transaction_selector
Responsibility: Read-only access to fuel transactions: lookups, search by
    voucher code or vehicle plate, listings per station or organization.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
"""

from uuid import UUID

from sqlalchemy import func, or_, select

from fuel_kernel.domain.dtos import TransactionInfo
from fuel_kernel.domain.lifecycle import TransactionStatus
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.selectors.base import BaseSelector


class TransactionSelector(BaseSelector[FuelTransaction]):
    """Queries over fuel transactions.  Newest request first unless noted."""

    def get(self, transaction_id: UUID) -> TransactionInfo | None:
        txn = self.session.get(FuelTransaction, transaction_id)
        return TransactionInfo.from_model(txn) if txn is not None else None

    def get_by_voucher(self, voucher_code: str) -> TransactionInfo | None:
        txn = self.session.execute(
            select(FuelTransaction).where(
                FuelTransaction.voucher_code == voucher_code.strip().upper()
            )
        ).scalar_one_or_none()
        return TransactionInfo.from_model(txn) if txn is not None else None

    def search(self, term: str, station_id: UUID | None = None) -> list[TransactionInfo]:
        """
        Case-insensitive substring match on voucher code or vehicle plate.

        Args:
            term: Fragment of a voucher code or plate.
            station_id: Restrict to one station (a station attendant looking
                up a voucher presented at the pump).
        """
        needle = term.strip().upper()
        if not needle:
            return []
        query = (
            select(FuelTransaction)
            .join(Vehicle, Vehicle.id == FuelTransaction.vehicle_id)
            .where(
                or_(
                    func.upper(FuelTransaction.voucher_code).contains(needle, autoescape=True),
                    func.upper(Vehicle.plate).contains(needle, autoescape=True),
                )
            )
        )
        if station_id is not None:
            query = query.where(FuelTransaction.station_id == station_id)
        query = query.order_by(FuelTransaction.request_date.desc(), FuelTransaction.voucher_code)
        return [TransactionInfo.from_model(t) for t in self.session.execute(query).scalars()]

    def list_for_station(
        self,
        station_id: UUID,
        status: TransactionStatus | None = None,
    ) -> list[TransactionInfo]:
        return self._list(FuelTransaction.station_id == station_id, status)

    def list_for_organization(
        self,
        organization_id: UUID,
        status: TransactionStatus | None = None,
    ) -> list[TransactionInfo]:
        return self._list(FuelTransaction.organization_id == organization_id, status)

    def list_for_vehicle(self, vehicle_id: UUID) -> list[TransactionInfo]:
        return self._list(FuelTransaction.vehicle_id == vehicle_id, None)

    def count_by_status(self, station_id: UUID | None = None) -> dict[TransactionStatus, int]:
        """Counts per status; statuses with no rows report 0."""
        query = select(FuelTransaction.status, func.count()).group_by(FuelTransaction.status)
        if station_id is not None:
            query = query.where(FuelTransaction.station_id == station_id)
        counts = {status: 0 for status in TransactionStatus}
        for status, count in self.session.execute(query).all():
            counts[TransactionStatus(status)] = count
        return counts

    def _list(self, criterion, status: TransactionStatus | None) -> list[TransactionInfo]:
        query = select(FuelTransaction).where(criterion)
        if status is not None:
            query = query.where(FuelTransaction.status == TransactionStatus(status).value)
        query = query.order_by(FuelTransaction.request_date.desc(), FuelTransaction.voucher_code)
        return [TransactionInfo.from_model(t) for t in self.session.execute(query).scalars()]
