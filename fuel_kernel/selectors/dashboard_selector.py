"""
Module: fuel_kernel.selectors.dashboard_selector
Responsibility: Aggregate figures for the operator and fleet-manager
    dashboards: fee revenue, spend volume, spend per department, fee revenue
    per payment day and the cheapest posted price per fuel type.

All figures are derived from transaction and product rows; stored station
counters are never read here.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from fuel_kernel.db.types import ZERO_MONEY
from fuel_kernel.domain.lifecycle import (
    FuelType,
    InvoiceStatus,
    PartyStatus,
    TransactionStatus,
)
from fuel_kernel.models.invoice import Invoice
from fuel_kernel.models.station import FuelStation, StationProduct
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.selectors.base import BaseSelector

UNASSIGNED_DEPARTMENT = "General"

# Statuses whose rows carry a fill
FILLED_STATUSES = (
    TransactionStatus.VALIDATED.value,
    TransactionStatus.INVOICED.value,
    TransactionStatus.PAID.value,
)


@dataclass(frozen=True)
class DashboardSummary:
    total_fee_revenue: Decimal
    total_volume: Decimal
    filled_liters: Decimal
    filled_count: int
    invoices_awaiting_manager: int
    invoices_awaiting_settlement: int


@dataclass(frozen=True)
class DepartmentSpending:
    department: str
    total_value: Decimal


@dataclass(frozen=True)
class DailyFeeRevenue:
    day: date
    fee_amount: Decimal


@dataclass(frozen=True)
class BestPrice:
    fuel_type: FuelType
    station_id: UUID
    station_name: str
    price_per_liter: Decimal


class DashboardSelector(BaseSelector[FuelTransaction]):
    def summary(self, organization_id: UUID | None = None) -> DashboardSummary:
        """
        Headline figures, optionally for a single organization.

        ``total_fee_revenue`` sums the fee snapshots currently held by
        transactions (a rejected invoice's fees vanish with the rejection);
        ``total_volume`` sums the value of every recorded fill.
        """
        txn_filter = [FuelTransaction.status.in_(FILLED_STATUSES)]
        inv_filter = []
        if organization_id is not None:
            txn_filter.append(FuelTransaction.organization_id == organization_id)
            inv_filter.append(Invoice.organization_id == organization_id)

        fees, volume, liters, count = self.session.execute(
            select(
                func.sum(FuelTransaction.fee_amount),
                func.sum(FuelTransaction.total_value),
                func.sum(FuelTransaction.filled_liters),
                func.count(),
            ).where(*txn_filter)
        ).one()

        awaiting = dict(
            self.session.execute(
                select(Invoice.status, func.count())
                .where(
                    Invoice.status.in_(
                        (InvoiceStatus.PENDING_MANAGER.value, InvoiceStatus.PENDING_ADMIN.value)
                    ),
                    *inv_filter,
                )
                .group_by(Invoice.status)
            ).all()
        )

        return DashboardSummary(
            total_fee_revenue=fees if fees is not None else ZERO_MONEY,
            total_volume=volume if volume is not None else ZERO_MONEY,
            filled_liters=liters if liters is not None else Decimal("0.000"),
            filled_count=count,
            invoices_awaiting_manager=awaiting.get(InvoiceStatus.PENDING_MANAGER.value, 0),
            invoices_awaiting_settlement=awaiting.get(InvoiceStatus.PENDING_ADMIN.value, 0),
        )

    def spending_by_department(self, organization_id: UUID) -> list[DepartmentSpending]:
        """Fill value per vehicle department, largest first."""
        rows = self.session.execute(
            select(Vehicle.department, FuelTransaction.total_value)
            .join(Vehicle, Vehicle.id == FuelTransaction.vehicle_id)
            .where(
                FuelTransaction.organization_id == organization_id,
                FuelTransaction.status.in_(FILLED_STATUSES),
            )
        ).all()
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO_MONEY)
        for department, value in rows:
            totals[department or UNASSIGNED_DEPARTMENT] += value
        return [
            DepartmentSpending(department, total)
            for department, total in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        ]

    def fee_revenue_by_day(self) -> list[DailyFeeRevenue]:
        """Fees on paid transactions grouped by payment day (UTC), oldest first."""
        rows = self.session.execute(
            select(FuelTransaction.payment_date, FuelTransaction.fee_amount).where(
                FuelTransaction.status == TransactionStatus.PAID.value
            )
        ).all()
        totals: dict[date, Decimal] = defaultdict(lambda: ZERO_MONEY)
        for paid_at, fee in rows:
            totals[paid_at.date()] += fee
        return [DailyFeeRevenue(day, fee) for day, fee in sorted(totals.items())]

    def best_prices(self) -> list[BestPrice]:
        """
        Cheapest posted price per fuel type across active stations.

        Ties go to the station whose name sorts first.  Fuel types nobody
        posts are omitted.
        """
        rows = self.session.execute(
            select(
                StationProduct.fuel_type,
                StationProduct.price_per_liter,
                FuelStation.id,
                FuelStation.name,
            )
            .join(FuelStation, FuelStation.id == StationProduct.station_id)
            .where(FuelStation.status == PartyStatus.ACTIVE.value)
            .order_by(StationProduct.price_per_liter, FuelStation.name)
        ).all()
        best: dict[FuelType, BestPrice] = {}
        for fuel_type, price, station_id, station_name in rows:
            fuel = FuelType(fuel_type)
            if fuel not in best:
                best[fuel] = BestPrice(fuel, station_id, station_name, price)
        return [best[fuel] for fuel in FuelType if fuel in best]
