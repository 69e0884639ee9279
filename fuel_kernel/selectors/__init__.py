"""Selectors for the fuel ledger kernel (read side)."""

from fuel_kernel.selectors.dashboard_selector import (
    BestPrice,
    DailyFeeRevenue,
    DashboardSelector,
    DashboardSummary,
    DepartmentSpending,
)
from fuel_kernel.selectors.invoice_selector import InvoiceSelector
from fuel_kernel.selectors.transaction_selector import TransactionSelector

__all__ = [
    "BestPrice",
    "DailyFeeRevenue",
    "DashboardSelector",
    "DashboardSummary",
    "DepartmentSpending",
    "InvoiceSelector",
    "TransactionSelector",
]
