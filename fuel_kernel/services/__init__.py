"""Services for the fuel ledger kernel (write side)."""

from fuel_kernel.services.approval_workflow import ApprovalWorkflow
from fuel_kernel.services.backup_service import BackupService
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.bootstrap_service import BootstrapService, SeedResult
from fuel_kernel.services.directory_service import DirectoryService
from fuel_kernel.services.fill_validator import FillValidator
from fuel_kernel.services.invoice_aggregator import InvoiceAggregator
from fuel_kernel.services.ledger_orchestrator import FuelLedger, LedgerOptions
from fuel_kernel.services.voucher_issuer import VoucherIssuer

__all__ = [
    "ApprovalWorkflow",
    "BackupService",
    "BalanceLedger",
    "BootstrapService",
    "DirectoryService",
    "FillValidator",
    "FuelLedger",
    "InvoiceAggregator",
    "LedgerOptions",
    "SeedResult",
    "VoucherIssuer",
]
