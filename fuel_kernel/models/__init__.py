"""Domain models for the fuel ledger."""

from fuel_kernel.models.invoice import Invoice, InvoiceMember
from fuel_kernel.models.organization import Organization
from fuel_kernel.models.station import FuelStation, StationProduct
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.user import User
from fuel_kernel.models.vehicle import Vehicle

__all__ = [
    "Organization",
    "FuelStation",
    "StationProduct",
    "Vehicle",
    "User",
    "FuelTransaction",
    "Invoice",
    "InvoiceMember",
]
