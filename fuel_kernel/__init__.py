"""
Fuel Ledger Kernel

Transaction/invoice ledger brokering fuel purchases between public-sector
fleets, accredited fuel stations and the platform operator:

- Voucher issuing and fill validation
- Consolidated invoicing with frozen fee snapshots
- Attestation, rejection and settlement workflow
- Station balance counters kept consistent after every transition
- Backup/restore of the full ledger state
"""

__version__ = "0.1.0"
