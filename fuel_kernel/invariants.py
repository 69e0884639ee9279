"""
Ledger Invariants Contract.

These invariants are structural law for the fuel ledger. No configuration
toggle may override them. This module declares them explicitly; enforcement
is distributed across BalanceLedger, the fee allocator, the ORM immutability
listeners and the orchestrator's post-mutation verification.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the ledger.

    The value is what ``IntegrityViolationError.invariant`` carries.
    """

    PENDING_MATCHES_VALIDATED = "pending_matches_validated"
    """balance_pending equals the sum of total_value over the station's
    VALIDATED transactions."""

    INVOICED_MATCHES_INVOICED = "invoiced_matches_invoiced"
    """balance_invoiced equals the sum of net_value over INVOICED
    transactions."""

    PAID_MATCHES_PAID = "paid_matches_paid"
    """balance_paid equals the sum of net_value over PAID transactions."""

    NON_NEGATIVE_BALANCE = "non_negative_balance"
    """No station counter may ever go below zero."""

    FEE_PLUS_NET_EQUALS_TOTAL = "fee_plus_net_equals_total"
    """fee_amount + net_value == total_value on every invoiced/paid
    transaction and on every invoice."""

    INVOICE_SUMS_MATCH_MEMBERS = "invoice_sums_match_members"
    """An invoice's total/fee/net equal the sums over its members."""

    FEE_SNAPSHOT_FROZEN = "fee_snapshot_frozen"
    """fee_percentage_applied never changes while a transaction is INVOICED
    or PAID. Enforced by ORM listeners (fuel_kernel.db.immutability)."""

    STORE_CONSTRAINTS_HOLD = "store_constraints_hold"
    """Foreign key, NOT NULL and CHECK constraints never fail on a write.
    A failure is a defect, not a lost race (see fuel_kernel.db.engine)."""


# Counter invariants checked by BalanceLedger.verify(), in report order.
COUNTER_INVARIANTS: tuple[LedgerInvariant, ...] = (
    LedgerInvariant.PENDING_MATCHES_VALIDATED,
    LedgerInvariant.INVOICED_MATCHES_INVOICED,
    LedgerInvariant.PAID_MATCHES_PAID,
)
