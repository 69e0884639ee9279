"""
Lifecycle tables for transactions and invoices.

Responsibility:
    Status vocabularies and the allowed transitions between them.  Every
    service that moves a transaction or invoice first calls
    ``require_transaction_action`` or ``require_invoice_action``; nothing
    else decides whether a move is legal.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models/ and services/.

Transaction lifecycle::

    REQUESTED --validate--> VALIDATED --invoice--> INVOICED --pay--> PAID
    REQUESTED --cancel--> CANCELLED
    INVOICED  --invoice rejected--> VALIDATED

Invoice lifecycle::

    PENDING_MANAGER --attest--> PENDING_ADMIN --settle--> PAID
    PENDING_MANAGER --reject--> REJECTED

Statuses are stored as plain strings; always coerce through the enum
(``TransactionStatus(row.status)``) before looking anything up here.
"""

from enum import Enum

from fuel_kernel.exceptions import InvalidStateError


class TransactionStatus(str, Enum):
    REQUESTED = "requested"
    VALIDATED = "validated"
    INVOICED = "invoiced"
    PAID = "paid"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    PENDING_MANAGER = "pending_manager"  # Awaiting fleet manager attestation
    PENDING_ADMIN = "pending_admin"      # Attested, awaiting platform payment
    PAID = "paid"
    REJECTED = "rejected"


class FuelType(str, Enum):
    GASOLINE = "gasoline"
    ETHANOL = "ethanol"
    DIESEL = "diesel"
    DIESEL_S10 = "diesel_s10"
    CNG = "cng"


class PartyStatus(str, Enum):
    """Directory status shared by organizations and stations."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class VehicleKind(str, Enum):
    LIGHT = "light"
    HEAVY = "heavy"
    MACHINE = "machine"


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    FLEET_MANAGER = "fleet_manager"
    FUEL_STATION = "fuel_station"


# Allowed state transitions (from -> set of valid targets)
TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.REQUESTED: frozenset({
        TransactionStatus.VALIDATED, TransactionStatus.CANCELLED,
    }),
    TransactionStatus.VALIDATED: frozenset({TransactionStatus.INVOICED}),
    TransactionStatus.INVOICED: frozenset({
        TransactionStatus.PAID, TransactionStatus.VALIDATED,
    }),
    TransactionStatus.PAID: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}

INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING_MANAGER: frozenset({
        InvoiceStatus.PENDING_ADMIN, InvoiceStatus.REJECTED,
    }),
    InvoiceStatus.PENDING_ADMIN: frozenset({InvoiceStatus.PAID}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.REJECTED: frozenset(),
}


# Named moves: action -> (allowed source states, target state).  Every entry
# must also be an edge of the matching *_TRANSITIONS table.
TRANSACTION_ACTIONS: dict[str, tuple[frozenset[TransactionStatus], TransactionStatus]] = {
    "validate": (frozenset({TransactionStatus.REQUESTED}), TransactionStatus.VALIDATED),
    "cancel": (frozenset({TransactionStatus.REQUESTED}), TransactionStatus.CANCELLED),
    "invoice": (frozenset({TransactionStatus.VALIDATED}), TransactionStatus.INVOICED),
    "pay": (frozenset({TransactionStatus.INVOICED}), TransactionStatus.PAID),
    "revert": (frozenset({TransactionStatus.INVOICED}), TransactionStatus.VALIDATED),
}

INVOICE_ACTIONS: dict[str, tuple[frozenset[InvoiceStatus], InvoiceStatus]] = {
    "attest": (frozenset({InvoiceStatus.PENDING_MANAGER}), InvoiceStatus.PENDING_ADMIN),
    "reject": (frozenset({InvoiceStatus.PENDING_MANAGER}), InvoiceStatus.REJECTED),
    "settle": (frozenset({InvoiceStatus.PENDING_ADMIN}), InvoiceStatus.PAID),
}


def _require(entity_type, entity_id, status, action, actions, transitions):
    sources, target = actions[action]
    if status not in sources or target not in transitions[status]:
        raise InvalidStateError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            current_state=status.name,
            required_states=tuple(sorted(s.name for s in sources)),
        )
    return target


def require_transaction_action(
    transaction_id: object,
    current: str,
    action: str,
) -> TransactionStatus:
    """
    Check that ``action`` is legal for a transaction in state ``current``.

    Returns:
        The state the transaction moves to.

    Raises:
        InvalidStateError: ``current`` is not a source state for ``action``.
    """
    return _require(
        "Transaction",
        transaction_id,
        TransactionStatus(current),
        action,
        TRANSACTION_ACTIONS,
        TRANSACTION_TRANSITIONS,
    )


def require_invoice_action(
    invoice_id: object,
    current: str,
    action: str,
) -> InvoiceStatus:
    """Invoice counterpart of ``require_transaction_action``."""
    return _require(
        "Invoice",
        invoice_id,
        InvoiceStatus(current),
        action,
        INVOICE_ACTIONS,
        INVOICE_TRANSITIONS,
    )


def is_terminal_invoice(status: str) -> bool:
    return not INVOICE_TRANSITIONS[InvoiceStatus(status)]
