"""
ORM-level immutability enforcement.

SQLAlchemy fires events before UPDATE/DELETE statements reach the database.
The listeners registered here inspect attribute history and refuse any write
that would alter a frozen ledger record:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

PROTECTED ENTITIES

Entity          | When immutable                         | Exception
----------------|----------------------------------------|------------------------------
FuelTransaction | request fields: always                 |
                | fill fields: from VALIDATED on         |
                | fee snapshot: from INVOICED on         | INVOICED -> VALIDATED may clear it
                | everything: once PAID or CANCELLED     |
Invoice         | parties, document, money: always       |
                | everything: once PAID or REJECTED      |
InvoiceMember   | always (no update, no delete)          |

``updated_at`` and ``version`` are bookkeeping columns and may always change.

Core ``delete()``/``insert()`` statements bypass these listeners; only the
backup import and test cleanup use them.

Usage:

    from fuel_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() calls this

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from fuel_kernel.exceptions import ImmutabilityViolationError
from fuel_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BOOKKEEPING_FIELDS = frozenset({"updated_at", "version"})


def _status_before(target, status_cls):
    """Status the row had before this flush, or None for a fresh row."""
    history = get_history(target, "status")
    if history.deleted:
        return status_cls(history.deleted[0])
    if not history.added:
        return status_cls(target.status)
    # Status set without a prior value: the row is being inserted
    return None


def _changed_fields(target, candidates=None) -> list[str]:
    insp = inspect(target)
    changed = []
    for attr in insp.mapper.column_attrs:
        key = attr.key
        if key in BOOKKEEPING_FIELDS:
            continue
        if candidates is not None and key not in candidates:
            continue
        if insp.attrs[key].history.has_changes():
            changed.append(key)
    return changed


def _block(entity_type: str, target, field: str, reason: str, operation: str = "UPDATE"):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_transaction_immutability(mapper, connection, target):
    """
    Prevent edits to frozen FuelTransaction fields.

    Logic:
        1. Request fields never change.
        2. Once VALIDATED (or later) the fill fields never change.
        3. Once INVOICED the fee snapshot never changes, except that the
           INVOICED -> VALIDATED rewind of an invoice rejection clears it.
        4. PAID and CANCELLED rows are sealed.
    """
    from fuel_kernel.domain.lifecycle import TransactionStatus
    from fuel_kernel.models.transaction import (
        FEE_SNAPSHOT_FIELDS,
        FILL_FIELDS,
        REQUEST_FIELDS,
    )

    before = _status_before(target, TransactionStatus)
    if before is None:
        return
    after = TransactionStatus(target.status)

    for field in _changed_fields(target, REQUEST_FIELDS):
        _block("FuelTransaction", target, field, f"Cannot modify request field '{field}'")

    if before in (TransactionStatus.PAID, TransactionStatus.CANCELLED):
        for field in _changed_fields(target):
            _block(
                "FuelTransaction",
                target,
                field,
                f"Cannot modify field '{field}' on {before.name} transaction",
            )

    if before != TransactionStatus.REQUESTED:
        for field in _changed_fields(target, FILL_FIELDS):
            _block(
                "FuelTransaction",
                target,
                field,
                f"Cannot modify fill field '{field}' after validation",
            )

    if before == TransactionStatus.INVOICED:
        rewinding = after == TransactionStatus.VALIDATED
        for field in _changed_fields(target, FEE_SNAPSHOT_FIELDS):
            value = getattr(target, field)
            cleared = value is None or (field == "is_advanced" and value is False)
            if rewinding and cleared:
                continue
            _block(
                "FuelTransaction",
                target,
                field,
                f"Cannot modify fee snapshot field '{field}' on invoiced transaction",
            )


def _check_transaction_delete(mapper, connection, target):
    """Only never-validated transactions may be deleted."""
    from fuel_kernel.domain.lifecycle import TransactionStatus

    if TransactionStatus(target.status) not in (
        TransactionStatus.REQUESTED,
        TransactionStatus.CANCELLED,
    ):
        _block(
            "FuelTransaction",
            target,
            "status",
            f"Cannot delete {TransactionStatus(target.status).name} transaction",
            operation="DELETE",
        )


def _check_invoice_immutability(mapper, connection, target):
    """Monetary and identity fields are frozen; terminal invoices are sealed."""
    from fuel_kernel.domain.lifecycle import InvoiceStatus, is_terminal_invoice
    from fuel_kernel.models.invoice import INVOICE_FROZEN_FIELDS

    before = _status_before(target, InvoiceStatus)
    if before is None:
        return

    for field in _changed_fields(target, INVOICE_FROZEN_FIELDS):
        _block("Invoice", target, field, f"Cannot modify invoice field '{field}'")

    if is_terminal_invoice(before):
        for field in _changed_fields(target):
            _block(
                "Invoice",
                target,
                field,
                f"Cannot modify field '{field}' on {before.name} invoice",
            )


def _check_invoice_delete(mapper, connection, target):
    _block("Invoice", target, "id", "Invoices cannot be deleted", operation="DELETE")


def _check_invoice_member_immutability(mapper, connection, target):
    for field in _changed_fields(target):
        _block("InvoiceMember", target, field, "Invoice membership is immutable")


def _check_invoice_member_delete(mapper, connection, target):
    _block(
        "InvoiceMember",
        target,
        "id",
        "Invoice membership cannot be deleted",
        operation="DELETE",
    )


def _listeners():
    from fuel_kernel.models.invoice import Invoice, InvoiceMember
    from fuel_kernel.models.transaction import FuelTransaction

    return (
        (FuelTransaction, "before_update", _check_transaction_immutability),
        (FuelTransaction, "before_delete", _check_transaction_delete),
        (Invoice, "before_update", _check_invoice_immutability),
        (Invoice, "before_delete", _check_invoice_delete),
        (InvoiceMember, "before_update", _check_invoice_member_immutability),
        (InvoiceMember, "before_delete", _check_invoice_member_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left alone.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
