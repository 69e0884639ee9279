"""
Typed Exception Hierarchy for the Fuel Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every ledger failure has a TYPED exception class with a machine-readable
``code`` class attribute and structured attributes. Callers catch by type and
read attributes; they never parse messages.

    try:
        ledger.settle(invoice_id)
    except InvalidStateError as e:
        refresh_and_show(e.entity_id, e.current_state)
    except ConflictError:
        retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FuelLedgerError (base)
    |
    +-- ValidationError
    |   +-- VehicleOwnershipError
    |   +-- InactivePartyError
    |   +-- FeeScheduleError
    |   +-- ProtectedUserError
    |   +-- BackupFormatError
    |
    +-- NotFoundError
    |   +-- OrganizationNotFoundError
    |   +-- StationNotFoundError
    |   +-- VehicleNotFoundError
    |   +-- UserNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- InvoiceNotFoundError
    |
    +-- InvalidStateError
    +-- NothingToInvoiceError
    |
    +-- ConflictError
    |   +-- VoucherCodeExhaustedError
    |
    +-- IntegrityViolationError
        +-- StationQuarantinedError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|--------------------------------------------
Validation   | VALIDATION_ERROR          | Missing/zero/negative input, empty document
             | VEHICLE_OWNERSHIP         | Vehicle does not belong to the organization
             | INACTIVE_PARTY            | Station or organization is INACTIVE
             | FEE_SCHEDULE_OUT_OF_RANGE | Fee percent outside configured bounds
             | PROTECTED_USER            | Removing master admin / last super admin
             | BACKUP_FORMAT             | Backup document malformed
-------------|---------------------------|--------------------------------------------
Lookup       | *_NOT_FOUND               | Referenced id does not exist
-------------|---------------------------|--------------------------------------------
State        | INVALID_STATE             | Source state does not allow the operation
             | NOTHING_TO_INVOICE        | No VALIDATED transactions for the pair
-------------|---------------------------|--------------------------------------------
Concurrency  | CONFLICT                  | Concurrent mutation race lost
             | VOUCHER_CODE_EXHAUSTED    | No free voucher code after N attempts
-------------|---------------------------|--------------------------------------------
Integrity    | INTEGRITY_VIOLATION       | Broken ledger invariant (fatal)
             | STATION_QUARANTINED       | Mutation on a station pending reconciliation
             | IMMUTABILITY_VIOLATION    | Frozen field modified

===============================================================================
HANDLING PATTERNS
===============================================================================

- ValidationError / NotFoundError: surface verbatim, nothing was written.
- InvalidStateError: re-fetch the entity; never coerce.
- ConflictError: re-read and retry. Never treat as InvalidStateError.
- IntegrityViolationError: stop. The station is quarantined until an
  operator runs ``reconcile_station``.
"""

from decimal import Decimal


class FuelLedgerError(Exception):
    """
    Base exception for all fuel ledger errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FUEL_LEDGER_ERROR"


# Validation


class ValidationError(FuelLedgerError):
    """Input rejected before any mutation took place."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class VehicleOwnershipError(ValidationError):
    """Vehicle is registered to a different organization."""

    code: str = "VEHICLE_OWNERSHIP"

    def __init__(self, vehicle_id: str, organization_id: str):
        self.vehicle_id = vehicle_id
        self.organization_id = organization_id
        super().__init__(
            "vehicle_id",
            f"vehicle {vehicle_id} does not belong to organization {organization_id}",
        )


class InactivePartyError(ValidationError):
    """Station or organization is not ACTIVE."""

    code: str = "INACTIVE_PARTY"

    def __init__(self, party_type: str, party_id: str):
        self.party_type = party_type
        self.party_id = party_id
        super().__init__(f"{party_type}_id", f"{party_type} {party_id} is inactive")


class FeeScheduleError(ValidationError):
    """Fee percentage outside the configured bounds."""

    code: str = "FEE_SCHEDULE_OUT_OF_RANGE"

    def __init__(self, field: str, value: Decimal, minimum: Decimal, maximum: Decimal):
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(field, f"{value} is outside [{minimum}, {maximum}]")


class ProtectedUserError(ValidationError):
    """User cannot be removed (master admin or last super admin)."""

    code: str = "PROTECTED_USER"

    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        super().__init__("user_id", reason)


class BackupFormatError(ValidationError):
    """Backup document does not match the expected format."""

    code: str = "BACKUP_FORMAT"

    def __init__(self, reason: str):
        super().__init__("document", reason)


# Lookups


class NotFoundError(FuelLedgerError):
    """Base exception for missing referenced entities."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class OrganizationNotFoundError(NotFoundError):
    code: str = "ORGANIZATION_NOT_FOUND"
    entity_type: str = "Organization"


class StationNotFoundError(NotFoundError):
    code: str = "STATION_NOT_FOUND"
    entity_type: str = "FuelStation"


class VehicleNotFoundError(NotFoundError):
    code: str = "VEHICLE_NOT_FOUND"
    entity_type: str = "Vehicle"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    entity_type: str = "User"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity_type: str = "Transaction"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity_type: str = "Invoice"


# State machine


class InvalidStateError(FuelLedgerError):
    """
    Operation attempted against an entity not in the required source state.

    Recoverable by re-fetching current state. Guards double attestation,
    double payment and rejection of settled invoices.
    """

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        current_state: str,
        required_states: tuple[str, ...],
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.current_state = current_state
        self.required_states = required_states
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: state is {current_state}, "
            f"requires {' or '.join(required_states)}"
        )


class NothingToInvoiceError(FuelLedgerError):
    """Aggregation found no VALIDATED transactions for the station/org pair."""

    code: str = "NOTHING_TO_INVOICE"

    def __init__(self, station_id: str, organization_id: str):
        self.station_id = station_id
        self.organization_id = organization_id
        super().__init__(
            f"No validated transactions to invoice for station {station_id} "
            f"and organization {organization_id}"
        )


# Concurrency


class ConflictError(FuelLedgerError):
    """
    Concurrent mutation race lost.

    The unit of work was rolled back in full. Retry with fresh data.
    """

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str | None, detail: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        target = f"{entity_type} {entity_id}" if entity_id else entity_type
        message = f"Concurrent modification of {target}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VoucherCodeExhaustedError(ConflictError):
    """No unused voucher code was found within the configured attempts."""

    code: str = "VOUCHER_CODE_EXHAUSTED"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__("VoucherCode", None, f"no free code after {attempts} attempts")


# Integrity


class IntegrityViolationError(FuelLedgerError):
    """
    A ledger invariant is broken.

    Fatal: not recovered automatically. The affected station is quarantined
    pending manual reconciliation.
    """

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, invariant: str, station_id: str | None, detail: str):
        self.invariant = invariant
        self.station_id = station_id
        self.detail = detail
        where = f" at station {station_id}" if station_id else ""
        super().__init__(f"Invariant {invariant} violated{where}: {detail}")


class StationQuarantinedError(IntegrityViolationError):
    """Mutation refused: the station is awaiting reconciliation."""

    code: str = "STATION_QUARANTINED"

    def __init__(self, station_id: str, reason: str):
        self.reason = reason
        super().__init__("quarantine", station_id, f"station is quarantined ({reason})")


class ImmutabilityViolationError(IntegrityViolationError):
    """Attempted to modify a frozen field."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            "immutability", None, f"{entity_type} {entity_id}: {reason}"
        )
