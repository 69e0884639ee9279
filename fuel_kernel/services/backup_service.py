"""
BackupService -- export and import of the full ledger state.

Responsibility:
    Serializes every organization, station (with products), vehicle, user,
    transaction and invoice (with ordered members) into a JSON-ready
    document, and replaces the store contents from such a document.

Architecture position:
    Kernel > Services.  Invoked through ``FuelLedger.export_state()`` and
    ``FuelLedger.import_state()``.

Document format (``format_version`` 1)::

    {
      "format_version": 1,
      "organizations": [...], "stations": [... {"products": [...]}],
      "vehicles": [...], "users": [...], "transactions": [...],
      "invoices": [... {"members": ["<transaction id>", ...]}]
    }

    Every mapped column is explicit on every row.  Monetary and other
    fixed-point values are decimal strings at their column scale,
    timestamps ISO-8601 with offset, ids canonical UUID strings.  Rows are
    ordered by id.  Version stamps are not exported; imported rows start a
    fresh version history.

Invariants enforced:
    - Import recomputes nothing: counters are taken verbatim from the
      document and then verified against the imported rows.  Any mismatch on
      a non-quarantined station rejects the whole import.
    - Export -> import -> export yields an identical document.

Failure modes:
    - BackupFormatError: unknown version, missing section or field, value
      that does not parse, or counters that do not match the rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, inspect, select

from fuel_kernel.db.base import ScaledDecimal, UTCDateTime, UUIDString
from fuel_kernel.db.engine import clear_tables
from fuel_kernel.db.types import quantum, to_decimal
from fuel_kernel.exceptions import BackupFormatError
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.invoice import Invoice, InvoiceMember
from fuel_kernel.models.organization import Organization
from fuel_kernel.models.station import FuelStation, StationProduct
from fuel_kernel.models.transaction import FuelTransaction
from fuel_kernel.models.user import User
from fuel_kernel.models.vehicle import Vehicle
from fuel_kernel.services.balance_ledger import BalanceLedger
from fuel_kernel.services.base import BaseService

logger = get_logger("services.backup")

FORMAT_VERSION = 1

# Section name -> model, in insertion (foreign key) order
SECTIONS: tuple[tuple[str, type], ...] = (
    ("organizations", Organization),
    ("stations", FuelStation),
    ("vehicles", Vehicle),
    ("users", User),
    ("invoices", Invoice),
    ("transactions", FuelTransaction),
)

SKIPPED_COLUMNS = frozenset({"version"})


def _columns(model) -> list:
    return [c for c in inspect(model).columns if c.key not in SKIPPED_COLUMNS]


def _dump_value(column, value: Any) -> Any:
    if value is None:
        return None
    col_type = column.type
    if isinstance(col_type, ScaledDecimal):
        return str(Decimal(value).quantize(quantum(col_type.places)))
    if isinstance(col_type, UTCDateTime):
        return value.isoformat()
    if isinstance(col_type, UUIDString):
        return str(value)
    if isinstance(col_type, Boolean):
        return bool(value)
    return value


def _load_value(section: str, column, raw: Any) -> Any:
    if raw is None:
        if not column.nullable:
            raise BackupFormatError(f"{section}.{column.key} must not be null")
        return None
    col_type = column.type
    try:
        if isinstance(col_type, ScaledDecimal):
            if not isinstance(raw, str):
                raise ValueError("decimal values must be strings")
            return to_decimal(raw, col_type.places, column.key)
        if isinstance(col_type, UTCDateTime):
            parsed = datetime.fromisoformat(raw)
            if parsed.tzinfo is None:
                raise ValueError("timestamp without offset")
            return parsed
        if isinstance(col_type, UUIDString):
            return UUID(raw)
        if isinstance(col_type, Boolean):
            if not isinstance(raw, bool):
                raise ValueError("expected a boolean")
            return raw
    except (TypeError, ValueError) as e:
        raise BackupFormatError(f"{section}.{column.key}: {e}") from e
    if not isinstance(raw, str):
        raise BackupFormatError(f"{section}.{column.key}: expected a string")
    return raw


def dump_row(model, entity) -> dict[str, Any]:
    return {c.key: _dump_value(c, getattr(entity, c.key)) for c in _columns(model)}


def load_row(section: str, model, data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise BackupFormatError(f"{section}: rows must be objects")
    values = {}
    for column in _columns(model):
        if column.key not in data:
            raise BackupFormatError(f"{section}: missing field {column.key!r}")
        values[column.key] = _load_value(section, column, data[column.key])
    return values


class BackupService(BaseService):
    def __init__(self, session, ledger: BalanceLedger):
        super().__init__(session)
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_state(self) -> dict[str, Any]:
        """Snapshot the whole store as a JSON-ready dict."""
        document: dict[str, Any] = {"format_version": FORMAT_VERSION}
        for section, model in SECTIONS:
            rows = self.session.execute(select(model)).scalars().all()
            dumped = []
            for entity in sorted(rows, key=lambda e: str(e.id)):
                row = dump_row(model, entity)
                if model is FuelStation:
                    row["products"] = [
                        dump_row(StationProduct, p)
                        for p in sorted(entity.products, key=lambda p: str(p.id))
                    ]
                elif model is Invoice:
                    row["members"] = [str(m.transaction_id) for m in entity.members]
                dumped.append(row)
            document[section] = dumped

        logger.info(
            "state_exported",
            extra={section: len(document[section]) for section, _ in SECTIONS},
        )
        return document

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_state(self, document: Any) -> dict[str, int]:
        """
        Replace the store contents with ``document``.

        Postconditions:
            The store holds exactly the document's rows; every
            non-quarantined station's counters match its transactions.

        Returns:
            Row count per section.

        Raises:
            BackupFormatError: See module docstring.  Nothing is written
                (the caller's unit of work rolls back).
        """
        parsed = self._parse(document)

        clear_tables(self.session)
        self.session.expire_all()

        for section, model in SECTIONS:
            for values, extra in parsed[section]:
                entity = model(**values)
                self.session.add(entity)
                if model is FuelStation:
                    for product_values in extra:
                        self.session.add(StationProduct(**product_values))
            self.session.flush()

        for values, members in parsed["invoices"]:
            for position, transaction_id in enumerate(members):
                self.session.add(
                    InvoiceMember(
                        invoice_id=values["id"],
                        transaction_id=transaction_id,
                        position=position,
                    )
                )
        self.session.flush()
        self.session.expire_all()

        for values, _ in parsed["stations"]:
            if values["quarantine_reason"] is not None:
                continue
            report = self._ledger.audit(values["id"])
            if not report.is_consistent:
                first = report.discrepancies[0]
                raise BackupFormatError(
                    f"station {values['id']} does not reconcile: "
                    f"{first.invariant} ({first.detail})"
                )

        counts = {section: len(parsed[section]) for section, _ in SECTIONS}
        logger.warning("state_imported", extra=counts)
        return counts

    def _parse(self, document: Any) -> dict[str, list[tuple[dict, Any]]]:
        if not isinstance(document, dict):
            raise BackupFormatError("document must be an object")
        version = document.get("format_version")
        if version != FORMAT_VERSION:
            raise BackupFormatError(f"unsupported format_version {version!r}")

        parsed: dict[str, list[tuple[dict, Any]]] = {}
        for section, model in SECTIONS:
            rows = document.get(section)
            if not isinstance(rows, list):
                raise BackupFormatError(f"section {section!r} missing or not a list")
            entries = []
            for row in rows:
                values = load_row(section, model, row)
                extra: Any = None
                if model is FuelStation:
                    products = row.get("products")
                    if not isinstance(products, list):
                        raise BackupFormatError("stations: missing field 'products'")
                    extra = [load_row("stations.products", StationProduct, p) for p in products]
                    for product in extra:
                        if product["station_id"] != values["id"]:
                            raise BackupFormatError(
                                f"product {product['id']} listed under the wrong station"
                            )
                elif model is Invoice:
                    members = row.get("members")
                    if not isinstance(members, list) or not members:
                        raise BackupFormatError(
                            f"invoice {values['id']} needs a non-empty members list"
                        )
                    try:
                        extra = [UUID(m) for m in members]
                    except (TypeError, ValueError, AttributeError) as e:
                        raise BackupFormatError(f"invoices.members: {e}") from e
                entries.append((values, extra))
            parsed[section] = entries
        return parsed
