"""
Module: fuel_kernel.db.base
Responsibility: Declarative base classes and custom column types for all
    SQLAlchemy ORM models.  Provides the UUID primary key convention,
    fixed-point decimal storage, timezone-safe timestamps and the
    TrackedBase mixin.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys on every model.
    - Fixed-point storage: ScaledDecimal persists Decimal values as scaled
      integers, so no backend (SQLite included) ever holds a float.  A value
      with more fractional digits than the column scale is refused at bind
      time instead of being rounded.
    - Timestamps are always timezone-aware UTC on the Python side.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(str(value))
        return None


class ScaledDecimal(TypeDecorator):
    """
    Decimal stored as a BigInteger count of ``10**-places`` units.

    Contract:
        ``ScaledDecimal(2)`` stores Decimal("12.34") as 1234 and loads it back
        as Decimal("12.34").  Aggregates (SUM) over the column come back with
        the same conversion.

    Guarantees:
        - Exact round trip for every value representable at the scale.
        - ValueError on bind if the value has more fractional digits than the
          scale (no silent rounding at the storage boundary).
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.places = places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        dec = value if isinstance(value, Decimal) else Decimal(str(value))
        scaled = dec.scaleb(self.places)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"{value!r} has more than {self.places} decimal places"
            )
        return int(scaled)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.places)

    @property
    def python_type(self):
        return Decimal


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as naive UTC.

    SQLite drops offsets on DATETIME columns; normalizing to naive UTC on the
    way in and re-attaching UTC on the way out keeps values comparable on
    every backend.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to UTCDateTime -- always timezone-aware UTC.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with record timestamps.

    Services stamp both columns from their injected Clock so deterministic
    clocks in tests and backups round-trip exact values.  The Python-side
    defaults only cover rows written outside a service.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=_utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# Re-export UUID for convenience
UUID = PyUUID
