"""Database layer - engine, base classes, column types and immutability."""

from fuel_kernel.db.base import UUID, Base, ScaledDecimal, TrackedBase, UTCDateTime, UUIDString
from fuel_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
    unit_of_work,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "unit_of_work",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ScaledDecimal",
    "UTCDateTime",
]
