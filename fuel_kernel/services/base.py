"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    service in the kernel layer, plus the input coercion helpers services
    share.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The FuelLedger orchestrator
    (or a test harness) owns commit/rollback, which is what makes each
    ledger operation all-or-nothing.
"""

from abc import ABC
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuel_kernel.db.base import Base
from fuel_kernel.db.types import to_decimal
from fuel_kernel.exceptions import NotFoundError, ValidationError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all ledger services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``fuel_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _get(self, model: type[Base], entity_id: UUID, not_found: type[NotFoundError]):
        entity = self.session.get(model, coerce_uuid(entity_id, not_found))
        if entity is None:
            raise not_found(str(entity_id))
        return entity

    def _get_for_update(
        self,
        model: type[Base],
        entity_id: UUID,
        not_found: type[NotFoundError],
    ):
        """Load ``entity_id`` with a row lock and fresh column values."""
        entity = self.session.execute(
            select(model)
            .where(model.id == coerce_uuid(entity_id, not_found))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise not_found(str(entity_id))
        return entity


def coerce_uuid(value: Any, not_found: type[NotFoundError]) -> UUID:
    """Accept a UUID or its string form; anything else is an unknown id."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise not_found(str(value)) from e


def require_positive(value: Any, places: int, field: str) -> Decimal:
    """Coerce ``value`` to a fixed-point Decimal and require it to be > 0."""
    try:
        dec = to_decimal(value, places, field)
    except ValueError as e:
        raise ValidationError(field, str(e)) from e
    if dec <= 0:
        raise ValidationError(field, f"must be strictly positive, got {dec}")
    return dec


def require_non_negative(value: Any, places: int, field: str) -> Decimal:
    try:
        dec = to_decimal(value, places, field)
    except ValueError as e:
        raise ValidationError(field, str(e)) from e
    if dec < 0:
        raise ValidationError(field, f"must not be negative, got {dec}")
    return dec


def require_text(value: Any, field: str) -> str:
    """Return ``value`` stripped; empty or non-string input is rejected."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string")
    return value.strip()


def require_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"{value!r} is not one of: {allowed}") from e
