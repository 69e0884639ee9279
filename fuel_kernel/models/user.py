"""
Module: fuel_kernel.models.user
Responsibility: ORM persistence for platform users.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycle.py only.

Authentication is out of scope; users exist for the master-admin seed, the
delete protections and backup round-trips.  ``username`` is unique, which is
what makes the seed an idempotent upsert.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import TrackedBase, UUIDString
from fuel_kernel.domain.lifecycle import UserRole


class User(TrackedBase):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
    )

    username: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[UserRole] = mapped_column(String(20), nullable=False)

    # Scope: fleet managers belong to an organization, station users to a station
    organization_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=True,
    )
    station_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("fuel_stations.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role})>"
