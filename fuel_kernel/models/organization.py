"""
Module: fuel_kernel.models.organization
Responsibility: ORM persistence for public-sector fleet owners.
Architecture position: Kernel > Models.  May import from db/ and
    domain/lifecycle.py only.

Organizations are directory-owned.  The ledger reads them (existence and
ACTIVE status are request preconditions) but never writes them;
``balance_due`` is carried for the directory and backups only.
"""

from decimal import Decimal

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import ScaledDecimal, TrackedBase
from fuel_kernel.db.types import MONEY_PLACES, ZERO_MONEY
from fuel_kernel.domain.lifecycle import PartyStatus


class Organization(TrackedBase):
    """A fleet-owning public body (city hall, department, agency)."""

    __tablename__ = "organizations"

    __table_args__ = (
        UniqueConstraint("tax_id", name="uq_organization_tax_id"),
        Index("idx_organization_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # National registry number (CNPJ in Brazil)
    tax_id: Mapped[str] = mapped_column(String(32), nullable=False)

    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Owed to the platform; maintained outside the ledger core
    balance_due: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_PLACES),
        nullable=False,
        default=ZERO_MONEY,
    )

    status: Mapped[PartyStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PartyStatus.ACTIVE,
    )

    @property
    def is_active(self) -> bool:
        return self.status == PartyStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Organization {self.tax_id}: {self.name}>"
