"""
Module: ledger_kernel.models.organization
Responsibility: ORM persistence for the tenant boundary.
Architecture position: Kernel > Models.  May import from db/ only.

Every other ledger table carries ``organization_id``.  Services never
address a row by id alone; the organization is always part of the filter.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class Organization(TrackedBase):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    base_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="DKK",
    )

    # VAT-exempt organizations book lines without VAT
    is_vat_free: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return f"<Organization {self.name}>"
