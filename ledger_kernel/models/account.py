"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for an organization's chart of accounts.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (organization_id, account_number) is unique.
    - vat_code, when set, references a known VAT type (foreign key).
    - Accounts referenced by ledger entries are deactivated, never deleted
      (db/immutability.py blocks the delete).
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class Account(TrackedBase):
    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "account_number", name="uq_account_number"),
        Index("idx_account_org_active", "organization_id", "is_active"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Default VAT code suggested for lines on this account
    vat_code: Mapped[str | None] = mapped_column(
        String(20),
        ForeignKey("vat_types.code"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Account {self.account_number}: {self.name}>"
