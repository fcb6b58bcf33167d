"""
Module: ledger_kernel.models.ledger_entry
Responsibility: ORM persistence for the append-only general ledger: one row
    per account movement of a booked voucher, VAT split included.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Write-once: never updated or deleted (db/immutability.py).
    - amount > 0; the side carries the direction.
    - The account exists in the entry's organization (composite foreign key).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    __table_args__ = (
        ForeignKeyConstraint(
            ["organization_id", "account_number"],
            ["accounts.organization_id", "accounts.account_number"],
            name="fk_ledger_entry_account",
        ),
        CheckConstraint("amount > 0", name="ck_ledger_entry_amount"),
        CheckConstraint("side IN ('debit', 'credit')", name="ck_ledger_entry_side"),
        Index("idx_ledger_org_account_date", "organization_id", "account_number", "entry_date"),
        Index("idx_ledger_voucher", "voucher_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=False,
    )

    voucher_number: Mapped[int] = mapped_column(nullable=False)

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    side: Mapped[str] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    vat_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.account_number} {self.side} {self.amount}>"
