"""
Module: ledger_kernel.models.voucher
Responsibility: ORM persistence for vouchers (invoices, credit notes, manual
    and purchase vouchers) and their lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - uq_voucher_number: (organization_id, document_type, number) is unique.
      This index is the last line of defence against awarding the same
      number twice; the posting orchestrator retries on its violation.
    - A draft has no number; a booked voucher always has one.
    - Once booked, header amounts and lines are immutable; only ``status``
      may move between the payment sub-states (db/immutability.py).
    - A voucher exclusively owns its lines (cascade delete, drafts only).
    - A voucher is reversed at most once (uq_voucher_reverses).
    - Line accounts exist in the voucher's organization (composite foreign key).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString


class Voucher(TrackedBase):
    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "document_type", "number",
            name="uq_voucher_number",
        ),
        UniqueConstraint("reverses_id", name="uq_voucher_reverses"),
        CheckConstraint(
            "(status = 'draft' AND number IS NULL) "
            "OR (status <> 'draft' AND number IS NOT NULL AND number > 0)",
            name="ck_voucher_number_status",
        ),
        CheckConstraint(
            "status IN ('draft', 'booked', 'paid', 'overdue', 'overpaid')",
            name="ck_voucher_status",
        ),
        Index("idx_voucher_org_type", "organization_id", "document_type"),
        Index("idx_voucher_org_status", "organization_id", "status"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
    )

    # Null until booked
    number: Mapped[int | None] = mapped_column(nullable=True)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amounts_include_vat: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    total_debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_vat: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    booked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    booked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Supplier invoice number on purchase vouchers
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    contact_guid: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Set on credit notes / reversing vouchers
    reverses_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    lines: Mapped[list["VoucherLine"]] = relationship(
        back_populates="voucher",
        cascade="all, delete-orphan",
        order_by="VoucherLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.document_type} #{self.number} ({self.status})>"

    @property
    def is_booked(self) -> bool:
        return self.status != "draft"


class VoucherLine(Base):
    __tablename__ = "voucher_lines"

    __table_args__ = (
        UniqueConstraint("voucher_id", "line_no", name="uq_voucher_line_no"),
        ForeignKeyConstraint(
            ["organization_id", "account_number"],
            ["accounts.organization_id", "accounts.account_number"],
            name="fk_voucher_line_account",
        ),
        CheckConstraint("side IN ('debit', 'credit')", name="ck_line_side"),
        CheckConstraint("vat_rate >= 0 AND vat_rate <= 1", name="ck_line_vat_rate"),
        CheckConstraint("discount >= 0 AND discount < 1", name="ck_line_discount"),
        CheckConstraint("quantity > 0", name="ck_line_quantity"),
        Index("idx_line_voucher", "voucher_id"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id", ondelete="CASCADE"),
        nullable=False,
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    side: Mapped[str] = mapped_column(String(10), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    unit_amount_excl_vat: Mapped[Decimal] = mapped_column(nullable=False)

    unit_amount_incl_vat: Mapped[Decimal] = mapped_column(nullable=False)

    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    vat_code: Mapped[str | None] = mapped_column(
        String(20),
        ForeignKey("vat_types.code"),
        nullable=True,
    )

    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(9, 6), nullable=False, default=Decimal("0")
    )

    # Line totals: total_amount excl. VAT, incl. VAT, and the VAT part
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount_incl_vat: Mapped[Decimal] = mapped_column(nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    voucher: Mapped[Voucher] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<VoucherLine {self.line_no} {self.side} {self.account_number} {self.total_amount_incl_vat}>"
