"""
Module: ledger_kernel.models.vat_type
Responsibility: ORM persistence for the global VAT type catalogue.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique; accounts and voucher lines reference it by code.
    - 0 <= rate <= 1.
    - direction is one of output / input / none.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class VatType(Base):
    __tablename__ = "vat_types"

    __table_args__ = (
        UniqueConstraint("code", name="uq_vat_type_code"),
        CheckConstraint("rate >= 0 AND rate <= 1", name="ck_vat_type_rate"),
        CheckConstraint(
            "direction IN ('output', 'input', 'none')",
            name="ck_vat_type_direction",
        ),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    rate: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)

    direction: Mapped[str] = mapped_column(String(10), nullable=False)

    def __repr__(self) -> str:
        return f"<VatType {self.code} {self.rate}>"
