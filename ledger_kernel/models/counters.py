"""
Module: ledger_kernel.models.counters
Responsibility: Counter rows backing gap-free numbering.
Architecture position: Kernel > Models.  May import from db/ only.

VoucherNumberCounter holds the last committed voucher number per
(organization, document type).  SequenceCounter holds generic named
sequences (the per-organization audit ``seq``).  Both are only ever read
``FOR UPDATE`` and incremented inside the caller's transaction, so a rolled
back transaction returns its number.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class VoucherNumberCounter(Base):
    __tablename__ = "voucher_number_counters"

    __table_args__ = (
        UniqueConstraint("organization_id", "document_type", name="uq_number_counter"),
        CheckConstraint("last_number >= 0", name="ck_number_counter_positive"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    last_number: Mapped[int] = mapped_column(nullable=False, default=0)


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
