"""
Module: ledger_kernel.models.accounting_period
Responsibility: ORM persistence for accounting years and their lock boundary.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (organization_id, year) is unique.
    - start_date <= end_date.
    - Periods of one organization neither overlap nor leave gaps (enforced by
      PeriodService at creation).
    - locked_until changes only through PeriodService.lock_period /
      unlock_period.  A document dated on or before locked_until cannot be
      posted.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountingPeriod(TrackedBase):
    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint("organization_id", "year", name="uq_period_org_year"),
        CheckConstraint("start_date <= end_date", name="ck_period_dates"),
        Index("idx_period_org_dates", "organization_id", "start_date", "end_date"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    locked_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<AccountingPeriod {self.year}: {self.start_date}..{self.end_date}>"

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
