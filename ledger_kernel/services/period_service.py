"""
PeriodService -- accounting years and their lock boundary.

Responsibility:
    Creates accounting periods, locks and unlocks them, and resolves the
    period covering a document date for the posting guard.

Architecture position:
    Kernel > Services.  The lock check itself is the pure function
    ``domain.period_lock.ensure_period_unlocked``; this service only feeds it.

Invariants enforced:
    - Periods of one organization neither overlap nor leave gaps: a new
      period starts the day after the latest one ends, or ends the day
      before the earliest one starts.
    - ``locked_until`` lies within the period and only moves forward through
      lock_period; unlock_period clears it.  Both are audited.

Failure modes:
    - PeriodOverlapError on duplicate year, overlap or gap.
    - PeriodNotFoundError when locking a year that has no period.
    - ValidationError when ``locked_until`` is outside the period or behind
      the current boundary.
"""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountingPeriodInfo
from ledger_kernel.exceptions import PeriodNotFoundError, PeriodOverlapError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.accounting_period import AccountingPeriod
from ledger_kernel.models.audit_record import AuditOperation
from ledger_kernel.services.audit_recorder import AuditRecorder
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")

PERIOD_TABLE = "accounting_period"


def _to_info(period: AccountingPeriod) -> AccountingPeriodInfo:
    return AccountingPeriodInfo(
        organization_id=period.organization_id,
        year=period.year,
        start_date=period.start_date,
        end_date=period.end_date,
        locked_until=period.locked_until,
    )


class PeriodService(BaseService[AccountingPeriod]):
    """
    Contract:
        All methods flush only; the caller commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = AuditRecorder(session, self._clock)

    def _periods(self, organization_id: UUID) -> list[AccountingPeriod]:
        return list(
            self.session.execute(
                select(AccountingPeriod)
                .where(AccountingPeriod.organization_id == organization_id)
                .order_by(AccountingPeriod.start_date)
            ).scalars().all()
        )

    def _load_for_update(self, organization_id: UUID, year: int) -> AccountingPeriod:
        period = self.session.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.year == year,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(organization_id), f"year {year}")
        return period

    def create_period(
        self,
        organization_id: UUID,
        year: int,
        start_date: date | None = None,
        end_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> AccountingPeriodInfo:
        """
        Create an accounting year.

        Args:
            organization_id: Owning organization.
            year: Label of the year, unique per organization.
            start_date: Defaults to January 1st of ``year``.
            end_date: Defaults to December 31st of ``year``.
            actor_id: User performing the change.

        Raises:
            ValidationError: If start_date is after end_date.
            PeriodOverlapError: Duplicate year, overlap or gap.
        """
        start_date = start_date or date(year, 1, 1)
        end_date = end_date or date(year, 12, 31)
        if start_date > end_date:
            raise ValidationError({"start_date": "Start date must not be after end date"})

        existing = self._periods(organization_id)
        for other in existing:
            if other.year == year:
                raise PeriodOverlapError(year, f"year {year} already exists")
            if start_date <= other.end_date and other.start_date <= end_date:
                raise PeriodOverlapError(year, f"overlaps accounting year {other.year}")

        if existing:
            earliest, latest = existing[0], existing[-1]
            follows_latest = start_date == latest.end_date + timedelta(days=1)
            precedes_earliest = end_date == earliest.start_date - timedelta(days=1)
            if not (follows_latest or precedes_earliest):
                raise PeriodOverlapError(
                    year,
                    f"must start on {(latest.end_date + timedelta(days=1)).isoformat()} "
                    f"or end on {(earliest.start_date - timedelta(days=1)).isoformat()}",
                )

        period = AccountingPeriod(
            organization_id=organization_id,
            year=year,
            start_date=start_date,
            end_date=end_date,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        self._audit.record(
            organization_id=organization_id,
            user_id=actor_id,
            table_name=PERIOD_TABLE,
            record_id=period.id,
            operation=AuditOperation.INSERT,
            changed_data={
                "year": year,
                "start_date": start_date,
                "end_date": end_date,
            },
        )
        logger.info(
            "period_created",
            extra={"year": year, "start_date": start_date, "end_date": end_date},
        )
        return _to_info(period)

    def get_period(self, organization_id: UUID, year: int) -> AccountingPeriodInfo | None:
        period = self.session.execute(
            select(AccountingPeriod).where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.year == year,
            )
        ).scalar_one_or_none()
        return _to_info(period) if period is not None else None

    def get_period_for_date(
        self, organization_id: UUID, check_date: date
    ) -> AccountingPeriodInfo | None:
        """The period whose date range contains ``check_date``, or None."""
        period = self.session.execute(
            select(AccountingPeriod).where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.start_date <= check_date,
                AccountingPeriod.end_date >= check_date,
            )
        ).scalar_one_or_none()
        return _to_info(period) if period is not None else None

    def list_periods(self, organization_id: UUID) -> tuple[AccountingPeriodInfo, ...]:
        return tuple(_to_info(p) for p in self._periods(organization_id))

    def lock_period(
        self,
        organization_id: UUID,
        year: int,
        locked_until: date | None = None,
        actor_id: UUID | None = None,
    ) -> AccountingPeriodInfo:
        """
        Set the lock boundary of an accounting year.

        Documents dated on or before ``locked_until`` can no longer be
        posted.  Without ``locked_until`` the whole year is locked.

        Raises:
            PeriodNotFoundError: The organization has no period for ``year``.
            ValidationError: ``locked_until`` is outside the period or
                earlier than the current boundary.
        """
        period = self._load_for_update(organization_id, year)
        locked_until = locked_until or period.end_date

        if not period.contains_date(locked_until):
            raise ValidationError(
                {"locked_until": f"{locked_until.isoformat()} is outside accounting year {year}"}
            )
        before = period.locked_until
        if before is not None and locked_until < before:
            raise ValidationError(
                {
                    "locked_until": (
                        f"Period {year} is already locked until {before.isoformat()}; "
                        "unlock it before moving the boundary back"
                    )
                }
            )

        period.locked_until = locked_until
        period.updated_by_id = actor_id
        self.session.flush()

        self._audit.record(
            organization_id=organization_id,
            user_id=actor_id,
            table_name=PERIOD_TABLE,
            record_id=period.id,
            operation=AuditOperation.LOCK,
            changed_data={"year": year, "before": before, "after": locked_until},
        )
        logger.info(
            "period_locked",
            extra={"year": year, "locked_until": locked_until},
        )
        return _to_info(period)

    def unlock_period(
        self,
        organization_id: UUID,
        year: int,
        actor_id: UUID | None = None,
    ) -> AccountingPeriodInfo:
        """Clear the lock boundary.  Raises PeriodNotFoundError."""
        period = self._load_for_update(organization_id, year)
        before = period.locked_until
        period.locked_until = None
        period.updated_by_id = actor_id
        self.session.flush()

        self._audit.record(
            organization_id=organization_id,
            user_id=actor_id,
            table_name=PERIOD_TABLE,
            record_id=period.id,
            operation=AuditOperation.UNLOCK,
            changed_data={"year": year, "before": before, "after": None},
        )
        logger.warning("period_unlocked", extra={"year": year, "previous_lock": before})
        return _to_info(period)
