"""
Period lock guard -- pure check of a document date against a lock boundary.

A period locked until D rejects every document dated on or before D.  What
happens when no period covers the date is a compliance decision expressed as
MissingPeriodPolicy:

    OPEN    the date is postable (organizations that never defined periods
            keep working).  This is the default.
    CLOSED  posting fails with PeriodNotFoundError.
"""

from datetime import date
from enum import Enum

from ledger_kernel.domain.dtos import AccountingPeriodInfo
from ledger_kernel.exceptions import PeriodLockedError, PeriodNotFoundError


class MissingPeriodPolicy(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


def ensure_period_unlocked(
    organization_id,
    document_date: date,
    period: AccountingPeriodInfo | None,
    policy: MissingPeriodPolicy = MissingPeriodPolicy.OPEN,
) -> None:
    """
    Raise if ``document_date`` may not be posted.

    Args:
        organization_id: Organization owning the period (for error context).
        document_date: Date of the voucher.
        period: The period covering ``document_date``, or None.
        policy: Behaviour when ``period`` is None.

    Raises:
        PeriodLockedError: If ``period.locked_until >= document_date``.
        PeriodNotFoundError: If no period exists and policy is CLOSED.
    """
    if period is None:
        if MissingPeriodPolicy(policy) is MissingPeriodPolicy.CLOSED:
            raise PeriodNotFoundError(
                str(organization_id), document_date.isoformat()
            )
        return

    if period.locked_until is not None and period.locked_until >= document_date:
        raise PeriodLockedError(
            locked_until=period.locked_until,
            document_date=document_date,
            organization_id=str(organization_id),
        )
