"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per sequence name.  Used for the
    per-organization audit ``seq``.  The counter row is read
    ``SELECT ... FOR UPDATE`` and incremented inside the caller's
    transaction; a rollback returns the value.

Failure modes:
    - IntegrityError on concurrent first use of a name: handled with a
      savepoint and a locked re-read.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.counters import SequenceCounter

logger = get_logger("services.sequence")


def audit_sequence_name(organization_id) -> str:
    return f"audit:{organization_id}"


class SequenceService:
    """
    Transactional named sequences.

    Guarantees:
        - Strictly monotonic per name; never computed as aggregate max + 1.
        - Gap-free under normal operation; a rolled back transaction does
          not consume its value.

    Non-goals:
        - Does NOT commit.
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Return the next value of ``sequence_name`` (starting at 1).

        Postconditions:
            - The counter row stays locked until the transaction ends.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int:
        """Current value without incrementing; 0 for an unused name."""
        value = self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return value or 0
