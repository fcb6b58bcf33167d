"""
VoucherNumberingAuthority -- gap-free voucher numbers per (organization, document type).

Responsibility:
    Assigns the next voucher number inside the posting transaction.

Strategy:
    Two mechanisms guard the same property.

    1. Counter row with lock.  One ``voucher_number_counters`` row per
       (organization, document type) is read ``SELECT ... FOR UPDATE`` and
       incremented.  Concurrent posters for the same sequence queue on the
       row lock (PostgreSQL) or on the ``BEGIN IMMEDIATE`` write lock
       (SQLite), so the second one reads the first one's committed value.

    2. Unique index ``uq_voucher_number`` on the vouchers table.  If the
       counter is ever out of step with the vouchers (restored backup,
       legacy import, manual repair) the insert fails, the orchestrator
       rolls back the whole transaction and retries with ``resync=True``,
       which lifts the counter to the highest committed number first.

    The number is only visible once the transaction commits; a rolled back
    attempt releases it, so the committed sequence stays gap-free.

Invariants enforced:
    - Strictly increasing, never reused, per (organization, document type).
    - Committed numbers follow commit order.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.counters import VoucherNumberCounter
from ledger_kernel.models.voucher import Voucher

logger = get_logger("services.numbering")


class VoucherNumberingAuthority:
    """
    Contract:
        ``next_number`` must be called inside the transaction that persists
        the numbered voucher.

    Non-goals:
        - Does NOT commit.
        - Does NOT retry; retrying the whole transaction is the
          orchestrator's job.
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(
        self, organization_id: UUID, document_type: DocumentTypeClass
    ) -> VoucherNumberCounter | None:
        return self._session.execute(
            select(VoucherNumberCounter)
            .where(
                VoucherNumberCounter.organization_id == organization_id,
                VoucherNumberCounter.document_type == document_type.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def highest_committed(self, organization_id: UUID, document_type: DocumentTypeClass) -> int:
        """Highest number present on vouchers of this sequence, 0 if none."""
        highest = self._session.execute(
            select(func.max(Voucher.number)).where(
                Voucher.organization_id == organization_id,
                Voucher.document_type == document_type.value,
            )
        ).scalar_one_or_none()
        return int(highest or 0)

    def _create_counter(
        self, organization_id: UUID, document_type: DocumentTypeClass
    ) -> VoucherNumberCounter:
        """First use of a sequence: seed the counter from existing vouchers."""
        savepoint = self._session.begin_nested()
        try:
            counter = VoucherNumberCounter(
                organization_id=organization_id,
                document_type=document_type.value,
                last_number=self.highest_committed(organization_id, document_type),
            )
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            logger.info(
                "numbering_counter_created",
                extra={
                    "document_type": document_type.value,
                    "seed": counter.last_number,
                },
            )
            return counter
        except IntegrityError:
            savepoint.rollback()
            counter = self._lock_counter(organization_id, document_type)
            if counter is None:
                raise
            return counter

    def next_number(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass,
        resync: bool = False,
    ) -> int:
        """
        Claim the next number of the sequence.

        Args:
            organization_id: Owning organization.
            document_type: Sequence selector.
            resync: Lift the counter to the highest committed number before
                incrementing.  Set on retries after a number conflict.

        Returns:
            The claimed number (>= 1).
        """
        counter = self._lock_counter(organization_id, document_type)
        if counter is None:
            counter = self._create_counter(organization_id, document_type)
        elif resync:
            highest = self.highest_committed(organization_id, document_type)
            if highest > counter.last_number:
                logger.warning(
                    "numbering_counter_resynced",
                    extra={
                        "document_type": document_type.value,
                        "counter_value": counter.last_number,
                        "highest_committed": highest,
                    },
                )
                counter.last_number = highest

        counter.last_number += 1
        self._session.flush()
        logger.debug(
            "voucher_number_claimed",
            extra={"document_type": document_type.value, "number": counter.last_number},
        )
        return counter.last_number

