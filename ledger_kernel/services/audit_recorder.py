"""
AuditRecorder -- append-only, hash-chained audit log.

Responsibility:
    Writes one AuditRecord per mutation inside the caller's transaction,
    returns an organization's trail for one record, and verifies the hash
    chain.

Architecture position:
    Kernel > Services.  Called by the posting orchestrator, the period
    service and the draft lifecycle operations.

Invariants enforced:
    - Append-only; records are never updated or deleted.
    - ``seq`` strictly increasing per organization (SequenceService).
    - hash = H(organization | seq | table | record | operation |
      payload_hash | prev_hash).

Failure modes:
    - Any failure to write propagates.  Audit is a compliance requirement,
      so a failed audit write aborts the surrounding transaction rather
      than being logged and skipped.
    - AuditChainBrokenError from verify_chain() on tampering.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AuditRecordInfo
from ledger_kernel.exceptions import AuditChainBrokenError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_record import AuditOperation, AuditRecord
from ledger_kernel.services.sequence_service import SequenceService, audit_sequence_name
from ledger_kernel.utils.hashing import hash_audit_record, hash_payload, to_json_ready

logger = get_logger("services.audit")


def _to_info(record: AuditRecord) -> AuditRecordInfo:
    return AuditRecordInfo(
        id=record.id,
        organization_id=record.organization_id,
        seq=record.seq,
        user_id=record.user_id,
        table_name=record.table_name,
        record_id=record.record_id,
        operation=record.operation,
        changed_data=record.changed_data,
        occurred_at=record.occurred_at,
        hash=record.hash,
    )


class AuditRecorder:
    """
    Contract:
        ``record`` must run inside the transaction of the mutation it
        describes.  It flushes, never commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def _last_hash(self, organization_id: UUID) -> str | None:
        return self._session.execute(
            select(AuditRecord.hash)
            .where(AuditRecord.organization_id == organization_id)
            .order_by(AuditRecord.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        organization_id: UUID,
        user_id: UUID | None,
        table_name: str,
        record_id: UUID | str,
        operation: AuditOperation,
        changed_data: dict[str, Any],
    ) -> AuditRecordInfo:
        """
        Append an audit record.

        The counter lock taken for ``seq`` also serializes chain extension,
        so reading the previous hash afterwards is race-free.
        """
        operation = AuditOperation(operation)
        seq = self._sequences.next_value(audit_sequence_name(organization_id))
        prev_hash = self._last_hash(organization_id)

        data = to_json_ready(changed_data)
        payload_hash = hash_payload(data)
        record_hash = hash_audit_record(
            organization_id=str(organization_id),
            seq=seq,
            table_name=table_name,
            record_id=str(record_id),
            operation=operation.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        record = AuditRecord(
            organization_id=organization_id,
            seq=seq,
            user_id=user_id,
            table_name=table_name,
            record_id=str(record_id),
            operation=operation.value,
            changed_data=data,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=record_hash,
        )
        self._session.add(record)
        self._session.flush()

        logger.info(
            "audit_record_written",
            extra={
                "seq": seq,
                "table_name": table_name,
                "record_id": str(record_id),
                "operation": operation.value,
            },
        )
        return _to_info(record)

    def trail(
        self,
        organization_id: UUID,
        table_name: str,
        record_id: UUID | str,
    ) -> tuple[AuditRecordInfo, ...]:
        """Audit records of one row, oldest first."""
        records = self._session.execute(
            select(AuditRecord)
            .where(
                AuditRecord.organization_id == organization_id,
                AuditRecord.table_name == table_name,
                AuditRecord.record_id == str(record_id),
            )
            .order_by(AuditRecord.seq)
        ).scalars().all()
        return tuple(_to_info(r) for r in records)

    def verify_chain(self, organization_id: UUID) -> int:
        """
        Recompute every hash of the organization's chain.

        Returns:
            Number of records verified.

        Raises:
            AuditChainBrokenError: At the first record whose payload hash,
                link or chained hash does not match.
        """
        records = self._session.execute(
            select(AuditRecord)
            .where(AuditRecord.organization_id == organization_id)
            .order_by(AuditRecord.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for record in records:
            payload_hash = hash_payload(record.changed_data)
            expected = hash_audit_record(
                organization_id=str(organization_id),
                seq=record.seq,
                table_name=record.table_name,
                record_id=record.record_id,
                operation=record.operation,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )
            if (
                payload_hash != record.payload_hash
                or record.prev_hash != prev_hash
                or record.hash != expected
            ):
                logger.error(
                    "audit_chain_broken",
                    extra={"seq": record.seq, "record_id": str(record.id)},
                )
                raise AuditChainBrokenError(
                    organization_id=str(organization_id),
                    record_id=str(record.id),
                    expected_hash=expected,
                    actual_hash=record.hash,
                )
            prev_hash = record.hash

        logger.info("audit_chain_verified", extra={"record_count": len(records)})
        return len(records)
