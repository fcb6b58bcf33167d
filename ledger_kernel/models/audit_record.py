"""
Module: ledger_kernel.models.audit_record
Responsibility: ORM persistence for the append-only, hash-chained audit log.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py).
    - seq is unique and strictly increasing per organization (allocated by
      SequenceService under a row lock).
    - hash = H(organization | seq | table | record | operation |
      payload_hash | prev_hash); prev_hash is None only for an
      organization's first record.

Every booking, draft mutation, payment status change, reversal and period
lock change writes one AuditRecord in the same transaction as the change.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditOperation(str, Enum):
    """Kinds of mutation recorded in the audit log."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BOOK = "BOOK"
    STATUS = "STATUS"
    REVERSE = "REVERSE"
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"


class AuditRecord(Base):
    __tablename__ = "audit_records"

    __table_args__ = (
        UniqueConstraint("organization_id", "seq", name="uq_audit_org_seq"),
        CheckConstraint(
            "operation IN ('INSERT', 'UPDATE', 'DELETE', 'BOOK', 'STATUS', "
            "'REVERSE', 'LOCK', 'UNLOCK')",
            name="ck_audit_operation",
        ),
        Index("idx_audit_record", "organization_id", "table_name", "record_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(nullable=False)

    # Null for system actions
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    table_name: Mapped[str] = mapped_column(String(64), nullable=False)

    record_id: Mapped[str] = mapped_column(String(64), nullable=False)

    operation: Mapped[str] = mapped_column(String(20), nullable=False)

    changed_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditRecord #{self.seq} {self.operation} {self.table_name}:{self.record_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
