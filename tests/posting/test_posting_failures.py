"""
Failure handling of the posting transaction.

Verifies:
- A voucher number conflict is retried with a resynchronized counter
- Retries are bounded and surface NumberingConflictError, whether the
  number is claimed by post, book or reverse
- Lock waits surface PostingTimeoutError
- A failing audit write rolls back the whole posting and frees the number
- Other database failures surface StorageError chained to the cause
"""

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.status import VoucherStatus
from ledger_kernel.exceptions import (
    NumberingConflictError,
    PostingTimeoutError,
    StorageError,
)
from ledger_kernel.models.counters import VoucherNumberCounter
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.voucher import Voucher
from ledger_kernel.services.audit_recorder import AuditRecorder
from ledger_kernel.services.numbering_service import VoucherNumberingAuthority

MANUAL = DocumentTypeClass.MANUAL_VOUCHER


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def _number_conflict() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO vouchers ...",
        {},
        Exception(
            "UNIQUE constraint failed: vouchers.organization_id, "
            "vouchers.document_type, vouchers.number"
        ),
    )


class TestNumberingConflict:
    def test_desynchronized_counter_is_retried(
        self, kernel, org, make_draft, session_factory, captured_logs
    ):
        kernel.post(org.id, MANUAL, make_draft())

        # Counter behind the committed vouchers, as after a restored backup
        with session_factory() as session:
            session.execute(
                update(VoucherNumberCounter)
                .where(VoucherNumberCounter.organization_id == org.id)
                .values(last_number=0)
            )
            session.commit()

        result = kernel.post(org.id, MANUAL, make_draft())

        assert result.number == 2
        messages = [r["message"] for r in captured_logs()]
        assert "numbering_conflict_retry" in messages
        assert "numbering_counter_resynced" in messages

    def test_retries_are_bounded(self, kernel, org, make_draft, monkeypatch, count_rows):
        calls = []

        def always_conflicting(self, organization_id, document_type, resync=False):
            calls.append(resync)
            raise _number_conflict()

        monkeypatch.setattr(VoucherNumberingAuthority, "next_number", always_conflicting)

        with pytest.raises(NumberingConflictError) as exc_info:
            kernel.post(org.id, MANUAL, make_draft())

        max_attempts = kernel.settings.numbering_max_retries
        assert exc_info.value.attempts == max_attempts
        assert exc_info.value.document_type == MANUAL.value
        assert exc_info.value.code == "NUMBERING_CONFLICT"
        assert len(calls) == max_attempts
        assert calls[0] is False
        assert all(calls[1:])
        assert count_rows(Voucher) == 0

    def test_booking_a_draft_surfaces_numbering_conflict(
        self, kernel, org, make_draft, monkeypatch, captured_logs
    ):
        draft = kernel.create_draft(org.id, MANUAL, make_draft())

        def always_conflicting(self, organization_id, document_type, resync=False):
            raise _number_conflict()

        monkeypatch.setattr(VoucherNumberingAuthority, "next_number", always_conflicting)

        with pytest.raises(NumberingConflictError) as exc_info:
            kernel.book(org.id, draft.guid)

        assert exc_info.value.document_type == MANUAL.value
        assert exc_info.value.attempts == kernel.settings.numbering_max_retries
        assert kernel.get_voucher(org.id, draft.guid).status is VoucherStatus.DRAFT
        retries = [r for r in captured_logs() if r["message"] == "numbering_conflict_retry"]
        assert {r["cause"] for r in retries} == {"voucher number conflict"}

    def test_reversal_surfaces_numbering_conflict(
        self, kernel, org, make_draft, monkeypatch, count_rows
    ):
        original = kernel.post(org.id, DocumentTypeClass.INVOICE, make_draft())

        def always_conflicting(self, organization_id, document_type, resync=False):
            raise _number_conflict()

        monkeypatch.setattr(VoucherNumberingAuthority, "next_number", always_conflicting)

        with pytest.raises(NumberingConflictError) as exc_info:
            kernel.reverse(org.id, original.guid)

        assert exc_info.value.document_type == DocumentTypeClass.CREDIT_NOTE.value
        assert exc_info.value.attempts == kernel.settings.numbering_max_retries
        assert count_rows(Voucher) == 1

    def test_exhausted_serialization_failure_names_its_cause(
        self, kernel, org, make_draft, monkeypatch
    ):
        booked = kernel.post(org.id, MANUAL, make_draft())

        def serialization_failure(self, *args, **kwargs):
            raise OperationalError(
                "INSERT INTO audit_records ...", {}, _PgError("could not serialize", "40001")
            )

        monkeypatch.setattr(AuditRecorder, "record", serialization_failure)

        with pytest.raises(StorageError) as exc_info:
            kernel.set_payment_status(org.id, booked.guid, "paid")

        max_attempts = kernel.settings.numbering_max_retries
        assert exc_info.value.detail == f"serialization failure after {max_attempts} attempts"
        assert not isinstance(exc_info.value, NumberingConflictError)


class TestTimeoutsAndStorageErrors:
    def test_lock_wait_becomes_posting_timeout(self, kernel, org, make_draft, monkeypatch):
        def locked(self, organization_id, document_type, resync=False):
            raise OperationalError("UPDATE voucher_number_counters ...", {}, Exception("database is locked"))

        monkeypatch.setattr(VoucherNumberingAuthority, "next_number", locked)

        with pytest.raises(PostingTimeoutError) as exc_info:
            kernel.post(org.id, MANUAL, make_draft())
        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.organization_id == str(org.id)

    def test_other_database_error_becomes_storage_error(
        self, kernel, org, make_draft, monkeypatch
    ):
        cause = OperationalError("SELECT ...", {}, Exception("disk I/O error"))

        def broken(self, organization_id, document_type, resync=False):
            raise cause

        monkeypatch.setattr(VoucherNumberingAuthority, "next_number", broken)

        with pytest.raises(StorageError) as exc_info:
            kernel.post(org.id, MANUAL, make_draft())
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.operation == "posting"


class TestAuditFailure:
    def test_audit_failure_rolls_back_posting(
        self, kernel, org, make_draft, monkeypatch, count_rows, captured_logs
    ):
        original_record = AuditRecorder.record

        def failing(self, *args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(AuditRecorder, "record", failing)

        with pytest.raises(RuntimeError, match="audit store unavailable"):
            kernel.post(org.id, MANUAL, make_draft())

        assert count_rows(Voucher) == 0
        assert count_rows(LedgerEntry) == 0
        assert any(r["message"] == "posting_failed" for r in captured_logs())

        monkeypatch.setattr(AuditRecorder, "record", original_record)
        assert kernel.post(org.id, MANUAL, make_draft(amount=Decimal("5"))).number == 1
