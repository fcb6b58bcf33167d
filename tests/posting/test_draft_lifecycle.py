"""
Draft lifecycle: create, update, delete and book.

Verifies:
- Drafts are unnumbered and leave no ledger entries
- Booking a draft runs the full posting pipeline and numbers it
- Booked vouchers can no longer be updated or deleted
- Every draft mutation is audited
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.dtos import VoucherDraft
from ledger_kernel.domain.status import VoucherStatus
from ledger_kernel.exceptions import (
    UnbalancedVoucherError,
    ValidationError,
    VoucherNotDraftError,
    VoucherNotFoundError,
)
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.voucher import Voucher, VoucherLine

INVOICE = DocumentTypeClass.INVOICE


class TestCreateDraft:
    def test_draft_has_no_number_and_no_entries(self, kernel, org, make_draft, count_rows):
        draft = kernel.create_draft(org.id, INVOICE, make_draft(due_date=date(2024, 4, 15)))

        assert draft.status is VoucherStatus.DRAFT
        assert draft.number is None
        assert draft.due_date == date(2024, 4, 15)
        assert len(draft.lines) == 2
        assert count_rows(LedgerEntry) == 0

    def test_draft_may_be_empty(self, kernel, org):
        draft = kernel.create_draft(org.id, INVOICE, VoucherDraft(document_date=date(2024, 3, 1)))
        assert draft.lines == ()

    def test_draft_may_be_unbalanced(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft(credit_amount=Decimal("1")))
        assert draft.total_debit != draft.total_credit

    def test_invalid_fields_rejected(self, kernel, org, make_draft, count_rows):
        with pytest.raises(ValidationError):
            kernel.create_draft(org.id, INVOICE, make_draft(debit_account="9999"))
        assert count_rows(Voucher) == 0

    def test_insert_is_audited(self, kernel, org, make_draft, actor_id):
        draft = kernel.create_draft(org.id, INVOICE, make_draft(), actor_id)
        trail = kernel.audit_trail(org.id, "voucher", draft.guid)
        assert [r.operation for r in trail] == ["INSERT"]
        assert trail[0].changed_data["status"] == "draft"


class TestUpdateDraft:
    def test_replaces_lines_and_header(self, kernel, org, make_draft, count_rows):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())

        updated = kernel.update_draft(
            org.id,
            draft.guid,
            make_draft(amount=Decimal("250.00"), description="Consulting, March"),
        )

        assert updated.total_debit == Decimal("250.00")
        assert updated.description == "Consulting, March"
        assert [line.line_no for line in updated.lines] == [1, 2]
        assert count_rows(VoucherLine, VoucherLine.voucher_id == draft.guid) == 2

    def test_update_is_audited_with_before_and_after(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())
        kernel.update_draft(org.id, draft.guid, make_draft(amount=Decimal("7")))

        update = kernel.audit_trail(org.id, "voucher", draft.guid)[-1]
        assert update.operation == "UPDATE"
        assert update.changed_data["before"]["total_debit"] == "100"
        assert update.changed_data["after"]["total_debit"] == "7"

    def test_booked_voucher_cannot_be_updated(self, kernel, org, make_draft):
        result = kernel.post(org.id, INVOICE, make_draft())
        with pytest.raises(VoucherNotDraftError):
            kernel.update_draft(org.id, result.guid, make_draft(amount=Decimal("1")))


class TestDeleteDraft:
    def test_delete_removes_voucher_and_lines(self, kernel, org, make_draft, count_rows):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())
        kernel.delete_draft(org.id, draft.guid)

        assert count_rows(Voucher) == 0
        assert count_rows(VoucherLine) == 0
        with pytest.raises(VoucherNotFoundError):
            kernel.get_voucher(org.id, draft.guid)
        assert [r.operation for r in kernel.audit_trail(org.id, "voucher", draft.guid)] == [
            "INSERT",
            "DELETE",
        ]

    def test_booked_voucher_cannot_be_deleted(self, kernel, org, make_draft, count_rows):
        result = kernel.post(org.id, INVOICE, make_draft())
        with pytest.raises(VoucherNotDraftError):
            kernel.delete_draft(org.id, result.guid)
        assert count_rows(Voucher) == 1


class TestBookDraft:
    def test_book_numbers_and_projects(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())

        result = kernel.book(org.id, draft.guid)

        assert result.guid == draft.guid
        assert result.number == 1
        booked = kernel.get_voucher(org.id, draft.guid)
        assert booked.status is VoucherStatus.BOOKED
        assert booked.booked_at is not None
        assert len(kernel.ledger_entries(org.id)) == 2
        assert [r.operation for r in kernel.audit_trail(org.id, "voucher", draft.guid)] == [
            "INSERT",
            "BOOK",
        ]

    def test_booked_drafts_share_the_sequence_with_posts(self, kernel, org, make_draft):
        kernel.post(org.id, INVOICE, make_draft())
        draft = kernel.create_draft(org.id, INVOICE, make_draft())
        assert kernel.book(org.id, draft.guid).number == 2

    def test_unbalanced_draft_stays_draft(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft(credit_amount=Decimal("90")))

        with pytest.raises(UnbalancedVoucherError):
            kernel.book(org.id, draft.guid)

        assert kernel.get_voucher(org.id, draft.guid).status is VoucherStatus.DRAFT
        assert kernel.post(org.id, INVOICE, make_draft()).number == 1

    def test_empty_draft_cannot_be_booked(self, kernel, org):
        draft = kernel.create_draft(org.id, INVOICE, VoucherDraft(document_date=date(2024, 3, 1)))
        with pytest.raises(ValidationError) as exc_info:
            kernel.book(org.id, draft.guid)
        assert "lines" in exc_info.value.errors

    def test_booking_twice_is_refused(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())
        kernel.book(org.id, draft.guid)
        with pytest.raises(VoucherNotDraftError):
            kernel.book(org.id, draft.guid)
