"""
Posting tests: the happy path, rejections and tenant isolation.

Verifies:
- Consecutive posts in one sequence are numbered 1, 2, ...
- Rejected posts leave no rows and consume no number
- Every invalid field is reported in one ValidationError
- Organizations and document types have independent sequences
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.dtos import LineSide, VoucherDraft, VoucherLineDraft
from ledger_kernel.domain.status import VoucherStatus
from ledger_kernel.exceptions import (
    OrganizationNotFoundError,
    UnbalancedVoucherError,
    ValidationError,
    VoucherNotFoundError,
)
from ledger_kernel.models.audit_record import AuditRecord
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.voucher import Voucher, VoucherLine

MANUAL = DocumentTypeClass.MANUAL_VOUCHER


class TestPostHappyPath:
    def test_first_post_gets_number_one(self, kernel, org, make_draft, actor_id):
        result = kernel.post(org.id, MANUAL, make_draft(), actor_id)

        assert result.number == 1
        assert result.document_type is MANUAL

        voucher = kernel.get_voucher(org.id, result.guid)
        assert voucher.status is VoucherStatus.BOOKED
        assert voucher.number == 1
        assert voucher.total_debit == Decimal("100.00")
        assert voucher.total_credit == Decimal("100.00")
        assert voucher.currency == "DKK"
        assert voucher.booked_at is not None
        assert len(voucher.lines) == 2

    def test_second_post_gets_number_two(self, kernel, org, make_draft):
        first = kernel.post(org.id, MANUAL, make_draft())
        second = kernel.post(org.id, MANUAL, make_draft(amount=Decimal("42.50")))

        assert (first.number, second.number) == (1, 2)
        assert first.guid != second.guid

    def test_post_writes_ledger_entries(self, kernel, org, make_draft, count_rows):
        result = kernel.post(org.id, MANUAL, make_draft())

        entries = kernel.ledger_entries(org.id)
        assert [(e.account_number, e.side, e.amount) for e in entries] == [
            ("1000", LineSide.DEBIT, Decimal("100.00")),
            ("4000", LineSide.CREDIT, Decimal("100.00")),
        ]
        assert all(e.voucher_id == result.guid and e.voucher_number == 1 for e in entries)
        assert count_rows(LedgerEntry, LedgerEntry.voucher_id == result.guid) == 2

    def test_post_writes_one_book_audit_record(self, kernel, org, make_draft, actor_id):
        result = kernel.post(org.id, MANUAL, make_draft(), actor_id)

        trail = kernel.audit_trail(org.id, "voucher", result.guid)
        assert [r.operation for r in trail] == ["BOOK"]
        assert trail[0].user_id == actor_id
        assert trail[0].changed_data["number"] == 1
        assert trail[0].changed_data["status"] == "booked"

    def test_accepts_string_document_type_and_ids(self, kernel, org, make_draft):
        result = kernel.post(str(org.id), "invoice", make_draft())
        assert result.document_type is DocumentTypeClass.INVOICE
        assert kernel.get_voucher(str(org.id), str(result.guid)).number == 1

    def test_multi_line_voucher(self, kernel, org):
        draft = VoucherDraft(
            document_date=date(2024, 5, 1),
            lines=(
                VoucherLineDraft("6100", LineSide.DEBIT, Decimal("8000")),
                VoucherLineDraft("7000", LineSide.DEBIT, Decimal("2000")),
                VoucherLineDraft("1000", LineSide.CREDIT, Decimal("10000")),
            ),
        )
        result = kernel.post(org.id, MANUAL, draft)
        assert result.number == 1
        assert len(kernel.ledger_entries(org.id)) == 3

    def test_quantity_and_discount(self, kernel, org):
        draft = VoucherDraft(
            document_date=date(2024, 5, 1),
            lines=(
                VoucherLineDraft("1200", LineSide.DEBIT, Decimal("90")),
                VoucherLineDraft(
                    "4100", LineSide.CREDIT, Decimal("25"),
                    quantity=Decimal("4"), discount=Decimal("0.1"), vat_code="UEUV",
                ),
            ),
        )
        result = kernel.post(org.id, DocumentTypeClass.INVOICE, draft)
        voucher = kernel.get_voucher(org.id, result.guid)
        assert voucher.lines[1].total_amount == Decimal("90.00")
        assert voucher.total_vat == Decimal("0")


class TestPostRejections:
    def test_unbalanced_rejected_without_trace(self, kernel, org, make_draft, count_rows):
        draft = make_draft(amount=Decimal("100.00"), credit_amount=Decimal("99.99"))

        for _ in range(2):
            with pytest.raises(UnbalancedVoucherError) as exc_info:
                kernel.post(org.id, MANUAL, draft)
            assert exc_info.value.difference == Decimal("0.01")

        assert count_rows(Voucher) == 0
        assert count_rows(VoucherLine) == 0
        assert count_rows(LedgerEntry) == 0
        assert count_rows(AuditRecord, AuditRecord.table_name == "voucher") == 0

    def test_rejection_consumes_no_number(self, kernel, org, make_draft):
        with pytest.raises(UnbalancedVoucherError):
            kernel.post(org.id, MANUAL, make_draft(credit_amount=Decimal("1")))

        assert kernel.post(org.id, MANUAL, make_draft()).number == 1

    def test_unknown_organization(self, kernel, make_draft):
        with pytest.raises(OrganizationNotFoundError):
            kernel.post(uuid4(), MANUAL, make_draft())

    def test_unknown_document_type(self, kernel, org, make_draft, count_rows):
        with pytest.raises(ValidationError) as exc_info:
            kernel.post(org.id, "receipt", make_draft())
        assert set(exc_info.value.errors) == {"document_type"}
        assert count_rows(Voucher) == 0

    def test_malformed_organization_id(self, kernel, make_draft):
        with pytest.raises(ValidationError) as exc_info:
            kernel.post("not-a-uuid", MANUAL, make_draft())
        assert set(exc_info.value.errors) == {"organization_id"}

    def test_malformed_voucher_id(self, kernel, org):
        with pytest.raises(ValidationError) as exc_info:
            kernel.get_voucher(org.id, "42")
        assert set(exc_info.value.errors) == {"voucher_id"}

    def test_no_lines(self, kernel, org):
        with pytest.raises(ValidationError) as exc_info:
            kernel.post(org.id, MANUAL, VoucherDraft(document_date=date(2024, 3, 1)))
        assert "lines" in exc_info.value.errors

    def test_all_field_errors_reported_together(self, kernel, org, count_rows):
        draft = VoucherDraft(
            document_date=date(2024, 3, 1),
            currency="XYZ",
            due_date=date(2024, 2, 1),
            lines=(
                VoucherLineDraft("9999", LineSide.DEBIT, Decimal("10")),
                VoucherLineDraft("4000", LineSide.CREDIT, Decimal("-10"), vat_code="NOPE"),
                VoucherLineDraft(
                    "1000", "sideways", Decimal("1"),
                    quantity=Decimal("0"), discount=Decimal("1"),
                ),
            ),
        )
        with pytest.raises(ValidationError) as exc_info:
            kernel.post(org.id, MANUAL, draft)

        errors = exc_info.value.errors
        assert set(errors) >= {
            "currency",
            "due_date",
            "lines[0].account_number",
            "lines[1].unit_amount",
            "lines[1].vat_code",
            "lines[2].side",
            "lines[2].quantity",
            "lines[2].discount",
        }
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert count_rows(Voucher) == 0

    def test_float_amounts_post(self, kernel, org):
        draft = VoucherDraft(
            document_date=date(2024, 3, 1),
            lines=(
                VoucherLineDraft("1000", LineSide.DEBIT, 100.00),
                VoucherLineDraft("4000", LineSide.CREDIT, 100.00),
            ),
        )
        result = kernel.post(org.id, MANUAL, draft)

        assert result.number == 1
        voucher = kernel.get_voucher(org.id, result.guid)
        assert voucher.total_debit == Decimal("100.00")
        assert voucher.total_credit == Decimal("100.00")

    def test_float_noise_below_epsilon_balances(self, kernel, org):
        draft = VoucherDraft(
            document_date=date(2024, 3, 1),
            lines=(
                VoucherLineDraft("1000", LineSide.DEBIT, 0.1 + 0.2),
                VoucherLineDraft("4000", LineSide.CREDIT, 0.30004),
            ),
        )
        result = kernel.post(org.id, MANUAL, draft)

        voucher = kernel.get_voucher(org.id, result.guid)
        assert voucher.total_debit == voucher.total_credit == Decimal("0.30")

    def test_bool_amount_rejected(self, kernel, org):
        draft = VoucherDraft(
            document_date=date(2024, 3, 1),
            lines=(
                VoucherLineDraft("1000", LineSide.DEBIT, True),
                VoucherLineDraft("4000", LineSide.CREDIT, Decimal("1")),
            ),
        )
        with pytest.raises(ValidationError) as exc_info:
            kernel.post(org.id, MANUAL, draft)
        assert "lines[0].unit_amount" in exc_info.value.errors

    def test_inactive_account_rejected(self, kernel, org, make_draft):
        kernel.deactivate_account(org.id, "1100")
        with pytest.raises(ValidationError) as exc_info:
            kernel.post(org.id, MANUAL, make_draft(debit_account="1100"))
        assert "inactive" in exc_info.value.errors["lines[0].account_number"]

    def test_vat_free_organization_cannot_book_vat(self, kernel):
        vat_free = kernel.create_organization("Forening", is_vat_free=True, first_year=2024)
        draft = VoucherDraft(
            document_date=date(2024, 3, 1),
            lines=(
                VoucherLineDraft("1000", LineSide.DEBIT, Decimal("125")),
                VoucherLineDraft("4000", LineSide.CREDIT, Decimal("100"), vat_code="U25"),
            ),
        )
        with pytest.raises(ValidationError) as exc_info:
            kernel.post(vat_free.id, DocumentTypeClass.INVOICE, draft)
        assert "lines[1].vat_code" in exc_info.value.errors


class TestTenantIsolation:
    def test_sequences_are_per_organization(self, kernel, org, other_org, make_draft):
        assert kernel.post(org.id, MANUAL, make_draft()).number == 1
        assert kernel.post(org.id, MANUAL, make_draft()).number == 2
        assert kernel.post(other_org.id, MANUAL, make_draft()).number == 1

    def test_sequences_are_per_document_type(self, kernel, org, make_draft):
        assert kernel.post(org.id, MANUAL, make_draft()).number == 1
        assert kernel.post(org.id, DocumentTypeClass.INVOICE, make_draft()).number == 1
        assert kernel.post(org.id, MANUAL, make_draft()).number == 2

    def test_voucher_invisible_to_other_organization(self, kernel, org, other_org, make_draft):
        result = kernel.post(org.id, MANUAL, make_draft())

        with pytest.raises(VoucherNotFoundError):
            kernel.get_voucher(other_org.id, result.guid)
        assert kernel.ledger_entries(other_org.id) == ()
        assert kernel.list_vouchers(other_org.id) == ()
