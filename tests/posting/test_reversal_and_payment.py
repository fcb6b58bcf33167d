"""
Reversals and payment status changes of booked vouchers.

Verifies:
- A reversal books the mirror image in the reversal document type's
  sequence and nets the ledger to zero
- A voucher is reversed at most once, drafts are never reversed
- Payment sub-states move among themselves without touching amounts
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.dtos import LineSide, VoucherDraft, VoucherLineDraft
from ledger_kernel.domain.status import VoucherStatus
from ledger_kernel.exceptions import (
    InvalidStatusTransitionError,
    PeriodLockedError,
    ValidationError,
    VoucherAlreadyReversedError,
    VoucherNotBookedError,
)
from ledger_kernel.models.vat_type import VatType

INVOICE = DocumentTypeClass.INVOICE


@pytest.fixture
def vat_invoice(kernel, org):
    draft = VoucherDraft(
        document_date=date(2024, 2, 10),
        lines=(
            VoucherLineDraft("1200", LineSide.DEBIT, Decimal("125.00")),
            VoucherLineDraft("4000", LineSide.CREDIT, Decimal("100.00"), vat_code="U25"),
        ),
    )
    return kernel.post(org.id, INVOICE, draft)


class TestReverse:
    def test_invoice_is_reversed_by_credit_note(self, kernel, org, vat_invoice):
        result = kernel.reverse(org.id, vat_invoice.guid, document_date=date(2024, 2, 20))

        assert result.document_type is DocumentTypeClass.CREDIT_NOTE
        assert result.number == 1

        credit_note = kernel.get_voucher(org.id, result.guid)
        assert credit_note.reverses_id == vat_invoice.guid
        assert credit_note.document_date == date(2024, 2, 20)
        assert credit_note.description == "Reversal of invoice 1"
        assert [line.side for line in credit_note.lines] == [LineSide.CREDIT, LineSide.DEBIT]

    def test_reversal_nets_every_account_to_zero(self, kernel, org, vat_invoice):
        kernel.reverse(org.id, vat_invoice.guid)

        rows = kernel.trial_balance(org.id)
        assert {row.account_number for row in rows} == {"1200", "4000", "2110"}
        assert all(row.balance == 0 for row in rows)

    def test_original_is_unchanged_apart_from_audit(self, kernel, org, vat_invoice):
        before = kernel.get_voucher(org.id, vat_invoice.guid)
        result = kernel.reverse(org.id, vat_invoice.guid)

        assert kernel.get_voucher(org.id, vat_invoice.guid) == before
        trail = kernel.audit_trail(org.id, "voucher", vat_invoice.guid)
        assert [r.operation for r in trail] == ["BOOK", "REVERSE"]
        assert trail[-1].changed_data == {
            "reversed_by": str(result.guid),
            "reversal_document_type": "credit_note",
            "reversal_number": 1,
        }

    def test_manual_voucher_reversal_stays_in_sequence(self, kernel, org, make_draft):
        original = kernel.post(org.id, DocumentTypeClass.MANUAL_VOUCHER, make_draft())
        result = kernel.reverse(org.id, original.guid)
        assert result.document_type is DocumentTypeClass.MANUAL_VOUCHER
        assert result.number == 2

    def test_reversal_date_defaults_to_today(self, kernel, org, vat_invoice, deterministic_clock):
        result = kernel.reverse(org.id, vat_invoice.guid)
        assert kernel.get_voucher(org.id, result.guid).document_date == deterministic_clock.today()

    def test_second_reversal_refused(self, kernel, org, vat_invoice):
        kernel.reverse(org.id, vat_invoice.guid)
        with pytest.raises(VoucherAlreadyReversedError):
            kernel.reverse(org.id, vat_invoice.guid)

    def test_draft_cannot_be_reversed(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())
        with pytest.raises(VoucherNotBookedError):
            kernel.reverse(org.id, draft.guid)

    def test_reversal_into_locked_period_refused(self, kernel, org, vat_invoice):
        kernel.lock_period(org.id, 2024, date(2024, 3, 31))
        with pytest.raises(PeriodLockedError):
            kernel.reverse(org.id, vat_invoice.guid, document_date=date(2024, 3, 1))
        assert kernel.reverse(org.id, vat_invoice.guid, document_date=date(2024, 4, 1)).number == 1

    def test_voucher_on_deactivated_account_can_be_reversed(self, kernel, org, vat_invoice):
        kernel.deactivate_account(org.id, "4000")

        result = kernel.reverse(org.id, vat_invoice.guid)

        credit_note = kernel.get_voucher(org.id, result.guid)
        assert [line.account_number for line in credit_note.lines] == ["1200", "4000"]
        assert all(row.balance == 0 for row in kernel.trial_balance(org.id))

    def test_reversal_keeps_booked_vat_rate(self, kernel, org, vat_invoice, session_factory):
        with session_factory() as session:
            session.execute(
                update(VatType).where(VatType.code == "U25").values(rate=Decimal("0.30"))
            )
            session.commit()

        result = kernel.reverse(org.id, vat_invoice.guid)

        credit_note = kernel.get_voucher(org.id, result.guid)
        assert credit_note.lines[1].vat_rate == Decimal("0.25")
        assert credit_note.total_vat == Decimal("25.00")
        assert all(row.balance == 0 for row in kernel.trial_balance(org.id))


class TestPaymentStatus:
    def test_status_moves_between_payment_states(self, kernel, org, vat_invoice, actor_id):
        paid = kernel.set_payment_status(org.id, vat_invoice.guid, VoucherStatus.PAID, actor_id)
        assert paid.status is VoucherStatus.PAID
        assert paid.number == 1
        assert paid.total_debit == Decimal("125.00")

        overpaid = kernel.set_payment_status(org.id, vat_invoice.guid, "overpaid")
        assert overpaid.status is VoucherStatus.OVERPAID

        trail = kernel.audit_trail(org.id, "voucher", vat_invoice.guid)
        assert [(r.operation, r.changed_data) for r in trail[1:]] == [
            ("STATUS", {"from": "booked", "to": "paid"}),
            ("STATUS", {"from": "paid", "to": "overpaid"}),
        ]

    def test_same_status_refused(self, kernel, org, vat_invoice):
        with pytest.raises(InvalidStatusTransitionError):
            kernel.set_payment_status(org.id, vat_invoice.guid, "booked")

    def test_unknown_status_is_a_validation_error(self, kernel, org, vat_invoice):
        with pytest.raises(ValidationError) as exc_info:
            kernel.set_payment_status(org.id, vat_invoice.guid, "settled")
        assert set(exc_info.value.errors) == {"status"}
        assert kernel.get_voucher(org.id, vat_invoice.guid).status is VoucherStatus.BOOKED

    def test_back_to_draft_refused(self, kernel, org, vat_invoice):
        with pytest.raises(InvalidStatusTransitionError):
            kernel.set_payment_status(org.id, vat_invoice.guid, "draft")

    def test_draft_has_no_payment_status(self, kernel, org, make_draft):
        draft = kernel.create_draft(org.id, INVOICE, make_draft())
        with pytest.raises(VoucherNotBookedError):
            kernel.set_payment_status(org.id, draft.guid, "paid")

    def test_status_change_keeps_ledger(self, kernel, org, vat_invoice):
        before = kernel.ledger_entries(org.id)
        kernel.set_payment_status(org.id, vat_invoice.guid, "overdue")
        assert kernel.ledger_entries(org.id) == before

    def test_filter_by_status(self, kernel, org, vat_invoice, make_draft):
        kernel.create_draft(org.id, INVOICE, make_draft())
        kernel.set_payment_status(org.id, vat_invoice.guid, "paid")

        assert [v.guid for v in kernel.list_vouchers(org.id, status="paid")] == [vat_invoice.guid]
        assert len(kernel.list_vouchers(org.id, document_type="invoice")) == 2
