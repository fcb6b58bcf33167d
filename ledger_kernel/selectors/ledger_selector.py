"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: ledger entries, trial balance, VAT
    summary and voucher listing.  Balances are derived from LedgerEntry rows
    at query time; nothing stores a running balance.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only booked vouchers contribute (drafts have no ledger entries, and
      the VAT summary filters on status).
    - Sums are computed in Python over Decimal values, so results are exact
      on every backend (SQLite stores Numeric as floating point).

Failure modes:
    - Empty results when the organization has no postings.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.dtos import (
    LedgerEntryInfo,
    LineSide,
    TrialBalanceRow,
    VatDirection,
    VatSummaryRow,
)
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.vat_type import VatType
from ledger_kernel.models.voucher import Voucher, VoucherLine
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")

# Side on which each VAT direction is normally booked
_NATURAL_SIDE = {
    VatDirection.OUTPUT: LineSide.CREDIT,
    VatDirection.INPUT: LineSide.DEBIT,
}


class LedgerSelector(BaseSelector):
    """
    Contract:
        All methods take the organization as their first argument and see
        only that organization's rows.
    """

    def ledger_entries(
        self,
        organization_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        account_number: str | None = None,
    ) -> tuple[LedgerEntryInfo, ...]:
        """Ledger entries in posting order, optionally filtered."""
        query = select(LedgerEntry).where(LedgerEntry.organization_id == organization_id)
        if start_date is not None:
            query = query.where(LedgerEntry.entry_date >= start_date)
        if end_date is not None:
            query = query.where(LedgerEntry.entry_date <= end_date)
        if account_number is not None:
            query = query.where(LedgerEntry.account_number == account_number)
        query = query.order_by(
            LedgerEntry.entry_date,
            LedgerEntry.document_type,
            LedgerEntry.voucher_number,
            LedgerEntry.line_no,
        )

        return tuple(
            LedgerEntryInfo(
                voucher_id=row.voucher_id,
                voucher_number=row.voucher_number,
                document_type=DocumentTypeClass(row.document_type),
                account_number=row.account_number,
                entry_date=row.entry_date,
                side=LineSide(row.side),
                amount=row.amount,
                currency=row.currency,
                vat_code=row.vat_code,
            )
            for row in self.session.execute(query).scalars().all()
        )

    def trial_balance(
        self,
        organization_id: UUID,
        as_of: date | None = None,
    ) -> tuple[TrialBalanceRow, ...]:
        """
        Debit and credit totals per (account, currency).

        The debit total over all rows equals the credit total over all rows
        for every currency.
        """
        totals: dict[tuple[str, str], list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        for entry in self.ledger_entries(organization_id, end_date=as_of):
            bucket = totals[(entry.account_number, entry.currency)]
            if entry.side == LineSide.DEBIT:
                bucket[0] += entry.amount
            else:
                bucket[1] += entry.amount

        return tuple(
            TrialBalanceRow(
                account_number=account_number,
                currency=currency,
                debit=round_money(debit, currency),
                credit=round_money(credit, currency),
            )
            for (account_number, currency), (debit, credit) in sorted(totals.items())
        )

    def vat_summary(
        self,
        organization_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> tuple[VatSummaryRow, ...]:
        """
        Net base and VAT per VAT code over booked voucher lines.

        Amounts are signed by the natural side of the direction: output VAT
        counts positive on the credit side, input VAT on the debit side, so
        a credit note reduces the totals of its invoice.
        """
        query = (
            select(VoucherLine, VatType.direction)
            .join(Voucher, VoucherLine.voucher_id == Voucher.id)
            .join(VatType, VoucherLine.vat_code == VatType.code)
            .where(
                Voucher.organization_id == organization_id,
                Voucher.status != "draft",
            )
        )
        if start_date is not None:
            query = query.where(Voucher.document_date >= start_date)
        if end_date is not None:
            query = query.where(Voucher.document_date <= end_date)

        totals: dict[tuple[str, VatDirection], list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        for line, direction in self.session.execute(query).all():
            direction = VatDirection(direction)
            natural = _NATURAL_SIDE.get(direction, LineSide.CREDIT)
            sign = 1 if LineSide(line.side) == natural else -1
            bucket = totals[(line.vat_code, direction)]
            bucket[0] += sign * line.total_amount
            bucket[1] += sign * line.vat_amount

        return tuple(
            VatSummaryRow(
                vat_code=vat_code,
                direction=direction,
                base_amount=base,
                vat_amount=vat,
            )
            for (vat_code, direction), (base, vat) in sorted(
                totals.items(), key=lambda item: item[0][0]
            )
        )
