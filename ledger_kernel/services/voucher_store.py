"""
VoucherStore -- persistence of vouchers, their lines and ledger entries.

Responsibility:
    Organization-scoped loading, writing of prepared vouchers and ledger
    entries, and conversion of ORM rows into read models and audit
    snapshots.

Invariants enforced:
    - No voucher is addressed by id alone: every lookup filters on the
      organization and a miss is VoucherNotFoundError, whether the id does
      not exist or belongs to another tenant.
    - A voucher and its lines are added to the session together, so the
      immutability listeners see lines of a pending voucher, never lines
      added to an already booked one.
"""

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.dtos import (
    LineSide,
    VoucherDraft,
    VoucherInfo,
    VoucherLineDraft,
    VoucherLineInfo,
)
from ledger_kernel.domain.ledger_projection import ProjectedEntry
from ledger_kernel.domain.status import VoucherStatus
from ledger_kernel.exceptions import VoucherNotFoundError
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.voucher import Voucher, VoucherLine
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.voucher_preparation import PreparedLine

VOUCHER_TABLE = "voucher"

ZERO = Decimal("0")


def _line_row(organization_id: UUID, line: PreparedLine) -> VoucherLine:
    return VoucherLine(
        organization_id=organization_id,
        line_no=line.line_no,
        account_number=line.account_number,
        side=line.side.value,
        quantity=line.quantity,
        unit_amount_excl_vat=line.unit_amount_excl_vat,
        unit_amount_incl_vat=line.unit_amount_incl_vat,
        discount=line.discount,
        vat_code=line.vat_code,
        vat_rate=line.vat_rate,
        total_amount=line.total_amount,
        total_amount_incl_vat=line.total_amount_incl_vat,
        vat_amount=line.vat_amount,
        description=line.description,
    )


class VoucherStore(BaseService[Voucher]):
    """
    Contract:
        Flushes only.  Callers own the transaction.
    """

    def _query(self, organization_id: UUID, voucher_id: UUID):
        return (
            select(Voucher)
            .where(Voucher.organization_id == organization_id, Voucher.id == voucher_id)
            .options(selectinload(Voucher.lines))
        )

    def get(self, organization_id: UUID, voucher_id: UUID) -> Voucher:
        voucher = self.session.execute(
            self._query(organization_id, voucher_id)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(str(organization_id), str(voucher_id))
        return voucher

    def get_for_update(self, organization_id: UUID, voucher_id: UUID) -> Voucher:
        """Load and row-lock a voucher for a state change."""
        voucher = self.session.execute(
            self._query(organization_id, voucher_id)
            .with_for_update(of=Voucher)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(str(organization_id), str(voucher_id))
        return voucher

    def find_reversal(self, organization_id: UUID, voucher_id: UUID) -> Voucher | None:
        return self.session.execute(
            select(Voucher).where(
                Voucher.organization_id == organization_id,
                Voucher.reverses_id == voucher_id,
            )
        ).scalar_one_or_none()

    def ledger_entries_of(self, voucher: Voucher) -> list[LedgerEntry]:
        return list(
            self.session.execute(
                select(LedgerEntry)
                .where(
                    LedgerEntry.organization_id == voucher.organization_id,
                    LedgerEntry.voucher_id == voucher.id,
                )
                .order_by(LedgerEntry.line_no)
            ).scalars().all()
        )

    def list_vouchers(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass | None = None,
        status: VoucherStatus | None = None,
    ) -> list[Voucher]:
        query = (
            select(Voucher)
            .where(Voucher.organization_id == organization_id)
            .options(selectinload(Voucher.lines))
        )
        if document_type is not None:
            query = query.where(Voucher.document_type == DocumentTypeClass(document_type).value)
        if status is not None:
            query = query.where(Voucher.status == VoucherStatus(status).value)
        query = query.order_by(Voucher.document_type, Voucher.number, Voucher.created_at)
        return list(self.session.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_voucher(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass,
        draft: VoucherDraft,
        currency: str,
        lines: Iterable[PreparedLine],
        status: VoucherStatus = VoucherStatus.DRAFT,
        number: int | None = None,
        totals: tuple | None = None,
        booked_at: datetime | None = None,
        actor_id: UUID | None = None,
        reverses_id: UUID | None = None,
    ) -> Voucher:
        """
        Add a voucher with all its lines and flush once.

        ``totals`` is (total_debit, total_credit, total_vat).
        """
        line_rows = [_line_row(organization_id, line) for line in lines]
        total_debit, total_credit, total_vat = totals or self._totals(line_rows)
        voucher = Voucher(
            organization_id=organization_id,
            document_type=document_type.value,
            status=VoucherStatus(status).value,
            number=number,
            document_date=draft.document_date,
            currency=currency,
            amounts_include_vat=draft.amounts_include_vat,
            total_debit=total_debit,
            total_credit=total_credit,
            total_vat=total_vat,
            booked_at=booked_at,
            booked_by_id=actor_id if booked_at is not None else None,
            description=draft.description,
            external_reference=draft.external_reference,
            contact_guid=draft.contact_guid,
            due_date=draft.due_date,
            reverses_id=reverses_id,
            created_by_id=actor_id,
            lines=line_rows,
        )
        self.session.add(voucher)
        self.session.flush()
        return voucher

    @staticmethod
    def _totals(line_rows: list[VoucherLine]) -> tuple[Decimal, Decimal, Decimal]:
        debit = sum(
            (r.total_amount_incl_vat for r in line_rows if r.side == LineSide.DEBIT.value),
            ZERO,
        )
        credit = sum(
            (r.total_amount_incl_vat for r in line_rows if r.side == LineSide.CREDIT.value),
            ZERO,
        )
        vat = sum((r.vat_amount for r in line_rows), ZERO)
        return debit, credit, vat

    def apply_draft(
        self,
        voucher: Voucher,
        draft: VoucherDraft,
        currency: str,
        lines: Iterable[PreparedLine],
        actor_id: UUID | None = None,
    ) -> Voucher:
        """
        Overwrite header and lines of a draft.

        The old lines are deleted and flushed before the new ones are
        added, so the new line numbers do not collide with the old rows.
        """
        voucher.lines.clear()
        self.session.flush()

        line_rows = [_line_row(voucher.organization_id, line) for line in lines]
        voucher.document_date = draft.document_date
        voucher.currency = currency
        voucher.amounts_include_vat = draft.amounts_include_vat
        voucher.description = draft.description
        voucher.external_reference = draft.external_reference
        voucher.contact_guid = draft.contact_guid
        voucher.due_date = draft.due_date
        voucher.total_debit, voucher.total_credit, voucher.total_vat = self._totals(line_rows)
        voucher.updated_by_id = actor_id
        voucher.lines.extend(line_rows)
        self.session.flush()
        return voucher

    def write_ledger_entries(
        self,
        voucher: Voucher,
        entries: Iterable[ProjectedEntry],
    ) -> list[LedgerEntry]:
        rows = [
            LedgerEntry(
                organization_id=voucher.organization_id,
                voucher_id=voucher.id,
                voucher_number=voucher.number,
                document_type=voucher.document_type,
                line_no=index,
                entry_date=voucher.document_date,
                account_number=entry.account_number,
                side=entry.side.value,
                amount=entry.amount,
                currency=voucher.currency,
                vat_code=entry.vat_code,
            )
            for index, entry in enumerate(entries, start=1)
        ]
        self.session.add_all(rows)
        self.session.flush()
        return rows

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    @staticmethod
    def to_info(voucher: Voucher) -> VoucherInfo:
        return VoucherInfo(
            guid=voucher.id,
            organization_id=voucher.organization_id,
            document_type=DocumentTypeClass(voucher.document_type),
            status=VoucherStatus(voucher.status),
            number=voucher.number,
            document_date=voucher.document_date,
            currency=voucher.currency,
            amounts_include_vat=voucher.amounts_include_vat,
            total_debit=voucher.total_debit,
            total_credit=voucher.total_credit,
            total_vat=voucher.total_vat,
            lines=tuple(
                VoucherLineInfo(
                    line_no=line.line_no,
                    account_number=line.account_number,
                    side=LineSide(line.side),
                    quantity=line.quantity,
                    unit_amount_excl_vat=line.unit_amount_excl_vat,
                    unit_amount_incl_vat=line.unit_amount_incl_vat,
                    discount=line.discount,
                    vat_code=line.vat_code,
                    vat_rate=line.vat_rate,
                    total_amount=line.total_amount,
                    total_amount_incl_vat=line.total_amount_incl_vat,
                    vat_amount=line.vat_amount,
                    description=line.description,
                )
                for line in voucher.lines
            ),
            booked_at=voucher.booked_at,
            description=voucher.description,
            external_reference=voucher.external_reference,
            contact_guid=voucher.contact_guid,
            due_date=voucher.due_date,
            reverses_id=voucher.reverses_id,
        )

    @staticmethod
    def snapshot(voucher: Voucher) -> dict[str, Any]:
        """Full state of a voucher for audit ``changed_data``."""
        return {
            "guid": voucher.id,
            "document_type": voucher.document_type,
            "status": voucher.status,
            "number": voucher.number,
            "document_date": voucher.document_date,
            "currency": voucher.currency,
            "amounts_include_vat": voucher.amounts_include_vat,
            "total_debit": voucher.total_debit,
            "total_credit": voucher.total_credit,
            "total_vat": voucher.total_vat,
            "booked_at": voucher.booked_at,
            "description": voucher.description,
            "external_reference": voucher.external_reference,
            "contact_guid": voucher.contact_guid,
            "due_date": voucher.due_date,
            "reverses_id": voucher.reverses_id,
            "lines": [
                {
                    "line_no": line.line_no,
                    "account_number": line.account_number,
                    "side": line.side,
                    "quantity": line.quantity,
                    "unit_amount_excl_vat": line.unit_amount_excl_vat,
                    "unit_amount_incl_vat": line.unit_amount_incl_vat,
                    "discount": line.discount,
                    "vat_code": line.vat_code,
                    "vat_rate": line.vat_rate,
                    "total_amount": line.total_amount,
                    "total_amount_incl_vat": line.total_amount_incl_vat,
                    "vat_amount": line.vat_amount,
                    "description": line.description,
                }
                for line in voucher.lines
            ],
        }

    @staticmethod
    def draft_from_voucher(
        voucher: Voucher,
        flip_sides: bool = False,
        document_date: date | None = None,
    ) -> VoucherDraft:
        """
        Rebuild a VoucherDraft from stored lines.

        Used to book a persisted draft and, with ``flip_sides``, to build
        the reversing voucher of a booked one.  Unit amounts are taken in
        the voucher's own VAT mode so the recomputed totals match.
        """
        lines = []
        for line in voucher.lines:
            side = LineSide(line.side)
            unit = line.unit_amount_incl_vat if voucher.amounts_include_vat else line.unit_amount_excl_vat
            lines.append(
                VoucherLineDraft(
                    account_number=line.account_number,
                    side=side.opposite() if flip_sides else side,
                    unit_amount=unit,
                    quantity=line.quantity,
                    discount=line.discount,
                    vat_code=line.vat_code,
                    description=line.description,
                )
            )
        return VoucherDraft(
            document_date=document_date or voucher.document_date,
            lines=tuple(lines),
            currency=voucher.currency,
            amounts_include_vat=voucher.amounts_include_vat,
            description=voucher.description,
            external_reference=voucher.external_reference,
            contact_guid=voucher.contact_guid,
            due_date=voucher.due_date if not flip_sides else None,
        )
