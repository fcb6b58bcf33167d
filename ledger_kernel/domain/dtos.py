"""
Domain DTOs -- immutable data transfer objects for the ledger kernel.

Responsibility:
    Frozen dataclasses that cross the kernel boundary: voucher drafts coming
    in, posting results and read models going out.  ORM objects never leave
    a service; they are converted to these first.

Architecture position:
    Kernel > Domain.  No I/O, no ORM imports.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.status import VoucherStatus


class LineSide(str, Enum):
    """Debit or credit side of a voucher line or ledger entry."""

    DEBIT = "debit"
    CREDIT = "credit"

    def opposite(self) -> "LineSide":
        return LineSide.CREDIT if self is LineSide.DEBIT else LineSide.DEBIT


class VatDirection(str, Enum):
    """Whether a VAT type is collected on sales or reclaimed on purchases."""

    OUTPUT = "output"
    INPUT = "input"
    NONE = "none"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoucherLineDraft:
    """
    One requested line of a voucher.

    ``unit_amount`` is excl. VAT unless the voucher sets
    ``amounts_include_vat``.  Amounts are non-negative; the side carries the
    direction.
    """

    account_number: str
    side: LineSide
    unit_amount: Decimal
    quantity: Decimal = Decimal("1")
    discount: Decimal = Decimal("0")
    vat_code: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class VoucherDraft:
    """
    Header and lines of a voucher to be created or posted.

    ``currency`` defaults to the organization's base currency.  The optional
    fields are the type-specific extensions: invoices use ``contact_guid``
    and ``due_date``; purchase vouchers use ``external_reference`` for the
    supplier's invoice number.
    """

    document_date: date
    lines: tuple[VoucherLineDraft, ...] = ()
    currency: str | None = None
    amounts_include_vat: bool = False
    description: str | None = None
    external_reference: str | None = None
    contact_guid: UUID | None = None
    due_date: date | None = None

    def __post_init__(self) -> None:
        if self.lines is not None and not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a successful post: the voucher GUID and its assigned number."""

    guid: UUID
    number: int
    document_type: DocumentTypeClass


@dataclass(frozen=True)
class OrganizationInfo:
    id: UUID
    name: str
    base_currency: str
    is_vat_free: bool


@dataclass(frozen=True)
class AccountInfo:
    organization_id: UUID
    number: str
    name: str
    vat_code: str | None
    is_active: bool


@dataclass(frozen=True)
class VatTypeInfo:
    code: str
    name: str
    rate: Decimal
    direction: VatDirection


@dataclass(frozen=True)
class AccountingPeriodInfo:
    organization_id: UUID
    year: int
    start_date: date
    end_date: date
    locked_until: date | None = None

    def contains(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    @property
    def is_locked(self) -> bool:
        return self.locked_until is not None


@dataclass(frozen=True)
class VoucherLineInfo:
    line_no: int
    account_number: str
    side: LineSide
    quantity: Decimal
    unit_amount_excl_vat: Decimal
    unit_amount_incl_vat: Decimal
    discount: Decimal
    vat_code: str | None
    vat_rate: Decimal
    total_amount: Decimal
    total_amount_incl_vat: Decimal
    vat_amount: Decimal
    description: str | None = None


@dataclass(frozen=True)
class VoucherInfo:
    guid: UUID
    organization_id: UUID
    document_type: DocumentTypeClass
    status: VoucherStatus
    number: int | None
    document_date: date
    currency: str
    amounts_include_vat: bool
    total_debit: Decimal
    total_credit: Decimal
    total_vat: Decimal
    lines: tuple[VoucherLineInfo, ...] = ()
    booked_at: datetime | None = None
    description: str | None = None
    external_reference: str | None = None
    contact_guid: UUID | None = None
    due_date: date | None = None
    reverses_id: UUID | None = None


@dataclass(frozen=True)
class LedgerEntryInfo:
    voucher_id: UUID
    voucher_number: int
    document_type: DocumentTypeClass
    account_number: str
    entry_date: date
    side: LineSide
    amount: Decimal
    currency: str
    vat_code: str | None = None


@dataclass(frozen=True)
class AuditRecordInfo:
    id: UUID
    organization_id: UUID
    seq: int
    user_id: UUID | None
    table_name: str
    record_id: str
    operation: str
    changed_data: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime | None = None
    hash: str = ""


@dataclass(frozen=True)
class TrialBalanceRow:
    account_number: str
    currency: str
    debit: Decimal
    credit: Decimal

    @property
    def balance(self) -> Decimal:
        """Debit minus credit."""
        return self.debit - self.credit


@dataclass(frozen=True)
class VatSummaryRow:
    vat_code: str
    direction: VatDirection
    base_amount: Decimal
    vat_amount: Decimal


# ---------------------------------------------------------------------------
# Reference data seeds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountSeed:
    """An account of the default chart provisioned for new organizations."""

    number: str
    name: str
    vat_code: str | None = None


@dataclass(frozen=True)
class VatTypeSeed:
    code: str
    name: str
    rate: Decimal
    direction: VatDirection
