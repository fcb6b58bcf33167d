"""
VoucherPreparer -- everything the posting pipeline checks before it writes.

Responsibility:
    Turns a VoucherDraft into a PreparedVoucher: validated fields, priced
    lines, balanced totals and projected ledger entries.  For posting it
    also runs the period lock guard.

Architecture position:
    Kernel > Services.  Reads through the AccountLookup / VatTypeLookup
    protocols and PeriodService; never writes.

Order of checks:
    1. field validation, all problems collected into one ValidationError
    2. balance (UnbalancedVoucherError), on amounts incl. VAT
    3. period lock (PeriodLockedError / PeriodNotFoundError)

A reversal is prepared by ``mirror`` instead: the stored lines and ledger
entries with every side flipped, checked only against the period lock.

A line without a VAT code carries no VAT.  The account's VAT code is a
suggestion for the caller, not a default applied here.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.balance import BalanceLine, validate_balance
from ledger_kernel.domain.document_types import DocumentTypeClass
from ledger_kernel.domain.directories import AccountLookup, VatTypeLookup
from ledger_kernel.domain.dtos import (
    LineSide,
    OrganizationInfo,
    VatDirection,
    VoucherDraft,
    VoucherLineDraft,
)
from ledger_kernel.domain.ledger_projection import PricedLine, ProjectedEntry, project_entries
from ledger_kernel.domain.line_math import compute_line_totals
from ledger_kernel.domain.period_lock import ensure_period_unlocked
from ledger_kernel.exceptions import InvalidCurrencyError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.voucher import Voucher
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.organization_service import OrganizationService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.vat_directory import VatTypeDirectory
from ledger_kernel.settings import KernelSettings

logger = get_logger("services.preparation")

ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class PreparedLine:
    line_no: int
    account_number: str
    side: LineSide
    quantity: Decimal
    unit_amount_excl_vat: Decimal
    unit_amount_incl_vat: Decimal
    discount: Decimal
    vat_code: str | None
    vat_rate: Decimal
    vat_direction: VatDirection
    total_amount: Decimal
    total_amount_incl_vat: Decimal
    vat_amount: Decimal
    description: str | None = None


@dataclass(frozen=True)
class PreparedVoucher:
    organization: OrganizationInfo
    document_type: DocumentTypeClass
    draft: VoucherDraft
    currency: str
    lines: tuple[PreparedLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    total_vat: Decimal
    entries: tuple[ProjectedEntry, ...] = ()


def _as_decimal(value) -> Decimal | None:
    """
    Accept Decimal, int, float or numeric strings.

    Floats go through their shortest repr, so 100.1 becomes Decimal("100.1");
    what noise remains is absorbed by rounding and the balance epsilon.
    Bools are refused.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


class VoucherPreparer:
    """
    Contract:
        ``prepare`` raises before the caller writes anything; a returned
        PreparedVoucher is balanced and postable on its document date.
    """

    def __init__(
        self,
        session: Session,
        settings: KernelSettings,
        accounts: AccountLookup | None = None,
        vat_types: VatTypeLookup | None = None,
    ):
        self._session = session
        self._settings = settings
        self._accounts = accounts or AccountDirectory(session)
        self._vat_types = vat_types or VatTypeDirectory(session)
        self._organizations = OrganizationService(session)
        self._periods = PeriodService(session)

    # ------------------------------------------------------------------
    # Validation and pricing
    # ------------------------------------------------------------------

    def _validate_line(
        self,
        index: int,
        line: VoucherLineDraft,
        organization: OrganizationInfo,
        errors: dict[str, str],
    ) -> dict | None:
        prefix = f"lines[{index}]"
        valid = True

        account_number = line.account_number
        if not account_number:
            errors[f"{prefix}.account_number"] = "Account number is required"
            valid = False
        else:
            account = self._accounts.get_account(organization.id, account_number)
            if account is None:
                errors[f"{prefix}.account_number"] = f"Account {account_number} does not exist"
                valid = False
            elif not account.is_active:
                errors[f"{prefix}.account_number"] = f"Account {account_number} is inactive"
                valid = False

        try:
            side = LineSide(line.side)
        except ValueError:
            errors[f"{prefix}.side"] = "Side must be 'debit' or 'credit'"
            side = None
            valid = False

        unit_amount = _as_decimal(line.unit_amount)
        if unit_amount is None:
            errors[f"{prefix}.unit_amount"] = "Amount must be a finite decimal"
            valid = False
        elif unit_amount < 0:
            errors[f"{prefix}.unit_amount"] = "Amount must not be negative; use the side for direction"
            valid = False

        quantity = _as_decimal(line.quantity)
        if quantity is None or quantity <= 0:
            errors[f"{prefix}.quantity"] = "Quantity must be a positive decimal"
            valid = False

        discount = _as_decimal(line.discount)
        if discount is None or not (ZERO <= discount < ONE):
            errors[f"{prefix}.discount"] = "Discount must be at least 0 and below 1"
            valid = False

        vat_rate = ZERO
        vat_direction = VatDirection.NONE
        if line.vat_code is not None:
            vat_type = self._vat_types.get_vat_type(line.vat_code)
            if vat_type is None:
                errors[f"{prefix}.vat_code"] = f"Unknown VAT code {line.vat_code}"
                valid = False
            else:
                vat_rate = vat_type.rate
                vat_direction = VatDirection(vat_type.direction)
                if vat_rate and organization.is_vat_free:
                    errors[f"{prefix}.vat_code"] = "VAT-free organizations cannot book VAT"
                    valid = False
                elif vat_rate:
                    vat_account = self._settings.vat_accounts.for_direction(vat_direction)
                    if vat_account is None:
                        errors[f"{prefix}.vat_code"] = (
                            f"VAT code {line.vat_code} has a rate but no direction"
                        )
                        valid = False
                    else:
                        target = self._accounts.get_account(organization.id, vat_account)
                        if target is None or not target.is_active:
                            errors[f"{prefix}.vat_code"] = (
                                f"VAT account {vat_account} is not available"
                            )
                            valid = False

        if not valid:
            return None
        return {
            "side": side,
            "unit_amount": unit_amount,
            "quantity": quantity,
            "discount": discount,
            "vat_rate": vat_rate,
            "vat_direction": vat_direction,
        }

    def price(
        self,
        organization_id: UUID,
        draft: VoucherDraft,
        require_lines: bool = True,
    ) -> tuple[OrganizationInfo, str, tuple[PreparedLine, ...]]:
        """
        Validate a draft and compute its line totals.

        Raises:
            OrganizationNotFoundError: Unknown organization.
            ValidationError: With every invalid field.
        """
        organization = self._organizations.require(organization_id)
        errors: dict[str, str] = {}

        if not isinstance(draft.document_date, date):
            errors["document_date"] = "Document date is required"

        currency = draft.currency or organization.base_currency
        try:
            currency = validate_currency(currency)
        except InvalidCurrencyError as exc:
            errors["currency"] = exc.message

        if (
            draft.due_date is not None
            and isinstance(draft.document_date, date)
            and draft.due_date < draft.document_date
        ):
            errors["due_date"] = "Due date must not be before the document date"

        lines = draft.lines or ()
        if require_lines and not lines:
            errors["lines"] = "At least one line is required"

        checked = [
            self._validate_line(i, line, organization, errors)
            for i, line in enumerate(lines)
        ]
        if errors:
            logger.info("voucher_validation_failed", extra={"fields": sorted(errors)})
            raise ValidationError(errors)

        prepared = []
        for line_no, (line, values) in enumerate(zip(lines, checked), start=1):
            totals = compute_line_totals(
                unit_amount=values["unit_amount"],
                quantity=values["quantity"],
                discount=values["discount"],
                vat_rate=values["vat_rate"],
                amounts_include_vat=draft.amounts_include_vat,
                currency=currency,
            )
            prepared.append(
                PreparedLine(
                    line_no=line_no,
                    account_number=line.account_number,
                    side=values["side"],
                    quantity=values["quantity"],
                    unit_amount_excl_vat=totals.unit_amount_excl_vat,
                    unit_amount_incl_vat=totals.unit_amount_incl_vat,
                    discount=values["discount"],
                    vat_code=line.vat_code,
                    vat_rate=values["vat_rate"],
                    vat_direction=values["vat_direction"],
                    total_amount=totals.total_amount,
                    total_amount_incl_vat=totals.total_amount_incl_vat,
                    vat_amount=totals.vat_amount,
                    description=line.description,
                )
            )
        return organization, currency, tuple(prepared)

    # ------------------------------------------------------------------
    # Full posting preparation
    # ------------------------------------------------------------------

    def prepare(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass,
        draft: VoucherDraft,
    ) -> PreparedVoucher:
        """
        Validate, balance-check and period-check a voucher for posting.

        Raises:
            OrganizationNotFoundError, ValidationError,
            UnbalancedVoucherError, PeriodLockedError, PeriodNotFoundError.
        """
        organization, currency, lines = self.price(organization_id, draft)

        summary = validate_balance(
            (BalanceLine(line.side, line.total_amount_incl_vat) for line in lines),
            currency=currency,
            epsilon=self._settings.balance_epsilon,
        )

        ensure_period_unlocked(
            organization_id,
            draft.document_date,
            self._periods.get_period_for_date(organization_id, draft.document_date),
            policy=self._settings.missing_period_policy,
        )

        entries = project_entries(
            (
                PricedLine(
                    account_number=line.account_number,
                    side=line.side,
                    net_amount=line.total_amount,
                    vat_amount=line.vat_amount,
                    vat_code=line.vat_code,
                    vat_direction=line.vat_direction,
                )
                for line in lines
            ),
            self._settings.vat_accounts,
        )

        return PreparedVoucher(
            organization=organization,
            document_type=document_type,
            draft=draft,
            currency=currency,
            lines=lines,
            total_debit=summary.total_debit,
            total_credit=summary.total_credit,
            total_vat=sum((line.vat_amount for line in lines), ZERO),
            entries=entries,
        )

    # ------------------------------------------------------------------
    # Reversal preparation
    # ------------------------------------------------------------------

    def mirror(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass,
        original: Voucher,
        original_entries: Iterable[LedgerEntry],
        draft: VoucherDraft,
    ) -> PreparedVoucher:
        """
        Prepare the exact mirror image of a booked voucher.

        Lines and ledger entries are copied from the stored voucher with
        every side flipped, keeping the VAT rates and totals it was booked
        with.  Accounts are not re-validated, so a voucher on an account
        deactivated since can still be cancelled.  ``draft`` supplies the
        header (date, description) of the reversing voucher; only the
        period lock on its date is checked.

        Raises:
            OrganizationNotFoundError, PeriodLockedError, PeriodNotFoundError.
        """
        organization = self._organizations.require(organization_id)

        lines = []
        for line in original.lines:
            vat_type = self._vat_types.get_vat_type(line.vat_code) if line.vat_code else None
            lines.append(
                PreparedLine(
                    line_no=line.line_no,
                    account_number=line.account_number,
                    side=LineSide(line.side).opposite(),
                    quantity=line.quantity,
                    unit_amount_excl_vat=line.unit_amount_excl_vat,
                    unit_amount_incl_vat=line.unit_amount_incl_vat,
                    discount=line.discount,
                    vat_code=line.vat_code,
                    vat_rate=line.vat_rate,
                    vat_direction=(
                        VatDirection(vat_type.direction) if vat_type else VatDirection.NONE
                    ),
                    total_amount=line.total_amount,
                    total_amount_incl_vat=line.total_amount_incl_vat,
                    vat_amount=line.vat_amount,
                    description=line.description,
                )
            )

        entries = tuple(
            ProjectedEntry(
                account_number=entry.account_number,
                side=LineSide(entry.side).opposite(),
                amount=entry.amount,
                vat_code=entry.vat_code,
            )
            for entry in original_entries
        )

        summary = validate_balance(
            (BalanceLine(line.side, line.total_amount_incl_vat) for line in lines),
            currency=original.currency,
            epsilon=self._settings.balance_epsilon,
        )

        ensure_period_unlocked(
            organization_id,
            draft.document_date,
            self._periods.get_period_for_date(organization_id, draft.document_date),
            policy=self._settings.missing_period_policy,
        )

        return PreparedVoucher(
            organization=organization,
            document_type=document_type,
            draft=draft,
            currency=original.currency,
            lines=tuple(lines),
            total_debit=summary.total_debit,
            total_credit=summary.total_credit,
            total_vat=sum((line.vat_amount for line in lines), ZERO),
            entries=entries,
        )
