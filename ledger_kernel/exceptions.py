"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected posting must be reported with enough structure for the caller
(usually an HTTP layer) to act on it or render a precise message. Callers
catch by type, read the machine-readable ``code`` and the structured fields:

    try:
        kernel.post(org_id, DocumentTypeClass.INVOICE, draft)
    except PeriodLockedError as e:
        respond(409, code=e.code, locked_until=e.locked_until.isoformat())
    except ValidationError as e:
        respond(422, code=e.code, errors=e.errors)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |
    +-- PostingError
    |   +-- UnbalancedVoucherError
    |   +-- NumberingConflictError
    |   +-- PostingTimeoutError        (also a builtin TimeoutError)
    |
    +-- PeriodError
    |   +-- PeriodLockedError
    |   +-- PeriodNotFoundError
    |   +-- PeriodOverlapError
    |
    +-- OrganizationError
    |   +-- OrganizationNotFoundError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- AccountReferencedError
    |
    +-- VatError
    |   +-- UnknownVatCodeError
    |
    +-- VoucherError
    |   +-- VoucherNotFoundError
    |   +-- VoucherNotDraftError
    |   +-- VoucherNotBookedError
    |   +-- InvalidStatusTransitionError
    |   +-- VoucherAlreadyReversedError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- StorageError

===============================================================================
RETRY SEMANTICS
===============================================================================

ValidationError, UnbalancedVoucherError and PeriodLockedError are raised
before any write. Nothing is persisted; the caller must correct the input.

NumberingConflictError surfaces only after the bounded internal retries are
exhausted. PostingTimeoutError is transient; the whole call may be retried
because no partial state survives a failed attempt.

StorageError wraps any other database failure and chains the original
exception (``raise ... from exc``).
"""

from datetime import date


class LedgerKernelError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(LedgerKernelError):
    """
    Voucher input is missing or malformed.

    ``errors`` maps a field path (``document_date``, ``lines[1].vat_code``)
    to a human-readable reason.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid voucher input: {fields}")


# Posting-related exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting errors."""

    code: str = "POSTING_ERROR"


class UnbalancedVoucherError(PostingError):
    """Sum of debits does not equal sum of credits."""

    code: str = "UNBALANCED_VOUCHER"

    def __init__(
        self,
        difference,
        total_debit,
        total_credit,
        currency: str,
    ):
        self.difference = difference
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.currency = currency
        super().__init__(
            f"Voucher is unbalanced by {difference} {currency}: "
            f"debits={total_debit}, credits={total_credit}"
        )


class NumberingConflictError(PostingError):
    """Voucher number could not be assigned within the retry bound."""

    code: str = "NUMBERING_CONFLICT"

    def __init__(self, organization_id: str, document_type: str, attempts: int):
        self.organization_id = organization_id
        self.document_type = document_type
        self.attempts = attempts
        super().__init__(
            f"Could not assign a {document_type} number for organization "
            f"{organization_id} after {attempts} attempts"
        )


class PostingTimeoutError(PostingError, TimeoutError):
    """
    The posting transaction could not acquire its locks in time.

    Retryable: no partial state survives the failed attempt.
    """

    code: str = "POSTING_TIMEOUT"

    def __init__(self, organization_id: str, reason: str):
        self.organization_id = organization_id
        self.reason = reason
        super().__init__(
            f"Posting for organization {organization_id} timed out: {reason}"
        )


# Period-related exceptions


class PeriodError(LedgerKernelError):
    """Base exception for accounting period errors."""

    code: str = "PERIOD_ERROR"


class PeriodLockedError(PeriodError):
    """Document date falls on or before the period's lock boundary."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, locked_until: date, document_date: date, organization_id: str):
        self.locked_until = locked_until
        self.document_date = document_date
        self.organization_id = organization_id
        super().__init__(
            f"Period is locked until {locked_until.isoformat()}; "
            f"cannot post on {document_date.isoformat()}"
        )


class PeriodNotFoundError(PeriodError):
    """No accounting period covers the given date or year."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, organization_id: str, reference: str):
        self.organization_id = organization_id
        self.reference = reference
        super().__init__(
            f"No accounting period for organization {organization_id}: {reference}"
        )


class PeriodOverlapError(PeriodError):
    """A new period overlaps or is not contiguous with existing periods."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, year: int, reason: str):
        self.year = year
        self.reason = reason
        super().__init__(f"Accounting period {year} rejected: {reason}")


# Organization-related exceptions


class OrganizationError(LedgerKernelError):
    """Base exception for organization errors."""

    code: str = "ORGANIZATION_ERROR"


class OrganizationNotFoundError(OrganizationError):
    """Organization does not exist."""

    code: str = "ORGANIZATION_NOT_FOUND"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization not found: {organization_id}")


# Account-related exceptions


class AccountError(LedgerKernelError):
    """Base exception for account errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account number does not exist in the organization's chart."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, organization_id: str, account_number: str):
        self.organization_id = organization_id
        self.account_number = account_number
        super().__init__(f"Account {account_number} not found")


class AccountInactiveError(AccountError):
    """Account is deactivated and cannot receive postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, organization_id: str, account_number: str):
        self.organization_id = organization_id
        self.account_number = account_number
        super().__init__(f"Account {account_number} is inactive")


class AccountReferencedError(AccountError):
    """Account cannot be deleted because ledger entries reference it."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, organization_id: str, account_number: str):
        self.organization_id = organization_id
        self.account_number = account_number
        super().__init__(
            f"Account {account_number} cannot be deleted: referenced by ledger entries"
        )


# VAT-related exceptions


class VatError(LedgerKernelError):
    """Base exception for VAT errors."""

    code: str = "VAT_ERROR"


class UnknownVatCodeError(VatError):
    """VAT code is not in the VAT type directory."""

    code: str = "UNKNOWN_VAT_CODE"

    def __init__(self, vat_code: str):
        self.vat_code = vat_code
        super().__init__(f"Unknown VAT code: {vat_code}")


# Voucher-related exceptions


class VoucherError(LedgerKernelError):
    """Base exception for voucher lifecycle errors."""

    code: str = "VOUCHER_ERROR"


class VoucherNotFoundError(VoucherError):
    """Voucher does not exist in the organization."""

    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, organization_id: str, voucher_id: str):
        self.organization_id = organization_id
        self.voucher_id = voucher_id
        super().__init__(f"Voucher not found: {voucher_id}")


class VoucherNotDraftError(VoucherError):
    """Operation requires a Draft voucher but the voucher is booked."""

    code: str = "VOUCHER_NOT_DRAFT"

    def __init__(self, voucher_id: str, status: str):
        self.voucher_id = voucher_id
        self.status = status
        super().__init__(f"Voucher {voucher_id} is {status}, not draft")


class VoucherNotBookedError(VoucherError):
    """Operation requires a booked voucher but the voucher is a draft."""

    code: str = "VOUCHER_NOT_BOOKED"

    def __init__(self, voucher_id: str, status: str):
        self.voucher_id = voucher_id
        self.status = status
        super().__init__(f"Voucher {voucher_id} is {status}, not booked")


class InvalidStatusTransitionError(VoucherError):
    """Requested status change is not allowed."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, voucher_id: str, from_status: str, to_status: str):
        self.voucher_id = voucher_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Voucher {voucher_id} cannot move from {from_status} to {to_status}"
        )


class VoucherAlreadyReversedError(VoucherError):
    """Voucher already has a reversing voucher."""

    code: str = "VOUCHER_ALREADY_REVERSED"

    def __init__(self, voucher_id: str, reversal_id: str):
        self.voucher_id = voucher_id
        self.reversal_id = reversal_id
        super().__init__(
            f"Voucher {voucher_id} was already reversed by {reversal_id}"
        )


# Currency-related exceptions


class CurrencyError(LedgerKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency}")


# Audit-related exceptions


class AuditError(LedgerKernelError):
    """Base exception for audit errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, organization_id: str, record_id: str, expected_hash: str, actual_hash: str):
        self.organization_id = organization_id
        self.record_id = record_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at record {record_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability-related exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a booked or append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Storage


class StorageError(LedgerKernelError):
    """
    Unexpected ledger store failure.

    The original database exception is chained as ``__cause__``.
    """

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")
