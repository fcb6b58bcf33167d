"""ORM models of the ledger store."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.accounting_period import AccountingPeriod
from ledger_kernel.models.audit_record import AuditOperation, AuditRecord
from ledger_kernel.models.counters import SequenceCounter, VoucherNumberCounter
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.organization import Organization
from ledger_kernel.models.vat_type import VatType
from ledger_kernel.models.voucher import Voucher, VoucherLine

__all__ = [
    "Account",
    "AccountingPeriod",
    "AuditOperation",
    "AuditRecord",
    "LedgerEntry",
    "Organization",
    "SequenceCounter",
    "VatType",
    "Voucher",
    "VoucherLine",
    "VoucherNumberCounter",
]
