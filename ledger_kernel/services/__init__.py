"""
Kernel services.

Services receive a Session and flush; PostingOrchestrator and unit_of_work
own transactions.
"""

from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.audit_recorder import AuditRecorder
from ledger_kernel.services.numbering_service import VoucherNumberingAuthority
from ledger_kernel.services.organization_service import OrganizationService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.unit_of_work import unit_of_work
from ledger_kernel.services.vat_directory import VatTypeDirectory
from ledger_kernel.services.voucher_preparation import VoucherPreparer
from ledger_kernel.services.voucher_store import VoucherStore

__all__ = [
    "AccountDirectory",
    "AuditRecorder",
    "OrganizationService",
    "PeriodService",
    "PostingOrchestrator",
    "SequenceService",
    "VatTypeDirectory",
    "VoucherNumberingAuthority",
    "VoucherPreparer",
    "VoucherStore",
    "unit_of_work",
]
