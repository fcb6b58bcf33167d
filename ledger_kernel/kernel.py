"""
LedgerKernel -- the facade the HTTP layer talks to.

Responsibility:
    One object exposing every ledger operation: organization and period
    administration, the posting state machine, and the read paths.  Each
    method is a single transaction.

Architecture position:
    Outermost layer of ``ledger_kernel``.  Owns nothing but a session
    factory, the KernelSettings and the Clock; everything else is built per
    call.

Usage:
    from ledger_config import load_config, kernel_settings
    from ledger_kernel.db.engine import init_engine_from_url, get_session_factory

    config = load_config()
    init_engine_from_url(config.database.url)
    kernel = LedgerKernel(get_session_factory(), kernel_settings(config))
    kernel.bootstrap()

    org = kernel.create_organization("Acme ApS", first_year=2024)
    result = kernel.post(org.id, DocumentTypeClass.MANUAL_VOUCHER, draft)
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.document_types import DocumentTypeClass, parse_document_type
from ledger_kernel.domain.dtos import (
    AccountInfo,
    AccountingPeriodInfo,
    AuditRecordInfo,
    LedgerEntryInfo,
    OrganizationInfo,
    PostingResult,
    TrialBalanceRow,
    VatSummaryRow,
    VatTypeInfo,
    VoucherDraft,
    VoucherInfo,
)
from ledger_kernel.domain.status import VoucherStatus, parse_status
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.audit_recorder import AuditRecorder
from ledger_kernel.services.organization_service import OrganizationService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator
from ledger_kernel.services.unit_of_work import unit_of_work
from ledger_kernel.services.vat_directory import VatTypeDirectory
from ledger_kernel.services.voucher_store import VoucherStore
from ledger_kernel.settings import KernelSettings

logger = get_logger("kernel")


def _uuid(value: UUID | str, field: str = "organization_id") -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError({field: f"Not a valid id: {value!r}"}) from None


class LedgerKernel:
    """
    Contract:
        Every method commits on success and leaves no trace on failure.
        Organization ids and voucher GUIDs may be given as UUID or string.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or KernelSettings()
        self._clock = clock or SystemClock()
        self._orchestrator = PostingOrchestrator(session_factory, self._settings, self._clock)
        register_immutability_listeners()

    @property
    def settings(self) -> KernelSettings:
        return self._settings

    def _uow(self, operation: str, organization_id: UUID | None = None):
        return unit_of_work(self._session_factory, operation, organization_id)

    # ------------------------------------------------------------------
    # Reference data and administration
    # ------------------------------------------------------------------

    def bootstrap(self) -> int:
        """Seed the VAT catalogue from settings.  Returns the number inserted."""
        with self._uow("bootstrap") as session:
            return VatTypeDirectory(session).seed(self._settings.vat_types)

    def list_vat_types(self) -> tuple[VatTypeInfo, ...]:
        with self._uow("list_vat_types") as session:
            return VatTypeDirectory(session).list_vat_types()

    def create_organization(
        self,
        name: str,
        base_currency: str | None = None,
        is_vat_free: bool = False,
        first_year: int | None = None,
        actor_id: UUID | None = None,
    ) -> OrganizationInfo:
        """
        Create an organization with the default chart of accounts and,
        when ``first_year`` is given, its first accounting year.
        """
        with self._uow("create_organization") as session:
            organization = OrganizationService(session).create_organization(
                name,
                base_currency=base_currency or self._settings.default_currency,
                is_vat_free=is_vat_free,
                actor_id=actor_id,
            )
            with LogContext.bind(organization_id=organization.id, actor_id=actor_id):
                AccountDirectory(session).provision_default_chart(
                    organization.id, self._settings.default_chart, actor_id=actor_id
                )
                if first_year is not None:
                    PeriodService(session, self._clock).create_period(
                        organization.id, first_year, actor_id=actor_id
                    )
            return organization

    def get_organization(self, organization_id: UUID | str) -> OrganizationInfo:
        organization_id = _uuid(organization_id)
        with self._uow("get_organization", organization_id) as session:
            return OrganizationService(session).require(organization_id)

    def create_period(
        self,
        organization_id: UUID | str,
        year: int,
        start_date: date | None = None,
        end_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> AccountingPeriodInfo:
        organization_id = _uuid(organization_id)
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            with self._uow("create_period", organization_id) as session:
                OrganizationService(session).require(organization_id)
                return PeriodService(session, self._clock).create_period(
                    organization_id, year, start_date, end_date, actor_id=actor_id
                )

    def lock_period(
        self,
        organization_id: UUID | str,
        year: int,
        locked_until: date | None = None,
        actor_id: UUID | None = None,
    ) -> AccountingPeriodInfo:
        """Lock ``year`` up to and including ``locked_until`` (default: year end)."""
        organization_id = _uuid(organization_id)
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            with self._uow("lock_period", organization_id) as session:
                return PeriodService(session, self._clock).lock_period(
                    organization_id, year, locked_until, actor_id=actor_id
                )

    def unlock_period(
        self,
        organization_id: UUID | str,
        year: int,
        actor_id: UUID | None = None,
    ) -> AccountingPeriodInfo:
        organization_id = _uuid(organization_id)
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            with self._uow("unlock_period", organization_id) as session:
                return PeriodService(session, self._clock).unlock_period(
                    organization_id, year, actor_id=actor_id
                )

    def list_periods(self, organization_id: UUID | str) -> tuple[AccountingPeriodInfo, ...]:
        organization_id = _uuid(organization_id)
        with self._uow("list_periods", organization_id) as session:
            return PeriodService(session, self._clock).list_periods(organization_id)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(
        self,
        organization_id: UUID | str,
        account_number: str,
        name: str,
        vat_code: str | None = None,
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        organization_id = _uuid(organization_id)
        with self._uow("create_account", organization_id) as session:
            OrganizationService(session).require(organization_id)
            return AccountDirectory(session).create_account(
                organization_id, account_number, name, vat_code, actor_id=actor_id
            )

    def deactivate_account(
        self,
        organization_id: UUID | str,
        account_number: str,
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        organization_id = _uuid(organization_id)
        with self._uow("deactivate_account", organization_id) as session:
            return AccountDirectory(session).deactivate_account(
                organization_id, account_number, actor_id=actor_id
            )

    def delete_account(self, organization_id: UUID | str, account_number: str) -> None:
        organization_id = _uuid(organization_id)
        with self._uow("delete_account", organization_id) as session:
            AccountDirectory(session).delete_account(organization_id, account_number)

    def list_accounts(
        self, organization_id: UUID | str, include_inactive: bool = True
    ) -> tuple[AccountInfo, ...]:
        organization_id = _uuid(organization_id)
        with self._uow("list_accounts", organization_id) as session:
            return AccountDirectory(session).list_accounts(organization_id, include_inactive)

    # ------------------------------------------------------------------
    # Posting state machine
    # ------------------------------------------------------------------

    def post(
        self,
        organization_id: UUID | str,
        document_type: DocumentTypeClass | str,
        draft: VoucherDraft,
        actor_id: UUID | None = None,
    ) -> PostingResult:
        return self._orchestrator.post(_uuid(organization_id), document_type, draft, actor_id)

    def create_draft(
        self,
        organization_id: UUID | str,
        document_type: DocumentTypeClass | str,
        draft: VoucherDraft,
        actor_id: UUID | None = None,
    ) -> VoucherInfo:
        return self._orchestrator.create_draft(
            _uuid(organization_id), document_type, draft, actor_id
        )

    def update_draft(
        self,
        organization_id: UUID | str,
        voucher_id: UUID | str,
        draft: VoucherDraft,
        actor_id: UUID | None = None,
    ) -> VoucherInfo:
        return self._orchestrator.update_draft(
            _uuid(organization_id), _uuid(voucher_id, "voucher_id"), draft, actor_id
        )

    def delete_draft(
        self,
        organization_id: UUID | str,
        voucher_id: UUID | str,
        actor_id: UUID | None = None,
    ) -> None:
        self._orchestrator.delete_draft(_uuid(organization_id), _uuid(voucher_id, "voucher_id"), actor_id)

    def book(
        self,
        organization_id: UUID | str,
        voucher_id: UUID | str,
        actor_id: UUID | None = None,
    ) -> PostingResult:
        return self._orchestrator.book(_uuid(organization_id), _uuid(voucher_id, "voucher_id"), actor_id)

    def set_payment_status(
        self,
        organization_id: UUID | str,
        voucher_id: UUID | str,
        status: VoucherStatus | str,
        actor_id: UUID | None = None,
    ) -> VoucherInfo:
        return self._orchestrator.set_payment_status(
            _uuid(organization_id), _uuid(voucher_id, "voucher_id"), status, actor_id
        )

    def reverse(
        self,
        organization_id: UUID | str,
        voucher_id: UUID | str,
        document_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> PostingResult:
        return self._orchestrator.reverse(
            _uuid(organization_id), _uuid(voucher_id, "voucher_id"), document_date, actor_id
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_voucher(self, organization_id: UUID | str, voucher_id: UUID | str) -> VoucherInfo:
        organization_id = _uuid(organization_id)
        with self._uow("get_voucher", organization_id) as session:
            store = VoucherStore(session)
            return store.to_info(store.get(organization_id, _uuid(voucher_id, "voucher_id")))

    def list_vouchers(
        self,
        organization_id: UUID | str,
        document_type: DocumentTypeClass | str | None = None,
        status: VoucherStatus | str | None = None,
    ) -> tuple[VoucherInfo, ...]:
        organization_id = _uuid(organization_id)
        if document_type is not None:
            document_type = parse_document_type(document_type)
        if status is not None:
            status = parse_status(status)
        with self._uow("list_vouchers", organization_id) as session:
            store = VoucherStore(session)
            return tuple(
                store.to_info(v)
                for v in store.list_vouchers(organization_id, document_type, status)
            )

    def audit_trail(
        self,
        organization_id: UUID | str,
        table_name: str,
        record_id: UUID | str,
    ) -> tuple[AuditRecordInfo, ...]:
        """Audit records of one row, ordered by ``seq``."""
        organization_id = _uuid(organization_id)
        with self._uow("audit_trail", organization_id) as session:
            return AuditRecorder(session, self._clock).trail(
                organization_id, table_name, record_id
            )

    def verify_audit_chain(self, organization_id: UUID | str) -> int:
        """Raises AuditChainBrokenError; returns the number of records checked."""
        organization_id = _uuid(organization_id)
        with self._uow("verify_audit_chain", organization_id) as session:
            return AuditRecorder(session, self._clock).verify_chain(organization_id)

    def ledger_entries(
        self,
        organization_id: UUID | str,
        start_date: date | None = None,
        end_date: date | None = None,
        account_number: str | None = None,
    ) -> tuple[LedgerEntryInfo, ...]:
        organization_id = _uuid(organization_id)
        with self._uow("ledger_entries", organization_id) as session:
            return LedgerSelector(session).ledger_entries(
                organization_id, start_date, end_date, account_number
            )

    def trial_balance(
        self, organization_id: UUID | str, as_of: date | None = None
    ) -> tuple[TrialBalanceRow, ...]:
        organization_id = _uuid(organization_id)
        with self._uow("trial_balance", organization_id) as session:
            return LedgerSelector(session).trial_balance(organization_id, as_of)

    def vat_summary(
        self,
        organization_id: UUID | str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> tuple[VatSummaryRow, ...]:
        organization_id = _uuid(organization_id)
        with self._uow("vat_summary", organization_id) as session:
            return LedgerSelector(session).vat_summary(organization_id, start_date, end_date)
