"""
AccountDirectory -- the organization's chart of accounts.

Responsibility:
    Lookup by (organization, account number), creation, deactivation and
    provisioning of the default chart.  Implements the ``AccountLookup``
    protocol consumed by voucher preparation.

Invariants enforced:
    - Account numbers are unique per organization.
    - An account's VAT code references a known VAT type.
    - Accounts referenced by ledger entries are deactivated, not deleted
      (the delete itself is refused by db/immutability.py).
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountInfo, AccountSeed
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    UnknownVatCodeError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.vat_directory import VatTypeDirectory

logger = get_logger("services.accounts")


def _to_info(account: Account) -> AccountInfo:
    return AccountInfo(
        organization_id=account.organization_id,
        number=account.account_number,
        name=account.name,
        vat_code=account.vat_code,
        is_active=account.is_active,
    )


class AccountDirectory(BaseService[Account]):
    def __init__(self, session: Session):
        super().__init__(session)
        self._vat_types = VatTypeDirectory(session)

    def _load(self, organization_id: UUID, account_number: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.organization_id == organization_id,
                Account.account_number == account_number,
            )
        ).scalar_one_or_none()

    def get_account(self, organization_id: UUID, account_number: str) -> AccountInfo | None:
        account = self._load(organization_id, account_number)
        return _to_info(account) if account is not None else None

    def require_postable(self, organization_id: UUID, account_number: str) -> AccountInfo:
        """
        Raises:
            AccountNotFoundError: No such account in the organization.
            AccountInactiveError: The account is deactivated.
        """
        info = self.get_account(organization_id, account_number)
        if info is None:
            raise AccountNotFoundError(str(organization_id), account_number)
        if not info.is_active:
            raise AccountInactiveError(str(organization_id), account_number)
        return info

    def list_accounts(
        self, organization_id: UUID, include_inactive: bool = True
    ) -> tuple[AccountInfo, ...]:
        query = select(Account).where(Account.organization_id == organization_id)
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))
        rows = self.session.execute(query.order_by(Account.account_number)).scalars().all()
        return tuple(_to_info(r) for r in rows)

    def create_account(
        self,
        organization_id: UUID,
        account_number: str,
        name: str,
        vat_code: str | None = None,
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        """
        Raises:
            ValidationError: Blank number or name, or the number is taken.
            UnknownVatCodeError: ``vat_code`` is not in the catalogue.
        """
        errors: dict[str, str] = {}
        if not account_number or not account_number.strip():
            errors["account_number"] = "Account number is required"
        if not name or not name.strip():
            errors["name"] = "Account name is required"
        if errors:
            raise ValidationError(errors)

        if vat_code is not None and self._vat_types.get_vat_type(vat_code) is None:
            raise UnknownVatCodeError(vat_code)

        if self._load(organization_id, account_number) is not None:
            raise ValidationError(
                {"account_number": f"Account {account_number} already exists"}
            )

        account = Account(
            organization_id=organization_id,
            account_number=account_number,
            name=name,
            vat_code=vat_code,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()
        logger.info("account_created", extra={"account_number": account_number})
        return _to_info(account)

    def deactivate_account(
        self, organization_id: UUID, account_number: str, actor_id: UUID | None = None
    ) -> AccountInfo:
        account = self._load(organization_id, account_number)
        if account is None:
            raise AccountNotFoundError(str(organization_id), account_number)
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info("account_deactivated", extra={"account_number": account_number})
        return _to_info(account)

    def delete_account(self, organization_id: UUID, account_number: str) -> None:
        """
        Delete an unused account.

        Raises:
            AccountNotFoundError: No such account.
            AccountReferencedError: Ledger entries reference it (raised on
                flush by the immutability listener).
        """
        account = self._load(organization_id, account_number)
        if account is None:
            raise AccountNotFoundError(str(organization_id), account_number)
        self.session.delete(account)
        self.session.flush()
        logger.info("account_deleted", extra={"account_number": account_number})

    def provision_default_chart(
        self,
        organization_id: UUID,
        seeds: Iterable[AccountSeed],
        actor_id: UUID | None = None,
    ) -> int:
        """Create the accounts of ``seeds`` that the organization lacks."""
        existing = set(
            self.session.execute(
                select(Account.account_number).where(
                    Account.organization_id == organization_id
                )
            ).scalars().all()
        )
        created = 0
        for seed in seeds:
            if seed.number in existing:
                continue
            if seed.vat_code is not None:
                self._vat_types.require(seed.vat_code)
            self.session.add(
                Account(
                    organization_id=organization_id,
                    account_number=seed.number,
                    name=seed.name,
                    vat_code=seed.vat_code,
                    is_active=True,
                    created_by_id=actor_id,
                )
            )
            existing.add(seed.number)
            created += 1
        self.session.flush()
        logger.info("default_chart_provisioned", extra={"account_count": created})
        return created
