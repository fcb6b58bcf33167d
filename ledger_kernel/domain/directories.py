"""
Collaborator protocols consumed by the posting pipeline.

The orchestrator only needs to resolve accounts and VAT codes; any object
with these methods will do.  The database-backed implementations live in
``services/account_directory.py`` and ``services/vat_directory.py``.
"""

from typing import Protocol
from uuid import UUID

from ledger_kernel.domain.dtos import AccountInfo, VatTypeInfo


class AccountLookup(Protocol):
    def get_account(self, organization_id: UUID, account_number: str) -> AccountInfo | None:
        """Return the account, or None if the organization has no such number."""
        ...


class VatTypeLookup(Protocol):
    def get_vat_type(self, code: str) -> VatTypeInfo | None:
        """Return the VAT type, or None for an unknown code."""
        ...
