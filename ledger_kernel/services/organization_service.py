"""
OrganizationService -- tenant creation and lookup.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.dtos import OrganizationInfo
from ledger_kernel.exceptions import OrganizationNotFoundError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.organization import Organization
from ledger_kernel.services.base import BaseService

logger = get_logger("services.organizations")


def _to_info(organization: Organization) -> OrganizationInfo:
    return OrganizationInfo(
        id=organization.id,
        name=organization.name,
        base_currency=organization.base_currency,
        is_vat_free=organization.is_vat_free,
    )


class OrganizationService(BaseService[Organization]):
    def __init__(self, session: Session):
        super().__init__(session)

    def create_organization(
        self,
        name: str,
        base_currency: str = "DKK",
        is_vat_free: bool = False,
        actor_id: UUID | None = None,
    ) -> OrganizationInfo:
        if not name or not name.strip():
            raise ValidationError({"name": "Organization name is required"})
        organization = Organization(
            name=name,
            base_currency=validate_currency(base_currency),
            is_vat_free=is_vat_free,
            created_by_id=actor_id,
        )
        self.session.add(organization)
        self.session.flush()
        logger.info(
            "organization_created",
            extra={"organization_id": str(organization.id), "base_currency": base_currency},
        )
        return _to_info(organization)

    def get(self, organization_id: UUID) -> OrganizationInfo | None:
        organization = self.session.get(Organization, organization_id)
        return _to_info(organization) if organization is not None else None

    def require(self, organization_id: UUID) -> OrganizationInfo:
        info = self.get(organization_id)
        if info is None:
            raise OrganizationNotFoundError(str(organization_id))
        return info
