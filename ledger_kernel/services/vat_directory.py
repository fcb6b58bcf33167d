"""
VatTypeDirectory -- resolves VAT codes to rate and direction.

The VAT catalogue is global reference data, seeded once from configuration
(``ledger_config/defaults/vat_types.yaml``).  Implements the
``VatTypeLookup`` protocol consumed by voucher preparation.
"""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import VatDirection, VatTypeInfo, VatTypeSeed
from ledger_kernel.exceptions import UnknownVatCodeError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.vat_type import VatType

logger = get_logger("services.vat")


def _to_info(vat_type: VatType) -> VatTypeInfo:
    return VatTypeInfo(
        code=vat_type.code,
        name=vat_type.name,
        rate=vat_type.rate,
        direction=VatDirection(vat_type.direction),
    )


class VatTypeDirectory:
    def __init__(self, session: Session):
        self._session = session

    def get_vat_type(self, code: str) -> VatTypeInfo | None:
        vat_type = self._session.execute(
            select(VatType).where(VatType.code == code)
        ).scalar_one_or_none()
        return _to_info(vat_type) if vat_type is not None else None

    def require(self, code: str) -> VatTypeInfo:
        info = self.get_vat_type(code)
        if info is None:
            raise UnknownVatCodeError(code)
        return info

    def list_vat_types(self) -> tuple[VatTypeInfo, ...]:
        rows = self._session.execute(
            select(VatType).order_by(VatType.code)
        ).scalars().all()
        return tuple(_to_info(r) for r in rows)

    def seed(self, seeds: Iterable[VatTypeSeed]) -> int:
        """
        Insert catalogue entries whose code is not present yet.

        Existing codes are left untouched: rates of booked lines are stored
        on the line, so a changed catalogue never rewrites history.

        Returns:
            Number of VAT types inserted.
        """
        existing = set(self._session.execute(select(VatType.code)).scalars().all())
        inserted = 0
        for seed in seeds:
            if seed.code in existing:
                continue
            self._session.add(
                VatType(
                    code=seed.code,
                    name=seed.name,
                    rate=seed.rate,
                    direction=VatDirection(seed.direction).value,
                )
            )
            existing.add(seed.code)
            inserted += 1
        self._session.flush()
        if inserted:
            logger.info("vat_types_seeded", extra={"count": inserted})
        return inserted
