"""
Ledger projection -- from priced voucher lines to per-account movements.

Each line books its net amount (excl. VAT) on the line's account, on the
line's side.  A non-zero VAT amount is booked on the same side to the output
VAT account (sales VAT) or the input VAT account (purchase VAT), depending on
the VAT type's direction.  Zero amounts produce no entry.

The projection of a balanced voucher is balanced: per line,
net + VAT == gross, and the balance check runs on gross amounts.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.domain.dtos import LineSide, VatDirection


@dataclass(frozen=True)
class VatAccounts:
    """Account numbers receiving the VAT part of voucher lines."""

    output: str
    input: str

    def for_direction(self, direction: VatDirection) -> str | None:
        if direction == VatDirection.OUTPUT:
            return self.output
        if direction == VatDirection.INPUT:
            return self.input
        return None


@dataclass(frozen=True)
class PricedLine:
    account_number: str
    side: LineSide
    net_amount: Decimal
    vat_amount: Decimal
    vat_code: str | None = None
    vat_direction: VatDirection = VatDirection.NONE


@dataclass(frozen=True)
class ProjectedEntry:
    account_number: str
    side: LineSide
    amount: Decimal
    vat_code: str | None = None


def project_entries(
    lines: Iterable[PricedLine],
    vat_accounts: VatAccounts,
) -> tuple[ProjectedEntry, ...]:
    """
    Build ledger entries for the given lines, in line order.

    Raises:
        ValueError: If a line carries VAT but its VAT type has no direction.
    """
    entries: list[ProjectedEntry] = []
    for line in lines:
        if line.net_amount:
            entries.append(
                ProjectedEntry(line.account_number, line.side, line.net_amount, line.vat_code)
            )
        if line.vat_amount:
            vat_account = vat_accounts.for_direction(line.vat_direction)
            if vat_account is None:
                raise ValueError(
                    f"VAT code {line.vat_code} has no direction but carries VAT"
                )
            entries.append(
                ProjectedEntry(vat_account, line.side, line.vat_amount, line.vat_code)
            )
    return tuple(entries)
