"""
Balance validation -- pure debit/credit equality check.

Responsibility:
    Given the lines of a candidate voucher, compute
    ``sum(debit) - sum(credit)`` rounded to the currency's minor unit and
    reject the voucher when the difference exceeds epsilon.

Architecture position:
    Kernel > Domain.  Pure function, no I/O; callable without a database.

Invariants enforced:
    - A voucher is accepted only if |difference| <= epsilon.
    - All arithmetic is Decimal.  Epsilon (0.0001 currency units) absorbs
      representation noise, never business variance: any difference of one
      minor unit or more is rejected.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.dtos import LineSide
from ledger_kernel.exceptions import UnbalancedVoucherError

DEFAULT_EPSILON = Decimal("0.0001")


@dataclass(frozen=True)
class BalanceLine:
    """A side-tagged, non-negative amount."""

    side: LineSide
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(
                f"BalanceLine amount must be non-negative, got {self.amount}"
            )

    @classmethod
    def from_signed(cls, amount: Decimal) -> "BalanceLine":
        """Positive amounts are debits, negative amounts are credits."""
        if amount < 0:
            return cls(LineSide.CREDIT, -amount)
        return cls(LineSide.DEBIT, amount)


@dataclass(frozen=True)
class BalanceSummary:
    total_debit: Decimal
    total_credit: Decimal
    difference: Decimal
    currency: str


def validate_balance(
    lines: Iterable[BalanceLine],
    currency: str = "DKK",
    epsilon: Decimal = DEFAULT_EPSILON,
) -> BalanceSummary:
    """
    Check that debits equal credits.

    Args:
        lines: Side-tagged amounts; order is irrelevant.
        currency: ISO 4217 code selecting the rounding precision.
        epsilon: Largest tolerated absolute difference.

    Returns:
        The rounded totals and difference.

    Raises:
        UnbalancedVoucherError: If |difference| > epsilon.
    """
    debit = Decimal("0")
    credit = Decimal("0")
    for line in lines:
        if line.side == LineSide.DEBIT:
            debit += line.amount
        else:
            credit += line.amount

    summary = BalanceSummary(
        total_debit=round_money(debit, currency),
        total_credit=round_money(credit, currency),
        difference=round_money(debit - credit, currency),
        currency=currency,
    )
    if abs(summary.difference) > epsilon:
        raise UnbalancedVoucherError(
            difference=summary.difference,
            total_debit=summary.total_debit,
            total_credit=summary.total_credit,
            currency=currency,
        )
    return summary
