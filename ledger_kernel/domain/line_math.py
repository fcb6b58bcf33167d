"""
Voucher line arithmetic.

    total = unit_amount * quantity * (1 - discount)

holds both excl. and incl. VAT.  When the voucher's amounts include VAT the
entered unit amount is gross and the net unit amount is derived from it, and
vice versa.  Line totals are rounded to the currency's minor unit and the VAT
amount is the difference ``gross - net``, so net + VAT always equals gross
exactly and the ledger projection of a balanced voucher stays balanced.
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.db.types import round_money

ONE = Decimal("1")
UNIT_PRECISION = Decimal("1e-9")


@dataclass(frozen=True)
class LineTotals:
    unit_amount_excl_vat: Decimal
    unit_amount_incl_vat: Decimal
    total_amount: Decimal
    total_amount_incl_vat: Decimal
    vat_amount: Decimal


def compute_line_totals(
    unit_amount: Decimal,
    quantity: Decimal,
    discount: Decimal,
    vat_rate: Decimal,
    amounts_include_vat: bool,
    currency: str,
) -> LineTotals:
    """
    Compute unit and total amounts of one line.

    Preconditions: 0 <= vat_rate <= 1, 0 <= discount < 1, quantity > 0.
    """
    factor = ONE + vat_rate
    if amounts_include_vat:
        unit_incl = unit_amount
        unit_excl = unit_amount / factor
    else:
        unit_excl = unit_amount
        unit_incl = unit_amount * factor

    keep = ONE - discount
    total_excl = round_money(unit_excl * quantity * keep, currency)
    total_incl = round_money(unit_incl * quantity * keep, currency)

    return LineTotals(
        unit_amount_excl_vat=unit_excl.quantize(UNIT_PRECISION),
        unit_amount_incl_vat=unit_incl.quantize(UNIT_PRECISION),
        total_amount=total_excl,
        total_amount_incl_vat=total_incl,
        vat_amount=total_incl - total_excl,
    )
