"""
Unit tests for voucher line arithmetic.

Verifies:
- total = unit x quantity x (1 - discount), excl. and incl. VAT
- net + VAT == gross exactly after rounding
- Gross entry derives the net unit amount
"""

from decimal import Decimal

from ledger_kernel.domain.line_math import compute_line_totals


class TestComputeLineTotals:
    def test_net_entry_with_vat(self):
        totals = compute_line_totals(
            unit_amount=Decimal("80"),
            quantity=Decimal("1"),
            discount=Decimal("0"),
            vat_rate=Decimal("0.25"),
            amounts_include_vat=False,
            currency="DKK",
        )
        assert totals.total_amount == Decimal("80.00")
        assert totals.total_amount_incl_vat == Decimal("100.00")
        assert totals.vat_amount == Decimal("20.00")
        assert totals.unit_amount_incl_vat == Decimal("100")

    def test_gross_entry_derives_net(self):
        totals = compute_line_totals(
            unit_amount=Decimal("100"),
            quantity=Decimal("1"),
            discount=Decimal("0"),
            vat_rate=Decimal("0.25"),
            amounts_include_vat=True,
            currency="DKK",
        )
        assert totals.unit_amount_excl_vat == Decimal("80")
        assert totals.total_amount == Decimal("80.00")
        assert totals.vat_amount == Decimal("20.00")

    def test_quantity_and_discount(self):
        totals = compute_line_totals(
            unit_amount=Decimal("10"),
            quantity=Decimal("3"),
            discount=Decimal("0.1"),
            vat_rate=Decimal("0"),
            amounts_include_vat=False,
            currency="DKK",
        )
        assert totals.total_amount == Decimal("27.00")
        assert totals.total_amount_incl_vat == Decimal("27.00")
        assert totals.vat_amount == Decimal("0.00")

    def test_net_plus_vat_equals_gross_on_awkward_amounts(self):
        for unit in ("0.01", "19.99", "33.33", "1234.567"):
            totals = compute_line_totals(
                unit_amount=Decimal(unit),
                quantity=Decimal("7"),
                discount=Decimal("0.15"),
                vat_rate=Decimal("0.25"),
                amounts_include_vat=True,
                currency="DKK",
            )
            assert totals.total_amount + totals.vat_amount == totals.total_amount_incl_vat
