"""
Unit tests for money rounding and currency validation.

Verifies:
- Half-up rounding to the currency's minor unit
- ISO 4217 validation and normalization
"""

from decimal import Decimal

import pytest

from ledger_kernel.db.types import minor_units, round_money, validate_currency
from ledger_kernel.exceptions import InvalidCurrencyError


class TestRoundMoney:
    def test_half_up_dkk(self):
        assert round_money(Decimal("0.005"), "DKK") == Decimal("0.01")
        assert round_money(Decimal("0.004"), "DKK") == Decimal("0.00")

    def test_zero_decimal_currency(self):
        assert minor_units("JPY") == 0
        assert round_money(Decimal("10.5"), "JPY") == Decimal("11")

    def test_three_decimal_currency(self):
        assert minor_units("KWD") == 3
        assert round_money(Decimal("1.0005"), "KWD") == Decimal("1.001")

    def test_negative_rounds_away_from_zero(self):
        assert round_money(Decimal("-0.005"), "DKK") == Decimal("-0.01")


class TestValidateCurrency:
    def test_normalizes_case(self):
        assert validate_currency("dkk") == "DKK"

    @pytest.mark.parametrize("code", ["", "XXXX", "ABC", None])
    def test_rejects_unknown(self, code):
        with pytest.raises(InvalidCurrencyError):
            validate_currency(code)
