"""
Module: ledger_kernel.db.types
Responsibility: Annotated column types and money helpers shared by models,
    domain functions and services.  Centralizes precision, minor-unit
    rounding and currency validation.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/
    or domain/.

Invariants enforced:
    - No floats for money.  Every monetary column is Numeric(38, 9) and every
      calculation uses Decimal.
    - round_money() is the only rounding entry point; it rounds half-up to the
      currency's minor unit (2 for DKK, 0 for JPY, 3 for KWD).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

from ledger_kernel.exceptions import InvalidCurrencyError

# Monetary amount, 38 digits with 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# VAT rate in [0, 1]
Rate = Annotated[Decimal, Numeric(9, 6)]

# ISO 4217 currency code
Currency = Annotated[str, String(3)]

# SHA-256 hash as hex string
PayloadHash = Annotated[str, String(64)]

DEFAULT_ROUNDING = ROUND_HALF_UP
DEFAULT_MINOR_UNITS = 2

# Currencies whose minor unit differs from the default of 2
CURRENCY_MINOR_UNITS: dict[str, int] = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "UYI": 0, "VND": 0, "VUV": 0,
    "XAF": 0, "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
    "CLF": 4, "UYW": 4,
}

ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
    "BSD", "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLF", "CLP",
    "CNY", "COP", "CRC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD",
    "EGP", "ERN", "ETB", "EUR", "FJD", "FKP", "GBP", "GEL", "GHS", "GIP",
    "GMD", "GNF", "GTQ", "GYD", "HKD", "HNL", "HTG", "HUF", "IDR", "ILS",
    "INR", "IQD", "IRR", "ISK", "JMD", "JOD", "JPY", "KES", "KGS", "KHR",
    "KMF", "KPW", "KRW", "KWD", "KYD", "KZT", "LAK", "LBP", "LKR", "LRD",
    "LSL", "LYD", "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU",
    "MUR", "MVR", "MWK", "MXN", "MYR", "MZN", "NAD", "NGN", "NIO", "NOK",
    "NPR", "NZD", "OMR", "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG",
    "QAR", "RON", "RSD", "RUB", "RWF", "SAR", "SBD", "SCR", "SDG", "SEK",
    "SGD", "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SYP", "SZL", "THB",
    "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX",
    "USD", "UYI", "UYU", "UYW", "UZS", "VES", "VND", "VUV", "WST", "XAF",
    "XCD", "XOF", "XPF", "YER", "ZAR", "ZMW", "ZWL",
})


def minor_units(currency: str) -> int:
    """Number of decimal places of the currency's minor unit."""
    return CURRENCY_MINOR_UNITS.get(currency, DEFAULT_MINOR_UNITS)


def round_money(value: Decimal, currency: str = "DKK") -> Decimal:
    """
    Round a monetary value half-up to the currency's minor unit.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized to ``minor_units(currency)``
        decimal places.
    """
    exponent = Decimal(1).scaleb(-minor_units(currency))
    return value.quantize(exponent, rounding=DEFAULT_ROUNDING)


def validate_currency(currency: str) -> str:
    """
    Validate and normalize an ISO 4217 currency code.

    Returns:
        The upper-cased code.

    Raises:
        InvalidCurrencyError: If the code is not a known ISO 4217 code.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
