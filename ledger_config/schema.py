"""
Configuration Schema (``ledger_config.schema``).

Frozen dataclasses describing the ledger configuration as it is read from
YAML.  Values are plain Python types; ``ledger_config.bridges`` turns them
into the kernel's ``KernelSettings``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class PostingSettings:
    numbering_max_retries: int = 5
    retry_backoff_seconds: float = 0.01
    balance_epsilon: Decimal = Decimal("0.0001")
    missing_period_policy: str = "open"
    default_currency: str = "DKK"
    output_vat_account: str = "2110"
    input_vat_account: str = "2100"


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class VatTypeDef:
    code: str
    name: str
    rate: Decimal
    direction: str


@dataclass(frozen=True)
class AccountDef:
    number: str
    name: str
    vat_code: str | None = None


@dataclass(frozen=True)
class LedgerSettings:
    """The complete configuration.  ``checksum`` identifies the source files."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    posting: PostingSettings = field(default_factory=PostingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    vat_types: tuple[VatTypeDef, ...] = ()
    chart_of_accounts: tuple[AccountDef, ...] = ()
    checksum: str = ""
