"""
ledger_config -- YAML configuration for the ledger kernel.

Responsibility:
    Loads database, posting and logging settings, the VAT catalogue and the
    default chart of accounts, and bridges them into ``KernelSettings``.

Architecture position:
    Sits above ``ledger_kernel``.  The kernel never imports this package
    and never reads files or environment variables itself; settings are
    passed in at construction.
"""

from ledger_config.bridges import engine_kwargs, kernel_settings
from ledger_config.loader import DEFAULTS_DIR, load_config
from ledger_config.schema import (
    AccountDef,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    PostingSettings,
    VatTypeDef,
)

__all__ = [
    "AccountDef",
    "DEFAULTS_DIR",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "PostingSettings",
    "VatTypeDef",
    "engine_kwargs",
    "kernel_settings",
    "load_config",
]
