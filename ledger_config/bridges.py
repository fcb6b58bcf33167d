"""
Bridges from configuration to kernel inputs.

The kernel never imports ``ledger_config``; these functions translate a
loaded ``LedgerSettings`` into the objects the kernel is constructed with.
"""

from __future__ import annotations

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.dtos import AccountSeed, VatDirection, VatTypeSeed
from ledger_kernel.domain.ledger_projection import VatAccounts
from ledger_kernel.domain.period_lock import MissingPeriodPolicy
from ledger_kernel.settings import KernelSettings


def kernel_settings(config: LedgerSettings) -> KernelSettings:
    posting = config.posting
    return KernelSettings(
        numbering_max_retries=posting.numbering_max_retries,
        retry_backoff_seconds=posting.retry_backoff_seconds,
        lock_timeout_seconds=config.database.lock_timeout_seconds,
        missing_period_policy=MissingPeriodPolicy(posting.missing_period_policy),
        balance_epsilon=posting.balance_epsilon,
        default_currency=posting.default_currency,
        vat_accounts=VatAccounts(
            output=posting.output_vat_account,
            input=posting.input_vat_account,
        ),
        default_chart=tuple(
            AccountSeed(number=a.number, name=a.name, vat_code=a.vat_code)
            for a in config.chart_of_accounts
        ),
        vat_types=tuple(
            VatTypeSeed(
                code=v.code,
                name=v.name,
                rate=v.rate,
                direction=VatDirection(v.direction),
            )
            for v in config.vat_types
        ),
    )


def engine_kwargs(config: LedgerSettings) -> dict:
    """Keyword arguments for ``ledger_kernel.db.engine.init_engine_from_url``."""
    db = config.database
    return {
        "database_url": db.url,
        "echo": db.echo,
        "pool_size": db.pool_size,
        "max_overflow": db.max_overflow,
        "pool_timeout": db.pool_timeout,
        "lock_timeout_seconds": db.lock_timeout_seconds,
    }
