"""
KernelSettings -- the explicit configuration the kernel is constructed with.

The kernel never reads files or environment variables.  ``ledger_config``
loads YAML and translates it into this object (see
``ledger_config.bridges.kernel_settings``); tests build it directly.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from ledger_kernel.domain.balance import DEFAULT_EPSILON
from ledger_kernel.domain.dtos import AccountSeed, VatTypeSeed
from ledger_kernel.domain.ledger_projection import VatAccounts
from ledger_kernel.domain.period_lock import MissingPeriodPolicy


@dataclass(frozen=True)
class KernelSettings:
    """
    Posting policy knobs.

    Attributes:
        numbering_max_retries: Transaction attempts before NumberingConflictError.
        retry_backoff_seconds: Base sleep between attempts, multiplied by attempt.
        lock_timeout_seconds: Bound on lock waits inside the posting transaction.
        missing_period_policy: Whether dates outside any period are postable.
        balance_epsilon: Largest tolerated debit/credit difference.
        default_currency: Base currency for new organizations.
        vat_accounts: Accounts receiving output and input VAT.
        default_chart: Accounts provisioned for new organizations.
        vat_types: VAT catalogue seeded into the VAT type directory.
    """

    numbering_max_retries: int = 5
    retry_backoff_seconds: float = 0.01
    lock_timeout_seconds: float = 10.0
    missing_period_policy: MissingPeriodPolicy = MissingPeriodPolicy.OPEN
    balance_epsilon: Decimal = DEFAULT_EPSILON
    default_currency: str = "DKK"
    vat_accounts: VatAccounts = field(
        default_factory=lambda: VatAccounts(output="2110", input="2100")
    )
    default_chart: tuple[AccountSeed, ...] = ()
    vat_types: tuple[VatTypeSeed, ...] = ()

    def __post_init__(self) -> None:
        if self.numbering_max_retries < 1:
            raise ValueError("numbering_max_retries must be at least 1")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
