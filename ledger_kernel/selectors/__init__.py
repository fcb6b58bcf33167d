"""Read-only query selectors for the ledger kernel."""

from ledger_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["LedgerSelector"]
