"""Read-only query selectors."""

from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import (
    BalanceCheck,
    LedgerSelector,
    TrialBalanceRow,
)

__all__ = [
    "BalanceCheck",
    "JournalSelector",
    "LedgerSelector",
    "TrialBalanceRow",
]
