"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.models.transaction import LedgerLine, Transaction

__all__ = [
    "Account",
    "LedgerLine",
    "SequenceCounter",
    "Transaction",
]
