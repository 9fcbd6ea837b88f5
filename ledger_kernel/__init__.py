"""
Ledger Kernel - double-entry posting core

A small accounting core for multi-tenant business ledgers with:
- Balanced debit/credit transactions validated before posting
- Control-account protection for manual entries
- Draft/posted lifecycle with immutable posted records
- Void via balanced reversal transactions
- Cached account balances rebuildable from ledger history
"""

__version__ = "0.1.0"
