"""Imperative shell: services that read and write the ledger."""

from ledger_kernel.services.account_registry import AccountRegistry, BalanceDrift
from ledger_kernel.services.posting_engine import PostingEngine
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.transaction_builder import TransactionBuilder
from ledger_kernel.services.void_service import VoidService

__all__ = [
    "AccountRegistry",
    "BalanceDrift",
    "PostingEngine",
    "SequenceService",
    "TransactionBuilder",
    "VoidService",
]
