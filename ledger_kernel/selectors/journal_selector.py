"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only transaction queries: single records, filtered
    listings, reversal lookups, and scheduled reversals that have come due.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Returns TransactionRecord DTOs, never ORM rows.
    - Organization scoping: a record from another organization is reported
      as absent.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import TransactionRecord
from ledger_kernel.domain.values import SourceType, TransactionStatus
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.selectors.base import BaseSelector


class JournalSelector(BaseSelector):
    """Selector for transactions and their lines."""

    def get_transaction(
        self, transaction_id: UUID, organization_id: UUID | None = None
    ) -> TransactionRecord | None:
        transaction = self.session.get(Transaction, transaction_id)
        if transaction is None:
            return None
        if organization_id is not None and transaction.organization_id != organization_id:
            return None
        return TransactionRecord.from_model(transaction)

    def get_by_number(
        self, organization_id: UUID, transaction_number: str
    ) -> TransactionRecord | None:
        transaction = self.session.execute(
            select(Transaction).where(
                Transaction.organization_id == organization_id,
                Transaction.transaction_number == transaction_number,
            )
        ).scalar_one_or_none()
        return TransactionRecord.from_model(transaction) if transaction else None

    def list_transactions(
        self,
        organization_id: UUID,
        status: TransactionStatus | None = None,
        source_type: SourceType | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[TransactionRecord]:
        """Transactions newest first by date, then by creation order."""
        query = (
            select(Transaction)
            .where(Transaction.organization_id == organization_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
        )
        if status is not None:
            query = query.where(Transaction.status == status)
        if source_type is not None:
            query = query.where(Transaction.source_type == source_type)
        if limit is not None:
            query = query.limit(limit)
        if offset is not None:
            query = query.offset(offset)
        return [
            TransactionRecord.from_model(t)
            for t in self.session.execute(query).scalars()
        ]

    def get_reversal_of(self, original_id: UUID) -> TransactionRecord | None:
        """The REVERSAL transaction that offsets original_id, if any."""
        reversal = self.session.execute(
            select(Transaction).where(
                Transaction.reversal_of_id == original_id,
                Transaction.source_type == SourceType.REVERSAL,
            )
        ).scalar_one_or_none()
        return TransactionRecord.from_model(reversal) if reversal else None

    def due_scheduled_reversals(
        self, organization_id: UUID, as_of: date
    ) -> list[TransactionRecord]:
        """
        Posted journals flagged for reversal whose date has arrived.

        The kernel has no scheduler; an external job calls this and then
        VoidService.void() for each result.
        """
        query = (
            select(Transaction)
            .where(
                Transaction.organization_id == organization_id,
                Transaction.status == TransactionStatus.POSTED,
                Transaction.is_reversal.is_(True),
                Transaction.scheduled_reversal_date.is_not(None),
                Transaction.scheduled_reversal_date <= as_of,
            )
            .order_by(Transaction.scheduled_reversal_date, Transaction.transaction_number)
        )
        return [
            TransactionRecord.from_model(t)
            for t in self.session.execute(query).scalars()
        ]
