"""
TransactionBuilder -- source documents to TransactionDrafts.

Responsibility:
    Wraps the pure builders in domain/builder.py with the checks that need
    the database (every referenced account exists in the organization) and
    the settings (currency default, minor unit, rounding mode).

Architecture position:
    Kernel > Services -- imperative shell.  Produces drafts only; it never
    writes.  PostingEngine and VoidService consume its output.

Failure modes:
    - AccountNotFoundError for an unknown or cross-tenant account.
    - NoLinesError, AmbiguousLineError, InvalidAmountError,
      ExpenseTotalMismatchError from the pure builders.
    - InvalidCurrencyError for an unknown currency code.
"""

from datetime import date
from decimal import Decimal
from types import MappingProxyType
from uuid import UUID

from ledger_kernel.config import LedgerSettings
from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.builder import (
    Quantizer,
    build_expense_lines,
    build_journal_lines,
    flip_lines,
    reversal_description,
)
from ledger_kernel.domain.dtos import (
    ExpenseDocument,
    LedgerLineDraft,
    ManualJournalDocument,
    TransactionDraft,
    TransactionRecord,
)
from ledger_kernel.domain.values import SourceType
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.account_registry import AccountRegistry

logger = get_logger("services.transaction_builder")


class TransactionBuilder:
    """
    Builds canonical drafts for the posting engine.

    Guarantees:
        - Every line amount is quantized to amount_decimal_places with the
          configured rounding mode.
        - Every account referenced by a returned draft exists in the
          draft's organization.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        settings: LedgerSettings | None = None,
    ):
        self._registry = registry
        self._settings = settings or LedgerSettings()
        self._quantize = Quantizer(
            self._settings.amount_decimal_places, self._settings.decimal_rounding
        )

    def _currency(self, currency: str | None) -> str:
        return validate_currency(currency or self._settings.default_currency)

    def _require_accounts(
        self, organization_id: UUID, lines: tuple[LedgerLineDraft, ...]
    ) -> None:
        ids = [line.account_id for line in lines]
        found = self._registry.find_accounts(ids, organization_id)
        for account_id in ids:
            if account_id not in found:
                raise AccountNotFoundError(str(account_id))

    def build_expense(self, document: ExpenseDocument) -> TransactionDraft:
        """
        Expense -> draft.

        Category and input-tax lines are debited; funding accounts and
        withholding lines are credited.  Tax amounts arrive resolved.
        """
        lines = build_expense_lines(document, self._quantize)
        self._require_accounts(document.organization_id, lines)

        metadata = {"payee": document.payee} if document.payee else {}
        draft = TransactionDraft(
            organization_id=document.organization_id,
            transaction_date=document.expense_date,
            description=document.description,
            source_type=SourceType.EXPENSE,
            lines=lines,
            actor_id=document.actor_id,
            currency=self._currency(document.currency),
            exchange_rate=document.exchange_rate,
            reference=document.reference,
            notes=document.notes,
            metadata=metadata,
        )
        logger.debug(
            "expense_draft_built",
            extra={"line_count": len(lines), "total": draft.total_debits},
        )
        return draft

    def build_manual_journal(self, document: ManualJournalDocument) -> TransactionDraft:
        """Manual journal -> draft.  Blank rows are dropped."""
        lines = build_journal_lines(document, self._quantize)
        self._require_accounts(document.organization_id, lines)

        draft = TransactionDraft(
            organization_id=document.organization_id,
            transaction_date=document.journal_date,
            description=document.description,
            source_type=SourceType.MANUAL_JOURNAL,
            lines=lines,
            actor_id=document.actor_id,
            currency=self._currency(document.currency),
            exchange_rate=document.exchange_rate,
            is_reversal=document.is_reversal,
            scheduled_reversal_date=document.scheduled_reversal_date,
            reference=document.reference,
            notes=document.notes,
        )
        logger.debug(
            "journal_draft_built",
            extra={"line_count": len(lines), "is_reversal": document.is_reversal},
        )
        return draft

    def build_reversal(
        self,
        original: TransactionRecord,
        actor_id: UUID,
        reversal_date: date,
        reason: str | None = None,
    ) -> TransactionDraft:
        """
        Mirror of a posted transaction.

        Same accounts and amounts with every entry type flipped, linked back
        through reversal_of_id.
        """
        lines = flip_lines(
            (line.as_draft() for line in original.lines), original.transaction_number
        )
        return TransactionDraft(
            organization_id=original.organization_id,
            transaction_date=reversal_date,
            description=reversal_description(
                original.transaction_number, original.description
            ),
            source_type=SourceType.REVERSAL,
            lines=lines,
            actor_id=actor_id,
            currency=original.currency,
            exchange_rate=original.exchange_rate or Decimal("1"),
            reversal_of_id=original.id,
            notes=reason,
            metadata=MappingProxyType(
                {"original_number": original.transaction_number}
            ),
        )
