"""TransactionBuilder service tests: documents to drafts against a real chart."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.db.types import InvalidCurrencyError
from ledger_kernel.domain.dtos import DocumentLine, ExpenseDocument, ManualJournalRow
from ledger_kernel.domain.values import EntryType, SourceType
from ledger_kernel.exceptions import AccountNotFoundError, AmbiguousLineError


@pytest.fixture
def expense_document(org_id, test_actor_id, standard_accounts):
    def _make(**kwargs) -> ExpenseDocument:
        defaults = dict(
            organization_id=org_id,
            expense_date=date(2024, 4, 2),
            description="Printer paper",
            category_lines=(DocumentLine(standard_accounts["office"].id, Decimal("100.00")),),
            tax_lines=(DocumentLine(standard_accounts["input_tax"].id, Decimal("12.00")),),
            payments=(DocumentLine(standard_accounts["bank"].id, Decimal("112.00")),),
            actor_id=test_actor_id,
            payee="Paper Co",
        )
        defaults.update(kwargs)
        return ExpenseDocument(**defaults)

    return _make


class TestBuildExpense:
    def test_expense_draft(self, transaction_builder, expense_document):
        draft = transaction_builder.build_expense(expense_document())

        assert draft.source_type == SourceType.EXPENSE
        assert draft.currency == "USD"
        assert draft.total_debits == draft.total_credits == Decimal("112.00")
        assert draft.metadata["payee"] == "Paper Co"

    def test_expense_posts(self, transaction_builder, posting_engine, registry, expense_document, standard_accounts):
        result = posting_engine.post(transaction_builder.build_expense(expense_document()))

        assert result.ok
        assert result.transaction_number == "EXP-000001"
        assert registry.get_balance(standard_accounts["office"].id) == Decimal("100.00")
        assert registry.get_balance(standard_accounts["input_tax"].id) == Decimal("12.00")
        assert registry.get_balance(standard_accounts["bank"].id) == Decimal("-112.00")

    def test_expense_paid_on_account_hits_control_rule(
        self, transaction_builder, posting_engine, expense_document, standard_accounts
    ):
        draft = transaction_builder.build_expense(
            expense_document(
                tax_lines=(),
                payments=(DocumentLine(standard_accounts["payable"].id, Decimal("100.00")),),
            )
        )
        result = posting_engine.post(draft)
        assert not result.ok
        assert result.violations[0].account_codes == ("2000",)

    def test_unknown_account(self, transaction_builder, expense_document):
        with pytest.raises(AccountNotFoundError):
            transaction_builder.build_expense(
                expense_document(
                    tax_lines=(),
                    payments=(DocumentLine(uuid4(), Decimal("100.00")),),
                )
            )

    def test_currency_is_validated(self, transaction_builder, expense_document):
        with pytest.raises(InvalidCurrencyError):
            transaction_builder.build_expense(expense_document(currency="ZZZ"))


class TestBuildManualJournal:
    def test_journal_draft(self, transaction_builder, journal_document, standard_accounts):
        draft = transaction_builder.build_manual_journal(
            journal_document(
                (standard_accounts["rent"], "2,000.00", None),
                (None, None, None),
                (standard_accounts["bank"], "", "2000"),
            )
        )
        assert draft.source_type == SourceType.MANUAL_JOURNAL
        assert [line.entry_type for line in draft.lines] == [EntryType.DEBIT, EntryType.CREDIT]
        assert draft.total_debits == Decimal("2000.00")

    def test_ambiguous_row(self, transaction_builder, journal_document, standard_accounts):
        with pytest.raises(AmbiguousLineError):
            transaction_builder.build_manual_journal(
                journal_document((standard_accounts["rent"], "10", "10"))
            )

    def test_scheduled_reversal_flags_carry_through(
        self, transaction_builder, journal_document, standard_accounts
    ):
        draft = transaction_builder.build_manual_journal(
            journal_document(
                (standard_accounts["rent"], "500", None),
                (standard_accounts["withholding"], None, "500"),
                is_reversal=True,
                scheduled_reversal_date=date(2024, 2, 1),
            )
        )
        assert draft.is_reversal
        assert draft.scheduled_reversal_date == date(2024, 2, 1)

    def test_scheduled_reversal_before_journal_date(
        self, transaction_builder, journal_document, standard_accounts
    ):
        with pytest.raises(ValueError):
            transaction_builder.build_manual_journal(
                journal_document(
                    (standard_accounts["rent"], "500", None),
                    (standard_accounts["withholding"], None, "500"),
                    is_reversal=True,
                    scheduled_reversal_date=date(2023, 12, 31),
                )
            )


class TestBuildReversal:
    def test_reversal_draft(self, transaction_builder, journal_selector, posted_journal, test_actor_id):
        original = journal_selector.get_transaction(posted_journal.transaction_id)
        draft = transaction_builder.build_reversal(
            original, actor_id=test_actor_id, reversal_date=date(2024, 1, 31), reason="Duplicate"
        )

        assert draft.source_type == SourceType.REVERSAL
        assert draft.reversal_of_id == original.id
        assert draft.notes == "Duplicate"
        assert draft.metadata["original_number"] == "JE-000001"
        assert [l.entry_type for l in draft.lines] == [EntryType.CREDIT, EntryType.DEBIT]
