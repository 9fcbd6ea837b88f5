"""SequenceService tests: per-organization, per-prefix numbering."""

from ledger_kernel.config import LedgerSettings
from ledger_kernel.domain.values import EntryType
from ledger_kernel.services.sequence_service import SequenceService


class TestNumbering:
    def test_numbers_increase_per_prefix(self, sequences, org_id):
        assert sequences.next_number(org_id, "manual_journal") == "JE-000001"
        assert sequences.next_number(org_id, "manual_journal") == "JE-000002"
        assert sequences.next_number(org_id, "expense") == "EXP-000001"
        assert sequences.next_number(org_id, "reversal") == "REV-000001"

    def test_organizations_have_independent_counters(self, sequences, org_id, other_org_id):
        sequences.next_number(org_id, "manual_journal")
        sequences.next_number(org_id, "manual_journal")
        assert sequences.next_number(other_org_id, "manual_journal") == "JE-000001"

    def test_current_value(self, sequences, org_id):
        assert sequences.current_value(org_id, "expense") is None
        sequences.next_number(org_id, "expense")
        sequences.next_number(org_id, "expense")
        assert sequences.current_value(org_id, "expense") == 2

    def test_configured_prefix_and_width(self, session, org_id):
        settings = LedgerSettings(
            number_prefixes={"manual_journal": "GJ", "expense": "EXP", "reversal": "REV"},
            number_width=3,
        )
        sequences = SequenceService(session, settings)
        assert sequences.next_number(org_id, "manual_journal") == "GJ-001"

    def test_rolled_back_savepoint_returns_number(self, session, sequences, org_id):
        sequences.next_number(org_id, "manual_journal")
        savepoint = session.begin_nested()
        sequences.next_number(org_id, "manual_journal")
        savepoint.rollback()
        assert sequences.next_number(org_id, "manual_journal") == "JE-000002"


class TestPostingNumbers:
    def test_numbers_assigned_only_on_post(
        self, posting_engine, make_draft, standard_accounts, test_actor_id
    ):
        lines = (
            (standard_accounts["cash"], EntryType.DEBIT, "10.00"),
            (standard_accounts["revenue"], EntryType.CREDIT, "10.00"),
        )
        first = posting_engine.save_draft(make_draft(*lines))
        second = posting_engine.save_draft(make_draft(*lines))

        assert posting_engine.post_draft(second.id, test_actor_id).transaction_number == "JE-000001"
        assert posting_engine.post_draft(first.id, test_actor_id).transaction_number == "JE-000002"
