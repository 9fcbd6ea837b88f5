"""
Ledger line validator tests.

Pure tests: no database.  AccountInfo snapshots are built by hand.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import AccountInfo, LedgerLineDraft
from ledger_kernel.domain.validator import (
    ACCOUNT_NOT_FOUND,
    CONTROL_ACCOUNT_VIOLATION,
    IMBALANCE,
    INACTIVE_ACCOUNT,
    INSUFFICIENT_LINES,
    MIXED_DIRECTION,
    NON_POSITIVE_AMOUNT,
    is_balanced,
    totals,
    validate_lines,
)
from ledger_kernel.domain.values import AccountType, EntryType

ORG = uuid4()


def _account(code, name, account_type=AccountType.ASSET, manual=True, tags=(), active=True):
    return AccountInfo(
        id=uuid4(),
        organization_id=ORG,
        code=code,
        name=name,
        account_type=account_type,
        allow_manual_journal=manual,
        manual_entry_allowed=manual,
        is_active=active,
        tags=tuple(tags),
    )


@pytest.fixture
def accounts():
    return {
        "cash": _account("1000", "Cash"),
        "revenue": _account("4000", "Sales Revenue", AccountType.REVENUE),
        "expense": _account("6100", "Office Supplies", AccountType.EXPENSE),
        "ar": _account("1100", "Accounts Receivable", manual=False),
    }


def _line(account, entry_type, amount):
    return LedgerLineDraft(account.id, entry_type, Decimal(amount))


def _by_id(accounts):
    return {a.id: a for a in accounts.values()}


class TestBalancedSets:
    def test_two_line_balanced_set_is_valid(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "250.00"),
            _line(accounts["cash"], EntryType.CREDIT, "250.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert result.is_valid
        assert result.violations == ()
        assert bool(result)

    def test_multi_line_set_balances_on_totals(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "100.00"),
            _line(accounts["expense"], EntryType.DEBIT, "50.25"),
            _line(accounts["cash"], EntryType.CREDIT, "150.25"),
        ]
        assert validate_lines(lines, _by_id(accounts)).is_valid
        assert totals(lines) == (Decimal("150.25"), Decimal("150.25"))

    def test_difference_below_tolerance_is_balanced(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "100.004"),
            _line(accounts["cash"], EntryType.CREDIT, "100.00"),
        ]
        assert is_balanced(lines)
        assert validate_lines(lines, _by_id(accounts)).is_valid

    def test_difference_equal_to_tolerance_is_imbalanced(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "100.01"),
            _line(accounts["cash"], EntryType.CREDIT, "100.00"),
        ]
        assert not is_balanced(lines)
        assert validate_lines(lines, _by_id(accounts)).codes == (IMBALANCE,)

    def test_custom_tolerance(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "100.04"),
            _line(accounts["cash"], EntryType.CREDIT, "100.00"),
        ]
        assert validate_lines(lines, _by_id(accounts), Decimal("0.05")).is_valid


class TestViolations:
    def test_imbalance_reports_totals(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "500.00"),
            _line(accounts["cash"], EntryType.CREDIT, "450.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))

        assert not result.is_valid
        assert result.codes == (IMBALANCE,)
        violation = result.violations[0]
        assert "500.00" in violation.message
        assert "450.00" in violation.message
        assert violation.details["difference"] == Decimal("50.00")

    def test_single_line_reports_insufficient_lines(self, accounts):
        result = validate_lines(
            [_line(accounts["cash"], EntryType.DEBIT, "10.00")], _by_id(accounts)
        )
        assert INSUFFICIENT_LINES in result.codes
        assert MIXED_DIRECTION in result.codes
        assert IMBALANCE in result.codes

    def test_empty_line_set(self, accounts):
        result = validate_lines([], _by_id(accounts))
        assert result.codes == (INSUFFICIENT_LINES, MIXED_DIRECTION)

    def test_all_debits_reports_mixed_direction(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "10.00"),
            _line(accounts["cash"], EntryType.DEBIT, "10.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert MIXED_DIRECTION in result.codes

    def test_zero_and_negative_amounts(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "0"),
            _line(accounts["cash"], EntryType.CREDIT, "-5.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert NON_POSITIVE_AMOUNT in result.codes
        non_positive = next(v for v in result.violations if v.code == NON_POSITIVE_AMOUNT)
        assert non_positive.details["line_numbers"] == (1, 2)

    def test_unknown_account(self, accounts):
        stranger = uuid4()
        lines = [
            LedgerLineDraft(stranger, EntryType.DEBIT, Decimal("10.00")),
            _line(accounts["cash"], EntryType.CREDIT, "10.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert result.codes == (ACCOUNT_NOT_FOUND,)
        assert str(stranger) in result.violations[0].message

    def test_inactive_account(self, accounts):
        closed = _account("1050", "Old Bank", active=False)
        accounts = {**accounts, "closed": closed}
        lines = [
            _line(closed, EntryType.DEBIT, "10.00"),
            _line(closed, EntryType.DEBIT, "5.00"),
            _line(accounts["cash"], EntryType.CREDIT, "15.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert result.codes == (INACTIVE_ACCOUNT,)
        assert result.violations[0].account_codes == ("1050",)
        assert "1050 - Old Bank" in result.violations[0].message

    def test_control_account_names_the_account(self, accounts):
        lines = [
            _line(accounts["ar"], EntryType.DEBIT, "300.00"),
            _line(accounts["revenue"], EntryType.CREDIT, "300.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))

        assert result.codes == (CONTROL_ACCOUNT_VIOLATION,)
        violation = result.violations[0]
        assert violation.account_codes == ("1100",)
        assert "1100 - Accounts Receivable" in violation.message
        assert violation.to_dict() == {
            "code": CONTROL_ACCOUNT_VIOLATION,
            "message": violation.message,
            "accountCodes": ["1100"],
        }

    def test_control_account_listed_once_for_repeated_lines(self, accounts):
        lines = [
            _line(accounts["ar"], EntryType.DEBIT, "100.00"),
            _line(accounts["ar"], EntryType.DEBIT, "200.00"),
            _line(accounts["revenue"], EntryType.CREDIT, "300.00"),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert result.violations[0].account_codes == ("1100",)

    def test_every_violation_is_collected_in_rule_order(self, accounts):
        lines = [
            _line(accounts["ar"], EntryType.DEBIT, "-1.00"),
            LedgerLineDraft(uuid4(), EntryType.DEBIT, Decimal("5.00")),
        ]
        result = validate_lines(lines, _by_id(accounts))
        assert result.codes == (
            ACCOUNT_NOT_FOUND,
            NON_POSITIVE_AMOUNT,
            CONTROL_ACCOUNT_VIOLATION,
            MIXED_DIRECTION,
            IMBALANCE,
        )

    def test_violation_without_accounts_omits_account_codes(self, accounts):
        lines = [
            _line(accounts["expense"], EntryType.DEBIT, "5.00"),
            _line(accounts["cash"], EntryType.CREDIT, "4.00"),
        ]
        data = validate_lines(lines, _by_id(accounts)).violations[0].to_dict()
        assert set(data) == {"code", "message"}
