"""
Ledger Line Validator -- Pure balance and policy checks.

Responsibility:
    Decides whether a set of LedgerLineDrafts may be posted, given the
    resolved AccountInfo for every referenced account.  Every rule runs and
    every violation is reported, so a form can show all problems at once.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Never raises for
    business-rule failures.

Rules (evaluated in this order, all collected):
    INSUFFICIENT_LINES         fewer than two lines
    ACCOUNT_NOT_FOUND          a line references an account missing from the map
    INACTIVE_ACCOUNT           a line targets a deactivated account
    NON_POSITIVE_AMOUNT        an amount <= 0
    CONTROL_ACCOUNT_VIOLATION  a line targets an account not open to manual entry
    MIXED_DIRECTION            no DEBIT line or no CREDIT line
    IMBALANCE                  |debits - credits| >= tolerance

Sign convention for balance effects lives in domain/values.balance_effect.
"""

from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from ledger_kernel.domain.dtos import (
    AccountInfo,
    LedgerLineDraft,
    ValidationResult,
    Violation,
)
from ledger_kernel.domain.values import EntryType

DEFAULT_TOLERANCE = Decimal("0.01")

INSUFFICIENT_LINES = "INSUFFICIENT_LINES"
ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
INACTIVE_ACCOUNT = "INACTIVE_ACCOUNT"
NON_POSITIVE_AMOUNT = "NON_POSITIVE_AMOUNT"
CONTROL_ACCOUNT_VIOLATION = "CONTROL_ACCOUNT_VIOLATION"
MIXED_DIRECTION = "MIXED_DIRECTION"
IMBALANCE = "IMBALANCE"


def totals(lines: Sequence[LedgerLineDraft]) -> tuple[Decimal, Decimal]:
    """Return (debit_total, credit_total)."""
    debit_total = Decimal("0")
    credit_total = Decimal("0")
    for line in lines:
        if line.entry_type == EntryType.DEBIT:
            debit_total += line.amount
        else:
            credit_total += line.amount
    return debit_total, credit_total


def is_balanced(
    lines: Sequence[LedgerLineDraft], tolerance: Decimal = DEFAULT_TOLERANCE
) -> bool:
    debit_total, credit_total = totals(lines)
    return abs(debit_total - credit_total) < tolerance


def validate_lines(
    lines: Sequence[LedgerLineDraft],
    accounts: Mapping[UUID, AccountInfo],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> ValidationResult:
    """
    Validate a proposed line set.

    Args:
        lines: Proposed ledger lines.
        accounts: AccountInfo for every account the caller could resolve.
        tolerance: Balance tolerance; the set balances when the absolute
            difference is strictly below it.

    Returns:
        ValidationResult listing every violation in rule order.
    """
    violations: list[Violation] = []

    if len(lines) < 2:
        violations.append(
            Violation(
                code=INSUFFICIENT_LINES,
                message="A transaction must have at least two lines",
                details={"line_count": len(lines)},
            )
        )

    missing = [
        str(line.account_id) for line in lines if line.account_id not in accounts
    ]
    if missing:
        unique_missing = list(dict.fromkeys(missing))
        violations.append(
            Violation(
                code=ACCOUNT_NOT_FOUND,
                message="Unknown account(s): " + ", ".join(unique_missing),
                details={"account_ids": tuple(unique_missing)},
            )
        )

    inactive: dict[UUID, AccountInfo] = {}
    for line in lines:
        info = accounts.get(line.account_id)
        if info is not None and not info.is_active:
            inactive.setdefault(info.id, info)
    if inactive:
        violations.append(
            Violation(
                code=INACTIVE_ACCOUNT,
                message="Inactive account(s): "
                + ", ".join(a.label for a in inactive.values()),
                account_codes=tuple(a.code for a in inactive.values()),
            )
        )

    bad_amounts = [
        (index, line) for index, line in enumerate(lines) if line.amount <= 0
    ]
    if bad_amounts:
        violations.append(
            Violation(
                code=NON_POSITIVE_AMOUNT,
                message="Line amounts must be greater than zero (line(s) "
                + ", ".join(str(index + 1) for index, _ in bad_amounts)
                + ")",
                details={"line_numbers": tuple(index + 1 for index, _ in bad_amounts)},
            )
        )

    control_accounts: dict[UUID, AccountInfo] = {}
    for line in lines:
        info = accounts.get(line.account_id)
        if info is not None and not info.manual_entry_allowed:
            control_accounts.setdefault(info.id, info)
    if control_accounts:
        offenders = list(control_accounts.values())
        violations.append(
            Violation(
                code=CONTROL_ACCOUNT_VIOLATION,
                message=(
                    "Cannot post directly to control account(s): "
                    + ", ".join(a.label for a in offenders)
                    + ". Use the matching subledger instead."
                ),
                account_codes=tuple(a.code for a in offenders),
            )
        )

    has_debit = any(line.entry_type == EntryType.DEBIT for line in lines)
    has_credit = any(line.entry_type == EntryType.CREDIT for line in lines)
    if not (has_debit and has_credit):
        violations.append(
            Violation(
                code=MIXED_DIRECTION,
                message="A transaction must have at least one debit and one credit",
            )
        )

    debit_total, credit_total = totals(lines)
    difference = debit_total - credit_total
    if abs(difference) >= tolerance:
        violations.append(
            Violation(
                code=IMBALANCE,
                message=(
                    f"Debits ({debit_total}) must equal credits ({credit_total}); "
                    f"difference {difference}"
                ),
                details={
                    "debit_total": debit_total,
                    "credit_total": credit_total,
                    "difference": difference,
                },
            )
        )

    if violations:
        return ValidationResult.failure(*violations)
    return ValidationResult.success()
