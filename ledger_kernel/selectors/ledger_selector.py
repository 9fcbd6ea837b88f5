"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger aggregates: trial balance, balances
    recomputed from history, and a cached-balance consistency check.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/values and selectors/base.py.

Invariants enforced:
    - Lines of POSTED and VOIDED transactions count.  A voided transaction
      stays in history; its REVERSAL offsets it.
    - Totals use amount_in_base, the amount account balances move by.
    - All results are Decimal (never float).

Failure modes:
    - Returns empty results or zero totals when nothing has been posted.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.domain.values import (
    BALANCE_AFFECTING_STATUSES,
    AccountType,
    EntryType,
    balance_effect,
)
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import LedgerLine, Transaction
from ledger_kernel.selectors.base import BaseSelector


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single row in a trial balance report."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Signed balance using the account type's sign convention."""
        return balance_effect(self.account_type, EntryType.DEBIT, self.debit_total) + (
            balance_effect(self.account_type, EntryType.CREDIT, self.credit_total)
        )


@dataclass(frozen=True)
class BalanceCheck:
    """Cached versus recomputed balance for one account."""

    account_id: UUID
    account_code: str
    cached_balance: Decimal
    computed_balance: Decimal

    @property
    def consistent(self) -> bool:
        return self.cached_balance == self.computed_balance


class LedgerSelector(BaseSelector):
    """
    Selector for ledger aggregates.

    Guarantees:
        - computed_balances() never reads Account.balance; it is the
          history-derived figure the cache is checked against.
    """

    def trial_balance(
        self,
        organization_id: UUID,
        as_of_date: date | None = None,
    ) -> list[TrialBalanceRow]:
        """
        Debit and credit totals per account, ordered by account code.

        Postconditions: sum of debit_total == sum of credit_total when every
            posted transaction balanced exactly.
        """
        debit_sum = func.sum(
            case(
                (LedgerLine.entry_type == EntryType.DEBIT, LedgerLine.amount_in_base),
                else_=Decimal("0"),
            )
        ).label("debit_total")

        credit_sum = func.sum(
            case(
                (LedgerLine.entry_type == EntryType.CREDIT, LedgerLine.amount_in_base),
                else_=Decimal("0"),
            )
        ).label("credit_total")

        query = (
            select(
                LedgerLine.account_id,
                Account.code.label("account_code"),
                Account.name.label("account_name"),
                Account.account_type,
                debit_sum,
                credit_sum,
            )
            .join(Transaction, LedgerLine.transaction_id == Transaction.id)
            .join(Account, LedgerLine.account_id == Account.id)
            .where(
                Transaction.organization_id == organization_id,
                Transaction.status.in_(sorted(BALANCE_AFFECTING_STATUSES)),
            )
            .group_by(
                LedgerLine.account_id,
                Account.code,
                Account.name,
                Account.account_type,
            )
            .order_by(Account.code)
        )

        if as_of_date is not None:
            query = query.where(Transaction.transaction_date <= as_of_date)

        return [
            TrialBalanceRow(
                account_id=row.account_id,
                account_code=row.account_code,
                account_name=row.account_name,
                account_type=AccountType(row.account_type),
                debit_total=_dec(row.debit_total),
                credit_total=_dec(row.credit_total),
            )
            for row in self.session.execute(query).all()
        ]

    def total_debits_credits(self, organization_id: UUID) -> tuple[Decimal, Decimal]:
        """Organization-wide (debit_total, credit_total)."""
        rows = self.trial_balance(organization_id)
        return (
            sum((r.debit_total for r in rows), Decimal("0")),
            sum((r.credit_total for r in rows), Decimal("0")),
        )

    def computed_balances(self, organization_id: UUID) -> dict[UUID, Decimal]:
        """Signed balance per account, derived from ledger history only."""
        return {
            row.account_id: row.balance for row in self.trial_balance(organization_id)
        }

    def check_balances(self, organization_id: UUID) -> list[BalanceCheck]:
        """Compare every account's cached balance with its recomputed one."""
        computed = self.computed_balances(organization_id)
        accounts = self.session.execute(
            select(Account.id, Account.code, Account.balance)
            .where(Account.organization_id == organization_id)
            .order_by(Account.code)
        ).all()
        return [
            BalanceCheck(
                account_id=row.id,
                account_code=row.code,
                cached_balance=_dec(row.balance),
                computed_balance=computed.get(row.id, Decimal("0")),
            )
            for row in accounts
        ]
