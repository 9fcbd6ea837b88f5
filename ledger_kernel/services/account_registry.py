"""
AccountRegistry -- chart-of-accounts lookups and cached balance updates.

Responsibility:
    Resolves account ids to AccountInfo snapshots (scoped to an
    organization), answers manual-entry eligibility, and applies balance
    deltas on behalf of the posting engine.

Architecture position:
    Kernel > Services -- imperative shell.  apply_delta() and
    lock_accounts() are called only by PostingEngine and VoidService.

Invariants enforced:
    - Account.balance == sum of balance effects of every line on a POSTED or
      VOIDED transaction.  apply_delta() is the only writer during posting;
      rebuild_balances() is the repair path.
    - Row locks are taken in ascending id order so concurrent posts that
      touch overlapping accounts cannot deadlock.
    - The optimistic version column turns a lost update into StaleDataError
      at flush time.

Failure modes:
    - AccountNotFoundError for unknown or cross-tenant ids.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.config import LedgerSettings
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.domain.values import AccountType, EntryType, balance_effect
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.account_registry")


@dataclass(frozen=True)
class BalanceDrift:
    """An account whose cached balance disagreed with ledger history."""

    account_id: UUID
    account_code: str
    cached_balance: Decimal
    computed_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached_balance - self.computed_balance


class AccountRegistry:
    """
    Chart-of-accounts access for the posting core.

    Non-goals:
        - Does NOT call session.commit().
        - Does NOT manage account hierarchy or reporting groups.
    """

    def __init__(self, session: Session, settings: LedgerSettings | None = None):
        self._session = session
        self._settings = settings or LedgerSettings()

    @property
    def control_tags(self) -> frozenset[str]:
        return self._settings.control_account_tags

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_account(
        self,
        organization_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        allow_manual_journal: bool = True,
        tags: Iterable[str] | None = None,
    ) -> AccountInfo:
        account = Account(
            organization_id=organization_id,
            code=code,
            name=name,
            account_type=account_type,
            allow_manual_journal=allow_manual_journal,
            balance=Decimal("0"),
            tags=list(tags) if tags else None,
            created_by_id=actor_id,
        )
        self._session.add(account)
        self._session.flush()
        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
                "allow_manual_journal": allow_manual_journal,
            },
        )
        return AccountInfo.from_model(account, self.control_tags)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load(self, account_id: UUID, organization_id: UUID | None) -> Account:
        account = self._session.get(Account, account_id)
        if account is None or (
            organization_id is not None and account.organization_id != organization_id
        ):
            raise AccountNotFoundError(str(account_id))
        return account

    def get_account(
        self, account_id: UUID, organization_id: UUID | None = None
    ) -> AccountInfo:
        """
        Resolve one account.

        Raises:
            AccountNotFoundError: Unknown id, or the account belongs to a
                different organization than the one given.
        """
        return AccountInfo.from_model(self._load(account_id, organization_id), self.control_tags)

    def find_accounts(
        self, account_ids: Iterable[UUID], organization_id: UUID | None = None
    ) -> dict[UUID, AccountInfo]:
        """Resolve many accounts.  Unknown and cross-tenant ids are omitted."""
        ids = list(dict.fromkeys(account_ids))
        if not ids:
            return {}
        stmt = select(Account).where(Account.id.in_(ids))
        if organization_id is not None:
            stmt = stmt.where(Account.organization_id == organization_id)
        return {
            account.id: AccountInfo.from_model(account, self.control_tags)
            for account in self._session.execute(stmt).scalars()
        }

    def is_manual_entry_allowed(
        self, account_id: UUID, organization_id: UUID | None = None
    ) -> bool:
        """False for control accounts (flag off or carrying a control tag)."""
        return self.get_account(account_id, organization_id).manual_entry_allowed

    def get_balance(self, account_id: UUID, organization_id: UUID | None = None) -> Decimal:
        return self._load(account_id, organization_id).balance

    # ------------------------------------------------------------------
    # Mutation (posting engine only)
    # ------------------------------------------------------------------

    def lock_accounts(self, account_ids: Iterable[UUID]) -> dict[UUID, Account]:
        """
        Row-lock accounts in ascending id order and refresh their state.

        Returns:
            Mapping of id to locked Account row.
        """
        ids = sorted(set(account_ids), key=str)
        if not ids:
            return {}
        rows = self._session.execute(
            select(Account)
            .where(Account.id.in_(ids))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        return {account.id: account for account in rows}

    def apply_delta(
        self,
        account_id: UUID,
        entry_type: EntryType,
        amount: Decimal,
        account: Account | None = None,
    ) -> Decimal:
        """
        Move an account's cached balance by one line's signed effect.

        Args:
            account_id: Target account.
            entry_type: DEBIT or CREDIT.
            amount: Positive line amount in base currency.
            account: Already-locked row, when the caller holds one.

        Returns:
            The new cached balance (flushed on the caller's next flush).
        """
        if account is None:
            account = self.lock_accounts([account_id]).get(account_id)
            if account is None:
                raise AccountNotFoundError(str(account_id))
        effect = balance_effect(AccountType(account.account_type), entry_type, amount)
        account.balance = account.balance + effect
        logger.debug(
            "balance_delta_applied",
            extra={
                "account_id": str(account_id),
                "entry_type": entry_type.value,
                "amount": amount,
                "effect": effect,
            },
        )
        return account.balance

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def rebuild_balances(self, organization_id: UUID) -> list[BalanceDrift]:
        """
        Recompute every cached balance in an organization from history.

        Accounts whose cache disagreed are corrected and reported.
        """
        computed = LedgerSelector(self._session).computed_balances(organization_id)
        accounts = self._session.execute(
            select(Account)
            .where(Account.organization_id == organization_id)
            .order_by(Account.id)
            .with_for_update()
        ).scalars()

        drift: list[BalanceDrift] = []
        for account in accounts:
            expected = computed.get(account.id, Decimal("0"))
            if account.balance != expected:
                drift.append(
                    BalanceDrift(
                        account_id=account.id,
                        account_code=account.code,
                        cached_balance=account.balance,
                        computed_balance=expected,
                    )
                )
                account.balance = expected
        self._session.flush()

        if drift:
            logger.warning(
                "balance_drift_repaired",
                extra={
                    "organization_id": str(organization_id),
                    "accounts": [d.account_code for d in drift],
                },
            )
        else:
            logger.info(
                "balances_verified",
                extra={"organization_id": str(organization_id)},
            )
        return drift
