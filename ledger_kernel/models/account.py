"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger line and the holder of the cached running balance.
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - code is unique per organization (uq_account_org_code).
    - account_type and code are immutable once the account is referenced by
      balance-affecting lines (db/immutability.py).
    - balance is only written by AccountRegistry.apply_delta(); the
      version column is a SQLAlchemy version_id_col so a lost update
      raises StaleDataError at flush.

Failure modes:
    - StaleDataError (wrapped as OptimisticLockError by the posting engine)
      when a concurrent writer bumped the version first.
"""

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import enum_column
from ledger_kernel.domain.values import AccountType, NormalBalance, normal_balance_for

if TYPE_CHECKING:
    from ledger_kernel.models.transaction import LedgerLine


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Contract:
        Posting through the kernel is refused for accounts whose
        allow_manual_journal flag is false or that carry a control tag
        (accounts_receivable, accounts_payable, inventory by default).
        Those accounts are fed by their own subledger flows.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_account_org_code"),
        Index("idx_account_org", "organization_id"),
        Index("idx_account_type", "account_type"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        enum_column(AccountType),
        nullable=False,
    )

    # False for control accounts fed by subledgers (AR, AP, inventory)
    allow_manual_journal: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Signed running balance in the organization's base currency
    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    tags: Mapped[list[str] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    ledger_lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)

    def has_tag(self, tag: str) -> bool:
        """Check if account has a specific tag."""
        if self.tags is None:
            return False
        return tag in self.tags
