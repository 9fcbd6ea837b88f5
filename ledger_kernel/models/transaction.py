"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for transactions (the header of a balanced
    posting) and their ledger lines.
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - transaction_number is unique per organization and is assigned once, at
      posting time (uq_transaction_org_number; NULL for drafts).
    - Ledger line amounts are strictly positive (ck_line_amount_positive);
      entry_type carries the direction.
    - Lines are owned exclusively by their transaction (delete-orphan).
    - Once POSTED, header and lines are immutable except for the void stamp
      (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate transaction_number or a non-positive
      amount that slipped past validation.
    - ImmutabilityViolationError on flush of a forbidden change.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import enum_column
from ledger_kernel.domain.validator import DEFAULT_TOLERANCE
from ledger_kernel.domain.values import EntryType, SourceType, TransactionStatus

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class Transaction(TrackedBase):
    """
    Header of a balanced set of ledger lines.

    Contract:
        status moves DRAFT -> POSTED | CANCELLED and POSTED -> VOIDED only.
        A voided transaction is offset by a separate REVERSAL transaction
        whose reversal_of_id points back here.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "transaction_number", name="uq_transaction_org_number"
        ),
        Index("idx_transaction_org_status", "organization_id", "status"),
        Index("idx_transaction_date", "transaction_date"),
        Index("idx_transaction_reversal_of", "reversal_of_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Human-readable number, e.g. JE-000042.  NULL until posted.
    transaction_number: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
    )

    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        enum_column(TransactionStatus),
        nullable=False,
        default=TransactionStatus.DRAFT,
    )

    source_type: Mapped[SourceType] = mapped_column(
        enum_column(SourceType),
        nullable=False,
    )

    # Manual journals flagged for automatic reversal on scheduled_reversal_date
    is_reversal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    scheduled_reversal_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    # Rate to the organization's base currency, supplied by the caller
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(38, 18),
        nullable=False,
        default=Decimal("1"),
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    voided_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    void_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # Free-form source data (payee, expense id, ...)
    transaction_metadata: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LedgerLine.line_seq",
    )

    reversal_of: Mapped["Transaction | None"] = relationship(
        remote_side="Transaction.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.transaction_number or self.id} "
            f"status={self.status.value}>"
        )

    @property
    def total_debits(self) -> Decimal:
        """Sum of all debit line amounts."""
        return sum(
            (line.amount for line in self.lines if line.entry_type == EntryType.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        """Sum of all credit line amounts."""
        return sum(
            (line.amount for line in self.lines if line.entry_type == EntryType.CREDIT),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        """Same tolerance rule the validator applies before posting."""
        return abs(self.total_debits - self.total_credits) < DEFAULT_TOLERANCE


class LedgerLine(TrackedBase):
    """
    One debit or credit against one account.

    Contract:
        amount is in the transaction currency; amount_in_base is the same
        amount converted with the transaction's exchange_rate and is what
        account balances move by.
    """

    __tablename__ = "ledger_lines"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_line_amount_positive"),
        Index("idx_line_transaction", "transaction_id"),
        Index("idx_line_account", "account_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    entry_type: Mapped[EntryType] = mapped_column(
        enum_column(EntryType, length=10),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    amount_in_base: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    line_seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    transaction: Mapped["Transaction"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship(
        back_populates="ledger_lines",
    )

    def __repr__(self) -> str:
        return f"<LedgerLine {self.entry_type.value} {self.amount}>"

    @property
    def is_debit(self) -> bool:
        return self.entry_type == EntryType.DEBIT
