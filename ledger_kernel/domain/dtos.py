"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through the posting
    pipeline: source documents (ExpenseDocument, ManualJournalDocument),
    the canonical TransactionDraft / LedgerLineDraft the builder produces,
    the AccountInfo snapshot the validator reads, and the results handed
    back to callers (ValidationResult, PostingResult, VoidResult).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from the
    service and selector layers.

Invariants enforced:
    - LedgerLineDraft is strict: a resolved account id, an EntryType and a
      Decimal amount.  Loosely-typed input stops at the builder.
    - TaxSplit.gross == net + tax.

Failure modes:
    - ValueError on a draft carrying a scheduled reversal date without
      is_reversal, or a reversal date earlier than the transaction date.
    - ValueError on an inconsistent TaxSplit.

Data flow:
    ExpenseDocument / ManualJournalDocument -> TransactionDraft
        -> (validator) -> Transaction row -> TransactionRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Protocol
from uuid import UUID

from ledger_kernel.domain.values import (
    AccountType,
    EntryType,
    SourceType,
    TransactionStatus,
)

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.transaction import (
        LedgerLine as LedgerLineModel,
    )
    from ledger_kernel.models.transaction import (
        Transaction as TransactionModel,
    )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountInfo:
    """
    Pure domain representation of an account.

    Contract:
        Immutable snapshot used by the validator to check type and
        manual-entry eligibility without ORM access.

    Guarantees:
        - manual_entry_allowed is False when allow_manual_journal is False or
          the account carries one of the configured control tags.
    """

    id: UUID
    organization_id: UUID
    code: str
    name: str
    account_type: AccountType
    allow_manual_journal: bool
    manual_entry_allowed: bool
    is_active: bool = True
    tags: tuple[str, ...] = ()
    balance: Decimal = Decimal("0")

    @property
    def label(self) -> str:
        return f"{self.code} - {self.name}"

    @classmethod
    def from_model(
        cls,
        model: AccountModel,
        control_tags: frozenset[str] = frozenset(),
    ) -> AccountInfo:
        tags = tuple(model.tags or ())
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            allow_manual_journal=model.allow_manual_journal,
            manual_entry_allowed=(
                model.allow_manual_journal and not control_tags.intersection(tags)
            ),
            is_active=model.is_active,
            tags=tags,
            balance=model.balance,
        )


# ---------------------------------------------------------------------------
# Canonical draft (builder output, validator / engine input)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerLineDraft:
    """One proposed ledger line.  Amount sign is checked by the validator."""

    account_id: UUID
    entry_type: EntryType
    amount: Decimal
    description: str | None = None

    def flipped(self, description: str | None = None) -> LedgerLineDraft:
        return LedgerLineDraft(
            account_id=self.account_id,
            entry_type=self.entry_type.flipped(),
            amount=self.amount,
            description=description if description is not None else self.description,
        )


@dataclass(frozen=True)
class TransactionDraft:
    """
    Canonical transaction proposal.

    Contract:
        Everything the posting engine needs to persist a transaction.
        Lines keep the order given; that order becomes line_seq.

    Guarantees:
        - Immutable (frozen dataclass); lines is always a tuple.
        - metadata is a read-only mapping.
    """

    organization_id: UUID
    transaction_date: date
    description: str
    source_type: SourceType
    lines: tuple[LedgerLineDraft, ...]
    actor_id: UUID
    currency: str = "USD"
    exchange_rate: Decimal = Decimal("1")
    is_reversal: bool = False
    scheduled_reversal_date: date | None = None
    reversal_of_id: UUID | None = None
    reference: str | None = None
    notes: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        if self.exchange_rate <= 0:
            raise ValueError("exchange_rate must be positive")
        if self.scheduled_reversal_date is not None:
            if not self.is_reversal:
                raise ValueError("scheduled_reversal_date requires is_reversal")
            if self.scheduled_reversal_date < self.transaction_date:
                raise ValueError("scheduled_reversal_date precedes transaction_date")

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (l.amount for l in self.lines if l.entry_type == EntryType.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (l.amount for l in self.lines if l.entry_type == EntryType.CREDIT),
            Decimal("0"),
        )

    @property
    def account_ids(self) -> tuple[UUID, ...]:
        return tuple(dict.fromkeys(l.account_id for l in self.lines))


# ---------------------------------------------------------------------------
# Source documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxSplit:
    """Resolved output of an external tax calculator."""

    net: Decimal
    tax: Decimal
    gross: Decimal

    def __post_init__(self) -> None:
        if self.net + self.tax != self.gross:
            raise ValueError(
                f"TaxSplit inconsistent: {self.net} + {self.tax} != {self.gross}"
            )


class TaxCalculator(Protocol):
    """
    External VAT / withholding calculator.

    The kernel never computes tax.  It only consumes the resolved split.
    """

    def split(self, amount: Decimal, rate_code: str, *, inclusive: bool) -> TaxSplit:
        ...


@dataclass(frozen=True)
class DocumentLine:
    """An account and an already-resolved amount on a source document."""

    account_id: UUID
    amount: Decimal
    description: str | None = None


@dataclass(frozen=True)
class ExpenseDocument:
    """
    An expense as captured by the expense form.

    Contract:
        category_lines and tax_lines are debited; payments and
        withholding_lines are credited.  When net_amount is given it must
        equal the sum of category_lines.
    """

    organization_id: UUID
    expense_date: date
    description: str
    category_lines: tuple[DocumentLine, ...]
    payments: tuple[DocumentLine, ...]
    actor_id: UUID
    tax_lines: tuple[DocumentLine, ...] = ()
    withholding_lines: tuple[DocumentLine, ...] = ()
    net_amount: Decimal | None = None
    currency: str | None = None
    exchange_rate: Decimal = Decimal("1")
    payee: str | None = None
    reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ManualJournalRow:
    """
    One row of the manual journal form.

    debit and credit are raw form values: str, int, Decimal or None.
    """

    account_id: UUID | None = None
    debit: Any = None
    credit: Any = None
    description: str | None = None


@dataclass(frozen=True)
class ManualJournalDocument:
    """A manual journal entry as captured by the journal form."""

    organization_id: UUID
    journal_date: date
    description: str
    rows: tuple[ManualJournalRow, ...]
    actor_id: UUID
    currency: str | None = None
    exchange_rate: Decimal = Decimal("1")
    is_reversal: bool = False
    scheduled_reversal_date: date | None = None
    reference: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """
    A single business-rule violation.

    Contract:
        Carries a machine-readable code, a human-readable message, the codes
        of any offending accounts, and optional numeric details.

    Non-goals:
        - Does NOT raise.  It IS the error representation.
    """

    code: str
    message: str
    account_codes: tuple[str, ...] = ()
    details: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.account_codes:
            data["accountCodes"] = list(self.account_codes)
        return data


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - violations is always a tuple (never None), in rule order.
        - bool(result) == result.is_valid.
    """

    is_valid: bool
    violations: tuple[Violation, ...] = ()

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, violations=())

    @classmethod
    def failure(cls, *violations: Violation) -> ValidationResult:
        return cls(is_valid=False, violations=tuple(violations))

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(v.code for v in self.violations)

    def __bool__(self) -> bool:
        return self.is_valid


# ---------------------------------------------------------------------------
# Results and records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingResult:
    """
    Outcome of a post / post_draft call.

    Either ok with the transaction id and number, or not ok with the full
    list of violations.  Storage failures are raised, not returned.
    """

    ok: bool
    transaction_id: UUID | None = None
    transaction_number: str | None = None
    violations: tuple[Violation, ...] = ()

    @classmethod
    def posted(cls, transaction_id: UUID, transaction_number: str) -> PostingResult:
        return cls(ok=True, transaction_id=transaction_id, transaction_number=transaction_number)

    @classmethod
    def rejected(
        cls, violations: tuple[Violation, ...], transaction_id: UUID | None = None
    ) -> PostingResult:
        return cls(ok=False, transaction_id=transaction_id, violations=tuple(violations))

    def violation_dicts(self) -> list[dict[str, Any]]:
        return [v.to_dict() for v in self.violations]

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing shape used by API handlers."""
        if self.ok:
            return {
                "ok": True,
                "transactionId": str(self.transaction_id),
                "transactionNumber": self.transaction_number,
            }
        return {"ok": False, "violations": self.violation_dicts()}


@dataclass(frozen=True)
class VoidResult:
    """Result of voiding a posted transaction."""

    original_id: UUID
    original_number: str | None
    reversal_id: UUID
    reversal_number: str
    voided_at: datetime


@dataclass(frozen=True)
class LedgerLineRecord:
    """Read-only view of a persisted ledger line."""

    id: UUID
    account_id: UUID
    entry_type: EntryType
    amount: Decimal
    amount_in_base: Decimal
    description: str | None
    line_seq: int

    @classmethod
    def from_model(cls, model: LedgerLineModel) -> LedgerLineRecord:
        return cls(
            id=model.id,
            account_id=model.account_id,
            entry_type=EntryType(model.entry_type),
            amount=model.amount,
            amount_in_base=model.amount_in_base,
            description=model.description,
            line_seq=model.line_seq,
        )

    def as_draft(self) -> LedgerLineDraft:
        return LedgerLineDraft(
            account_id=self.account_id,
            entry_type=self.entry_type,
            amount=self.amount,
            description=self.description,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """Read-only view of a persisted transaction and its lines."""

    id: UUID
    organization_id: UUID
    transaction_number: str | None
    transaction_date: date
    description: str
    status: TransactionStatus
    source_type: SourceType
    currency: str
    exchange_rate: Decimal
    is_reversal: bool
    scheduled_reversal_date: date | None
    reversal_of_id: UUID | None
    posted_at: datetime | None
    voided_at: datetime | None
    void_reason: str | None
    lines: tuple[LedgerLineRecord, ...]

    @classmethod
    def from_model(cls, model: TransactionModel) -> TransactionRecord:
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            transaction_number=model.transaction_number,
            transaction_date=model.transaction_date,
            description=model.description,
            status=TransactionStatus(model.status),
            source_type=SourceType(model.source_type),
            currency=model.currency,
            exchange_rate=model.exchange_rate,
            is_reversal=model.is_reversal,
            scheduled_reversal_date=model.scheduled_reversal_date,
            reversal_of_id=model.reversal_of_id,
            posted_at=model.posted_at,
            voided_at=model.voided_at,
            void_reason=model.void_reason,
            lines=tuple(
                LedgerLineRecord.from_model(line)
                for line in sorted(model.lines, key=lambda l: l.line_seq)
            ),
        )

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (l.amount for l in self.lines if l.entry_type == EntryType.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (l.amount for l in self.lines if l.entry_type == EntryType.CREDIT),
            Decimal("0"),
        )
