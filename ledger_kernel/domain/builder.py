"""
Transaction Builder (pure part) -- source documents to canonical drafts.

Responsibility:
    Turns an ExpenseDocument, a ManualJournalDocument, or a posted
    transaction's lines into the LedgerLineDraft tuples the validator and
    posting engine understand.  Amounts are quantized to the currency minor
    unit here; no other layer rounds.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Account existence is
    checked by services/transaction_builder.py, not here.

Failure modes:
    - NoLinesError when nothing is left after blank rows are dropped.
    - AmbiguousLineError when a journal row has both or neither amount set,
      or an amount without an account.
    - InvalidAmountError when a journal amount cannot be parsed.
    - ExpenseTotalMismatchError when the stated net disagrees with the
      category lines.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable
from uuid import UUID

from ledger_kernel.domain.dtos import (
    DocumentLine,
    ExpenseDocument,
    LedgerLineDraft,
    ManualJournalDocument,
    ManualJournalRow,
    TaxSplit,
)
from ledger_kernel.domain.values import EntryType, SourceType, parse_amount, round_money
from ledger_kernel.exceptions import (
    AmbiguousLineError,
    ExpenseTotalMismatchError,
    NoLinesError,
)


@dataclass(frozen=True)
class Quantizer:
    """Rounds amounts to the minor unit with a fixed rounding mode."""

    decimal_places: int = 2
    rounding: str = ROUND_HALF_UP

    def __call__(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.decimal_places, self.rounding)


DEFAULT_QUANTIZER = Quantizer()


def reversal_description(transaction_number: str | None, description: str | None) -> str:
    label = f"Reversal of {transaction_number}" if transaction_number else "Reversal"
    if description:
        return f"{label}: {description}"
    return label


def flip_lines(
    lines: Iterable[LedgerLineDraft], transaction_number: str | None
) -> tuple[LedgerLineDraft, ...]:
    """
    Mirror a line set: every DEBIT becomes CREDIT and vice versa.

    Amounts and accounts are unchanged, so a balanced set stays balanced and
    the combined effect of the original and the mirror on every account is
    zero.
    """
    return tuple(
        line.flipped(reversal_description(transaction_number, line.description))
        for line in lines
    )


def _document_lines(
    lines: Iterable[DocumentLine],
    entry_type: EntryType,
    quantize: Quantizer,
    default_description: str,
) -> list[LedgerLineDraft]:
    return [
        LedgerLineDraft(
            account_id=line.account_id,
            entry_type=entry_type,
            amount=quantize(line.amount),
            description=line.description or default_description,
        )
        for line in lines
    ]


def build_expense_lines(
    document: ExpenseDocument, quantize: Quantizer = DEFAULT_QUANTIZER
) -> tuple[LedgerLineDraft, ...]:
    """
    Expense -> lines.

    DEBIT each category line and each input-tax line; CREDIT each funding
    account and each withholding line.
    """
    if document.net_amount is not None:
        stated = quantize(document.net_amount)
        computed = sum(
            (quantize(line.amount) for line in document.category_lines), Decimal("0")
        )
        if stated != computed:
            raise ExpenseTotalMismatchError(str(stated), str(computed))

    drafts = (
        _document_lines(document.category_lines, EntryType.DEBIT, quantize, document.description)
        + _document_lines(document.tax_lines, EntryType.DEBIT, quantize, "Input tax")
        + _document_lines(document.payments, EntryType.CREDIT, quantize, document.description)
        + _document_lines(
            document.withholding_lines, EntryType.CREDIT, quantize, "Withholding tax"
        )
    )
    if not drafts:
        raise NoLinesError(SourceType.EXPENSE.value)
    return tuple(drafts)


def _is_set(amount: Decimal | None) -> bool:
    return amount is not None and amount != 0


def _row_is_blank(row: ManualJournalRow) -> bool:
    def blank(value) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    return row.account_id is None and blank(row.debit) and blank(row.credit)


def journal_row_to_line(
    row: ManualJournalRow, index: int, quantize: Quantizer = DEFAULT_QUANTIZER
) -> LedgerLineDraft:
    """
    Infer entry type from whichever of debit / credit is filled in.

    A zero amount counts as unset, so a row with an account but only zero
    amounts is ambiguous, not blank.  Negative amounts pass through so the
    validator can report them.
    """
    debit = parse_amount(row.debit, f"row {index + 1} debit")
    credit = parse_amount(row.credit, f"row {index + 1} credit")

    if _is_set(debit) and _is_set(credit):
        raise AmbiguousLineError(index, "both debit and credit are set")
    if not _is_set(debit) and not _is_set(credit):
        raise AmbiguousLineError(index, "neither debit nor credit is set")
    if row.account_id is None:
        raise AmbiguousLineError(index, "an amount is entered but no account is selected")

    if _is_set(debit):
        entry_type, amount = EntryType.DEBIT, debit
    else:
        entry_type, amount = EntryType.CREDIT, credit

    return LedgerLineDraft(
        account_id=row.account_id,
        entry_type=entry_type,
        amount=quantize(amount),
        description=row.description,
    )


def build_journal_lines(
    document: ManualJournalDocument, quantize: Quantizer = DEFAULT_QUANTIZER
) -> tuple[LedgerLineDraft, ...]:
    """
    Manual journal -> lines.

    Rows with no account and no amount text are dropped as blank.
    """
    drafts = [
        journal_row_to_line(row, index, quantize)
        for index, row in enumerate(document.rows)
        if not _row_is_blank(row)
    ]
    if not drafts:
        raise NoLinesError(SourceType.MANUAL_JOURNAL.value)
    return tuple(drafts)


def apply_tax_split(
    split: TaxSplit,
    category_account_id: UUID,
    tax_account_id: UUID,
    description: str | None = None,
) -> tuple[DocumentLine, DocumentLine | None]:
    """
    Convert a calculator's TaxSplit into an expense category line and an
    optional input-tax line.
    """
    category = DocumentLine(category_account_id, split.net, description)
    if split.tax == 0:
        return category, None
    return category, DocumentLine(tax_account_id, split.tax, "Input tax")
