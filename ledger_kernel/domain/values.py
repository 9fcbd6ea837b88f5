"""
Module: ledger_kernel.domain.values
Responsibility: Closed enumerations shared by the domain, models and services,
    plus the account-type sign convention used to turn a ledger line into a
    balance delta.
Architecture position: Kernel > Domain.  Pure, zero I/O.  Imported by models/
    so that persisted columns and domain DTOs share one definition.

Invariants enforced:
    - Transaction status is a closed set: DRAFT, POSTED, VOIDED, CANCELLED.
    - Sign convention is fixed and not configurable:
        ASSET, EXPENSE                -> +DEBIT  -CREDIT
        LIABILITY, EQUITY, REVENUE    -> +CREDIT -DEBIT
    - No floats for monetary amounts.  parse_amount() rejects float input.
    - round_money() is the only sanctioned rounding function.

Failure modes:
    - InvalidAmountError from parse_amount() on unparseable input.
"""

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ledger_kernel.exceptions import InvalidAmountError


class AccountType(str, Enum):
    """Fundamental account classification."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Side on which an account's balance normally increases."""

    DEBIT = "debit"
    CREDIT = "credit"


class EntryType(str, Enum):
    """Direction of a single ledger line."""

    DEBIT = "debit"
    CREDIT = "credit"

    def flipped(self) -> "EntryType":
        return EntryType.CREDIT if self is EntryType.DEBIT else EntryType.DEBIT


class TransactionStatus(str, Enum):
    """
    Transaction lifecycle.

    DRAFT -> POSTED (post_draft), DRAFT -> CANCELLED (cancel),
    POSTED -> VOIDED (void).  POSTED can also be reached directly.
    """

    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"
    CANCELLED = "cancelled"


class SourceType(str, Enum):
    """Kind of source document a transaction was built from."""

    EXPENSE = "expense"
    MANUAL_JOURNAL = "manual_journal"
    REVERSAL = "reversal"


# Statuses whose lines count toward account balances.  A VOIDED transaction
# still counts; its REVERSAL offsets it.
BALANCE_AFFECTING_STATUSES = frozenset({TransactionStatus.POSTED, TransactionStatus.VOIDED})

# Statuses after which the line set may not change.
FINAL_STATUSES = frozenset(
    {TransactionStatus.POSTED, TransactionStatus.VOIDED, TransactionStatus.CANCELLED}
)

_DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})


def normal_balance_for(account_type: AccountType) -> NormalBalance:
    """Normal balance side for an account type."""
    if account_type in _DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def balance_effect(account_type: AccountType, entry_type: EntryType, amount: Decimal) -> Decimal:
    """
    Signed change to an account's cached balance caused by one line.

    >>> balance_effect(AccountType.ASSET, EntryType.DEBIT, Decimal("10"))
    Decimal('10')
    >>> balance_effect(AccountType.REVENUE, EntryType.DEBIT, Decimal("10"))
    Decimal('-10')
    """
    if normal_balance_for(account_type).value == entry_type.value:
        return amount
    return -amount


# ---------------------------------------------------------------------------
# Money helpers
# ---------------------------------------------------------------------------

DEFAULT_ROUNDING = ROUND_HALF_UP

ROUNDING_MODES: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
}


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for financial values.

    Args:
        value: The Decimal value to round.
        decimal_places: Minor unit of the currency.
        rounding: decimal rounding mode (default ROUND_HALF_UP).
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def parse_amount(value: Any, field_name: str = "amount") -> Decimal | None:
    """
    Parse a loosely-typed amount coming from a form or API payload.

    Blank strings and None mean "not entered" and return None.  Strings may
    carry thousands separators ("1,250.00").  Floats are rejected outright.

    Raises:
        InvalidAmountError: If the value cannot be read as a finite decimal.
    """
    if value is None:
        return None
    if isinstance(value, (bool, float)):
        raise InvalidAmountError(str(value), field_name)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(value, field_name) from None
    else:
        raise InvalidAmountError(str(value), field_name)

    if not amount.is_finite():
        raise InvalidAmountError(str(value), field_name)
    return amount
