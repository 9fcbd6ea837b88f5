"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the posting core (API handlers, expense and journal forms, the
void flow) need to react to failures precisely:

  - Input errors are user-correctable and must be shown in full.
  - State errors are workflow mistakes and must not be retried as-is.
  - Persistence errors leave no partial ledger trace and may be retried.

Every exception therefore has:
  1. A TYPED class (catch by type, not by message)
  2. A class-level CODE attribute (machine-readable, API-safe)
  3. Structured attributes carrying the data needed to explain the failure

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- InputError
    |   +-- NoLinesError
    |   +-- AmbiguousLineError
    |   +-- InvalidAmountError
    |   +-- ExpenseTotalMismatchError
    |   +-- ValidationFailedError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |
    +-- TransactionStateError
    |   +-- TransactionNotFoundError
    |   +-- InvalidStateError
    |   +-- ReversalImbalanceError
    |
    +-- PersistenceError
    |   +-- PostingFailedError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|-------------------------------------------
Input        | NO_LINES                  | Nothing left after dropping blank rows
             | AMBIGUOUS_LINE            | Row has both or neither debit/credit set
             | INVALID_AMOUNT            | Amount field cannot be parsed
             | EXPENSE_TOTAL_MISMATCH    | Stated net != sum of category lines
             | VALIDATION_FAILED         | Violation list raised as an exception
-------------|---------------------------|-------------------------------------------
Account      | ACCOUNT_NOT_FOUND         | Account id unknown or in another tenant
-------------|---------------------------|-------------------------------------------
State        | TRANSACTION_NOT_FOUND     | Transaction id unknown
             | INVALID_STATE             | Transition not allowed from this status
             | REVERSAL_IMBALANCE        | Flipped line set failed validation
-------------|---------------------------|-------------------------------------------
Persistence  | POSTING_FAILED            | Storage failure while applying a post
             | OPTIMISTIC_LOCK_CONFLICT  | Concurrent balance update detected
-------------|---------------------------|-------------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | Modifying a posted/voided/cancelled record

Validator rule violations (CONTROL_ACCOUNT_VIOLATION, IMBALANCE,
MIXED_DIRECTION, ...) are NOT exceptions.  They are returned as Violation
values so every problem can be shown at once; see domain/validator.py.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = engine.post_draft(transaction_id, actor_id)
    except InvalidStateError as e:
        return api_error(e.code, status=e.status)
    except PersistenceError as e:
        # No partial posting happened; safe to retry the whole call.
        return api_error(e.code, retryable=True)

    if not result.ok:
        return {"ok": False, "violations": result.violation_dicts()}
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Input-related exceptions


class InputError(LedgerKernelError):
    """Base exception for user-correctable input errors."""

    code: str = "INPUT_ERROR"


class NoLinesError(InputError):
    """Source document produced no ledger lines after blank rows were dropped."""

    code: str = "NO_LINES"

    def __init__(self, source_type: str):
        self.source_type = source_type
        super().__init__(f"No ledger lines to build for {source_type}")


class AmbiguousLineError(InputError):
    """A manual journal row has both or neither of debit and credit set."""

    code: str = "AMBIGUOUS_LINE"

    def __init__(self, row_index: int, reason: str):
        self.row_index = row_index
        self.reason = reason
        super().__init__(f"Journal row {row_index + 1}: {reason}")


class InvalidAmountError(InputError):
    """An amount field could not be parsed as a decimal number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: str, field_name: str):
        self.value = value
        self.field_name = field_name
        super().__init__(f"Invalid amount for {field_name}: '{value}'")


class ExpenseTotalMismatchError(InputError):
    """Stated expense net amount differs from the sum of its category lines."""

    code: str = "EXPENSE_TOTAL_MISMATCH"

    def __init__(self, stated: str, computed: str):
        self.stated = stated
        self.computed = computed
        super().__init__(
            f"Expense net amount {stated} does not equal category total {computed}"
        )


class ValidationFailedError(InputError):
    """Raised when a caller asks for validation violations as an exception."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, violations: tuple):
        self.violations = violations
        summary = "; ".join(v.message for v in violations)
        super().__init__(f"{len(violations)} validation violation(s): {summary}")


# Account-related exceptions


class AccountError(LedgerKernelError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account was not found (or belongs to another organization)."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


# Transaction state exceptions


class TransactionStateError(LedgerKernelError):
    """Base exception for lifecycle/workflow errors."""

    code: str = "TRANSACTION_STATE_ERROR"


class TransactionNotFoundError(TransactionStateError):
    """Transaction with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class InvalidStateError(TransactionStateError):
    """Requested transition is not allowed from the transaction's status."""

    code: str = "INVALID_STATE"

    def __init__(self, transaction_id: str, status: str, operation: str):
        self.transaction_id = transaction_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} transaction {transaction_id}: status is {status}"
        )


class ReversalImbalanceError(TransactionStateError):
    """
    The flipped line set of a posted transaction failed validation.

    Flipping a balanced set always balances, so this signals corrupted
    stored lines rather than a normal-path failure.
    """

    code: str = "REVERSAL_IMBALANCE"

    def __init__(self, transaction_id: str, violations: tuple):
        self.transaction_id = transaction_id
        self.violations = violations
        super().__init__(
            f"Reversal of transaction {transaction_id} failed validation: "
            + "; ".join(v.message for v in violations)
        )


# Persistence / concurrency exceptions


class PersistenceError(LedgerKernelError):
    """Base exception for storage failures. Failed posts leave no partial state."""

    code: str = "PERSISTENCE_ERROR"


class PostingFailedError(PersistenceError):
    """Storage failure while applying a post; every delta was rolled back."""

    code: str = "POSTING_FAILED"

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Posting failed for transaction {transaction_id}: {reason}")


class OptimisticLockError(PersistenceError):
    """Optimistic locking conflict detected on a balance update."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Transactions and their lines are immutable once POSTED; the only
    permitted change afterwards is the POSTED -> VOIDED stamp written by
    the void flow.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
