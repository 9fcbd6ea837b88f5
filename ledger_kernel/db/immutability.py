"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A posted transaction is history.  It may be counteracted by a reversal but
never edited or deleted.  The posting engine and void service already follow
that rule; this module makes the ORM refuse to flush anything that breaks it,
whichever code path tries.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_insert event] --> _check_ledger_line_insert() ---------+
         |                                                        |
         v                                                        v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | When Immutable                          | Allowed change
--------------|-----------------------------------------|------------------------------
Transaction   | status was POSTED                       | POSTED -> VOIDED void stamp
Transaction   | status was VOIDED or CANCELLED          | none
LedgerLine    | parent status POSTED/VOIDED/CANCELLED   | none (no update, delete or
              |                                         | new line)
Account       | code/account_type/organization_id once  | name, flags, tags, balance
              | referenced by posted or voided lines    |

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id may always change.  They are audit metadata.

2. The check uses the status the row HAD before this flush.  DRAFT -> POSTED
   is the posting itself and must pass; anything after it must not.

3. Model imports are inline to avoid db <-> models import cycles.

===============================================================================
USAGE
===============================================================================

init_engine_from_url() registers the listeners.  Registration is idempotent.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.domain.values import FINAL_STATUSES, TransactionStatus
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields the void flow writes on a POSTED transaction
VOID_STAMP_FIELDS = frozenset(
    {"status", "voided_at", "voided_by_id", "void_reason"}
) | AUDIT_FIELDS

# Structural fields that become immutable once the account is referenced
ACCOUNT_STRUCTURAL_FIELDS = frozenset({"account_type", "code", "organization_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _status_before_flush(target) -> TransactionStatus | None:
    """Status persisted before the pending change, or None for new rows."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.history.has_changes() and attr.key not in ("lines", "reversal_of")
    ]


def _check_transaction_immutability(mapper, connection, target):
    """
    Prevent updates to POSTED, VOIDED and CANCELLED transactions.

    The single exception is the void stamp: a POSTED row may move to VOIDED
    while changing nothing but VOID_STAMP_FIELDS.
    """
    previous = _status_before_flush(target)
    if previous is None or previous == TransactionStatus.DRAFT:
        return

    changed = [f for f in _changed_fields(target) if f not in AUDIT_FIELDS]
    if not changed:
        return

    if (
        previous == TransactionStatus.POSTED
        and target.status == TransactionStatus.VOIDED
        and set(changed) <= VOID_STAMP_FIELDS
    ):
        return

    _blocked(
        "Transaction",
        target.id,
        "UPDATE",
        f"Cannot modify field(s) {sorted(changed)} on {previous.value} transaction",
        fields=sorted(changed),
    )


def _check_transaction_delete(mapper, connection, target):
    """Only DRAFT transactions may be deleted."""
    previous = _status_before_flush(target) or target.status
    if previous in FINAL_STATUSES:
        _blocked(
            "Transaction",
            target.id,
            "DELETE",
            f"Cannot delete {previous.value} transaction",
        )


def _check_ledger_line_immutability(mapper, connection, target):
    """Lines are frozen once their transaction has left DRAFT."""
    parent = target.transaction
    if parent is not None and _status_before_flush(parent) in FINAL_STATUSES:
        _blocked(
            "LedgerLine",
            target.id,
            "UPDATE",
            "Ledger lines cannot be modified after the transaction leaves draft",
        )


def _parent_status(connection, target) -> TransactionStatus | None:
    """Pre-flush status of a line's transaction, read from storage when detached."""
    parent = target.transaction
    if parent is not None:
        return _status_before_flush(parent)
    if target.transaction_id is None:
        return None
    # Orphaned by update_draft(), or a line built with a bare transaction_id
    row = connection.execute(
        text("SELECT status FROM transactions WHERE id = :id"),
        {"id": str(target.transaction_id)},
    ).scalar()
    return TransactionStatus(row) if row is not None else None


def _check_ledger_line_insert(mapper, connection, target):
    """No new lines on a transaction that has left DRAFT."""
    status = _parent_status(connection, target)
    if status in FINAL_STATUSES:
        _blocked(
            "LedgerLine",
            target.id,
            "INSERT",
            f"Cannot add ledger lines to a {status.value} transaction",
        )


def _check_ledger_line_delete(mapper, connection, target):
    status = _parent_status(connection, target)
    if status in FINAL_STATUSES:
        _blocked(
            "LedgerLine",
            target.id,
            "DELETE",
            "Ledger lines cannot be deleted after the transaction leaves draft",
        )


def _account_has_posted_references(connection, account_id: str) -> bool:
    """True when any POSTED or VOIDED transaction has a line on the account."""
    result = connection.execute(
        text(
            """
            SELECT EXISTS (
                SELECT 1 FROM ledger_lines ll
                JOIN transactions t ON ll.transaction_id = t.id
                WHERE ll.account_id = :account_id
                AND t.status IN ('posted', 'voided')
            )
            """
        ),
        {"account_id": account_id},
    )
    return bool(result.scalar())


def _check_account_structural_immutability(mapper, connection, target):
    """
    Prevent changes to structural fields on referenced accounts.

    Non-structural fields (name, tags, is_active, allow_manual_journal,
    balance) can still be modified.
    """
    changed = sorted(
        f for f in ACCOUNT_STRUCTURAL_FIELDS if get_history(target, f).has_changes()
    )
    if not changed:
        return

    if _account_has_posted_references(connection, str(target.id)):
        _blocked(
            "Account",
            target.id,
            "UPDATE",
            f"Cannot modify structural field(s) {changed} "
            "on account referenced by posted transactions",
            fields=changed,
        )


def _check_account_delete(mapper, connection, target):
    if _account_has_posted_references(connection, str(target.id)):
        _blocked(
            "Account",
            target.id,
            "DELETE",
            "Cannot delete account referenced by posted transactions",
        )


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.transaction import LedgerLine, Transaction

    return [
        (Transaction, "before_update", _check_transaction_immutability),
        (Transaction, "before_delete", _check_transaction_delete),
        (LedgerLine, "before_insert", _check_ledger_line_insert),
        (LedgerLine, "before_update", _check_ledger_line_immutability),
        (LedgerLine, "before_delete", _check_ledger_line_delete),
        (Account, "before_update", _check_account_structural_immutability),
        (Account, "before_delete", _check_account_delete),
    ]


def register_immutability_listeners():
    """Register all immutability enforcement event listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
