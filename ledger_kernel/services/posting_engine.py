"""
PostingEngine -- the only component that moves a transaction into the ledger.

Responsibility:
    Persists drafts, edits and cancels them, and posts them: validate the
    line set, apply every balance delta, assign the transaction number and
    stamp posted_at, all inside one savepoint.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes AccountRegistry,
    SequenceService and the pure validator.  VoidService posts reversals
    through post().

State machine:

    save_draft()            post_draft()
        |                        |
        v                        v
      DRAFT  ----------------> POSTED ----(VoidService)----> VOIDED
        |                        ^
        | cancel()               | post()  (direct, no draft row)
        v
    CANCELLED

Invariants enforced:
    - Validation failures never raise.  They come back as a PostingResult
      listing every violation, and a DRAFT stays DRAFT.
    - All deltas, the number and the status change land together or not at
      all (savepoint).
    - Account rows are locked in ascending id order before any delta.
    - transaction_number is assigned once, when first posted.

Failure modes:
    - TransactionNotFoundError, InvalidStateError for lifecycle misuse.
    - AccountNotFoundError when saving a draft that names an unknown account.
    - ValidationFailedError when saving a draft with non-positive amounts.
    - OptimisticLockError when a concurrent writer updated an account first.
    - PostingFailedError for any other storage failure during posting.
"""

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.config import LedgerSettings
from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    LedgerLineDraft,
    PostingResult,
    TransactionDraft,
    TransactionRecord,
    ValidationResult,
)
from ledger_kernel.domain.validator import NON_POSITIVE_AMOUNT, validate_lines
from ledger_kernel.domain.values import EntryType, TransactionStatus, round_money
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    InvalidStateError,
    OptimisticLockError,
    PostingFailedError,
    TransactionNotFoundError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.transaction import LedgerLine, Transaction
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.posting_engine")


class PostingEngine:
    """
    Drives the transaction lifecycle.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT void; see VoidService.
    """

    def __init__(
        self,
        session: Session,
        registry: AccountRegistry | None = None,
        sequences: SequenceService | None = None,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._settings = settings or LedgerSettings()
        self._registry = registry or AccountRegistry(session, self._settings)
        self._sequences = sequences or SequenceService(session, self._settings)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(
        self, organization_id: UUID, lines: tuple[LedgerLineDraft, ...]
    ) -> ValidationResult:
        """Resolve the accounts (scoped to the organization) and validate."""
        accounts = self._registry.find_accounts(
            (line.account_id for line in lines), organization_id
        )
        return validate_lines(lines, accounts, self._settings.balance_tolerance)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def save_draft(self, draft: TransactionDraft) -> TransactionRecord:
        """Persist a DRAFT.  No deltas, no number."""
        self._check_storable(draft)
        transaction = Transaction(status=TransactionStatus.DRAFT, created_by_id=draft.actor_id)
        self._write_header(transaction, draft)
        transaction.lines = self._build_lines(draft)
        self._session.add(transaction)
        self._session.flush()

        logger.info(
            "draft_saved",
            extra={
                "transaction_id": str(transaction.id),
                "source_type": draft.source_type.value,
                "line_count": len(draft.lines),
            },
        )
        return TransactionRecord.from_model(transaction)

    def update_draft(self, transaction_id: UUID, draft: TransactionDraft) -> TransactionRecord:
        """Replace a DRAFT's header and lines."""
        transaction = self._load_for_update(transaction_id, draft.organization_id)
        self._require_status(transaction, TransactionStatus.DRAFT, "edit")
        self._check_storable(draft)

        self._write_header(transaction, draft)
        transaction.lines = self._build_lines(draft)
        transaction.updated_by_id = draft.actor_id
        self._session.flush()

        logger.info(
            "draft_updated",
            extra={"transaction_id": str(transaction.id), "line_count": len(draft.lines)},
        )
        return TransactionRecord.from_model(transaction)

    def cancel(self, transaction_id: UUID, actor_id: UUID) -> TransactionRecord:
        """DRAFT -> CANCELLED.  No balance effect."""
        transaction = self._load_for_update(transaction_id)
        self._require_status(transaction, TransactionStatus.DRAFT, "cancel")
        transaction.status = TransactionStatus.CANCELLED
        transaction.updated_by_id = actor_id
        self._session.flush()

        logger.info("draft_cancelled", extra={"transaction_id": str(transaction.id)})
        return TransactionRecord.from_model(transaction)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_draft(self, transaction_id: UUID, actor_id: UUID) -> PostingResult:
        """
        DRAFT -> POSTED.

        Returns:
            PostingResult.  On rejection the transaction stays DRAFT.
        """
        transaction = self._load_for_update(transaction_id)
        self._require_status(transaction, TransactionStatus.DRAFT, "post")

        lines = tuple(
            LedgerLineDraft(line.account_id, EntryType(line.entry_type), line.amount, line.description)
            for line in transaction.lines
        )
        with LogContext.bind(
            organization_id=transaction.organization_id,
            transaction_id=transaction.id,
            actor_id=actor_id,
        ):
            logger.info("posting_started", extra={"mode": "draft", "line_count": len(lines)})
            validation = self.validate(transaction.organization_id, lines)
            if not validation.is_valid:
                self._log_rejection(validation)
                return PostingResult.rejected(validation.violations, transaction.id)

            savepoint = self._session.begin_nested()
            try:
                self._apply(transaction, actor_id)
                savepoint.commit()
            except Exception as exc:
                self._rollback(savepoint, transaction.id, exc, [l.account_id for l in lines])

            logger.info(
                "posting_completed",
                extra={"transaction_number": transaction.transaction_number},
            )
        return PostingResult.posted(transaction.id, transaction.transaction_number)

    def post(self, draft: TransactionDraft) -> PostingResult:
        """
        Validate and post a draft directly, without a DRAFT row.

        A rejected draft leaves no trace in storage.
        """
        with LogContext.bind(
            organization_id=draft.organization_id, actor_id=draft.actor_id
        ):
            logger.info(
                "posting_started",
                extra={
                    "mode": "direct",
                    "source_type": draft.source_type.value,
                    "line_count": len(draft.lines),
                },
            )
            validation = self.validate(draft.organization_id, draft.lines)
            if not validation.is_valid:
                self._log_rejection(validation)
                return PostingResult.rejected(validation.violations)

            validate_currency(draft.currency)
            transaction = Transaction(
                id=uuid4(), status=TransactionStatus.DRAFT, created_by_id=draft.actor_id
            )
            self._write_header(transaction, draft)
            transaction.lines = self._build_lines(draft)

            savepoint = self._session.begin_nested()
            try:
                self._session.add(transaction)
                self._session.flush()
                self._apply(transaction, draft.actor_id)
                savepoint.commit()
            except Exception as exc:
                self._rollback(savepoint, transaction.id, exc, draft.account_ids)

            logger.info(
                "posting_completed",
                extra={
                    "transaction_id": str(transaction.id),
                    "transaction_number": transaction.transaction_number,
                },
            )
        return PostingResult.posted(transaction.id, transaction.transaction_number)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, transaction: Transaction, actor_id: UUID) -> None:
        """Lock accounts, apply deltas, number and stamp.  Caller holds a savepoint."""
        locked = self._registry.lock_accounts(line.account_id for line in transaction.lines)
        for line in sorted(transaction.lines, key=lambda l: l.line_seq):
            self._registry.apply_delta(
                line.account_id,
                EntryType(line.entry_type),
                line.amount_in_base,
                account=locked.get(line.account_id),
            )

        if transaction.transaction_number is None:
            transaction.transaction_number = self._sequences.next_number(
                transaction.organization_id, transaction.source_type.value
            )
        transaction.status = TransactionStatus.POSTED
        transaction.posted_at = self._clock.now()
        transaction.posted_by_id = actor_id
        self._session.flush()

    def _rollback(
        self, savepoint, transaction_id: UUID, exc: Exception, account_ids
    ) -> None:
        """Undo every delta and re-raise as a typed persistence error."""
        savepoint.rollback()
        logger.error(
            "posting_failed",
            extra={"transaction_id": str(transaction_id), "reason": type(exc).__name__},
            exc_info=True,
        )
        if isinstance(exc, StaleDataError):
            raise OptimisticLockError(
                "Account", ",".join(sorted({str(a) for a in account_ids}))
            ) from exc
        if isinstance(exc, SQLAlchemyError):
            raise PostingFailedError(str(transaction_id), str(exc)) from exc
        raise exc

    def _log_rejection(self, validation: ValidationResult) -> None:
        logger.warning(
            "posting_rejected",
            extra={"violation_codes": list(validation.codes)},
        )

    def _check_storable(self, draft: TransactionDraft) -> None:
        validate_currency(draft.currency)
        found = self._registry.find_accounts(draft.account_ids, draft.organization_id)
        for account_id in draft.account_ids:
            if account_id not in found:
                raise AccountNotFoundError(str(account_id))
        validation = validate_lines(draft.lines, found, self._settings.balance_tolerance)
        non_positive = tuple(v for v in validation.violations if v.code == NON_POSITIVE_AMOUNT)
        if non_positive:
            raise ValidationFailedError(non_positive)

    def _write_header(self, transaction: Transaction, draft: TransactionDraft) -> None:
        transaction.organization_id = draft.organization_id
        transaction.transaction_date = draft.transaction_date
        transaction.description = draft.description
        transaction.source_type = draft.source_type
        transaction.currency = validate_currency(draft.currency)
        transaction.exchange_rate = draft.exchange_rate
        transaction.is_reversal = draft.is_reversal
        transaction.scheduled_reversal_date = draft.scheduled_reversal_date
        transaction.reversal_of_id = draft.reversal_of_id
        transaction.reference = draft.reference
        transaction.notes = draft.notes
        transaction.transaction_metadata = dict(draft.metadata) or None

    def _build_lines(self, draft: TransactionDraft) -> list[LedgerLine]:
        places = self._settings.amount_decimal_places
        rounding = self._settings.decimal_rounding
        return [
            LedgerLine(
                account_id=line.account_id,
                entry_type=line.entry_type,
                amount=line.amount,
                amount_in_base=round_money(line.amount * draft.exchange_rate, places, rounding),
                description=line.description,
                line_seq=index,
                created_by_id=draft.actor_id,
            )
            for index, line in enumerate(draft.lines)
        ]

    def _load_for_update(
        self, transaction_id: UUID, organization_id: UUID | None = None
    ) -> Transaction:
        transaction = self._session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if transaction is None or (
            organization_id is not None and transaction.organization_id != organization_id
        ):
            raise TransactionNotFoundError(str(transaction_id))
        return transaction

    @staticmethod
    def _require_status(
        transaction: Transaction, expected: TransactionStatus, operation: str
    ) -> None:
        if transaction.status != expected:
            raise InvalidStateError(
                str(transaction.id), TransactionStatus(transaction.status).value, operation
            )
