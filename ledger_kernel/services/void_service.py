"""
VoidService -- counteract a posted transaction with a mirror REVERSAL.

Responsibility:
    Loads a POSTED transaction under a row lock, builds its flipped mirror,
    posts the mirror through PostingEngine.post(), and stamps the original
    VOIDED.  History is never deleted: the original keeps its lines and the
    reversal offsets them.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes TransactionBuilder and
    PostingEngine.

Invariants enforced:
    - Only POSTED transactions can be voided; a second void of the same
      transaction fails with InvalidStateError.
    - The reversal post and the VOIDED stamp share one savepoint: both land
      or neither does.
    - Each account's combined balance effect of original plus reversal is
      zero.

Failure modes:
    - TransactionNotFoundError: unknown id (or another organization's).
    - InvalidStateError: status is not POSTED.
    - ReversalImbalanceError: the mirror failed validation, which means the
      stored lines were already inconsistent.
    - PostingFailedError / OptimisticLockError from the posting engine.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import TransactionRecord, VoidResult
from ledger_kernel.domain.values import TransactionStatus
from ledger_kernel.exceptions import (
    InvalidStateError,
    ReversalImbalanceError,
    TransactionNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services.posting_engine import PostingEngine
from ledger_kernel.services.transaction_builder import TransactionBuilder

logger = get_logger("services.void")


class VoidService:
    """
    Thin orchestrator for voids.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT support partial (line-level) reversal.
        - Does NOT schedule anything; JournalSelector.due_scheduled_reversals()
          tells an external job what to void.
    """

    def __init__(
        self,
        session: Session,
        engine: PostingEngine,
        builder: TransactionBuilder,
        clock: Clock | None = None,
    ):
        self._session = session
        self._engine = engine
        self._builder = builder
        self._clock = clock or SystemClock()

    def void(
        self,
        transaction_id: UUID,
        reason: str,
        actor_id: UUID,
        reversal_date: date | None = None,
        organization_id: UUID | None = None,
    ) -> VoidResult:
        """
        Void a POSTED transaction.

        Args:
            transaction_id: Transaction to void.
            reason: Human-readable reason, stored on the original.
            actor_id: Who is voiding.
            reversal_date: Accounting date of the reversal (defaults to today).
            organization_id: When given, the transaction must belong to it.

        Returns:
            VoidResult with both transaction ids and numbers.
        """
        original = self._load_and_validate(transaction_id, organization_id)

        with LogContext.bind(
            organization_id=original.organization_id,
            transaction_id=original.id,
            actor_id=actor_id,
        ):
            record = TransactionRecord.from_model(original)
            draft = self._builder.build_reversal(
                record,
                actor_id=actor_id,
                reversal_date=reversal_date or self._clock.today(),
                reason=reason,
            )

            validation = self._engine.validate(draft.organization_id, draft.lines)
            if not validation.is_valid:
                logger.error(
                    "reversal_validation_failed",
                    extra={"violation_codes": list(validation.codes)},
                )
                raise ReversalImbalanceError(str(original.id), validation.violations)

            savepoint = self._session.begin_nested()
            try:
                result = self._engine.post(draft)
                if not result.ok:
                    raise ReversalImbalanceError(str(original.id), result.violations)

                voided_at = self._clock.now()
                original.status = TransactionStatus.VOIDED
                original.voided_at = voided_at
                original.voided_by_id = actor_id
                original.void_reason = reason
                original.updated_by_id = actor_id
                self._session.flush()
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                logger.error("void_failed", exc_info=True)
                raise

            logger.info(
                "void_completed",
                extra={
                    "original_number": record.transaction_number,
                    "reversal_id": str(result.transaction_id),
                    "reversal_number": result.transaction_number,
                    "reason": reason,
                },
            )

        return VoidResult(
            original_id=record.id,
            original_number=record.transaction_number,
            reversal_id=result.transaction_id,
            reversal_number=result.transaction_number,
            voided_at=voided_at,
        )

    def _load_and_validate(
        self, transaction_id: UUID, organization_id: UUID | None
    ) -> Transaction:
        """Load with a row lock so concurrent voids serialize."""
        original = self._session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if original is None or (
            organization_id is not None and original.organization_id != organization_id
        ):
            raise TransactionNotFoundError(str(transaction_id))

        if original.status != TransactionStatus.POSTED:
            raise InvalidStateError(
                str(transaction_id), TransactionStatus(original.status).value, "void"
            )
        return original
