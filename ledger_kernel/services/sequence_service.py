"""
SequenceService -- per-organization transaction numbering via locked counters.

Responsibility:
    Hands out strictly increasing numbers per (organization, prefix) and
    formats them as ``<PREFIX>-<zero-padded number>`` (JE-000001,
    EXP-000042, REV-000003).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called only by
    the posting engine when a transaction is posted.

Invariants enforced:
    - Numbers come from a locked counter row (``SELECT ... FOR UPDATE``).
      Aggregate-max-plus-one is never used.
    - Increments are transactional: a rolled-back post returns its number.

Failure modes:
    - IntegrityError on a concurrent first-use race (handled via savepoint
      rollback and re-read).
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.config import LedgerSettings
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Allocates transaction numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, settings: LedgerSettings | None = None):
        self._session = session
        self._settings = settings or LedgerSettings()

    @staticmethod
    def _sequence_name(prefix: str) -> str:
        return f"transaction_number:{prefix}"

    def _locked_counter(self, organization_id: UUID, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.organization_id == organization_id,
                SequenceCounter.name == name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, organization_id: UUID, name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, return.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for (organization_id, name).
        """
        counter = self._locked_counter(organization_id, name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    organization_id=organization_id, name=name, current_value=1
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(organization_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_number(self, organization_id: UUID, source_type: str) -> str:
        """Allocate and format the next transaction number for a source type."""
        prefix = self._settings.prefix_for(source_type)
        value = self.next_value(organization_id, self._sequence_name(prefix))
        return f"{prefix}-{value:0{self._settings.number_width}d}"

    def current_value(self, organization_id: UUID, source_type: str) -> int | None:
        """Current counter for a source type's prefix, without incrementing."""
        name = self._sequence_name(self._settings.prefix_for(source_type))
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.organization_id == organization_id,
                SequenceCounter.name == name,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
