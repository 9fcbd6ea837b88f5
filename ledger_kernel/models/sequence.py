"""
Module: ledger_kernel.models.sequence
Responsibility: Locked counter rows backing per-organization transaction
    numbering.
Architecture position: Kernel > Models.  Written only by SequenceService.

Invariants enforced:
    - One row per (organization_id, name).  Values only ever increase.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence within one organization.  Row-level
    locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_sequence_org_name"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Sequence name, e.g. "transaction_number"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
