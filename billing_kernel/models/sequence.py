"""
Module: billing_kernel.models.sequence
Responsibility: Counter rows for per-period, per-kind document numbering.
Architecture position: Kernel > Models.  Written only by SequenceAllocator.

Invariants enforced:
    - One counter per (period_id, kind) (uq_document_sequences_period_kind).
    - last_number >= 0 and never decreases.
"""

from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, UUIDString, enum_type
from billing_kernel.domain.dtos import SequenceKind


class DocumentSequence(Base):
    """
    Counter table.

    Each row holds the last number issued for one (period, kind) pair.
    Row-level locking serializes concurrent allocators.
    """

    __tablename__ = "document_sequences"

    __table_args__ = (
        UniqueConstraint("period_id", "kind", name="uq_document_sequences_period_kind"),
        CheckConstraint("last_number >= 0", name="ck_document_sequences_non_negative"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_periods.id"),
        nullable=False,
    )

    kind: Mapped[SequenceKind] = mapped_column(
        enum_type(SequenceKind),
        nullable=False,
    )

    last_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.kind.value}@{self.period_id}: {self.last_number}>"
