"""
SequenceAllocator -- per-period, per-kind document numbering via locked counter rows.

Responsibility:
    Issues the numbers printed on estimations, invoices, credit notes and
    payment receipts.  One counter row per (period, kind) holds the last
    number issued; allocation locks that row (``SELECT ... FOR UPDATE``),
    advances it and flushes, inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by DocumentFactory and PaymentService in the same transaction
    as the write that consumes the number.

Numbering rules:
    - Auto:      next = last + 1
    - Explicit:  next = max(last, explicit)

    An explicit number lets operators re-enter historical paper documents
    without colliding with auto-increment; the price is that numbering may
    have gaps, and an explicit number below the counter resolves to the
    counter's current value.  Callers check the resolved number against
    existing documents.

Invariants enforced:
    - last_number never decreases for a given (period, kind).
    - Auto allocation always returns a number greater than any number
      returned before for that key.
    - peek() and current() never write.

Failure modes:
    - InvalidDocumentNumberError: explicit number is not a positive integer.
    - IntegrityError on concurrent counter creation, handled by rolling
      back a savepoint and re-reading the winner's row.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from billing_kernel.domain.dtos import SequenceKind
from billing_kernel.exceptions import InvalidDocumentNumberError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.sequence import DocumentSequence
from billing_kernel.services.base import BaseService

logger = get_logger("services.sequence")


def parse_explicit_number(value: int | str | None) -> int | None:
    """
    Normalize a caller-supplied document number.

    Accepts a positive int or a string of digits.  ``None`` and blank
    strings mean "allocate automatically".

    Raises:
        InvalidDocumentNumberError: anything else.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidDocumentNumberError(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if not stripped.isdigit():
            raise InvalidDocumentNumberError(value)
        number = int(stripped)
    elif isinstance(value, int):
        number = value
    else:
        raise InvalidDocumentNumberError(value)
    if number <= 0:
        raise InvalidDocumentNumberError(value)
    return number


class SequenceAllocator(BaseService[DocumentSequence]):
    """
    Service for per-period document numbers.

    Guarantees:
        - Concurrent allocations for the same key are serialized by the
          counter row lock; the second writer sees the first one's value.
        - A rolled-back transaction returns its number to the counter.

    Non-goals:
        - Does NOT check whether a resolved explicit number is already in
          use; DocumentFactory and PaymentService do that.
    """

    def allocate(
        self,
        period_id: UUID,
        kind: SequenceKind,
        explicit_number: int | str | None = None,
    ) -> int:
        """
        Advance the counter for (period_id, kind) and return the issued number.

        Preconditions:
            - The caller is within an active database transaction.

        Raises:
            InvalidDocumentNumberError: explicit number is not a positive int.
        """
        explicit = parse_explicit_number(explicit_number)

        counter = self._lock_counter(period_id, kind)
        previous = counter.last_number

        if explicit is None:
            issued = previous + 1
        else:
            issued = max(previous, explicit)

        counter.last_number = issued
        self.session.flush()

        logger.debug(
            "sequence_allocated",
            extra={
                "period_id": str(period_id),
                "kind": kind.value,
                "previous": previous,
                "value": issued,
                "explicit": explicit,
            },
        )
        return issued

    def peek(self, period_id: UUID, kind: SequenceKind) -> int:
        """Number the next auto allocation would return.  Read-only."""
        return self.current(period_id, kind) + 1

    def current(self, period_id: UUID, kind: SequenceKind) -> int:
        """Last number issued for the key, 0 when nothing was issued yet."""
        last = self.session.execute(
            select(DocumentSequence.last_number).where(
                DocumentSequence.period_id == period_id,
                DocumentSequence.kind == kind,
            )
        ).scalar_one_or_none()
        return last or 0

    def _select_for_update(self, period_id: UUID, kind: SequenceKind):
        return (
            select(DocumentSequence)
            .where(
                DocumentSequence.period_id == period_id,
                DocumentSequence.kind == kind,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _lock_counter(self, period_id: UUID, kind: SequenceKind) -> DocumentSequence:
        """Lock the counter row, creating it at zero on first use."""
        counter = self.session.execute(
            self._select_for_update(period_id, kind)
        ).scalar_one_or_none()
        if counter is not None:
            return counter

        # Another transaction may create the same row first; the savepoint
        # keeps the rest of the caller's work intact when that happens.
        savepoint = self.session.begin_nested()
        try:
            counter = DocumentSequence(period_id=period_id, kind=kind, last_number=0)
            self.session.add(counter)
            self.session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"period_id": str(period_id), "kind": kind.value},
            )
            savepoint.rollback()
            return self.session.execute(
                self._select_for_update(period_id, kind)
            ).scalar_one()
