"""
PeriodRegistry -- academic period lifecycle and the single active period.

Responsibility:
    Owns the one globally active academic period and every transition of
    the period table: create, close, open (administrative override) and
    update.  Each transition cascades to ledger scopes in the same
    transaction via LedgerScopeManager.

Architecture position:
    Kernel > Services -- imperative shell.
    Read by every write path (``get_active()``); mutated only through the
    operations below.  Holds no in-process state: the single source of
    truth for "active" is the OPEN row, backed by a partial unique index.

Invariants enforced:
    - At most one period is OPEN at any instant.  Bulk transitions are
      issued as ordered UPDATE statements (close the others first, then
      open the target), so the partial unique index is never transiently
      violated; a concurrent transition that slips past the row locks is
      rejected by that index and retried by run_in_transaction().
    - No two periods overlap: ``start1 <= end2 AND end1 >= start2`` is
      rejected for any pair of distinct periods.  create, open and update
      validate while holding the period transition lock (a PostgreSQL
      advisory lock), so concurrent transitions cannot both pass the check.
    - start_date < end_date.
    - Flush-only: never commits or rolls back the session.  A failure in
      any step leaves the caller's transaction to roll back the whole
      cascade.

Failure modes:
    - NoActivePeriodError: no period is OPEN.
    - PeriodNotFoundError: unknown period id.
    - InvalidPeriodRangeError: start_date >= end_date.
    - PeriodOverlapError: range intersects another period.
    - PeriodNotOpenError: close/update of a CLOSED period.

Audit relevance:
    Period creation, close, open and update are logged with period_id,
    name and actor_id.  Periods are never deleted.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select, update

from billing_kernel.domain.clock import Clock
from billing_kernel.domain.dtos import PeriodInfo, PeriodStatus
from billing_kernel.exceptions import (
    InvalidPeriodRangeError,
    NoActivePeriodError,
    PeriodNotFoundError,
    PeriodNotOpenError,
    PeriodOverlapError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.period import AcademicPeriod
from billing_kernel.services.base import BaseService
from billing_kernel.services.ledger_scope_manager import LedgerScopeManager

logger = get_logger("services.period")

# Advisory lock key shared by every period transition
PERIOD_TRANSITION_LOCK_KEY = 7_310_412_024


class PeriodRegistry(BaseService[AcademicPeriod]):
    """
    Service for the academic period lifecycle.

    Guarantees:
        - All public methods return frozen ``PeriodInfo`` DTOs.
        - close/update/open lock the target row (``SELECT ... FOR UPDATE``)
          before checking its status.

    Non-goals:
        - Does NOT constrain document dates to the active period's range.
          Reopening a historical period makes it the billing period as-is.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        scopes: LedgerScopeManager | None = None,
    ):
        super().__init__(session, clock)
        self._scopes = scopes or LedgerScopeManager(session, self.clock)

    # Queries

    def get_active(self) -> PeriodInfo:
        """
        The OPEN period.

        Raises:
            NoActivePeriodError: no period is OPEN.
        """
        period = self.session.execute(
            select(AcademicPeriod).where(AcademicPeriod.status == PeriodStatus.OPEN)
        ).scalar_one_or_none()
        if period is None:
            raise NoActivePeriodError()
        return PeriodInfo.from_model(period)

    def get(self, period_id: UUID) -> PeriodInfo:
        period = self.session.get(AcademicPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return PeriodInfo.from_model(period)

    def list_periods(self) -> list[PeriodInfo]:
        """All periods, newest first."""
        rows = self.session.execute(
            select(AcademicPeriod).order_by(AcademicPeriod.start_date.desc())
        ).scalars().all()
        return [PeriodInfo.from_model(p) for p in rows]

    # Transitions

    def create(self, start_date: date, end_date: date, actor_id: UUID) -> PeriodInfo:
        """
        Create a new OPEN period, closing the current one.

        Postconditions:
            - Every previously OPEN period is CLOSED with closed_at = now.
            - Every OPEN ledger scope is SETTLED.
            - The new period is the only OPEN period.

        Raises:
            InvalidPeriodRangeError, PeriodOverlapError
        """
        self._lock_period_transitions()
        self._validate_range(start_date, end_date)
        self._validate_no_overlap(start_date, end_date)

        closed = self._close_open_periods(actor_id)
        settled = self._scopes.settle_all(actor_id)

        period = AcademicPeriod(
            name=AcademicPeriod.derive_name(start_date, end_date),
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_id": str(period.id),
                "period_name": period.name,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "periods_closed": closed,
                "scopes_settled": settled,
                "actor_id": str(actor_id),
            },
        )
        return PeriodInfo.from_model(period)

    def close(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        Close an OPEN period and settle its ledger scopes.

        Scopes of other periods are left untouched.

        Raises:
            PeriodNotFoundError, PeriodNotOpenError
        """
        period = self._get_period_for_update(period_id)
        if not period.is_open:
            raise PeriodNotOpenError(period.name, "close period")

        period.status = PeriodStatus.CLOSED
        period.closed_at = self.clock.now()
        period.updated_by_id = actor_id
        self.session.flush()

        settled = self._scopes.settle_period(period_id, actor_id)

        logger.info(
            "period_closed",
            extra={
                "period_id": str(period_id),
                "period_name": period.name,
                "scopes_settled": settled,
                "actor_id": str(actor_id),
            },
        )
        return PeriodInfo.from_model(period)

    def open(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        Force a period back to OPEN (administrative override).

        Closes every other period and settles every ledger scope, then
        reopens the target and the scopes that belong to it.  This can make
        a historical period the active one.

        Raises:
            PeriodNotFoundError
        """
        self._lock_period_transitions()
        period = self._get_period_for_update(period_id)

        closed = self._close_open_periods(actor_id, exclude_id=period_id)
        self._scopes.settle_all(actor_id)

        # Explicit UPDATE after the others are closed, never before.
        self.session.execute(
            update(AcademicPeriod)
            .where(AcademicPeriod.id == period_id)
            .values(status=PeriodStatus.OPEN, closed_at=None, updated_by_id=actor_id)
        )
        reopened = self._scopes.reopen_period(period_id, actor_id)
        self.session.refresh(period)

        logger.info(
            "period_opened",
            extra={
                "period_id": str(period_id),
                "period_name": period.name,
                "periods_closed": closed,
                "scopes_reopened": reopened,
                "actor_id": str(actor_id),
            },
        )
        return PeriodInfo.from_model(period)

    def update(
        self,
        period_id: UUID,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> PeriodInfo:
        """
        Rewrite the date range (and derived name) of the OPEN period.

        Raises:
            PeriodNotFoundError, PeriodNotOpenError,
            InvalidPeriodRangeError, PeriodOverlapError
        """
        self._lock_period_transitions()
        period = self._get_period_for_update(period_id)
        if not period.is_open:
            raise PeriodNotOpenError(period.name, "update period")

        self._validate_range(start_date, end_date)
        self._validate_no_overlap(start_date, end_date, exclude_id=period_id)

        period.start_date = start_date
        period.end_date = end_date
        period.name = AcademicPeriod.derive_name(start_date, end_date)
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_updated",
            extra={
                "period_id": str(period_id),
                "period_name": period.name,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "actor_id": str(actor_id),
            },
        )
        return PeriodInfo.from_model(period)

    # Internals

    def _lock_period_transitions(self) -> None:
        """
        Serialize create/open/update for the rest of the transaction.

        Row locks only cover periods that already exist, so two concurrent
        creates could each pass the overlap check.  On PostgreSQL a
        transaction-scoped advisory lock is taken before validating; the
        next statement then sees whatever the previous holder committed.
        SQLite admits one writer at a time and needs nothing here.
        """
        if self.session.get_bind().dialect.name != "postgresql":
            return
        self.session.execute(select(func.pg_advisory_xact_lock(PERIOD_TRANSITION_LOCK_KEY)))

    def _validate_range(self, start_date: date, end_date: date) -> None:
        if start_date >= end_date:
            raise InvalidPeriodRangeError(str(start_date), str(end_date))

    def _validate_no_overlap(
        self,
        start_date: date,
        end_date: date,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Two ranges overlap if: start1 <= end2 AND end1 >= start2

        Raises:
            PeriodOverlapError: If overlap is detected.
        """
        query = select(AcademicPeriod).where(
            AcademicPeriod.start_date <= end_date,
            AcademicPeriod.end_date >= start_date,
        )
        if exclude_id is not None:
            query = query.where(AcademicPeriod.id != exclude_id)

        overlapping = self.session.execute(
            query.order_by(AcademicPeriod.start_date)
        ).scalars().first()

        if overlapping is not None:
            raise PeriodOverlapError(
                new_range=f"{start_date}..{end_date}",
                existing_period=overlapping.name,
                overlap_start=str(max(start_date, overlapping.start_date)),
                overlap_end=str(min(end_date, overlapping.end_date)),
            )

    def _close_open_periods(self, actor_id: UUID, exclude_id: UUID | None = None) -> int:
        """Lock and close every OPEN period (except ``exclude_id``)."""
        lock_query = (
            select(AcademicPeriod.id)
            .where(AcademicPeriod.status == PeriodStatus.OPEN)
            .with_for_update()
        )
        stmt = (
            update(AcademicPeriod)
            .where(AcademicPeriod.status == PeriodStatus.OPEN)
            .values(
                status=PeriodStatus.CLOSED,
                closed_at=self.clock.now(),
                updated_by_id=actor_id,
            )
        )
        if exclude_id is not None:
            lock_query = lock_query.where(AcademicPeriod.id != exclude_id)
            stmt = stmt.where(AcademicPeriod.id != exclude_id)

        self.session.execute(lock_query).all()
        return self.session.execute(stmt).rowcount

    def _get_period_for_update(self, period_id: UUID) -> AcademicPeriod:
        """Get the period row with a row lock for modification."""
        period = self.session.execute(
            select(AcademicPeriod)
            .where(AcademicPeriod.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period
