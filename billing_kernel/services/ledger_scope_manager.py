"""
LedgerScopeManager -- maps (party, period) to the open ledger scope documents attach to.

Responsibility:
    Looks up or lazily creates the OPEN ledger scope for a school or
    company in an academic period, and applies the bulk status cascades
    that PeriodRegistry triggers on period transitions.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by DocumentFactory and PaymentService (attach) and by
    PeriodRegistry (cascades).

Invariants enforced:
    - A SETTLED scope is never handed out for a new document or payment.
      If the period is not OPEN the caller fails; the scope is not
      silently reopened.
    - At most one OPEN scope per (party, period).  The partial unique index
      backs this under concurrency; a lost creation race is resolved by
      rolling back a savepoint and reading the winner's row.
    - The period row is read with a shared lock while attaching, so a
      concurrent close cannot settle scopes between our check and insert.

Failure modes:
    - PeriodNotFoundError: unknown period id.
    - PeriodNotOpenError: period is CLOSED.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from billing_kernel.domain.dtos import LedgerScopeInfo, ScopeStatus
from billing_kernel.domain.party import PartyRef
from billing_kernel.exceptions import PeriodNotFoundError, PeriodNotOpenError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.ledger_scope import LedgerScope
from billing_kernel.models.period import AcademicPeriod
from billing_kernel.services.base import BaseService

logger = get_logger("services.ledger_scope")


class LedgerScopeManager(BaseService[LedgerScope]):
    """Service owning ledger scope lookup, creation and status cascades."""

    def get_or_create_open_scope(
        self,
        party: PartyRef,
        period_id: UUID,
        actor_id: UUID,
    ) -> LedgerScope:
        """
        Return the OPEN scope for (party, period), creating it if needed.

        Returns the ORM row because callers attach documents to it in the
        same transaction.

        Raises:
            PeriodNotFoundError, PeriodNotOpenError
        """
        period = self.session.execute(
            select(AcademicPeriod)
            .where(AcademicPeriod.id == period_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        if not period.is_open:
            raise PeriodNotOpenError(period.name, "attach to ledger")

        scope = self.find_open_scope(party, period_id)
        if scope is not None:
            return scope

        savepoint = self.session.begin_nested()
        try:
            scope = LedgerScope(
                party_kind=party.kind,
                party_id=party.id,
                period_id=period_id,
                status=ScopeStatus.OPEN,
                created_by_id=actor_id,
            )
            self.session.add(scope)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "ledger_scope_race_retry",
                extra={"party": str(party), "period_id": str(period_id)},
            )
            savepoint.rollback()
            scope = self.find_open_scope(party, period_id)
            if scope is None:
                raise
            return scope

        logger.info(
            "ledger_scope_created",
            extra={
                "scope_id": str(scope.id),
                "party": str(party),
                "period_id": str(period_id),
            },
        )
        return scope

    def find_open_scope(self, party: PartyRef, period_id: UUID) -> LedgerScope | None:
        return self.session.execute(
            select(LedgerScope).where(
                LedgerScope.party_kind == party.kind,
                LedgerScope.party_id == party.id,
                LedgerScope.period_id == period_id,
                LedgerScope.status == ScopeStatus.OPEN,
            )
        ).scalar_one_or_none()

    def scopes_for(self, party: PartyRef, period_id: UUID) -> list[LedgerScopeInfo]:
        """All scopes of a party in a period, whatever their status."""
        rows = self.session.execute(
            select(LedgerScope)
            .where(
                LedgerScope.party_kind == party.kind,
                LedgerScope.party_id == party.id,
                LedgerScope.period_id == period_id,
            )
            .order_by(LedgerScope.created_at, LedgerScope.id)
        ).scalars().all()
        return [LedgerScopeInfo.from_model(scope) for scope in rows]

    # Cascades.  Issued as single UPDATE statements so no scope is ever
    # observed half-way through a transition inside the transaction.

    def settle_period(self, period_id: UUID, actor_id: UUID | None = None) -> int:
        """Settle every OPEN scope of one period.  Returns the row count."""
        result = self.session.execute(
            update(LedgerScope)
            .where(
                LedgerScope.period_id == period_id,
                LedgerScope.status == ScopeStatus.OPEN,
            )
            .values(status=ScopeStatus.SETTLED, updated_by_id=actor_id)
        )
        logger.info(
            "ledger_scopes_settled",
            extra={"period_id": str(period_id), "count": result.rowcount},
        )
        return result.rowcount

    def settle_all(self, actor_id: UUID | None = None) -> int:
        """Settle every OPEN scope in every period."""
        result = self.session.execute(
            update(LedgerScope)
            .where(LedgerScope.status == ScopeStatus.OPEN)
            .values(status=ScopeStatus.SETTLED, updated_by_id=actor_id)
        )
        logger.info("ledger_scopes_settled", extra={"count": result.rowcount})
        return result.rowcount

    def reopen_period(self, period_id: UUID, actor_id: UUID | None = None) -> int:
        """
        Reopen the scopes of one period.

        When a party has several SETTLED scopes in the period only the most
        recently created one is reopened, keeping one OPEN scope per party.
        """
        scopes = self.session.execute(
            select(LedgerScope)
            .where(
                LedgerScope.period_id == period_id,
                LedgerScope.status == ScopeStatus.SETTLED,
            )
            .order_by(LedgerScope.created_at.desc(), LedgerScope.id.desc())
        ).scalars().all()

        latest: dict[tuple, UUID] = {}
        for scope in scopes:
            latest.setdefault((scope.party_kind, scope.party_id), scope.id)

        count = 0
        if latest:
            result = self.session.execute(
                update(LedgerScope)
                .where(LedgerScope.id.in_(list(latest.values())))
                .values(status=ScopeStatus.OPEN, updated_by_id=actor_id)
            )
            count = result.rowcount

        logger.info(
            "ledger_scopes_reopened",
            extra={"period_id": str(period_id), "count": count},
        )
        return count
