from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from billing_api.deps import get_read_session, parse_party
from billing_api.schemas import StatementOut
from billing_kernel.selectors.statement_builder import StatementBuilder
from billing_kernel.services.period_registry import PeriodRegistry

router = APIRouter(prefix="/statement", tags=["statements"])


@router.get("", response_model=StatementOut)
def get_statement(
    party: str = Query(..., description="'school:<uuid>' or 'company:<uuid>'"),
    period: Optional[UUID] = Query(default=None, description="defaults to the active period"),
    session: Session = Depends(get_read_session),
) -> StatementOut:
    """Running-balance statement of one party in one period."""
    party_ref = parse_party(party)
    period_id = period or PeriodRegistry(session).get_active().id
    statement = StatementBuilder(session).build_statement(party_ref, period_id)
    return StatementOut.from_statement(statement)
