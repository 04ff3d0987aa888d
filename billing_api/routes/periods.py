from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from billing_api.deps import get_actor_id, get_clock, get_read_session
from billing_api.schemas import PeriodOut, PeriodRangeIn
from billing_kernel.db.engine import run_in_transaction
from billing_kernel.domain.clock import Clock
from billing_kernel.services.period_registry import PeriodRegistry

router = APIRouter(prefix="/periods", tags=["periods"])


@router.get("", response_model=List[PeriodOut])
def list_periods(session: Session = Depends(get_read_session)) -> List[PeriodOut]:
    return [PeriodOut.from_info(p) for p in PeriodRegistry(session).list_periods()]


@router.get("/active", response_model=PeriodOut)
def get_active_period(session: Session = Depends(get_read_session)) -> PeriodOut:
    return PeriodOut.from_info(PeriodRegistry(session).get_active())


@router.get("/{period_id}", response_model=PeriodOut)
def get_period(period_id: UUID, session: Session = Depends(get_read_session)) -> PeriodOut:
    return PeriodOut.from_info(PeriodRegistry(session).get(period_id))


@router.post("", response_model=PeriodOut, status_code=status.HTTP_201_CREATED)
def create_period(
    body: PeriodRangeIn,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> PeriodOut:
    """Create a period; every other OPEN period is closed and its scopes settled."""
    info = run_in_transaction(
        lambda s: PeriodRegistry(s, clock).create(body.start, body.end, actor_id),
        operation="create_period",
    )
    return PeriodOut.from_info(info)


@router.patch("/{period_id}", response_model=PeriodOut)
def update_period(
    period_id: UUID,
    body: PeriodRangeIn,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> PeriodOut:
    info = run_in_transaction(
        lambda s: PeriodRegistry(s, clock).update(period_id, body.start, body.end, actor_id),
        operation="update_period",
    )
    return PeriodOut.from_info(info)


@router.post("/{period_id}/close", response_model=PeriodOut)
def close_period(
    period_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> PeriodOut:
    info = run_in_transaction(
        lambda s: PeriodRegistry(s, clock).close(period_id, actor_id),
        operation="close_period",
    )
    return PeriodOut.from_info(info)


@router.post("/{period_id}/open", response_model=PeriodOut)
def open_period(
    period_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> PeriodOut:
    info = run_in_transaction(
        lambda s: PeriodRegistry(s, clock).open(period_id, actor_id),
        operation="open_period",
    )
    return PeriodOut.from_info(info)
