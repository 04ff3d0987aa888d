from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from billing_api.deps import get_read_session
from billing_api.schemas import NextNumberOut
from billing_kernel.domain.dtos import SequenceKind
from billing_kernel.services.period_registry import PeriodRegistry
from billing_kernel.services.sequence_allocator import SequenceAllocator

router = APIRouter(prefix="/sequence", tags=["sequences"])


@router.get("/{kind}/peek", response_model=NextNumberOut)
def peek_next_number(
    kind: SequenceKind,
    session: Session = Depends(get_read_session),
) -> NextNumberOut:
    """
    Number the next allocation would take in the active period.

    Advisory only: nothing is reserved, a concurrent issue may take it first.
    """
    period = PeriodRegistry(session).get_active()
    next_number = SequenceAllocator(session).peek(period.id, kind)
    return NextNumberOut(kind=kind.name, period_id=period.id, next_number=next_number)
