from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from billing_api.deps import get_actor_id, get_clock, get_read_session, parse_party
from billing_api.schemas import PaymentIn, PaymentOut
from billing_kernel.db.engine import run_in_transaction
from billing_kernel.domain.clock import Clock
from billing_kernel.selectors.document_selector import DocumentSelector
from billing_kernel.services.payment_service import PaymentService
from billing_kernel.services.period_registry import PeriodRegistry

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def post_payment(
    body: PaymentIn,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> PaymentOut:
    party = parse_party(body.party)
    info = run_in_transaction(
        lambda s: PaymentService(s, clock).post_payment(
            party,
            body.amount,
            body.mode,
            body.recorded_by,
            actor_id,
            receipt_no=body.receipt_no,
            reference=body.reference,
            note=body.note,
            paid_at=body.paid_at,
        ),
        operation="post_payment",
    )
    return PaymentOut.from_info(info)


@router.get("", response_model=List[PaymentOut])
def list_payments(
    party: str = Query(..., description="'school:<uuid>' or 'company:<uuid>'"),
    period: Optional[UUID] = Query(default=None, description="defaults to the active period"),
    session: Session = Depends(get_read_session),
) -> List[PaymentOut]:
    party_ref = parse_party(party)
    period_id = period or PeriodRegistry(session).get_active().id
    return [PaymentOut.from_info(p) for p in DocumentSelector(session).payments_for(party_ref, period_id)]


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: UUID, session: Session = Depends(get_read_session)) -> PaymentOut:
    return PaymentOut.from_info(DocumentSelector(session).get_payment(payment_id))


@router.post("/{payment_id}/void", response_model=PaymentOut)
def void_payment(
    payment_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> PaymentOut:
    info = run_in_transaction(
        lambda s: PaymentService(s, clock).void_payment(payment_id, actor_id),
        operation="void_payment",
    )
    return PaymentOut.from_info(info)
