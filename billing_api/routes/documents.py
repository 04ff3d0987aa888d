from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from billing_api.deps import get_actor_id, get_clock, get_read_session, parse_party
from billing_api.schemas import (
    ConvertEstimationIn,
    DocumentCreatedOut,
    DocumentIn,
    DocumentOut,
    PurchaseInvoiceIn,
)
from billing_kernel.db.engine import run_in_transaction
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.dtos import DocumentInfo, DocumentKind
from billing_kernel.domain.party import PartyRef
from billing_kernel.selectors.document_selector import DocumentSelector
from billing_kernel.services.document_factory import DocumentFactory
from billing_kernel.services.period_registry import PeriodRegistry

router = APIRouter(prefix="/documents", tags=["documents"])


def _created(info: DocumentInfo) -> DocumentCreatedOut:
    return DocumentCreatedOut(
        document_id=info.id,
        document_no=info.document_no,
        net_amount=info.net_amount,
    )


@router.post("", response_model=DocumentCreatedOut, status_code=status.HTTP_201_CREATED)
def create_document(
    body: DocumentIn,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> DocumentCreatedOut:
    party = parse_party(body.party)
    items = [item.to_input() for item in body.items]
    info = run_in_transaction(
        lambda s: DocumentFactory(s, clock).create_document(
            body.kind,
            party,
            body.billed_by,
            items,
            actor_id,
            explicit_number=body.explicit_number,
            notes=body.notes,
        ),
        operation="create_document",
    )
    return _created(info)


@router.post(
    "/purchase-invoices",
    response_model=DocumentCreatedOut,
    status_code=status.HTTP_201_CREATED,
)
def record_purchase_invoice(
    body: PurchaseInvoiceIn,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> DocumentCreatedOut:
    """Record a supplier invoice under the supplier's own number."""
    items = [item.to_input() for item in body.items]
    info = run_in_transaction(
        lambda s: DocumentFactory(s, clock).record_purchase_invoice(
            PartyRef.company(body.company_id),
            body.supplier_invoice_no,
            body.invoice_date,
            items,
            body.billed_by,
            actor_id,
            notes=body.notes,
        ),
        operation="record_purchase_invoice",
    )
    return _created(info)


@router.get("", response_model=List[DocumentOut])
def list_documents(
    party: str = Query(..., description="'school:<uuid>' or 'company:<uuid>'"),
    period: Optional[UUID] = Query(default=None, description="defaults to the active period"),
    kind: Optional[DocumentKind] = Query(default=None),
    session: Session = Depends(get_read_session),
) -> List[DocumentOut]:
    party_ref = parse_party(party)
    period_id = period or PeriodRegistry(session).get_active().id
    documents = DocumentSelector(session).documents_for(party_ref, period_id, kind)
    return [DocumentOut.from_info(doc) for doc in documents]


@router.get("/{document_id}", response_model=DocumentOut)
def get_document(document_id: UUID, session: Session = Depends(get_read_session)) -> DocumentOut:
    return DocumentOut.from_info(DocumentSelector(session).get_document(document_id))


@router.post("/{document_id}/void", response_model=DocumentOut)
def void_document(
    document_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> DocumentOut:
    info = run_in_transaction(
        lambda s: DocumentFactory(s, clock).void(document_id, actor_id),
        operation="void_document",
    )
    return DocumentOut.from_info(info)


@router.post(
    "/{document_id}/convert",
    response_model=DocumentCreatedOut,
    status_code=status.HTTP_201_CREATED,
)
def convert_estimation(
    document_id: UUID,
    body: ConvertEstimationIn,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> DocumentCreatedOut:
    info = run_in_transaction(
        lambda s: DocumentFactory(s, clock).convert_estimation(
            document_id,
            body.billed_by,
            actor_id,
            explicit_number=body.explicit_number,
        ),
        operation="convert_estimation",
    )
    return _created(info)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_estimation(
    document_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    clock: Clock = Depends(get_clock),
) -> Response:
    run_in_transaction(
        lambda s: DocumentFactory(s, clock).delete_estimation(document_id, actor_id),
        operation="delete_estimation",
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
