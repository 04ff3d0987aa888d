"""
Module: billing_kernel.selectors.document_selector
Responsibility: Read-only lookups of documents and payments by id and by
    party/period, returned as frozen DTOs.
Architecture position: Kernel > Selectors.  Read-only.
"""

from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.domain.dtos import DocumentInfo, DocumentKind, PaymentInfo
from billing_kernel.domain.party import PartyRef
from billing_kernel.exceptions import DocumentNotFoundError, PaymentNotFoundError
from billing_kernel.models.document import Document
from billing_kernel.models.payment import Payment
from billing_kernel.selectors.base import BaseSelector


class DocumentSelector(BaseSelector[Document]):
    """Selector for documents and payments."""

    def get_document(self, document_id: UUID) -> DocumentInfo:
        document = self.session.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return DocumentInfo.from_model(document)

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return PaymentInfo.from_model(payment)

    def documents_for(
        self,
        party: PartyRef,
        period_id: UUID,
        kind: DocumentKind | None = None,
    ) -> list[DocumentInfo]:
        """
        Documents of a party in a period, newest first, VOID included.

        Within one timestamp, higher numbers come first.  Numbers are stored
        as text, so they compare by length before value and "10" ranks above "9".
        """
        query = select(Document).where(
            Document.party_kind == party.kind,
            Document.party_id == party.id,
            Document.period_id == period_id,
        )
        if kind is not None:
            query = query.where(Document.kind == kind)
        rows = self.session.execute(
            query.order_by(
                Document.document_date.desc(),
                func.length(Document.document_no).desc(),
                Document.document_no.desc(),
                Document.id,
            )
        ).scalars().all()
        return [DocumentInfo.from_model(doc) for doc in rows]

    def payments_for(self, party: PartyRef, period_id: UUID) -> list[PaymentInfo]:
        rows = self.session.execute(
            select(Payment)
            .where(
                Payment.party_kind == party.kind,
                Payment.party_id == party.id,
                Payment.period_id == period_id,
            )
            .order_by(
                Payment.paid_at.desc(),
                func.length(Payment.receipt_no).desc(),
                Payment.receipt_no.desc(),
                Payment.id,
            )
        ).scalars().all()
        return [PaymentInfo.from_model(p) for p in rows]
