"""
DocumentFactory -- validates, prices, numbers and persists billing documents.

Responsibility:
    Creates estimations, invoices, credit notes and purchase invoices
    inside a ledger scope of the active period, and drives the document
    status transitions: void, estimation delete and estimation convert.

Architecture position:
    Kernel > Services -- imperative shell.
    Orchestrates PeriodRegistry (active period), LedgerScopeManager (open
    scope) and SequenceAllocator (number) inside the caller's single
    transaction.  Pricing is delegated to the pure
    ``domain.line_items.compute_totals``.

Control flow (create_document):
    1. Validate and price every line (no writes yet).
    2. Resolve the active period          -> NoActivePeriodError (404)
    3. Get or create the open scope       -> PeriodNotOpenError (409)
    4. Allocate the document number
    5. Persist header + items in one flush

Invariants enforced:
    - net_amount == round2(gross_amount - total_discount) and net_amount > 0.
    - Stored items sum exactly to the stored header totals.
    - Voiding flips status only; numbers are never reissued.
    - Estimations are never voided; converted estimations are never
      deleted or converted again.
    - Documents in a SETTLED scope cannot be voided.

Failure modes:
    - EmptyDocumentError / InvalidLineItemError (400), NonPositiveTotalError (409)
    - UnsupportedDocumentKindError (400): kind not issuable for the party.
    - DuplicateDocumentNumberError (409): explicit number already used.
    - DocumentNotFoundError (404), DocumentAlreadyVoidError (409),
      InvalidDocumentStateError (409), EstimationAlreadyConvertedError (409),
      LedgerScopeSettledError (409).
"""

from collections.abc import Sequence
from datetime import UTC, date, datetime, time
from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.clock import Clock
from billing_kernel.domain.dtos import (
    DocumentInfo,
    DocumentKind,
    DocumentStatus,
    SequenceKind,
)
from billing_kernel.domain.line_items import (
    DocumentTotals,
    LineItemInput,
    compute_totals,
)
from billing_kernel.domain.party import PartyKind, PartyRef
from billing_kernel.exceptions import (
    DocumentAlreadyVoidError,
    DocumentNotFoundError,
    DuplicateDocumentNumberError,
    EstimationAlreadyConvertedError,
    InvalidDocumentNumberError,
    InvalidDocumentStateError,
    LedgerScopeSettledError,
    UnsupportedDocumentKindError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import Document, DocumentItem
from billing_kernel.models.ledger_scope import LedgerScope
from billing_kernel.services.base import BaseService
from billing_kernel.services.ledger_scope_manager import LedgerScopeManager
from billing_kernel.services.period_registry import PeriodRegistry
from billing_kernel.services.sequence_allocator import (
    SequenceAllocator,
    parse_explicit_number,
)

logger = get_logger("services.document")

# Kinds create_document() may issue, per party kind
_ISSUABLE = {
    PartyKind.SCHOOL: frozenset(
        {DocumentKind.ESTIMATION, DocumentKind.INVOICE, DocumentKind.CREDIT_NOTE}
    ),
    PartyKind.COMPANY: frozenset({DocumentKind.CREDIT_NOTE}),
}


class DocumentFactory(BaseService[Document]):
    """
    Service for document creation and document status transitions.

    Guarantees:
        - Validation happens before the first write, so a rejected
          document never consumes a number or creates a scope.
        - All public methods return frozen ``DocumentInfo`` DTOs.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        periods: PeriodRegistry | None = None,
        scopes: LedgerScopeManager | None = None,
        sequences: SequenceAllocator | None = None,
    ):
        super().__init__(session, clock)
        self._scopes = scopes or LedgerScopeManager(session, self.clock)
        self._periods = periods or PeriodRegistry(session, self.clock, self._scopes)
        self._sequences = sequences or SequenceAllocator(session, self.clock)

    def create_document(
        self,
        kind: DocumentKind,
        party: PartyRef,
        billed_by_id: UUID,
        items: Sequence[LineItemInput],
        actor_id: UUID,
        explicit_number: int | str | None = None,
        notes: str | None = None,
    ) -> DocumentInfo:
        """
        Create a sequence-numbered document in the active period.

        Raises:
            UnsupportedDocumentKindError, InvalidDocumentNumberError,
            EmptyDocumentError, InvalidLineItemError, NonPositiveTotalError,
            NoActivePeriodError, PeriodNotOpenError,
            DuplicateDocumentNumberError
        """
        kind = DocumentKind(kind)
        if kind not in _ISSUABLE[party.kind]:
            raise UnsupportedDocumentKindError(kind.value, party.kind.value)

        totals = compute_totals(items)
        explicit = parse_explicit_number(explicit_number)

        period = self._periods.get_active()
        scope = self._scopes.get_or_create_open_scope(party, period.id, actor_id)

        number = self._sequences.allocate(
            period.id, SequenceKind.for_document(kind), explicit
        )
        document_no = str(number)
        if explicit is not None:
            self._ensure_number_free(period.id, kind, document_no)

        document = self._persist(
            kind=kind,
            document_no=document_no,
            document_date=self.clock.now(),
            scope=scope,
            totals=totals,
            billed_by_id=billed_by_id,
            notes=notes,
            actor_id=actor_id,
        )

        logger.info(
            "document_created",
            extra={
                "document_id": str(document.id),
                "kind": kind.value,
                "document_no": document_no,
                "party": str(party),
                "period_id": str(period.id),
                "net_amount": str(totals.net_amount),
                "explicit_number": explicit,
            },
        )
        return DocumentInfo.from_model(document)

    def record_purchase_invoice(
        self,
        company: PartyRef,
        supplier_document_no: str,
        document_date: date | datetime,
        items: Sequence[LineItemInput],
        billed_by_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> DocumentInfo:
        """
        Record an invoice received from a company.

        The supplier's number and date are stored as given; the sequence is
        not consumed.  The same supplier number may not be recorded twice
        for one company in one period.

        Raises:
            UnsupportedDocumentKindError, InvalidDocumentNumberError,
            EmptyDocumentError, InvalidLineItemError, NonPositiveTotalError,
            NoActivePeriodError, DuplicateDocumentNumberError
        """
        if company.kind != PartyKind.COMPANY:
            raise UnsupportedDocumentKindError(
                DocumentKind.PURCHASE_INVOICE.value, company.kind.value
            )
        supplier_no = (supplier_document_no or "").strip()
        if not supplier_no:
            raise InvalidDocumentNumberError(supplier_document_no)

        totals = compute_totals(items)

        period = self._periods.get_active()
        scope = self._scopes.get_or_create_open_scope(company, period.id, actor_id)

        duplicate = self.session.execute(
            select(Document.id).where(
                Document.period_id == period.id,
                Document.kind == DocumentKind.PURCHASE_INVOICE,
                Document.party_kind == company.kind,
                Document.party_id == company.id,
                Document.supplier_ref == supplier_no,
            )
        ).first()
        if duplicate is not None:
            raise DuplicateDocumentNumberError(
                DocumentKind.PURCHASE_INVOICE.value, supplier_no
            )

        document = self._persist(
            kind=DocumentKind.PURCHASE_INVOICE,
            document_no=supplier_no,
            document_date=_as_datetime(document_date),
            scope=scope,
            totals=totals,
            billed_by_id=billed_by_id,
            notes=notes,
            actor_id=actor_id,
            supplier_ref=supplier_no,
        )

        logger.info(
            "purchase_invoice_recorded",
            extra={
                "document_id": str(document.id),
                "supplier_document_no": supplier_no,
                "party": str(company),
                "period_id": str(period.id),
                "net_amount": str(totals.net_amount),
            },
        )
        return DocumentInfo.from_model(document)

    def void(self, document_id: UUID, actor_id: UUID) -> DocumentInfo:
        """
        Flip an ISSUED invoice, credit note or purchase invoice to VOID.

        Raises:
            DocumentNotFoundError, InvalidDocumentStateError,
            DocumentAlreadyVoidError, LedgerScopeSettledError
        """
        document = self._get_document_for_update(document_id)

        if document.kind == DocumentKind.ESTIMATION:
            raise InvalidDocumentStateError(
                str(document_id), "estimations cannot be voided"
            )
        if document.is_void:
            raise DocumentAlreadyVoidError(str(document_id))

        scope = self.session.get(LedgerScope, document.scope_id)
        if not scope.is_open:
            raise LedgerScopeSettledError(str(scope.id), "void document")

        document.status = DocumentStatus.VOID
        document.voided_at = self.clock.now()
        document.voided_by_id = actor_id
        document.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "document_voided",
            extra={
                "document_id": str(document_id),
                "kind": document.kind.value,
                "document_no": document.document_no,
                "actor_id": str(actor_id),
            },
        )
        return DocumentInfo.from_model(document)

    def delete_estimation(self, document_id: UUID, actor_id: UUID) -> None:
        """
        Physically delete an estimation that was never converted.

        Raises:
            DocumentNotFoundError, InvalidDocumentStateError,
            EstimationAlreadyConvertedError
        """
        document = self._get_document_for_update(document_id)

        if document.kind != DocumentKind.ESTIMATION:
            raise InvalidDocumentStateError(
                str(document_id), "only estimations can be deleted"
            )
        if document.converted_to_id is not None:
            raise EstimationAlreadyConvertedError(
                str(document_id), str(document.converted_to_id)
            )

        document_no = document.document_no
        self.session.delete(document)
        self.session.flush()

        logger.info(
            "estimation_deleted",
            extra={
                "document_id": str(document_id),
                "document_no": document_no,
                "actor_id": str(actor_id),
            },
        )

    def convert_estimation(
        self,
        document_id: UUID,
        billed_by_id: UUID,
        actor_id: UUID,
        explicit_number: int | str | None = None,
    ) -> DocumentInfo:
        """
        Issue an invoice carrying the estimation's items.

        The invoice is created in the active period, whichever period the
        estimation belongs to.  The estimation is kept and linked to it.

        Raises:
            DocumentNotFoundError, InvalidDocumentStateError,
            EstimationAlreadyConvertedError, plus everything
            create_document() raises.
        """
        estimation = self._get_document_for_update(document_id)

        if estimation.kind != DocumentKind.ESTIMATION:
            raise InvalidDocumentStateError(
                str(document_id), "only estimations can be converted"
            )
        if estimation.converted_to_id is not None:
            raise EstimationAlreadyConvertedError(
                str(document_id), str(estimation.converted_to_id)
            )

        items = [
            LineItemInput(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount_percent=item.discount_percent,
                class_name=item.class_name,
                company_name=item.company_name,
                textbook_id=item.textbook_id,
            )
            for item in estimation.items
        ]

        invoice = self.create_document(
            kind=DocumentKind.INVOICE,
            party=estimation.party,
            billed_by_id=billed_by_id,
            items=items,
            actor_id=actor_id,
            explicit_number=explicit_number,
            notes=estimation.notes,
        )

        estimation.converted_to_id = invoice.id
        estimation.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "estimation_converted",
            extra={
                "document_id": str(document_id),
                "invoice_id": str(invoice.id),
                "invoice_no": invoice.document_no,
            },
        )
        return invoice

    # Internals

    def _persist(
        self,
        kind: DocumentKind,
        document_no: str,
        document_date: datetime,
        scope: LedgerScope,
        totals: DocumentTotals,
        billed_by_id: UUID,
        notes: str | None,
        actor_id: UUID,
        supplier_ref: str | None = None,
    ) -> Document:
        document = Document(
            kind=kind,
            document_no=document_no,
            document_date=document_date,
            status=DocumentStatus.ISSUED,
            scope_id=scope.id,
            period_id=scope.period_id,
            party_kind=scope.party_kind,
            party_id=scope.party_id,
            total_quantity=totals.total_quantity,
            gross_amount=totals.gross_amount,
            total_discount=totals.total_discount,
            net_amount=totals.net_amount,
            notes=(notes or "").strip() or None,
            billed_by_id=billed_by_id,
            supplier_ref=supplier_ref,
            created_by_id=actor_id,
        )
        document.items = [
            DocumentItem(
                line_no=line_no,
                description=line.description,
                class_name=line.class_name,
                company_name=line.company_name,
                textbook_id=line.textbook_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_percent=line.discount_percent,
                gross_amount=line.gross_amount,
                discount_amount=line.discount_amount,
                net_amount=line.net_amount,
            )
            for line_no, line in enumerate(totals.lines, start=1)
        ]
        self.session.add(document)
        self.session.flush()
        return document

    def _ensure_number_free(
        self, period_id: UUID, kind: DocumentKind, document_no: str
    ) -> None:
        taken = self.session.execute(
            select(Document.id).where(
                Document.period_id == period_id,
                Document.kind == kind,
                Document.document_no == document_no,
            )
        ).first()
        if taken is not None:
            raise DuplicateDocumentNumberError(kind.value, document_no)

    def _get_document_for_update(self, document_id: UUID) -> Document:
        document = self.session.execute(
            select(Document)
            .where(Document.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document


def _as_datetime(value: date | datetime) -> datetime:
    """Supplier dates are calendar days; store them at midnight UTC."""
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.combine(value, time.min, tzinfo=UTC)
