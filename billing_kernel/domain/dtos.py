"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the lifecycle enums shared by models, services and selectors,
    and the immutable snapshots every public service/selector method
    returns: PeriodInfo, LedgerScopeInfo, DocumentInfo (+ ItemInfo),
    PaymentInfo, and the Statement/StatementRow read model.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  from_model() class methods are the boundary
    converters; only services and selectors call them.

Invariants enforced:
    - All DTOs are frozen; callers cannot mutate ledger state through them.
    - Money fields are Decimal, already rounded to two places.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from billing_kernel.domain.party import PartyRef

if TYPE_CHECKING:
    from billing_kernel.models.document import Document as DocumentModel
    from billing_kernel.models.document import DocumentItem as DocumentItemModel
    from billing_kernel.models.ledger_scope import LedgerScope as LedgerScopeModel
    from billing_kernel.models.payment import Payment as PaymentModel
    from billing_kernel.models.period import AcademicPeriod as AcademicPeriodModel


class _InputEnum(str, Enum):
    """Enum also accepting the upper-case member names the API emits."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls._value2member_map_.get(value.strip().lower())
        return None


class PeriodStatus(str, Enum):
    """Lifecycle status of an academic period.  At most one is OPEN."""

    OPEN = "open"
    CLOSED = "closed"


class ScopeStatus(str, Enum):
    """Lifecycle status of a ledger scope."""

    OPEN = "open"
    SETTLED = "settled"


class DocumentKind(_InputEnum):
    """
    Kinds of billing document.

    PURCHASE_INVOICE is the payable-side invoice received from a company;
    it carries the supplier's number instead of one from the sequence.
    """

    ESTIMATION = "estimation"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    PURCHASE_INVOICE = "purchase_invoice"


class SequenceKind(_InputEnum):
    """Counters kept per academic period."""

    ESTIMATION = "estimation"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    PAYMENT = "payment"

    @classmethod
    def for_document(cls, kind: DocumentKind) -> SequenceKind:
        return cls(kind.value)


class DocumentStatus(str, Enum):
    """Estimations stay ISSUED; invoices and credit notes may become VOID."""

    ISSUED = "issued"
    VOID = "void"


class PaymentMode(_InputEnum):
    CASH = "cash"
    UPI = "upi"
    BANK = "bank"
    CHEQUE = "cheque"


class PaymentStatus(str, Enum):
    POSTED = "posted"
    VOID = "void"


@dataclass(frozen=True)
class PeriodInfo:
    """Immutable snapshot of an academic period."""

    id: UUID
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @classmethod
    def from_model(cls, model: AcademicPeriodModel) -> PeriodInfo:
        return cls(
            id=model.id,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=PeriodStatus(model.status),
            closed_at=model.closed_at,
        )


@dataclass(frozen=True)
class LedgerScopeInfo:
    """Immutable snapshot of a ledger scope."""

    id: UUID
    party: PartyRef
    period_id: UUID
    status: ScopeStatus

    @property
    def is_open(self) -> bool:
        return self.status == ScopeStatus.OPEN

    @classmethod
    def from_model(cls, model: LedgerScopeModel) -> LedgerScopeInfo:
        return cls(
            id=model.id,
            party=model.party,
            period_id=model.period_id,
            status=ScopeStatus(model.status),
        )


@dataclass(frozen=True)
class ItemInfo:
    line_no: int
    description: str
    class_name: str | None
    company_name: str | None
    textbook_id: str | None
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal

    @classmethod
    def from_model(cls, model: DocumentItemModel) -> ItemInfo:
        return cls(
            line_no=model.line_no,
            description=model.description,
            class_name=model.class_name,
            company_name=model.company_name,
            textbook_id=model.textbook_id,
            quantity=model.quantity,
            unit_price=model.unit_price,
            discount_percent=model.discount_percent,
            gross_amount=model.gross_amount,
            discount_amount=model.discount_amount,
            net_amount=model.net_amount,
        )


@dataclass(frozen=True)
class DocumentInfo:
    """
    Immutable snapshot of a persisted document and its items.

    Guarantees:
        - net_amount == round2(gross_amount - total_discount) and > 0.
        - items are ordered by line_no.
    """

    id: UUID
    kind: DocumentKind
    document_no: str
    document_date: datetime
    status: DocumentStatus
    party: PartyRef
    period_id: UUID
    scope_id: UUID
    total_quantity: int
    gross_amount: Decimal
    total_discount: Decimal
    net_amount: Decimal
    billed_by_id: UUID
    notes: str | None = None
    converted_to_id: UUID | None = None
    voided_at: datetime | None = None
    items: tuple[ItemInfo, ...] = ()

    @property
    def is_void(self) -> bool:
        return self.status == DocumentStatus.VOID

    @classmethod
    def from_model(cls, model: DocumentModel) -> DocumentInfo:
        """
        Create a DocumentInfo from a Document ORM model.

        Items are converted too, so the model's ``items`` relationship must
        be loadable (it is selectin-loaded by default).
        """
        return cls(
            id=model.id,
            kind=DocumentKind(model.kind),
            document_no=model.document_no,
            document_date=model.document_date,
            status=DocumentStatus(model.status),
            party=model.party,
            period_id=model.period_id,
            scope_id=model.scope_id,
            total_quantity=model.total_quantity,
            gross_amount=model.gross_amount,
            total_discount=model.total_discount,
            net_amount=model.net_amount,
            billed_by_id=model.billed_by_id,
            notes=model.notes,
            converted_to_id=model.converted_to_id,
            voided_at=model.voided_at,
            items=tuple(ItemInfo.from_model(item) for item in model.items),
        )


@dataclass(frozen=True)
class PaymentInfo:
    """Immutable snapshot of a payment posting."""

    id: UUID
    party: PartyRef
    period_id: UUID
    scope_id: UUID
    amount: Decimal
    mode: PaymentMode
    receipt_no: str
    status: PaymentStatus
    paid_at: datetime
    recorded_by_id: UUID
    reference: str | None = None
    note: str | None = None
    voided_at: datetime | None = None

    @classmethod
    def from_model(cls, model: PaymentModel) -> PaymentInfo:
        return cls(
            id=model.id,
            party=model.party,
            period_id=model.period_id,
            scope_id=model.scope_id,
            amount=model.amount,
            mode=PaymentMode(model.mode),
            receipt_no=model.receipt_no,
            status=PaymentStatus(model.status),
            paid_at=model.paid_at,
            recorded_by_id=model.recorded_by_id,
            reference=model.reference,
            note=model.note,
            voided_at=model.voided_at,
        )


@dataclass(frozen=True)
class StatementRow:
    """
    One line of a party statement.

    ``balance`` is the running balance after this row, rounded to two
    places.  Exactly one of ``debit`` / ``credit`` is non-zero.
    """

    date: datetime
    entry_type: str
    ref_no: str
    debit: Decimal
    credit: Decimal
    balance: Decimal
    source_id: UUID


@dataclass(frozen=True)
class Statement:
    party: PartyRef
    period_id: UUID
    rows: tuple[StatementRow, ...]
    closing_balance: Decimal
