"""Request and response models for the billing HTTP surface."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from billing_kernel.domain.dtos import (
    DocumentInfo,
    DocumentKind,
    ItemInfo,
    PaymentInfo,
    PaymentMode,
    PeriodInfo,
    Statement,
    StatementRow,
)
from billing_kernel.domain.line_items import LineItemInput


class ErrorOut(BaseModel):
    kind: str
    code: str
    message: str


# Periods


class PeriodRangeIn(BaseModel):
    start: date
    end: date


class PeriodOut(BaseModel):
    id: UUID
    name: str
    start_date: date
    end_date: date
    status: str
    closed_at: Optional[datetime] = None

    @classmethod
    def from_info(cls, info: PeriodInfo) -> "PeriodOut":
        return cls(
            id=info.id,
            name=info.name,
            start_date=info.start_date,
            end_date=info.end_date,
            status=info.status.value.upper(),
            closed_at=info.closed_at,
        )


class NextNumberOut(BaseModel):
    kind: str
    period_id: UUID
    next_number: int


# Documents


class ItemIn(BaseModel):
    description: str
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    class_name: Optional[str] = None
    company_name: Optional[str] = None
    textbook_id: Optional[str] = None

    def to_input(self) -> LineItemInput:
        return LineItemInput(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            discount_percent=self.discount_percent,
            class_name=self.class_name,
            company_name=self.company_name,
            textbook_id=self.textbook_id,
        )


class DocumentIn(BaseModel):
    kind: DocumentKind
    party: str = Field(description="'school:<uuid>' or 'company:<uuid>'")
    billed_by: UUID
    items: List[ItemIn]
    explicit_number: Optional[Union[int, str]] = None
    notes: Optional[str] = None


class PurchaseInvoiceIn(BaseModel):
    company_id: UUID
    supplier_invoice_no: str
    invoice_date: date
    billed_by: UUID
    items: List[ItemIn]
    notes: Optional[str] = None


class ConvertEstimationIn(BaseModel):
    billed_by: UUID
    explicit_number: Optional[Union[int, str]] = None


class ItemOut(BaseModel):
    line_no: int
    description: str
    class_name: Optional[str] = None
    company_name: Optional[str] = None
    textbook_id: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal

    @classmethod
    def from_info(cls, info: ItemInfo) -> "ItemOut":
        return cls(**info.__dict__)


class DocumentOut(BaseModel):
    id: UUID
    kind: str
    document_no: str
    document_date: datetime
    status: str
    party: str
    period_id: UUID
    total_quantity: int
    gross_amount: Decimal
    total_discount: Decimal
    net_amount: Decimal
    billed_by: UUID
    notes: Optional[str] = None
    converted_to_id: Optional[UUID] = None
    voided_at: Optional[datetime] = None
    items: List[ItemOut] = []

    @classmethod
    def from_info(cls, info: DocumentInfo) -> "DocumentOut":
        return cls(
            id=info.id,
            kind=info.kind.name,
            document_no=info.document_no,
            document_date=info.document_date,
            status=info.status.name,
            party=str(info.party),
            period_id=info.period_id,
            total_quantity=info.total_quantity,
            gross_amount=info.gross_amount,
            total_discount=info.total_discount,
            net_amount=info.net_amount,
            billed_by=info.billed_by_id,
            notes=info.notes,
            converted_to_id=info.converted_to_id,
            voided_at=info.voided_at,
            items=[ItemOut.from_info(item) for item in info.items],
        )


class DocumentCreatedOut(BaseModel):
    document_id: UUID
    document_no: str
    net_amount: Decimal


# Payments


class PaymentIn(BaseModel):
    party: str = Field(description="'school:<uuid>' or 'company:<uuid>'")
    amount: Decimal
    mode: PaymentMode
    recorded_by: UUID
    receipt_no: Optional[Union[int, str]] = None
    reference: Optional[str] = None
    note: Optional[str] = None
    paid_at: Optional[datetime] = None


class PaymentOut(BaseModel):
    id: UUID
    party: str
    period_id: UUID
    amount: Decimal
    mode: str
    receipt_no: str
    status: str
    paid_at: datetime
    reference: Optional[str] = None
    note: Optional[str] = None
    voided_at: Optional[datetime] = None

    @classmethod
    def from_info(cls, info: PaymentInfo) -> "PaymentOut":
        return cls(
            id=info.id,
            party=str(info.party),
            period_id=info.period_id,
            amount=info.amount,
            mode=info.mode.name,
            receipt_no=info.receipt_no,
            status=info.status.name,
            paid_at=info.paid_at,
            reference=info.reference,
            note=info.note,
            voided_at=info.voided_at,
        )


# Statement


class StatementRowOut(BaseModel):
    date: datetime
    type: str
    ref_no: str
    debit: Decimal
    credit: Decimal
    balance: Decimal

    @classmethod
    def from_row(cls, row: StatementRow) -> "StatementRowOut":
        return cls(
            date=row.date,
            type=row.entry_type,
            ref_no=row.ref_no,
            debit=row.debit,
            credit=row.credit,
            balance=row.balance,
        )


class StatementOut(BaseModel):
    party: str
    period_id: UUID
    rows: List[StatementRowOut]
    closing_balance: Decimal

    @classmethod
    def from_statement(cls, statement: Statement) -> "StatementOut":
        return cls(
            party=str(statement.party),
            period_id=statement.period_id,
            rows=[StatementRowOut.from_row(row) for row in statement.rows],
            closing_balance=statement.closing_balance,
        )
