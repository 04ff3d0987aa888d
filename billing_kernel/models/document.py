"""
Module: billing_kernel.models.document
Responsibility: ORM persistence for billing documents (estimations,
    invoices, credit notes, purchase invoices) and their line items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Every document belongs to exactly one ledger scope and one period.
    - document_no is unique per (period_id, kind) for sequence-numbered
      kinds (uq_documents_period_kind_no).  Purchase invoices carry the
      supplier's number and are exempt.
    - net_amount > 0 (ck_documents_positive_net).
    - Items are created together with their header and deleted only with
      it (estimation delete).

Audit relevance:
    Issued invoices and credit notes are voided by status flip, never
    deleted.  voided_at / voided_by_id record who voided and when.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import Base, TrackedBase, UUIDString, enum_type
from billing_kernel.domain.dtos import DocumentKind, DocumentStatus
from billing_kernel.domain.party import PartyKind, PartyRef


class Document(TrackedBase):
    """
    Header row of a billing document.

    Guarantees:
        - net_amount == gross_amount - total_discount, two places.
        - status is ISSUED or VOID; estimations are never VOID.
    """

    __tablename__ = "documents"

    __table_args__ = (
        Index(
            "uq_documents_period_kind_no",
            "period_id",
            "kind",
            "document_no",
            unique=True,
            postgresql_where=text("kind <> 'purchase_invoice'"),
            sqlite_where=text("kind <> 'purchase_invoice'"),
        ),
        CheckConstraint("net_amount > 0", name="ck_documents_positive_net"),
        Index("idx_documents_scope", "scope_id"),
        Index("idx_documents_party_period", "party_kind", "party_id", "period_id"),
    )

    kind: Mapped[DocumentKind] = mapped_column(enum_type(DocumentKind), nullable=False)
    document_no: Mapped[str] = mapped_column(String(50), nullable=False)
    document_date: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        enum_type(DocumentStatus),
        default=DocumentStatus.ISSUED,
        nullable=False,
    )

    scope_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_scopes.id"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_periods.id"),
        nullable=False,
    )

    # Denormalized from the scope so statements filter without a join
    party_kind: Mapped[PartyKind] = mapped_column(enum_type(PartyKind), nullable=False)
    party_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_discount: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    billed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Supplier's own invoice number (purchase invoices only)
    supplier_ref: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Set on an estimation once it has been turned into an invoice
    converted_to_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    items: Mapped[list["DocumentItem"]] = relationship(
        "DocumentItem",
        back_populates="document",
        order_by="DocumentItem.line_no",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Document {self.kind.value} #{self.document_no}: {self.status.value}>"

    @property
    def party(self) -> PartyRef:
        return PartyRef(self.party_kind, self.party_id)

    @property
    def is_void(self) -> bool:
        return self.status == DocumentStatus.VOID


class DocumentItem(Base):
    """One line of a document, with server-computed amounts."""

    __tablename__ = "document_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_document_items_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_document_items_unit_price"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_document_items_discount_range",
        ),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    class_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Catalog reference; existence is not checked here
    textbook_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship("Document", back_populates="items")

    def __repr__(self) -> str:
        return f"<DocumentItem {self.line_no}: {self.description} x{self.quantity}>"
