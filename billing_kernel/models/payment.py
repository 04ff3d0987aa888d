"""
Module: billing_kernel.models.payment
Responsibility: ORM persistence for payments posted against a ledger scope.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - amount > 0 (ck_payments_positive_amount).
    - Receivable-side receipt numbers come from the PAYMENT sequence and
      are unique per period (uq_payments_period_receipt); payable-side
      payments record the supplier's number and are exempt.
    - Payments are voided by status flip, never deleted.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString, enum_type
from billing_kernel.domain.dtos import PaymentMode, PaymentStatus
from billing_kernel.domain.party import PartyKind, PartyRef


class Payment(TrackedBase):
    """A posting against a ledger scope.  Not a document."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_positive_amount"),
        Index(
            "uq_payments_period_receipt",
            "period_id",
            "receipt_no",
            unique=True,
            postgresql_where=text("party_kind = 'school'"),
            sqlite_where=text("party_kind = 'school'"),
        ),
        Index("idx_payments_scope", "scope_id"),
        Index("idx_payments_party_period", "party_kind", "party_id", "period_id"),
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

    party_kind: Mapped[PartyKind] = mapped_column(enum_type(PartyKind), nullable=False)
    party_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(enum_type(PaymentMode), nullable=False)
    receipt_no: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus),
        default=PaymentStatus.POSTED,
        nullable=False,
    )

    paid_at: Mapped[datetime] = mapped_column(nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment #{self.receipt_no} {self.amount}: {self.status.value}>"

    @property
    def party(self) -> PartyRef:
        return PartyRef(self.party_kind, self.party_id)

    @property
    def is_void(self) -> bool:
        return self.status == PaymentStatus.VOID
