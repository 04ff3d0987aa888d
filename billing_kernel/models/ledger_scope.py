"""
Module: billing_kernel.models.ledger_scope
Responsibility: ORM persistence for ledger scopes (one party's ledger within
    one academic period).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - At most one OPEN scope per (party_kind, party_id, period_id)
      (partial unique index uq_ledger_scopes_open_party_period).
    - Scopes are never deleted; SETTLED scopes stay for statements.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString, enum_type
from billing_kernel.domain.dtos import ScopeStatus
from billing_kernel.domain.party import PartyKind, PartyRef


class LedgerScope(TrackedBase):
    """Ledger grouping for one school or company in one period."""

    __tablename__ = "ledger_scopes"

    __table_args__ = (
        Index(
            "uq_ledger_scopes_open_party_period",
            "party_kind",
            "party_id",
            "period_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_ledger_scopes_period_status", "period_id", "status"),
    )

    party_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind),
        nullable=False,
    )
    party_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_periods.id"),
        nullable=False,
    )

    status: Mapped[ScopeStatus] = mapped_column(
        enum_type(ScopeStatus),
        default=ScopeStatus.OPEN,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<LedgerScope {self.party_kind.value}:{self.party_id} {self.status.value}>"

    @property
    def party(self) -> PartyRef:
        return PartyRef(self.party_kind, self.party_id)

    @property
    def is_open(self) -> bool:
        return self.status == ScopeStatus.OPEN
