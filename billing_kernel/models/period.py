"""
Module: billing_kernel.models.period
Responsibility: ORM persistence for academic periods -- the accounting year
    that gates every document and payment write.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ enums only.

Invariants enforced:
    - At most one row has status OPEN (partial unique index
      uq_academic_periods_single_open).  PeriodRegistry serializes the
      transitions; the index is the backstop under concurrency.
    - start_date < end_date (ck_academic_periods_range).
    - Date ranges never overlap.  Checked by PeriodRegistry, not the
      database.

Audit relevance:
    Periods are never deleted.  closed_at records the clock time of the
    most recent close.
"""

from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, enum_type
from billing_kernel.domain.dtos import PeriodStatus


class AcademicPeriod(TrackedBase):
    """
    One academic (fiscal) year.

    Guarantees:
        - name is derived from the date range, e.g. "2024-25".
        - Only the OPEN period accepts new documents and payments.
    """

    __tablename__ = "academic_periods"

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_academic_periods_range"),
        Index(
            "uq_academic_periods_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_academic_periods_dates", "start_date", "end_date"),
    )

    name: Mapped[str] = mapped_column(String(20), nullable=False)

    # Inclusive boundaries
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        enum_type(PeriodStatus),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AcademicPeriod {self.name}: {self.status.value}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @staticmethod
    def derive_name(start_date: date, end_date: date) -> str:
        """``2024-04-01..2025-03-31`` -> ``"2024-25"``."""
        return f"{start_date.year}-{end_date.year % 100:02d}"
