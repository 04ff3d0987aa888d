"""
Module: billing_kernel.selectors.statement_builder
Responsibility: Chronological running-balance statement for one party in one
    academic period, across invoices, credit notes, purchase invoices and
    payments.  The balance is derived at query time; nothing is stored.
Architecture position: Kernel > Selectors.  Read-only.

Direction of each row:

    Receivable (school)              Payable (company)
    -------------------------------  -------------------------------
    INVOICE            debit         PURCHASE_INVOICE   credit
    CREDIT_NOTE        credit        CREDIT_NOTE        debit
    PAYMENT            credit        PAYMENT            debit

    balance += debit - credit, rounded to two places per row.

Ordering:
    Rows sort by timestamp ascending.  At equal timestamps documents come
    before payments, then ascending reference number (numeric when the
    reference is all digits), then id.  The order is total, so the same
    ledger always yields the same statement.

Invariants enforced:
    - Only ISSUED documents and POSTED payments appear; VOID rows and
      estimations never affect a balance.
    - No scopes for (party, period) -> empty rows, closing balance 0.00.

Failure modes:
    - PeriodNotFoundError for an unknown period id.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.dtos import (
    DocumentKind,
    DocumentStatus,
    PaymentStatus,
    Statement,
    StatementRow,
)
from billing_kernel.domain.money import ZERO, round2
from billing_kernel.domain.party import LedgerDirection, PartyRef
from billing_kernel.exceptions import PeriodNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import Document
from billing_kernel.models.ledger_scope import LedgerScope
from billing_kernel.models.payment import Payment
from billing_kernel.models.period import AcademicPeriod
from billing_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.statement")

PAYMENT_ENTRY = "PAYMENT"

# Document kind -> True when it debits the party's ledger
_DOCUMENT_SIDES = {
    LedgerDirection.RECEIVABLE: {
        DocumentKind.INVOICE: True,
        DocumentKind.CREDIT_NOTE: False,
    },
    LedgerDirection.PAYABLE: {
        DocumentKind.PURCHASE_INVOICE: False,
        DocumentKind.CREDIT_NOTE: True,
    },
}

# Payments credit a receivable ledger and debit a payable one
_PAYMENT_IS_DEBIT = {
    LedgerDirection.RECEIVABLE: False,
    LedgerDirection.PAYABLE: True,
}

_DOCUMENT_RANK = 0
_PAYMENT_RANK = 1


def _as_utc(value: datetime) -> datetime:
    # Some drivers hand back naive timestamps for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _ref_key(ref_no: str) -> tuple[int, int, str]:
    if ref_no.isdigit():
        return (0, int(ref_no), "")
    return (1, 0, ref_no)


class StatementBuilder(BaseSelector[Document]):
    """
    Selector producing party statements.

    Guarantees:
        - Deterministic row order for a given ledger state.
        - Every balance is a Decimal with two places.
    """

    def build_statement(self, party: PartyRef, period_id: UUID) -> Statement:
        if self.session.get(AcademicPeriod, period_id) is None:
            raise PeriodNotFoundError(str(period_id))

        scope_ids = self.session.execute(
            select(LedgerScope.id).where(
                LedgerScope.party_kind == party.kind,
                LedgerScope.party_id == party.id,
                LedgerScope.period_id == period_id,
            )
        ).scalars().all()

        if not scope_ids:
            return Statement(party=party, period_id=period_id, rows=(), closing_balance=ZERO)

        direction = party.direction
        document_sides = _DOCUMENT_SIDES[direction]

        documents = self.session.execute(
            select(Document).where(
                Document.scope_id.in_(scope_ids),
                Document.status == DocumentStatus.ISSUED,
                Document.kind.in_(list(document_sides)),
            )
        ).scalars().all()

        payments = self.session.execute(
            select(Payment).where(
                Payment.scope_id.in_(scope_ids),
                Payment.status == PaymentStatus.POSTED,
            )
        ).scalars().all()

        entries = []
        for doc in documents:
            is_debit = document_sides[DocumentKind(doc.kind)]
            entries.append((
                (_as_utc(doc.document_date), _DOCUMENT_RANK, _ref_key(doc.document_no), str(doc.id)),
                doc.document_date,
                DocumentKind(doc.kind).name,
                doc.document_no,
                doc.net_amount,
                is_debit,
                doc.id,
            ))

        payment_is_debit = _PAYMENT_IS_DEBIT[direction]
        for payment in payments:
            entries.append((
                (_as_utc(payment.paid_at), _PAYMENT_RANK, _ref_key(payment.receipt_no), str(payment.id)),
                payment.paid_at,
                PAYMENT_ENTRY,
                payment.receipt_no,
                payment.amount,
                payment_is_debit,
                payment.id,
            ))

        entries.sort(key=lambda entry: entry[0])

        balance = ZERO
        rows = []
        for _, when, entry_type, ref_no, amount, is_debit, source_id in entries:
            debit = round2(amount) if is_debit else ZERO
            credit = ZERO if is_debit else round2(amount)
            balance = round2(balance + debit - credit)
            rows.append(StatementRow(
                date=_as_utc(when),
                entry_type=entry_type,
                ref_no=ref_no,
                debit=debit,
                credit=credit,
                balance=balance,
                source_id=source_id,
            ))

        logger.debug(
            "statement_built",
            extra={
                "party": str(party),
                "period_id": str(period_id),
                "rows": len(rows),
                "closing_balance": str(balance),
            },
        )
        return Statement(
            party=party,
            period_id=period_id,
            rows=tuple(rows),
            closing_balance=balance,
        )

    def closing_balance(self, party: PartyRef, period_id: UUID) -> Decimal:
        return self.build_statement(party, period_id).closing_balance
