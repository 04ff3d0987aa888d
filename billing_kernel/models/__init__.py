"""ORM models for the billing kernel."""

from billing_kernel.models.document import Document, DocumentItem
from billing_kernel.models.ledger_scope import LedgerScope
from billing_kernel.models.payment import Payment
from billing_kernel.models.period import AcademicPeriod
from billing_kernel.models.sequence import DocumentSequence

__all__ = [
    "AcademicPeriod",
    "Document",
    "DocumentItem",
    "DocumentSequence",
    "LedgerScope",
    "Payment",
]
