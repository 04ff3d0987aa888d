"""Write-side services.  All of them flush; none of them commit."""

from billing_kernel.services.document_factory import DocumentFactory
from billing_kernel.services.ledger_scope_manager import LedgerScopeManager
from billing_kernel.services.payment_service import PaymentService
from billing_kernel.services.period_registry import PeriodRegistry
from billing_kernel.services.sequence_allocator import SequenceAllocator

__all__ = [
    "DocumentFactory",
    "LedgerScopeManager",
    "PaymentService",
    "PeriodRegistry",
    "SequenceAllocator",
]
