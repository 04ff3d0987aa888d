"""Pure domain layer: value objects, DTOs, pricing and time."""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.dtos import (
    DocumentInfo,
    DocumentKind,
    DocumentStatus,
    ItemInfo,
    LedgerScopeInfo,
    PaymentInfo,
    PaymentMode,
    PaymentStatus,
    PeriodInfo,
    PeriodStatus,
    ScopeStatus,
    SequenceKind,
    Statement,
    StatementRow,
)
from billing_kernel.domain.line_items import (
    ComputedLine,
    DocumentTotals,
    LineItemInput,
    compute_totals,
)
from billing_kernel.domain.money import round2, to_decimal
from billing_kernel.domain.party import LedgerDirection, PartyKind, PartyRef

__all__ = [
    "Clock",
    "ComputedLine",
    "DeterministicClock",
    "DocumentInfo",
    "DocumentKind",
    "DocumentStatus",
    "DocumentTotals",
    "ItemInfo",
    "LedgerDirection",
    "LedgerScopeInfo",
    "LineItemInput",
    "PartyKind",
    "PartyRef",
    "PaymentInfo",
    "PaymentMode",
    "PaymentStatus",
    "PeriodInfo",
    "PeriodStatus",
    "ScopeStatus",
    "SequenceKind",
    "Statement",
    "StatementRow",
    "SystemClock",
    "compute_totals",
    "round2",
    "to_decimal",
]
