"""Read-only selectors.  They never flush or commit."""

from billing_kernel.selectors.document_selector import DocumentSelector
from billing_kernel.selectors.statement_builder import StatementBuilder

__all__ = [
    "DocumentSelector",
    "StatementBuilder",
]
