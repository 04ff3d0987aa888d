"""
Typed exception hierarchy for the billing kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, scripts, tests) must be able to react to a failure
without parsing its message.  Every exception therefore carries:

  1. A TYPED class (catch by type, not by message)
  2. A stable ``code`` (machine-readable, API-safe)
  3. A ``kind`` naming its category, and the ``status_code`` the HTTP layer
     answers with
  4. Structured attributes describing what went wrong

Example:

    try:
        registry.create(start, end, actor_id)
    except PeriodOverlapError as e:
        return {"kind": e.kind, "code": e.code, "existing": e.existing_period}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- ValidationError (400)
    |   +-- InvalidPeriodRangeError
    |   +-- InvalidDocumentNumberError
    |   +-- InvalidLineItemError
    |   +-- EmptyDocumentError
    |   +-- InvalidPaymentError
    |   +-- InvalidPartyReferenceError
    |   +-- UnsupportedDocumentKindError
    |
    +-- NotFoundError (404)
    |   +-- NoActivePeriodError
    |   +-- PeriodNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ConflictError (409)
    |   +-- PeriodOverlapError
    |   +-- PeriodNotOpenError
    |   +-- LedgerScopeSettledError
    |   +-- DocumentAlreadyVoidError
    |   +-- PaymentAlreadyVoidError
    |   +-- InvalidDocumentStateError
    |   +-- EstimationAlreadyConvertedError
    |   +-- DuplicateDocumentNumberError
    |   +-- ConcurrencyConflictError
    |
    +-- LedgerIntegrityError (409)
        +-- NonPositiveTotalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind        | Code                          | When Raised
------------|-------------------------------|-----------------------------------
VALIDATION  | INVALID_PERIOD_RANGE          | start date not before end date
            | INVALID_DOCUMENT_NUMBER       | explicit number not a positive int
            | INVALID_LINE_ITEM             | blank description, qty <= 0, ...
            | EMPTY_DOCUMENT                | no line items supplied
            | INVALID_PAYMENT               | amount <= 0, missing supplier no
            | INVALID_PARTY_REFERENCE       | malformed "school:<uuid>" string
            | UNSUPPORTED_DOCUMENT_KIND     | kind not issuable for the party
------------|-------------------------------|-----------------------------------
NOT_FOUND   | NO_ACTIVE_PERIOD              | no period is OPEN
            | PERIOD_NOT_FOUND              | unknown period id
            | DOCUMENT_NOT_FOUND            | unknown document id
            | PAYMENT_NOT_FOUND             | unknown payment id
------------|-------------------------------|-----------------------------------
CONFLICT    | PERIOD_OVERLAP                | date range intersects another
            | PERIOD_NOT_OPEN               | mutation on a CLOSED period
            | LEDGER_SCOPE_SETTLED          | change to a settled ledger scope
            | DOCUMENT_ALREADY_VOID         | void of a VOID document
            | PAYMENT_ALREADY_VOID          | void of a VOID payment
            | INVALID_DOCUMENT_STATE        | operation not valid for the kind
            | ESTIMATION_ALREADY_CONVERTED  | convert/delete after conversion
            | DUPLICATE_DOCUMENT_NUMBER     | explicit number already issued
            | CONCURRENCY_CONFLICT          | concurrent writer won, retry
------------|-------------------------------|-----------------------------------
INTEGRITY   | NON_POSITIVE_TOTAL            | document net total <= 0

===============================================================================
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must define a ``code`` class attribute; category bases
    define ``kind`` and ``status_code``.
    """

    code: str = "BILLING_KERNEL_ERROR"
    kind: str = "INTERNAL"
    status_code: int = 500


# Categories


class ValidationError(BillingKernelError):
    """Malformed or missing input.  Rejected before any write happens."""

    code: str = "VALIDATION_ERROR"
    kind: str = "VALIDATION"
    status_code: int = 400


class NotFoundError(BillingKernelError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"
    kind: str = "NOT_FOUND"
    status_code: int = 404


class ConflictError(BillingKernelError):
    """The request conflicts with the current state of the ledger."""

    code: str = "CONFLICT"
    kind: str = "CONFLICT"
    status_code: int = 409


class LedgerIntegrityError(BillingKernelError):
    """The request would persist a document violating a ledger invariant."""

    code: str = "LEDGER_INTEGRITY"
    kind: str = "INTEGRITY"
    status_code: int = 409


# Validation errors


class InvalidPeriodRangeError(ValidationError):
    """Period start date is not strictly before its end date."""

    code: str = "INVALID_PERIOD_RANGE"

    def __init__(self, start_date: str, end_date: str):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Start date ({start_date}) must be before end date ({end_date})"
        )


class InvalidDocumentNumberError(ValidationError):
    """Explicit document number is not a positive integer."""

    code: str = "INVALID_DOCUMENT_NUMBER"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid document number: {value!r}")


class InvalidLineItemError(ValidationError):
    """A line item failed validation."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Item {index + 1}: {reason}")


class EmptyDocumentError(ValidationError):
    """A document was submitted without line items."""

    code: str = "EMPTY_DOCUMENT"

    def __init__(self):
        super().__init__("At least one item is required")


class InvalidPaymentError(ValidationError):
    """A payment request failed validation."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid payment: {reason}")


class InvalidPartyReferenceError(ValidationError):
    """A party reference string could not be parsed."""

    code: str = "INVALID_PARTY_REFERENCE"

    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f"Invalid party reference {value!r}: expected 'school:<id>' or 'company:<id>'"
        )


class UnsupportedDocumentKindError(ValidationError):
    """Document kind cannot be issued through this operation or for this party."""

    code: str = "UNSUPPORTED_DOCUMENT_KIND"

    def __init__(self, document_kind: str, party_kind: str):
        self.document_kind = document_kind
        self.party_kind = party_kind
        super().__init__(f"Cannot issue a {document_kind} document for a {party_kind} party")


# Not-found errors


class NoActivePeriodError(NotFoundError):
    """No academic period is currently OPEN."""

    code: str = "NO_ACTIVE_PERIOD"

    def __init__(self):
        super().__init__("No open academic period found")


class PeriodNotFoundError(NotFoundError):
    """Period with the given id does not exist."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Academic period not found: {period_id}")


class DocumentNotFoundError(NotFoundError):
    """Document with the given id does not exist."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with the given id does not exist."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


# Conflict errors


class PeriodOverlapError(ConflictError):
    """Requested date range intersects an existing period."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        new_range: str,
        existing_period: str,
        overlap_start: str,
        overlap_end: str,
    ):
        self.new_range = new_range
        self.existing_period = existing_period
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Period {new_range} overlaps with {existing_period} "
            f"({overlap_start} to {overlap_end})"
        )


class PeriodNotOpenError(ConflictError):
    """Operation requires an OPEN period."""

    code: str = "PERIOD_NOT_OPEN"

    def __init__(self, period_name: str, operation: str):
        self.period_name = period_name
        self.operation = operation
        super().__init__(f"Cannot {operation}: academic period {period_name} is not open")


class LedgerScopeSettledError(ConflictError):
    """The ledger scope owning a document or payment is already settled."""

    code: str = "LEDGER_SCOPE_SETTLED"

    def __init__(self, scope_id: str, operation: str):
        self.scope_id = scope_id
        self.operation = operation
        super().__init__(f"Cannot {operation}: ledger scope {scope_id} is settled")


class DocumentAlreadyVoidError(ConflictError):
    """Document is already VOID."""

    code: str = "DOCUMENT_ALREADY_VOID"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} is already void")


class PaymentAlreadyVoidError(ConflictError):
    """Payment is already VOID."""

    code: str = "PAYMENT_ALREADY_VOID"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is already void")


class InvalidDocumentStateError(ConflictError):
    """Operation is not valid for the document's kind or status."""

    code: str = "INVALID_DOCUMENT_STATE"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Document {document_id}: {reason}")


class EstimationAlreadyConvertedError(ConflictError):
    """Estimation has already been converted into an invoice."""

    code: str = "ESTIMATION_ALREADY_CONVERTED"

    def __init__(self, document_id: str, invoice_id: str):
        self.document_id = document_id
        self.invoice_id = invoice_id
        super().__init__(
            f"Estimation {document_id} was already converted to invoice {invoice_id}"
        )


class DuplicateDocumentNumberError(ConflictError):
    """An explicit number resolved to one already issued in the period."""

    code: str = "DUPLICATE_DOCUMENT_NUMBER"

    def __init__(self, document_kind: str, number: str):
        self.document_kind = document_kind
        self.number = number
        super().__init__(f"{document_kind} number {number} already exists in this academic period")


class ConcurrencyConflictError(ConflictError):
    """A concurrent transaction changed the same rows; the whole operation may be retried."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} conflicted with a concurrent transaction "
            f"after {attempts} attempt(s)"
        )


# Integrity errors


class NonPositiveTotalError(LedgerIntegrityError):
    """Document net total is zero or negative."""

    code: str = "NON_POSITIVE_TOTAL"

    def __init__(self, net_amount: str):
        self.net_amount = net_amount
        super().__init__(f"Document total must be greater than zero (got {net_amount})")
