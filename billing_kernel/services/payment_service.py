"""
PaymentService -- posts and voids payments against ledger scopes.

Responsibility:
    Records money received from a school (receivable side) or paid to a
    company (payable side) in the party's open ledger scope of the active
    period, and voids postings while their period is still open.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses PeriodRegistry, LedgerScopeManager and SequenceAllocator in the
    caller's transaction, like DocumentFactory.

Numbering:
    - School payments get a receipt number from the PAYMENT sequence
      (explicit numbers follow the sequence's max rule).
    - Company payments record the supplier's own payment number; the
      sequence is not touched.

Failure modes:
    - InvalidPaymentError (400): non-positive amount, unknown mode, missing
      supplier payment number.
    - NoActivePeriodError (404), PeriodNotOpenError (409).
    - DuplicateDocumentNumberError (409): explicit receipt number in use.
    - PaymentNotFoundError (404), PaymentAlreadyVoidError (409),
      LedgerScopeSettledError (409).
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.clock import Clock
from billing_kernel.domain.dtos import PaymentInfo, PaymentMode, PaymentStatus, SequenceKind
from billing_kernel.domain.money import round2
from billing_kernel.domain.party import LedgerDirection, PartyKind, PartyRef
from billing_kernel.exceptions import (
    DuplicateDocumentNumberError,
    InvalidPaymentError,
    LedgerScopeSettledError,
    PaymentAlreadyVoidError,
    PaymentNotFoundError,
    PeriodNotOpenError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.ledger_scope import LedgerScope
from billing_kernel.models.payment import Payment
from billing_kernel.models.period import AcademicPeriod
from billing_kernel.services.base import BaseService
from billing_kernel.services.ledger_scope_manager import LedgerScopeManager
from billing_kernel.services.period_registry import PeriodRegistry
from billing_kernel.services.sequence_allocator import (
    SequenceAllocator,
    parse_explicit_number,
)

logger = get_logger("services.payment")


class PaymentService(BaseService[Payment]):
    """Service for payment posting and reversal."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        periods: PeriodRegistry | None = None,
        scopes: LedgerScopeManager | None = None,
        sequences: SequenceAllocator | None = None,
    ):
        super().__init__(session, clock)
        self._scopes = scopes or LedgerScopeManager(session, self.clock)
        self._periods = periods or PeriodRegistry(session, self.clock, self._scopes)
        self._sequences = sequences or SequenceAllocator(session, self.clock)

    def post_payment(
        self,
        party: PartyRef,
        amount: Decimal | int | str,
        mode: PaymentMode | str,
        recorded_by_id: UUID,
        actor_id: UUID,
        receipt_no: int | str | None = None,
        reference: str | None = None,
        note: str | None = None,
        paid_at: datetime | None = None,
    ) -> PaymentInfo:
        """
        Post a payment in the party's open scope of the active period.

        For BANK payments with a reference, the stored note is
        ``"Ref: <reference>"``.

        Raises:
            InvalidPaymentError, InvalidDocumentNumberError,
            NoActivePeriodError, PeriodNotOpenError,
            DuplicateDocumentNumberError
        """
        amount = self._validate_amount(amount)
        try:
            mode = PaymentMode(mode)
        except ValueError:
            raise InvalidPaymentError(f"unknown payment mode {mode!r}") from None

        if paid_at is not None:
            if paid_at.tzinfo is None:
                raise InvalidPaymentError("paid_at must carry a timezone")
            paid_at = paid_at.astimezone(UTC)

        reference = (reference or "").strip() or None
        if mode == PaymentMode.BANK and reference:
            note = f"Ref: {reference}"
        else:
            note = (note or "").strip() or None

        receivable = party.direction == LedgerDirection.RECEIVABLE
        if receivable:
            explicit = parse_explicit_number(receipt_no)
        else:
            supplier_no = str(receipt_no).strip() if receipt_no is not None else ""
            if not supplier_no:
                raise InvalidPaymentError("supplier payment number is required")

        period = self._periods.get_active()
        scope = self._scopes.get_or_create_open_scope(party, period.id, actor_id)

        if receivable:
            number = str(
                self._sequences.allocate(period.id, SequenceKind.PAYMENT, explicit)
            )
            if explicit is not None:
                self._ensure_receipt_free(period.id, number)
        else:
            number = supplier_no

        payment = Payment(
            scope_id=scope.id,
            period_id=period.id,
            party_kind=party.kind,
            party_id=party.id,
            amount=amount,
            mode=mode,
            receipt_no=number,
            status=PaymentStatus.POSTED,
            paid_at=paid_at or self.clock.now(),
            reference=reference,
            note=note,
            recorded_by_id=recorded_by_id,
            created_by_id=actor_id,
        )
        self.session.add(payment)
        self.session.flush()

        logger.info(
            "payment_posted",
            extra={
                "payment_id": str(payment.id),
                "party": str(party),
                "period_id": str(period.id),
                "receipt_no": number,
                "amount": str(amount),
                "mode": mode.value,
            },
        )
        return PaymentInfo.from_model(payment)

    def void_payment(self, payment_id: UUID, actor_id: UUID) -> PaymentInfo:
        """
        Flip a POSTED payment to VOID.

        Refused once the payment's period is closed or its scope settled.

        Raises:
            PaymentNotFoundError, PaymentAlreadyVoidError,
            PeriodNotOpenError, LedgerScopeSettledError
        """
        payment = self.session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        if payment.is_void:
            raise PaymentAlreadyVoidError(str(payment_id))

        period = self.session.get(AcademicPeriod, payment.period_id)
        if not period.is_open:
            raise PeriodNotOpenError(period.name, "void payment")
        scope = self.session.get(LedgerScope, payment.scope_id)
        if not scope.is_open:
            raise LedgerScopeSettledError(str(scope.id), "void payment")

        payment.status = PaymentStatus.VOID
        payment.voided_at = self.clock.now()
        payment.voided_by_id = actor_id
        payment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "payment_voided",
            extra={
                "payment_id": str(payment_id),
                "receipt_no": payment.receipt_no,
                "actor_id": str(actor_id),
            },
        )
        return PaymentInfo.from_model(payment)

    def _validate_amount(self, amount: Decimal | int | str) -> Decimal:
        try:
            value = round2(amount)
        except ValueError:
            raise InvalidPaymentError(f"amount {amount!r} is not a number") from None
        if value <= 0:
            raise InvalidPaymentError("amount must be greater than zero")
        return value

    def _ensure_receipt_free(self, period_id: UUID, receipt_no: str) -> None:
        taken = self.session.execute(
            select(Payment.id).where(
                Payment.period_id == period_id,
                Payment.receipt_no == receipt_no,
                Payment.party_kind == PartyKind.SCHOOL,
            )
        ).first()
        if taken is not None:
            raise DuplicateDocumentNumberError(SequenceKind.PAYMENT.value, receipt_no)
