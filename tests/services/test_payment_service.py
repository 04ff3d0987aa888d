"""Payment posting and reversal."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import PaymentMode, PaymentStatus, SequenceKind
from billing_kernel.exceptions import (
    DuplicateDocumentNumberError,
    InvalidDocumentNumberError,
    InvalidPaymentError,
    NoActivePeriodError,
    PaymentAlreadyVoidError,
    PaymentNotFoundError,
    PeriodNotOpenError,
)


@pytest.fixture
def recorded_by():
    return uuid4()


class TestPostPayment:
    def test_school_receipt_numbered_from_sequence(
        self, payment_service, active_period, school, recorded_by, test_actor_id, deterministic_clock
    ):
        first = payment_service.post_payment(school, "2000", PaymentMode.CASH, recorded_by, test_actor_id)
        second = payment_service.post_payment(school, 150.5, "upi", recorded_by, test_actor_id)

        assert first.receipt_no == "1"
        assert first.amount == Decimal("2000.00")
        assert first.status == PaymentStatus.POSTED
        assert first.paid_at == deterministic_clock.now()
        assert first.period_id == active_period.id
        assert second.receipt_no == "2"
        assert second.amount == Decimal("150.50")
        assert second.mode == PaymentMode.UPI

    def test_amount_rounded_half_up(self, payment_service, active_period, school, recorded_by, test_actor_id):
        payment = payment_service.post_payment(school, "10.005", PaymentMode.CASH, recorded_by, test_actor_id)
        assert payment.amount == Decimal("10.01")

    def test_explicit_receipt_number(self, payment_service, active_period, school, recorded_by, test_actor_id):
        assert payment_service.post_payment(
            school, "100", PaymentMode.CASH, recorded_by, test_actor_id, receipt_no="50"
        ).receipt_no == "50"
        assert payment_service.post_payment(
            school, "100", PaymentMode.CASH, recorded_by, test_actor_id
        ).receipt_no == "51"

    def test_explicit_receipt_number_already_used(
        self, payment_service, active_period, school, recorded_by, test_actor_id
    ):
        payment_service.post_payment(school, "100", PaymentMode.CASH, recorded_by, test_actor_id)

        with pytest.raises(DuplicateDocumentNumberError):
            payment_service.post_payment(
                school, "100", PaymentMode.CASH, recorded_by, test_actor_id, receipt_no=1
            )

    def test_invalid_receipt_number(self, payment_service, active_period, school, recorded_by, test_actor_id):
        with pytest.raises(InvalidDocumentNumberError):
            payment_service.post_payment(
                school, "100", PaymentMode.CASH, recorded_by, test_actor_id, receipt_no="R-1"
            )

    @pytest.mark.parametrize("amount", ["0", "-5", "0.004", "lots"])
    def test_invalid_amount_consumes_nothing(
        self, payment_service, sequence_allocator, active_period, school, recorded_by, test_actor_id, amount
    ):
        with pytest.raises(InvalidPaymentError):
            payment_service.post_payment(school, amount, PaymentMode.CASH, recorded_by, test_actor_id)

        assert sequence_allocator.peek(active_period.id, SequenceKind.PAYMENT) == 1

    def test_unknown_mode(self, payment_service, active_period, school, recorded_by, test_actor_id):
        with pytest.raises(InvalidPaymentError):
            payment_service.post_payment(school, "10", "crypto", recorded_by, test_actor_id)

    def test_bank_reference_becomes_note(self, payment_service, active_period, school, recorded_by, test_actor_id):
        payment = payment_service.post_payment(
            school, "900", PaymentMode.BANK, recorded_by, test_actor_id,
            reference=" UTR123 ", note="ignored",
        )

        assert payment.reference == "UTR123"
        assert payment.note == "Ref: UTR123"

    def test_other_modes_keep_their_note(self, payment_service, active_period, school, recorded_by, test_actor_id):
        payment = payment_service.post_payment(
            school, "900", PaymentMode.CHEQUE, recorded_by, test_actor_id,
            reference="CHQ 4411", note="post-dated",
        )

        assert payment.note == "post-dated"

    def test_explicit_paid_at(self, payment_service, active_period, school, recorded_by, test_actor_id):
        when = datetime(2024, 7, 15, 12, 30, tzinfo=timezone.utc)
        payment = payment_service.post_payment(
            school, "10", PaymentMode.CASH, recorded_by, test_actor_id, paid_at=when
        )
        assert payment.paid_at == when

    def test_paid_at_is_stored_in_utc(self, payment_service, active_period, school, recorded_by, test_actor_id):
        ist = timezone(timedelta(hours=5, minutes=30))
        payment = payment_service.post_payment(
            school, "10", PaymentMode.CASH, recorded_by, test_actor_id,
            paid_at=datetime(2024, 7, 15, 18, 0, tzinfo=ist),
        )

        assert payment.paid_at.utcoffset() == timedelta(0)
        assert payment.paid_at == datetime(2024, 7, 15, 12, 30, tzinfo=timezone.utc)

    def test_naive_paid_at_rejected(self, payment_service, active_period, school, recorded_by, test_actor_id):
        with pytest.raises(InvalidPaymentError):
            payment_service.post_payment(
                school, "10", PaymentMode.CASH, recorded_by, test_actor_id,
                paid_at=datetime(2024, 7, 15, 12, 30),
            )

    def test_company_payment_uses_supplier_number(
        self, payment_service, sequence_allocator, active_period, company, recorded_by, test_actor_id
    ):
        payment = payment_service.post_payment(
            company, "3000", PaymentMode.BANK, recorded_by, test_actor_id, receipt_no="PV-77"
        )

        assert payment.receipt_no == "PV-77"
        assert sequence_allocator.peek(active_period.id, SequenceKind.PAYMENT) == 1

    def test_company_payment_requires_number(
        self, payment_service, active_period, company, recorded_by, test_actor_id
    ):
        with pytest.raises(InvalidPaymentError):
            payment_service.post_payment(company, "3000", PaymentMode.CASH, recorded_by, test_actor_id)

    def test_no_active_period(self, payment_service, school, recorded_by, test_actor_id):
        with pytest.raises(NoActivePeriodError):
            payment_service.post_payment(school, "10", PaymentMode.CASH, recorded_by, test_actor_id)

    def test_posting_is_logged(
        self, payment_service, active_period, school, recorded_by, test_actor_id, captured_logs
    ):
        payment_service.post_payment(school, "75", PaymentMode.UPI, recorded_by, test_actor_id)

        records = [r for r in captured_logs() if r["message"] == "payment_posted"]
        assert records[-1]["amount"] == "75.00"
        assert records[-1]["mode"] == "upi"


class TestVoidPayment:
    def test_void(self, payment_service, active_period, school, recorded_by, test_actor_id):
        payment = payment_service.post_payment(school, "10", PaymentMode.CASH, recorded_by, test_actor_id)

        voided = payment_service.void_payment(payment.id, test_actor_id)

        assert voided.status == PaymentStatus.VOID
        assert voided.voided_at is not None
        assert voided.receipt_no == payment.receipt_no

    def test_void_twice_rejected(self, payment_service, active_period, school, recorded_by, test_actor_id):
        payment = payment_service.post_payment(school, "10", PaymentMode.CASH, recorded_by, test_actor_id)
        payment_service.void_payment(payment.id, test_actor_id)

        with pytest.raises(PaymentAlreadyVoidError):
            payment_service.void_payment(payment.id, test_actor_id)

    def test_closed_period_refuses_void(
        self, payment_service, period_registry, active_period, school, recorded_by, test_actor_id
    ):
        payment = payment_service.post_payment(school, "10", PaymentMode.CASH, recorded_by, test_actor_id)
        period_registry.close(active_period.id, test_actor_id)

        with pytest.raises(PeriodNotOpenError):
            payment_service.void_payment(payment.id, test_actor_id)

    def test_unknown_payment(self, payment_service, active_period, test_actor_id):
        with pytest.raises(PaymentNotFoundError):
            payment_service.void_payment(uuid4(), test_actor_id)
