"""
Running-balance statements.

Verifies:
- Row direction for receivable (school) and payable (company) ledgers
- Chronological order with a deterministic tie-break
- VOID documents, VOID payments and estimations never reach a balance
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import DocumentKind, PaymentMode
from billing_kernel.domain.party import PartyRef
from billing_kernel.exceptions import PeriodNotFoundError


@pytest.fixture
def invoice(document_factory, billed_by, test_actor_id, make_items):
    def _invoice(party, amount, kind=DocumentKind.INVOICE, explicit=None):
        return document_factory.create_document(
            kind, party, billed_by, make_items(amount), test_actor_id, explicit_number=explicit
        )

    return _invoice


@pytest.fixture
def pay(payment_service, test_actor_id):
    def _pay(party, amount, receipt_no=None, mode=PaymentMode.CASH):
        return payment_service.post_payment(
            party, amount, mode, uuid4(), test_actor_id, receipt_no=receipt_no
        )

    return _pay


def _summary(statement):
    return [(r.entry_type, r.debit, r.credit, r.balance) for r in statement.rows]


class TestReceivableStatement:
    def test_invoice_then_payment(
        self, statement_builder, active_period, school, invoice, pay, deterministic_clock
    ):
        invoice(school, "1000")
        deterministic_clock.advance(60)
        pay(school, "400")

        statement = statement_builder.build_statement(school, active_period.id)

        assert len(statement.rows) == 2
        assert statement.rows[0].date < statement.rows[1].date
        assert statement.closing_balance == Decimal("600.00")

    def test_academic_year_walkthrough(
        self, statement_builder, period_registry, school, invoice, pay, deterministic_clock, test_actor_id
    ):
        period = period_registry.create(date(2024, 4, 1), date(2025, 3, 31), test_actor_id)
        doc = invoice(school, "5000")
        deterministic_clock.advance(3600)
        receipt = pay(school, "2000")

        statement = statement_builder.build_statement(school, period.id)

        assert _summary(statement) == [
            ("INVOICE", Decimal("5000.00"), Decimal("0.00"), Decimal("5000.00")),
            ("PAYMENT", Decimal("0.00"), Decimal("2000.00"), Decimal("3000.00")),
        ]
        assert [r.ref_no for r in statement.rows] == [doc.document_no, receipt.receipt_no]
        assert [r.source_id for r in statement.rows] == [doc.id, receipt.id]
        assert statement.closing_balance == Decimal("3000.00")

    def test_credit_note_reduces_balance(
        self, statement_builder, active_period, school, invoice, deterministic_clock
    ):
        invoice(school, "1500")
        deterministic_clock.advance(1)
        invoice(school, "250.25", kind=DocumentKind.CREDIT_NOTE)

        statement = statement_builder.build_statement(school, active_period.id)

        assert _summary(statement)[1] == (
            "CREDIT_NOTE", Decimal("0.00"), Decimal("250.25"), Decimal("1249.75")
        )

    def test_overpayment_goes_negative(
        self, statement_builder, active_period, school, invoice, pay, deterministic_clock
    ):
        invoice(school, "100")
        deterministic_clock.advance(1)
        pay(school, "130")

        assert statement_builder.closing_balance(school, active_period.id) == Decimal("-30.00")

    def test_void_rows_and_estimations_excluded(
        self, statement_builder, document_factory, payment_service, active_period, school,
        invoice, pay, test_actor_id,
    ):
        kept = invoice(school, "700")
        voided = invoice(school, "300")
        invoice(school, "999", kind=DocumentKind.ESTIMATION)
        payment = pay(school, "50")
        document_factory.void(voided.id, test_actor_id)
        payment_service.void_payment(payment.id, test_actor_id)

        statement = statement_builder.build_statement(school, active_period.id)

        assert [r.source_id for r in statement.rows] == [kept.id]
        assert statement.closing_balance == Decimal("700.00")

    def test_other_parties_excluded(self, statement_builder, active_period, school, invoice):
        invoice(school, "100")
        invoice(PartyRef.school(uuid4()), "900")

        assert statement_builder.closing_balance(school, active_period.id) == Decimal("100.00")


class TestOrdering:
    def test_documents_before_payments_at_same_instant(
        self, statement_builder, active_period, school, invoice, pay
    ):
        pay(school, "40")
        invoice(school, "100")

        statement = statement_builder.build_statement(school, active_period.id)

        assert [r.entry_type for r in statement.rows] == ["INVOICE", "PAYMENT"]
        assert [r.balance for r in statement.rows] == [Decimal("100.00"), Decimal("60.00")]

    def test_numeric_reference_order_at_same_instant(
        self, statement_builder, active_period, school, invoice
    ):
        invoice(school, "1", explicit=9)
        invoice(school, "1")  # takes 10

        refs = [r.ref_no for r in statement_builder.build_statement(school, active_period.id).rows]
        assert refs == ["9", "10"]

    def test_back_dated_payment_with_offset_sorts_by_utc_instant(
        self, statement_builder, payment_service, active_period, school, invoice, test_actor_id
    ):
        invoice(school, "500")  # 09:00Z
        ist = timezone(timedelta(hours=5, minutes=30))
        payment_service.post_payment(
            school, "200", PaymentMode.CASH, uuid4(), test_actor_id,
            paid_at=datetime(2024, 6, 1, 13, 30, tzinfo=ist),  # 08:00Z
        )

        rows = statement_builder.build_statement(school, active_period.id).rows

        assert [r.entry_type for r in rows] == ["PAYMENT", "INVOICE"]
        assert rows[0].date == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        assert all(r.date.tzinfo is not None for r in rows)
        assert [r.balance for r in rows] == [Decimal("-200.00"), Decimal("300.00")]

    def test_statement_is_repeatable(
        self, statement_builder, active_period, school, invoice, pay, deterministic_clock
    ):
        for amount in ("100", "200", "300"):
            invoice(school, amount)
            pay(school, "10")
            deterministic_clock.advance(5)

        first = statement_builder.build_statement(school, active_period.id)
        second = statement_builder.build_statement(school, active_period.id)

        assert first == second
        assert first.closing_balance == Decimal("570.00")


class TestPayableStatement:
    def test_direction_flips_for_companies(
        self, statement_builder, document_factory, active_period, company, billed_by,
        invoice, pay, deterministic_clock, test_actor_id, make_items,
    ):
        document_factory.record_purchase_invoice(
            company, "SUP-9", datetime(2024, 5, 1, tzinfo=timezone.utc), make_items("8000"),
            billed_by, test_actor_id,
        )
        invoice(company, "500", kind=DocumentKind.CREDIT_NOTE)
        deterministic_clock.advance(60)
        pay(company, "3000", receipt_no="PV-1", mode=PaymentMode.BANK)

        statement = statement_builder.build_statement(company, active_period.id)

        assert _summary(statement) == [
            ("PURCHASE_INVOICE", Decimal("0.00"), Decimal("8000.00"), Decimal("-8000.00")),
            ("CREDIT_NOTE", Decimal("500.00"), Decimal("0.00"), Decimal("-7500.00")),
            ("PAYMENT", Decimal("3000.00"), Decimal("0.00"), Decimal("-4500.00")),
        ]


class TestEdgeCases:
    def test_party_without_scope_has_empty_statement(self, statement_builder, active_period, school):
        statement = statement_builder.build_statement(school, active_period.id)

        assert statement.rows == ()
        assert statement.closing_balance == Decimal("0.00")

    def test_unknown_period(self, statement_builder, school):
        with pytest.raises(PeriodNotFoundError):
            statement_builder.build_statement(school, uuid4())

    def test_closed_period_still_reports(
        self, statement_builder, period_registry, active_period, school, invoice, test_actor_id
    ):
        invoice(school, "420")
        period_registry.close(active_period.id, test_actor_id)

        assert statement_builder.closing_balance(school, active_period.id) == Decimal("420.00")
