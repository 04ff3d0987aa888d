"""Transaction helpers in billing_kernel.db.engine."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from billing_kernel.db.engine import (
    get_session,
    is_retryable,
    run_in_transaction,
    session_scope,
)
from billing_kernel.exceptions import ConcurrencyConflictError, PeriodOverlapError
from billing_kernel.services.period_registry import PeriodRegistry


def _unique_violation() -> IntegrityError:
    return IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed: document_sequences"))


class TestRunInTransaction:
    def test_commits_on_success(self, db_engine, deterministic_clock, test_actor_id):
        created = run_in_transaction(
            lambda s: PeriodRegistry(s, deterministic_clock).create(
                date(2024, 4, 1), date(2025, 3, 31), test_actor_id
            ),
            operation="create_period",
        )

        with session_scope() as session:
            assert PeriodRegistry(session).get_active().id == created.id

    def test_rolls_back_on_domain_error(self, db_engine, deterministic_clock, test_actor_id):
        def work(session):
            registry = PeriodRegistry(session, deterministic_clock)
            registry.create(date(2024, 4, 1), date(2025, 3, 31), test_actor_id)
            registry.create(date(2024, 6, 1), date(2025, 5, 31), test_actor_id)

        with pytest.raises(PeriodOverlapError):
            run_in_transaction(work, operation="create_period")

        session = get_session()
        try:
            assert PeriodRegistry(session).list_periods() == []
        finally:
            session.close()

    def test_retries_retryable_failures(self, db_engine, captured_logs):
        attempts = []

        def work(session):
            attempts.append(1)
            if len(attempts) < 3:
                raise _unique_violation()
            return "done"

        assert run_in_transaction(work, operation="allocate", retries=3) == "done"
        assert len(attempts) == 3
        retries = [r for r in captured_logs() if r["message"] == "transaction_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_gives_up_after_budget(self, db_engine):
        def work(session):
            raise _unique_violation()

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            run_in_transaction(work, operation="allocate", retries=2)

        assert exc_info.value.attempts == 2

    def test_non_retryable_database_error_propagates(self, db_engine):
        calls = []

        def work(session):
            calls.append(1)
            raise IntegrityError("INSERT ...", {}, Exception("CHECK constraint failed: ck_x"))

        with pytest.raises(IntegrityError):
            run_in_transaction(work, operation="insert", retries=3)
        assert len(calls) == 1


class TestIsRetryable:
    def test_pgcode_decides(self):
        class _PgError(Exception):
            pgcode = "40001"

        assert is_retryable(OperationalError("SELECT", {}, _PgError()))

    def test_sqlite_lock_is_retryable(self):
        assert is_retryable(OperationalError("UPDATE", {}, Exception("database is locked")))

    def test_plain_exception_is_not(self):
        assert not is_retryable(ValueError("nope"))
