"""Tests for conflict retry handling."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import add_endpoint
from datascan.db import session_scope
from datascan.db_models import ApiEndpoint
from datascan.errors import SerializationConflict
from datascan.transaction import in_transaction, is_serialization_failure, run_with_retry


class PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("driver error")
        self.pgcode = pgcode


def locked() -> OperationalError:
    return OperationalError("UPDATE api_endpoint", {}, Exception("database is locked"))


class TestIsSerializationFailure:
    """Tests for is_serialization_failure."""

    def test_sqlstate(self):
        """Test Postgres serialization and deadlock codes are retryable."""
        assert is_serialization_failure(OperationalError("stmt", {}, PgError("40001")))
        assert is_serialization_failure(OperationalError("stmt", {}, PgError("40P01")))

    def test_message(self):
        """Test lock messages are retryable."""
        assert is_serialization_failure(locked())

    def test_other_errors(self):
        """Test unrelated errors are not retried."""
        assert not is_serialization_failure(IntegrityError("stmt", {}, Exception("UNIQUE constraint failed")))
        assert not is_serialization_failure(ValueError("nope"))

    def test_conflict_error(self):
        """Test an explicit SerializationConflict is retryable."""
        assert is_serialization_failure(SerializationConflict("lost race"))


class TestRunWithRetry:
    """Tests for run_with_retry."""

    def test_succeeds_after_conflicts(self):
        """Test a transient conflict is retried until success."""
        calls = []

        def work():
            calls.append(1)
            if len(calls) < 3:
                raise locked()
            return "done"

        assert run_with_retry(work, max_attempts=3, backoff=0) == "done"
        assert len(calls) == 3

    def test_gives_up(self):
        """Test exhausting attempts raises SerializationConflict."""
        calls = []

        def work():
            calls.append(1)
            raise locked()

        with pytest.raises(SerializationConflict) as exc_info:
            run_with_retry(work, max_attempts=3, backoff=0)

        assert exc_info.value.attempts == 3
        assert len(calls) == 3

    def test_non_retryable_propagates(self):
        """Test other errors are raised on the first attempt."""
        calls = []

        def work():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(work, max_attempts=3, backoff=0)
        assert len(calls) == 1

    def test_invalid_attempts(self):
        """Test max_attempts below one is rejected."""
        with pytest.raises(ValueError):
            run_with_retry(lambda: None, max_attempts=0)


class TestInTransaction:
    """Tests for in_transaction."""

    def test_commits(self, session_factory):
        """Test work is committed when it succeeds."""
        endpoint_uuid = add_endpoint(session_factory)

        def work(session):
            session.get(ApiEndpoint, endpoint_uuid).risk_score = "low"

        in_transaction(session_factory, work, backoff=0)

        with session_scope(session_factory) as session:
            assert session.get(ApiEndpoint, endpoint_uuid).risk_score == "low"

    def test_rolls_back_each_failed_attempt(self, session_factory):
        """Test writes from a failed attempt are not kept."""
        endpoint_uuid = add_endpoint(session_factory)
        attempts = []

        def work(session):
            attempts.append(1)
            session.get(ApiEndpoint, endpoint_uuid).risk_score = "critical"
            session.flush()
            raise locked()

        with pytest.raises(SerializationConflict):
            in_transaction(session_factory, work, max_attempts=2, backoff=0)

        assert len(attempts) == 2
        with session_scope(session_factory) as session:
            assert session.scalar(select(ApiEndpoint.risk_score)) == "none"
