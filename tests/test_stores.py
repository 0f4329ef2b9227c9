"""Tests for the SQL trace store."""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from conftest import add_endpoint, add_traces
from datascan.db import session_scope
from datascan.db_models import ApiTrace
from datascan.errors import TransientStoreError
from datascan.stores import SqlTraceStore


class TestSqlTraceStore:
    """Tests for SqlTraceStore.read_recent_traces."""

    def test_most_recent_first_and_limited(self, session_factory):
        """Test traces come back newest first, capped at max_count."""
        endpoint_uuid = add_endpoint(session_factory)
        uuids = add_traces(session_factory, endpoint_uuid, [{"n": i} for i in range(10)])

        traces = SqlTraceStore(session_factory).read_recent_traces(endpoint_uuid, 3)

        assert [t.uuid for t in traces] == uuids[:-4:-1]

    def test_only_own_endpoint(self, session_factory):
        """Test traces of other endpoints are excluded."""
        first = add_endpoint(session_factory)
        second = add_endpoint(session_factory, path="/api/orders")
        add_traces(session_factory, first, [{}] * 3)
        add_traces(session_factory, second, [{}] * 2)

        assert len(SqlTraceStore(session_factory).read_recent_traces(second, 100)) == 2

    def test_decodes_pairs(self, session_factory):
        """Test stored header lists become name/value pairs."""
        endpoint_uuid = add_endpoint(session_factory)
        add_traces(session_factory, endpoint_uuid, [{"a": 1}])

        trace = SqlTraceStore(session_factory).read_recent_traces(endpoint_uuid, 1)[0]

        assert trace.response_headers[0].name == "Content-Type"
        assert trace.response_body == '{"a": 1}'

    def test_skips_unreadable_rows(self, session_factory, caplog):
        """Test malformed rows are dropped with a warning."""
        endpoint_uuid = add_endpoint(session_factory)
        add_traces(session_factory, endpoint_uuid, [{}] * 2)
        with session_scope(session_factory) as session:
            session.add(
                ApiTrace(
                    uuid="bad-trace",
                    api_endpoint_uuid=endpoint_uuid,
                    path="/api/users",
                    method="GET",
                    response_headers=[{"value": "no name"}],
                    created_at=datetime(2024, 1, 1),
                )
            )

        traces = SqlTraceStore(session_factory).read_recent_traces(endpoint_uuid, 10)

        assert len(traces) == 2
        assert "Skipping unreadable trace bad-trace" in caplog.text

    def test_database_error_wrapped(self):
        """Test driver errors surface as TransientStoreError."""

        def broken_factory():
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        with pytest.raises(TransientStoreError, match="connection refused"):
            SqlTraceStore(broken_factory).read_recent_traces("e-1", 10)
