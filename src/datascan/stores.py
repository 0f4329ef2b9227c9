"""Read access to the sampled trace store."""

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .db import session_scope
from .db_models import ApiTrace
from .errors import TransientStoreError, ValidationError
from .models import Trace

logger = logging.getLogger(__name__)


class TraceStore(Protocol):
    """Source of recently sampled traces for an endpoint."""

    def read_recent_traces(self, endpoint_uuid: str, max_count: int) -> list[Trace]:
        """Return up to ``max_count`` traces, most recent first."""
        ...


class SqlTraceStore:
    """Trace store backed by the ``api_trace`` table.

    Rows that cannot be decoded are left out of the returned sample.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def read_recent_traces(self, endpoint_uuid: str, max_count: int) -> list[Trace]:
        stmt = (
            select(ApiTrace)
            .where(ApiTrace.api_endpoint_uuid == endpoint_uuid)
            .order_by(ApiTrace.created_at.desc(), ApiTrace.uuid.desc())
            .limit(max_count)
        )
        try:
            with session_scope(self.session_factory) as session:
                rows = session.scalars(stmt).all()
                traces = []
                for row in rows:
                    try:
                        traces.append(row.to_trace())
                    except ValidationError as e:
                        logger.warning(f"Skipping unreadable trace {row.uuid}: {e}")
                return traces
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to read traces for endpoint {endpoint_uuid}: {e}") from e
