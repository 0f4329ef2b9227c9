"""Shared fixtures: in-memory database and trace/field builders."""

import json
from datetime import datetime, timedelta

import pytest

from datascan.catalog import DataClass, DataClassCatalog
from datascan.db import create_db_engine, create_session_factory, init_db, session_scope
from datascan.db_models import ApiEndpoint, ApiTrace, DataField
from datascan.models import RiskScore

EMAIL_PATTERN = r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"
SSN_PATTERN = r"\b\d{3}-\d{2}-\d{4}\b"

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0)
JSON_HEADERS = [{"name": "Content-Type", "value": "application/json; charset=utf-8"}]


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def email_ssn_catalog():
    """Catalog with just EMAIL and SSN."""
    return DataClassCatalog(
        [
            DataClass(name="EMAIL", pattern=EMAIL_PATTERN, severity=RiskScore.MEDIUM, string_only=True),
            DataClass(name="SSN", pattern=SSN_PATTERN, severity=RiskScore.HIGH),
        ]
    )


def add_endpoint(session_factory, path="/api/users", method="GET", risk_score="none") -> str:
    with session_scope(session_factory) as session:
        endpoint = ApiEndpoint(path=path, method=method, risk_score=risk_score)
        session.add(endpoint)
        session.flush()
        return endpoint.uuid


def add_field(
    session_factory,
    endpoint_uuid,
    data_path,
    data_section="resBody",
    status_code=200,
    content_type="application/json",
    data_classes=None,
    false_positives=None,
    scanner_identified=None,
    data_tag=None,
) -> str:
    with session_scope(session_factory) as session:
        data_field = DataField(
            api_endpoint_uuid=endpoint_uuid,
            status_code=status_code,
            content_type=content_type,
            data_section=data_section,
            data_path=data_path,
            data_classes=list(data_classes or []),
            false_positives=list(false_positives or []),
            scanner_identified=list(scanner_identified or []),
            data_tag=data_tag,
        )
        session.add(data_field)
        session.flush()
        return data_field.uuid


def add_traces(session_factory, endpoint_uuid, bodies, path="/api/users", start=0) -> list[str]:
    """Store one response trace per body, one second apart."""
    uuids = []
    with session_scope(session_factory) as session:
        for i, body in enumerate(bodies, start=start):
            row = ApiTrace(
                uuid=f"{endpoint_uuid[:8]}-{i:05d}",
                api_endpoint_uuid=endpoint_uuid,
                path=path,
                method="GET",
                response_status=200,
                response_headers=JSON_HEADERS,
                response_body=json.dumps(body),
                created_at=BASE_TIME + timedelta(seconds=i),
            )
            session.add(row)
            uuids.append(row.uuid)
    return uuids


def get_field(session_factory, uuid) -> DataField:
    with session_scope(session_factory) as session:
        return session.get(DataField, uuid)


def get_endpoint(session_factory, uuid) -> ApiEndpoint:
    with session_scope(session_factory) as session:
        return session.get(ApiEndpoint, uuid)
