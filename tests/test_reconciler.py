"""Tests for merging detections into persisted fields."""

from datetime import datetime

import pytest
from sqlalchemy import func, select

from conftest import add_endpoint, add_field, get_endpoint, get_field
from datascan.aggregator import SampleAggregator
from datascan.alerts import AlertEmitter
from datascan.db import session_scope
from datascan.db_models import Alert, ApiEndpoint
from datascan.models import FieldStats, RiskScore, Trace
from datascan.reconciler import ClassificationReconciler, merge_data_classes
from datascan.risk import RiskScorer

KEY = "200_application/json_resBody.user.ssn"


def exemplar() -> Trace:
    return Trace(uuid="t-1", path="/api/users", method="GET", created_at=datetime(2024, 3, 1))


def stats_for(total: int, **counts) -> FieldStats:
    return FieldStats(
        total_count=total,
        match_counts=dict(counts),
        exemplars={name: exemplar() for name in counts},
    )


@pytest.fixture
def reconciler(email_ssn_catalog):
    return ClassificationReconciler(
        aggregator=SampleAggregator(),
        alert_emitter=AlertEmitter(email_ssn_catalog),
        risk_scorer=RiskScorer(email_ssn_catalog),
    )


def reconcile(session_factory, reconciler, endpoint_uuid, stats):
    with session_scope(session_factory) as session:
        endpoint = session.get(ApiEndpoint, endpoint_uuid)
        return reconciler.reconcile(session, endpoint, stats)


def alert_count(session_factory) -> int:
    with session_scope(session_factory) as session:
        return session.scalar(select(func.count()).select_from(Alert))


class TestDetectedClasses:
    """Tests for the detection threshold."""

    def test_exactly_half_not_detected(self, reconciler):
        """Test a ratio equal to the threshold does not count."""
        assert reconciler.detected_classes(FieldStats(total_count=52, match_counts={"SSN": 26})) == []

    def test_just_over_half_detected(self, reconciler):
        """Test a ratio just above the threshold counts."""
        assert reconciler.detected_classes(FieldStats(total_count=52, match_counts={"SSN": 27})) == ["SSN"]

    def test_large_sample_boundary(self, reconciler):
        """Test the comparison stays strict for large counts."""
        assert reconciler.detected_classes(FieldStats(total_count=10_000_000, match_counts={"X": 5_000_000})) == []
        assert reconciler.detected_classes(FieldStats(total_count=10_000_000, match_counts={"X": 5_000_001})) == [
            "X"
        ]


class TestMergeDataClasses:
    """Tests for merge_data_classes."""

    def test_skips_false_positives_and_existing(self):
        """Test excluded and already present classes are not added."""

        class Field:
            data_classes = ["Email"]
            scanner_identified = []
            false_positives = ["SSN"]

        merged = merge_data_classes(Field(), ["Email", "SSN", "Phone"])

        assert merged.data_classes == ["Email", "Phone"]
        assert merged.scanner_identified == ["Phone"]
        assert merged.added == ["Phone"]
        assert merged.updated

    def test_nothing_new(self):
        """Test merging only known classes reports no update."""

        class Field:
            data_classes = ["Email"]
            scanner_identified = ["Email"]
            false_positives = []

        assert not merge_data_classes(Field(), ["Email"]).updated


class TestClassificationReconciler:
    """Tests for ClassificationReconciler.reconcile."""

    def test_promotes_detected_class(self, session_factory, reconciler):
        """Test a confident detection is persisted with tag, alert and risk score."""
        endpoint_uuid = add_endpoint(session_factory)
        field_uuid = add_field(session_factory, endpoint_uuid, "user.ssn")

        result = reconcile(session_factory, reconciler, endpoint_uuid, {KEY: stats_for(52, SSN=27)})

        data_field = get_field(session_factory, field_uuid)
        assert data_field.data_classes == ["SSN"]
        assert data_field.scanner_identified == ["SSN"]
        assert data_field.data_tag == "PII"
        assert result.fields_updated == 1
        assert len(result.alerts) == 1
        assert result.risk_score == RiskScore.HIGH
        assert result.risk_score_changed
        assert get_endpoint(session_factory, endpoint_uuid).risk_score == "high"

    def test_threshold_not_exceeded(self, session_factory, reconciler):
        """Test exactly half the traces is not enough."""
        endpoint_uuid = add_endpoint(session_factory)
        field_uuid = add_field(session_factory, endpoint_uuid, "user.ssn")

        result = reconcile(session_factory, reconciler, endpoint_uuid, {KEY: stats_for(52, SSN=26)})

        assert get_field(session_factory, field_uuid).data_classes == []
        assert result.fields_updated == 0
        assert result.alerts == []
        assert alert_count(session_factory) == 0

    def test_field_seen_too_rarely(self, session_factory, reconciler):
        """Test a location seen in only 50 traces is not decided on."""
        endpoint_uuid = add_endpoint(session_factory)
        field_uuid = add_field(session_factory, endpoint_uuid, "user.ssn")

        reconcile(session_factory, reconciler, endpoint_uuid, {KEY: stats_for(50, SSN=50)})

        assert get_field(session_factory, field_uuid).data_classes == []

    def test_false_positive_never_added(self, session_factory, reconciler):
        """Test a class a human rejected stays rejected."""
        endpoint_uuid = add_endpoint(session_factory)
        field_uuid = add_field(session_factory, endpoint_uuid, "user.ssn", false_positives=["SSN"])

        result = reconcile(session_factory, reconciler, endpoint_uuid, {KEY: stats_for(60, SSN=60)})

        assert get_field(session_factory, field_uuid).data_classes == []
        assert result.alerts == []

    def test_existing_classes_kept(self, session_factory, reconciler):
        """Test classes are only ever added by the scanner."""
        endpoint_uuid = add_endpoint(session_factory)
        field_uuid = add_field(
            session_factory, endpoint_uuid, "user.ssn", data_classes=["Custom"], data_tag="PII"
        )

        reconcile(session_factory, reconciler, endpoint_uuid, {KEY: stats_for(60, SSN=60)})

        data_field = get_field(session_factory, field_uuid)
        assert data_field.data_classes == ["Custom", "SSN"]
        assert data_field.scanner_identified == ["SSN"]

    def test_unknown_location_ignored(self, session_factory, reconciler):
        """Test statistics for locations without a persisted field change nothing."""
        endpoint_uuid = add_endpoint(session_factory)
        add_field(session_factory, endpoint_uuid, "user.ssn")

        result = reconcile(
            session_factory, reconciler, endpoint_uuid, {"200_application/json_resBody.other": stats_for(60, SSN=60)}
        )

        assert result.fields_updated == 0
        assert result.risk_score == RiskScore.NONE
        assert not result.risk_score_changed

    def test_risk_score_unchanged_not_rewritten(self, session_factory, reconciler):
        """Test an unchanged risk score is reported as unchanged."""
        endpoint_uuid = add_endpoint(session_factory, risk_score="high")
        add_field(session_factory, endpoint_uuid, "user.ssn", data_classes=["SSN"], data_tag="PII")

        result = reconcile(session_factory, reconciler, endpoint_uuid, {})

        assert result.risk_score == RiskScore.HIGH
        assert not result.risk_score_changed
