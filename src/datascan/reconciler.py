"""Merge statistically confident detections into persisted field state."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy.orm import Session

from .aggregator import SampleAggregator
from .alerts import AlertEmitter
from .db_models import ApiEndpoint, DataField
from .models import DataTag, FieldStats, RiskScore
from .risk import RiskScorer

logger = logging.getLogger(__name__)

MIN_DETECT_THRESH = 0.5


@dataclass
class MergeResult:
    """New class lists for a field and the classes that were added."""

    data_classes: list[str]
    scanner_identified: list[str]
    added: list[str] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return bool(self.added)


@dataclass
class ReconcileResult:
    """What one endpoint's reconciliation changed."""

    fields_updated: int = 0
    alerts: list[dict[str, Any]] = field(default_factory=list)
    risk_score: RiskScore = RiskScore.NONE
    risk_score_changed: bool = False


def merge_data_classes(data_field: DataField, detected: Iterable[str]) -> MergeResult:
    """Merge detected classes into a field's classes.

    Classes a human marked as false positives are never added, and classes
    already present are not re-added.
    """
    data_classes = list(data_field.data_classes or [])
    scanner_identified = list(data_field.scanner_identified or [])
    false_positives = set(data_field.false_positives or [])
    added = []

    for data_class in detected:
        if data_class in false_positives or data_class in data_classes:
            continue
        data_classes.append(data_class)
        if data_class not in scanner_identified:
            scanner_identified.append(data_class)
        added.append(data_class)

    return MergeResult(data_classes=data_classes, scanner_identified=scanner_identified, added=added)


def data_tag_for(data_classes: list[str]) -> str | None:
    return DataTag.PII.value if data_classes else None


class ClassificationReconciler:
    """Applies aggregated statistics to an endpoint's persisted data fields."""

    def __init__(
        self,
        aggregator: SampleAggregator,
        alert_emitter: AlertEmitter,
        risk_scorer: RiskScorer,
        min_detect_thresh: float = MIN_DETECT_THRESH,
    ):
        self.aggregator = aggregator
        self.alert_emitter = alert_emitter
        self.risk_scorer = risk_scorer
        self.min_detect_thresh = min_detect_thresh

    def detected_classes(self, stats: FieldStats) -> list[str]:
        """Classes whose match ratio is strictly above the detection threshold."""
        return sorted(
            data_class for data_class in stats.match_counts if stats.ratio(data_class) > self.min_detect_thresh
        )

    def reconcile(self, session: Session, endpoint: ApiEndpoint, stats: dict[str, FieldStats]) -> ReconcileResult:
        """Update ``endpoint``'s fields, alerts and risk score inside ``session``.

        Nothing is committed here; the caller owns the transaction.
        """
        result = ReconcileResult()
        data_fields = list(endpoint.data_fields)

        for data_field in data_fields:
            field_stats = stats.get(data_field.key)
            if field_stats is None or not self.aggregator.is_eligible(field_stats):
                continue

            merged = merge_data_classes(data_field, self.detected_classes(field_stats))
            if not merged.updated:
                continue

            data_field.data_classes = merged.data_classes
            data_field.scanner_identified = merged.scanner_identified
            data_field.data_tag = data_tag_for(merged.data_classes)
            result.fields_updated += 1

            for data_class in merged.added:
                logger.info(
                    f"Detected '{data_class}' in {data_field.key} of endpoint {endpoint.uuid} "
                    f"({field_stats.match_counts[data_class]}/{field_stats.total_count} traces)"
                )
                result.alerts.extend(
                    self.alert_emitter.emit(
                        session,
                        data_field,
                        data_class,
                        endpoint.uuid,
                        endpoint.path,
                        field_stats.exemplars.get(data_class),
                    )
                )

        result.risk_score = self.risk_scorer.score(data_fields)
        if result.risk_score.value != endpoint.risk_score:
            endpoint.risk_score = result.risk_score.value
            result.risk_score_changed = True

        session.flush()
        return result
