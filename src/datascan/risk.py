"""Endpoint risk scoring."""

from typing import Iterable, Optional

from .catalog import DataClassCatalog
from .models import RiskScore


class RiskScorer:
    """Derives an endpoint's risk level from the classes on its fields.

    The score is the highest severity among all classes present on any
    field, or NONE when no field carries a class. Classes unknown to the
    catalog (e.g. user-declared names) count as ``unknown_severity``.
    """

    def __init__(
        self,
        catalog: Optional[DataClassCatalog] = None,
        unknown_severity: RiskScore = RiskScore.LOW,
    ):
        self._severities: dict[str, RiskScore] = {}
        if catalog is not None:
            self._severities.update({c.name: c.severity for c in catalog})
        self.unknown_severity = unknown_severity

    def score(self, fields: Iterable) -> RiskScore:
        """Score a set of data fields (anything with a ``data_classes`` list)."""
        highest = RiskScore.NONE
        for data_field in fields:
            for data_class in data_field.data_classes or []:
                severity = self._severities.get(data_class, self.unknown_severity)
                if severity.rank > highest.rank:
                    highest = severity
                    if highest is RiskScore.CRITICAL:
                        return highest
        return highest
