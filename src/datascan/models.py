"""Data models shared across the detection pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class DataTag(Enum):
    """Markers attached to a data field."""

    PII = "PII"


class RiskScore(Enum):
    """Endpoint risk levels, ordered from least to most severe."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    @classmethod
    def from_str(cls, value: str) -> "RiskScore":
        """Parse a severity string such as "HIGH" or "high"."""
        try:
            return cls(value.lower())
        except (AttributeError, ValueError):
            raise ValueError(f"Unknown risk level: {value!r}") from None


_RISK_ORDER = [
    RiskScore.NONE,
    RiskScore.LOW,
    RiskScore.MEDIUM,
    RiskScore.HIGH,
    RiskScore.CRITICAL,
]


class DataSection(Enum):
    """Request/response compartments a field can live in."""

    REQUEST_PATH = "reqParams"
    REQUEST_QUERY = "reqQuery"
    REQUEST_HEADER = "reqHeaders"
    REQUEST_BODY = "reqBody"
    RESPONSE_HEADER = "resHeaders"
    RESPONSE_BODY = "resBody"


class AlertType(Enum):
    """Kinds of sensitive-data alerts."""

    PII_DATA_DETECTED = "PII Data Detected"
    QUERY_SENSITIVE_DATA = "Sensitive Data in Query Params"
    PATH_SENSITIVE_DATA = "Sensitive Data in Path Params"


SENSITIVE_DATA_ALERT_TYPES = (
    AlertType.PII_DATA_DETECTED,
    AlertType.QUERY_SENSITIVE_DATA,
    AlertType.PATH_SENSITIVE_DATA,
)


@dataclass
class Pair:
    """A name/value pair from headers or query parameters."""

    name: str
    value: str


@dataclass
class Trace:
    """One sampled request/response pair."""

    uuid: str
    path: str
    method: str
    created_at: datetime
    host: str = ""
    request_parameters: list[Pair] = field(default_factory=list)
    request_headers: list[Pair] = field(default_factory=list)
    request_body: Optional[str] = None
    response_status: int = 200
    response_headers: list[Pair] = field(default_factory=list)
    response_body: Optional[str] = None

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Stable processing order: oldest first, uuid breaks ties."""
        return (self.created_at, self.uuid)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "uuid": self.uuid,
            "path": self.path,
            "method": self.method,
            "createdAt": self.created_at.isoformat(),
            "host": self.host,
            "requestParameters": [{"name": p.name, "value": p.value} for p in self.request_parameters],
            "requestHeaders": [{"name": p.name, "value": p.value} for p in self.request_headers],
            "requestBody": self.request_body,
            "responseStatus": self.response_status,
            "responseHeaders": [{"name": p.name, "value": p.value} for p in self.response_headers],
            "responseBody": self.response_body,
        }


@dataclass
class FieldStats:
    """Occurrence statistics for one field location across a sample."""

    total_count: int = 0
    match_counts: dict[str, int] = field(default_factory=dict)
    exemplars: dict[str, Trace] = field(default_factory=dict)

    def ratio(self, data_class: str) -> float:
        if not self.total_count:
            return 0.0
        return self.match_counts.get(data_class, 0) / self.total_count


@dataclass
class EndpointResult:
    """Outcome of one endpoint's detection pass."""

    endpoint_uuid: str
    path: str
    analyzed: bool = False
    trace_count: int = 0
    fields_updated: int = 0
    alerts_created: int = 0
    risk_score: Optional[RiskScore] = None
    risk_score_changed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "endpoint_uuid": self.endpoint_uuid,
            "path": self.path,
            "analyzed": self.analyzed,
            "trace_count": self.trace_count,
            "fields_updated": self.fields_updated,
            "alerts_created": self.alerts_created,
            "risk_score": self.risk_score.value if self.risk_score else None,
            "risk_score_changed": self.risk_score_changed,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Aggregate result of one pipeline invocation."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    endpoints: list[EndpointResult] = field(default_factory=list)

    @property
    def analyzed_count(self) -> int:
        return sum(1 for e in self.endpoints if e.analyzed)

    @property
    def skipped_count(self) -> int:
        return sum(1 for e in self.endpoints if not e.analyzed and e.error is None)

    @property
    def failed_count(self) -> int:
        return sum(1 for e in self.endpoints if e.error is not None)

    @property
    def fields_updated(self) -> int:
        return sum(e.fields_updated for e in self.endpoints)

    @property
    def alerts_created(self) -> int:
        return sum(e.alerts_created for e in self.endpoints)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "summary": {
                "endpoints": len(self.endpoints),
                "analyzed": self.analyzed_count,
                "skipped": self.skipped_count,
                "failed": self.failed_count,
                "fields_updated": self.fields_updated,
                "alerts_created": self.alerts_created,
            },
            "endpoints": [e.to_dict() for e in self.endpoints],
        }
