"""SQLAlchemy models for endpoints, data fields, sampled traces and alerts."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .db import Base
from .errors import ValidationError
from .extractor import field_key
from .models import DataTag, Pair, RiskScore, Trace


def _uuid():
    import uuid
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class ApiEndpoint(Base):
    __tablename__ = "api_endpoint"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False, default="GET")
    host: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    risk_score: Mapped[str] = mapped_column(String(16), nullable=False, default=RiskScore.NONE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    data_fields: Mapped[List["DataField"]] = relationship(
        "DataField", back_populates="endpoint", order_by="DataField.created_at"
    )

    @property
    def risk(self) -> RiskScore:
        return RiskScore(self.risk_score)


class DataField(Base):
    __tablename__ = "data_field"
    __table_args__ = (
        UniqueConstraint(
            "api_endpoint_uuid", "status_code", "content_type", "data_section", "data_path",
            name="uq_data_field_location",
        ),
    )

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    api_endpoint_uuid: Mapped[str] = mapped_column(
        String(36), ForeignKey("api_endpoint.uuid"), nullable=False, index=True
    )
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    data_section: Mapped[str] = mapped_column(String(32), nullable=False)
    data_path: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    # JSON lists are replaced, never mutated in place, so changes are tracked
    data_classes: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    scanner_identified: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    false_positives: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    data_tag: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_nullable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    array_fields: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    endpoint: Mapped["ApiEndpoint"] = relationship("ApiEndpoint", back_populates="data_fields")

    @property
    def key(self) -> str:
        return field_key(self.status_code, self.content_type, self.data_section, self.data_path)

    @property
    def is_pii(self) -> bool:
        return self.data_tag == DataTag.PII.value


class ApiTrace(Base):
    __tablename__ = "api_trace"
    __table_args__ = (Index("ix_api_trace_endpoint_created", "api_endpoint_uuid", "created_at"),)

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    api_endpoint_uuid: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("api_endpoint.uuid"), nullable=True
    )
    path: Mapped[str] = mapped_column(String(2048), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    host: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    request_parameters: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    request_headers: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    request_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_status: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    response_headers: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    response_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def to_trace(self) -> Trace:
        """Convert the row to a Trace.

        Raises:
            ValidationError: If a stored name/value list is malformed.
        """
        return Trace(
            uuid=self.uuid,
            path=self.path,
            method=self.method,
            created_at=self.created_at,
            host=self.host or "",
            request_parameters=_pairs(self.request_parameters, "requestParameters"),
            request_headers=_pairs(self.request_headers, "requestHeaders"),
            request_body=self.request_body,
            response_status=self.response_status,
            response_headers=_pairs(self.response_headers, "responseHeaders"),
            response_body=self.response_body,
        )


def _pairs(raw: Optional[list], column: str) -> List[Pair]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{column} must be a list")
    pairs = []
    for item in raw:
        if not isinstance(item, dict) or "name" not in item:
            raise ValidationError(f"Malformed entry in {column}: {item!r}")
        value = item.get("value")
        pairs.append(Pair(name=str(item["name"]), value="" if value is None else str(value)))
    return pairs


class Alert(Base):
    __tablename__ = "alert"
    __table_args__ = (
        UniqueConstraint("data_field_uuid", "data_class", "type", name="uq_alert_dedup"),
        Index("ix_alert_endpoint", "api_endpoint_uuid"),
    )

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    risk_score: Mapped[str] = mapped_column(String(16), nullable=False)
    api_endpoint_uuid: Mapped[str] = mapped_column(String(36), ForeignKey("api_endpoint.uuid"), nullable=False)
    data_field_uuid: Mapped[str] = mapped_column(String(36), ForeignKey("data_field.uuid"), nullable=False)
    data_class: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    context: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Open")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
