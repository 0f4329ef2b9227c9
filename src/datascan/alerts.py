"""Persist sensitive-data alerts with insert-or-ignore semantics."""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .catalog import DataClassCatalog
from .db_models import Alert, DataField
from .models import AlertType, DataSection, RiskScore, Trace

logger = logging.getLogger(__name__)

_DEDUP_COLUMNS = ["data_field_uuid", "data_class", "type"]


def alert_types_for(data_field: DataField) -> list[AlertType]:
    """Alert kinds raised when a class is newly detected on ``data_field``."""
    types = [AlertType.PII_DATA_DETECTED]
    if data_field.data_section == DataSection.REQUEST_QUERY.value:
        types.append(AlertType.QUERY_SENSITIVE_DATA)
    elif data_field.data_section == DataSection.REQUEST_PATH.value:
        types.append(AlertType.PATH_SENSITIVE_DATA)
    return types


def _describe(alert_type: AlertType, data_class: str, data_field: DataField, endpoint_path: str) -> str:
    location = data_field.data_path or data_field.data_section
    if alert_type is AlertType.QUERY_SENSITIVE_DATA:
        return f"Sensitive data of type {data_class} found in query parameter '{location}' of {endpoint_path}."
    if alert_type is AlertType.PATH_SENSITIVE_DATA:
        return f"Sensitive data of type {data_class} found in path parameter '{location}' of {endpoint_path}."
    return (
        f"Sensitive data of type {data_class} detected in field '{location}' "
        f"({data_field.data_section}) of {endpoint_path}."
    )


class AlertEmitter:
    """Builds alert rows for a detection and inserts them, ignoring duplicates.

    Duplicates are identified by (data field, data class, alert type), so
    the same detection re-found on a later cycle or by a racing writer
    never produces a second row.
    """

    def __init__(self, catalog: Optional[DataClassCatalog] = None):
        self.catalog = catalog

    def build(
        self,
        data_field: DataField,
        data_class: str,
        endpoint_uuid: str,
        endpoint_path: str,
        trace: Optional[Trace],
    ) -> list[dict[str, Any]]:
        """Alert row values for one newly detected class."""
        severity = self.catalog.severity_of(data_class) if self.catalog else RiskScore.LOW
        context = {
            "dataSection": data_field.data_section,
            "dataPath": data_field.data_path,
            "statusCode": data_field.status_code,
            "contentType": data_field.content_type,
            "trace": trace.to_dict() if trace else None,
        }
        return [
            {
                "uuid": str(uuid.uuid4()),
                "type": alert_type.value,
                "risk_score": severity.value,
                "api_endpoint_uuid": endpoint_uuid,
                "data_field_uuid": data_field.uuid,
                "data_class": data_class,
                "description": _describe(alert_type, data_class, data_field, endpoint_path),
                "context": context,
                "status": "Open",
            }
            for alert_type in alert_types_for(data_field)
        ]

    def emit(
        self,
        session: Session,
        data_field: DataField,
        data_class: str,
        endpoint_uuid: str,
        endpoint_path: str,
        trace: Optional[Trace],
    ) -> list[dict[str, Any]]:
        """Insert the alerts for one detection.

        Returns:
            Values of the alerts actually inserted; duplicates are skipped
            silently.
        """
        inserted = []
        for values in self.build(data_field, data_class, endpoint_uuid, endpoint_path, trace):
            if self._insert_or_ignore(session, values):
                inserted.append(values)
            else:
                logger.debug(
                    f"Alert already exists for field {data_field.uuid}, "
                    f"class '{data_class}', type '{values['type']}'"
                )
        return inserted

    def _insert_or_ignore(self, session: Session, values: dict[str, Any]) -> bool:
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            module = postgresql if dialect == "postgresql" else sqlite
            stmt = module.insert(Alert).values(**values).on_conflict_do_nothing(index_elements=_DEDUP_COLUMNS)
            result = session.execute(stmt)
            return result.rowcount == 1

        savepoint = session.begin_nested()
        try:
            session.execute(insert(Alert).values(**values))
            savepoint.commit()
            return True
        except IntegrityError:
            savepoint.rollback()
            return False
