"""Operations behind human edits of data-field classifications."""

import logging
from typing import Iterable, Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from .db_models import Alert, ApiEndpoint, DataField
from .models import SENSITIVE_DATA_ALERT_TYPES, RiskScore
from .reconciler import data_tag_for
from .risk import RiskScorer

logger = logging.getLogger(__name__)


def update_endpoint_risk_score(session: Session, endpoint_uuid: str, scorer: RiskScorer) -> Optional[RiskScore]:
    """Recompute an endpoint's risk score from its current fields."""
    endpoint = session.get(ApiEndpoint, endpoint_uuid)
    if endpoint is None:
        return None
    score = scorer.score(endpoint.data_fields)
    if score.value != endpoint.risk_score:
        endpoint.risk_score = score.value
        session.flush()
    return score


def update_data_classes(
    session: Session,
    data_field_uuid: str,
    data_classes: Iterable[str],
    scorer: RiskScorer,
) -> Optional[DataField]:
    """Set a field's classes to exactly what a human chose.

    Classes the human removed become false positives, so the scanner will
    not add them back; classes the human (re-)added stop being false
    positives. The owning endpoint's risk score is updated in the same
    session.

    Returns:
        The updated field, or None if it does not exist.
    """
    data_field = session.get(DataField, data_field_uuid)
    if data_field is None:
        return None

    new_classes = list(dict.fromkeys(data_classes))
    removed = [c for c in data_field.data_classes or [] if c not in new_classes]

    false_positives = [c for c in data_field.false_positives or [] if c not in new_classes]
    false_positives.extend(c for c in removed if c not in false_positives)

    data_field.data_classes = new_classes
    data_field.false_positives = false_positives
    data_field.scanner_identified = [c for c in data_field.scanner_identified or [] if c in new_classes]
    data_field.data_tag = data_tag_for(new_classes)
    session.flush()

    if removed:
        logger.info(f"Marked {removed} as false positives on data field {data_field_uuid}")

    update_endpoint_risk_score(session, data_field.api_endpoint_uuid, scorer)
    return data_field


def clear_sensitive_data(session: Session) -> None:
    """Forget every classification, exclusion, risk score and sensitive-data alert."""
    session.execute(
        update(DataField).values(
            data_classes=[],
            false_positives=[],
            scanner_identified=[],
            data_tag=None,
        )
    )
    session.execute(update(ApiEndpoint).values(risk_score=RiskScore.NONE.value))
    session.execute(delete(Alert).where(Alert.type.in_([t.value for t in SENSITIVE_DATA_ALERT_TYPES])))
    session.flush()
    logger.info("Cleared all sensitive data classifications")
