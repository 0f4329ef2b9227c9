"""Forward newly created alerts to a webhook after they are committed."""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

USER_AGENT = "datascan/1.0"


@dataclass
class ForwardResult:
    """Outcome of one forwarding attempt."""

    success: bool
    status_code: int = 0
    retry_count: int = 0
    alert_count: int = 0
    error_message: Optional[str] = None


def build_payload(alerts: list[dict[str, Any]], endpoint_uuid: str) -> dict[str, Any]:
    """Webhook body for a batch of alerts from one endpoint."""
    return {
        "version": "1.0",
        "event": {
            "id": f"evt_{uuid.uuid4().hex[:12]}",
            "type": "sensitive_data_alert",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "endpoint": endpoint_uuid,
        "alerts": [
            {
                "id": a["uuid"],
                "type": a["type"],
                "risk_score": a["risk_score"],
                "data_class": a["data_class"],
                "data_field": a["data_field_uuid"],
                "description": a["description"],
            }
            for a in alerts
        ],
    }


class AlertForwarder:
    """Posts alert batches to a webhook; failures are logged, never raised.

    Forwarding happens only after the endpoint's transaction commits, so a
    receiver never hears about an alert that was rolled back.
    """

    def __init__(
        self,
        webhook_url: str,
        retry_count: int = 2,
        retry_delay: float = 0.5,
        timeout: float = 2.0,
        headers: Optional[dict[str, str]] = None,
        circuit_failure_threshold: int = 5,
        circuit_reset_timeout: float = 60.0,
    ):
        """Initialize the forwarder.

        Args:
            webhook_url: URL to POST alerts to.
            retry_count: Retries after the first failed attempt.
            retry_delay: Delay in seconds before the first retry (doubles each time).
            timeout: Request timeout in seconds.
            headers: Additional headers to include in requests.
            circuit_failure_threshold: Consecutive failed batches before pausing delivery.
            circuit_reset_timeout: Seconds to pause before trying again.
        """
        self.webhook_url = webhook_url
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.headers = headers or {}
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=circuit_failure_threshold,
            reset_timeout=circuit_reset_timeout,
            name="alert_webhook",
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def forward(self, alerts: list[dict[str, Any]], endpoint_uuid: str) -> ForwardResult:
        """Send one endpoint's new alerts to the webhook."""
        if not alerts:
            return ForwardResult(success=True)

        if not self._circuit_breaker.allow_request():
            logger.warning(f"Alert webhook circuit open, dropping {len(alerts)} alert(s) for {endpoint_uuid}")
            return ForwardResult(success=False, alert_count=len(alerts), error_message="Circuit open")

        payload = build_payload(alerts, endpoint_uuid)
        attempt = 0
        last_error: Optional[str] = None
        last_status = 0

        with httpx.Client(timeout=self.timeout) as client:
            while attempt <= self.retry_count:
                try:
                    response = client.post(
                        self.webhook_url,
                        json=payload,
                        headers={
                            "Content-Type": "application/json",
                            "User-Agent": USER_AGENT,
                            **self.headers,
                        },
                    )
                    last_status = response.status_code

                    if 200 <= response.status_code < 300:
                        self._circuit_breaker.record_success()
                        logger.info(
                            "Forwarded %d alert(s) for %s (attempt %d)",
                            len(alerts),
                            endpoint_uuid,
                            attempt + 1,
                        )
                        return ForwardResult(
                            success=True,
                            status_code=response.status_code,
                            retry_count=attempt,
                            alert_count=len(alerts),
                        )

                    last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                    logger.warning(
                        "Alert webhook returned %d (attempt %d/%d)",
                        response.status_code,
                        attempt + 1,
                        self.retry_count + 1,
                    )

                except httpx.TimeoutException as e:
                    last_error = f"Timeout: {e}"
                    logger.warning("Alert webhook timeout (attempt %d/%d)", attempt + 1, self.retry_count + 1)

                except httpx.RequestError as e:
                    last_error = f"Request error: {e}"
                    logger.warning("Alert webhook request error (attempt %d/%d)", attempt + 1, self.retry_count + 1)

                attempt += 1
                if attempt <= self.retry_count and self.retry_delay > 0:
                    time.sleep(self.retry_delay * (2 ** (attempt - 1)))

        self._circuit_breaker.record_failure()
        logger.error("Failed to forward alerts after %d attempts: %s", self.retry_count + 1, last_error)
        return ForwardResult(
            success=False,
            status_code=last_status,
            retry_count=attempt - 1,
            alert_count=len(alerts),
            error_message=last_error,
        )
