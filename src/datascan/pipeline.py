"""Scheduled sensitive-data detection over every endpoint."""

import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .aggregator import SampleAggregator
from .alerts import AlertEmitter
from .catalog import DataClassCatalog, load_data_classes
from .config import ScanConfig
from .db import create_db_engine, create_session_factory, session_scope
from .db_models import ApiEndpoint
from .errors import DetectionError, TransientStoreError
from .extractor import FieldPathExtractor
from .models import EndpointResult, RunSummary
from .reconciler import ClassificationReconciler, ReconcileResult
from .risk import RiskScorer
from .stores import SqlTraceStore, TraceStore
from .transaction import in_transaction
from .webhook import AlertForwarder

logger = logging.getLogger(__name__)


class PipelineDriver:
    """Runs detection for all endpoints, isolating each endpoint's failures.

    One endpoint's work reads its trace sample, classifies every trace,
    aggregates the statistics and then applies field updates, alert inserts
    and the risk-score update in a single transaction. A failing endpoint
    is logged and skipped; only failing to enumerate endpoints or to load
    the catalog aborts the run.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        trace_store: TraceStore,
        catalog_loader: Callable[[], DataClassCatalog],
        config: Optional[ScanConfig] = None,
        forwarder: Optional[AlertForwarder] = None,
    ):
        self.session_factory = session_factory
        self.trace_store = trace_store
        self.catalog_loader = catalog_loader
        self.config = config or ScanConfig()
        self.forwarder = forwarder

    def run(self) -> RunSummary:
        """Run one detection pass over every endpoint.

        Raises:
            DetectionError: If endpoints cannot be listed or the catalog cannot be loaded.
        """
        summary = RunSummary(started_at=datetime.now(timezone.utc))

        try:
            endpoints = self._list_endpoints()
            catalog = self.catalog_loader()
        except Exception as e:
            logger.exception("Encountered error while detecting sensitive data")
            if isinstance(e, DetectionError):
                raise
            raise DetectionError(f"Detection run aborted: {e}") from e

        logger.debug(f"Loaded {len(catalog)} data classes: {', '.join(catalog.names)}")
        extractor = FieldPathExtractor(catalog, max_depth=self.config.max_path_depth)
        aggregator = SampleAggregator(self.config.min_analyze_traces)
        reconciler = ClassificationReconciler(
            aggregator=aggregator,
            alert_emitter=AlertEmitter(catalog),
            risk_scorer=RiskScorer(catalog),
            min_detect_thresh=self.config.min_detect_thresh,
        )
        detect = functools.partial(self._detect_endpoint_safe, extractor=extractor, reconciler=reconciler)

        if self.config.max_workers > 1 and len(endpoints) > 1 and self._supports_parallel():
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                summary.endpoints = list(pool.map(lambda ep: detect(*ep), endpoints))
        else:
            summary.endpoints = [detect(uuid, path) for uuid, path in endpoints]

        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Sensitive data detection finished: {summary.analyzed_count} analyzed, "
            f"{summary.skipped_count} skipped, {summary.failed_count} failed, "
            f"{summary.fields_updated} fields updated, {summary.alerts_created} alerts created"
        )
        return summary

    def _supports_parallel(self) -> bool:
        bind = self.session_factory.kw.get("bind")
        if isinstance(getattr(bind, "pool", None), StaticPool):
            logger.warning("Engine shares a single connection, analyzing endpoints serially")
            return False
        return True

    def _list_endpoints(self) -> list[tuple[str, str]]:
        try:
            with session_scope(self.session_factory) as session:
                rows = session.execute(select(ApiEndpoint.uuid, ApiEndpoint.path).order_by(ApiEndpoint.uuid))
                return [(row.uuid, row.path) for row in rows]
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to list endpoints: {e}") from e

    def _detect_endpoint_safe(
        self,
        endpoint_uuid: str,
        endpoint_path: str,
        extractor: FieldPathExtractor,
        reconciler: ClassificationReconciler,
    ) -> EndpointResult:
        try:
            return self.detect_endpoint(endpoint_uuid, endpoint_path, extractor, reconciler)
        except Exception as e:
            logger.exception(f"Encountered error while detecting sensitive data for endpoint {endpoint_uuid}")
            return EndpointResult(endpoint_uuid=endpoint_uuid, path=endpoint_path, error=str(e))

    def detect_endpoint(
        self,
        endpoint_uuid: str,
        endpoint_path: str,
        extractor: FieldPathExtractor,
        reconciler: ClassificationReconciler,
    ) -> EndpointResult:
        """Analyze one endpoint and apply the outcome atomically."""
        result = EndpointResult(endpoint_uuid=endpoint_uuid, path=endpoint_path)

        traces = self.trace_store.read_recent_traces(endpoint_uuid, self.config.max_sample_traces)
        result.trace_count = len(traces)
        if not reconciler.aggregator.has_enough_traces(len(traces)):
            logger.debug(f"Skipping endpoint {endpoint_uuid}: only {len(traces)} readable traces")
            return result

        # Oldest first, so the exemplar kept per class is the most recent trace showing it
        traces = sorted(traces, key=lambda t: t.sort_key)
        stats = reconciler.aggregator.aggregate((trace, extractor.extract(trace, endpoint_path)) for trace in traces)

        def apply(session: Session) -> Optional[ReconcileResult]:
            endpoint = session.get(ApiEndpoint, endpoint_uuid, with_for_update=True)
            if endpoint is None:
                logger.info(f"Endpoint {endpoint_uuid} disappeared before reconciliation")
                return None
            return reconciler.reconcile(session, endpoint, stats)

        try:
            reconciled = in_transaction(
                self.session_factory,
                apply,
                max_attempts=self.config.max_conflict_retries,
                name=f"endpoint {endpoint_uuid}",
            )
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to persist detection for endpoint {endpoint_uuid}: {e}") from e

        if reconciled is None:
            return result

        result.analyzed = True
        result.fields_updated = reconciled.fields_updated
        result.alerts_created = len(reconciled.alerts)
        result.risk_score = reconciled.risk_score
        result.risk_score_changed = reconciled.risk_score_changed

        if self.forwarder is not None and reconciled.alerts:
            self.forwarder.forward(reconciled.alerts, endpoint_uuid)

        return result


def build_driver(config: ScanConfig) -> PipelineDriver:
    """Wire a driver against the configured database and catalog."""
    engine = create_db_engine(config.database_url, isolation_level=config.isolation_level)
    session_factory = create_session_factory(engine)

    forwarder = None
    if config.webhook_url:
        forwarder = AlertForwarder(
            webhook_url=config.webhook_url,
            retry_count=config.webhook_retry_count,
            timeout=config.webhook_timeout,
            headers=config.webhook_headers,
        )

    return PipelineDriver(
        session_factory=session_factory,
        trace_store=SqlTraceStore(session_factory),
        catalog_loader=functools.partial(
            load_data_classes,
            config.data_classes_file,
            config.disabled_data_classes,
        ),
        config=config,
        forwarder=forwarder,
    )


def detect_sensitive_data(config: Optional[ScanConfig] = None) -> RunSummary:
    """Entry point for the external scheduler: one full detection run.

    Raises:
        ValueError: If the configuration is invalid.
        DetectionError: If the run aborts.
    """
    config = config or ScanConfig.from_dict({})
    config.validate()
    return build_driver(config).run()
