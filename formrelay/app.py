"""Wires the pipeline components together once per process."""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine

from formrelay.config import Settings
from formrelay.database import create_db_engine, create_session_factory, init_db
from formrelay.observability.alerting import AlertMonitor
from formrelay.observability.export import LogExporter
from formrelay.pipeline.deliverer import Deliverer
from formrelay.pipeline.log_store import LogStore
from formrelay.pipeline.orchestrator import Orchestrator
from formrelay.pipeline.redaction import RedactionPolicy
from formrelay.replay.coordinator import RetryCoordinator
from formrelay.replay.rate_limit import RetryRateLimiter
from formrelay.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    settings: Settings
    engine: Engine
    redaction: RedactionPolicy
    log_store: LogStore
    deliverer: Deliverer
    orchestrator: Orchestrator
    rate_limiter: RetryRateLimiter
    retries: RetryCoordinator
    alerts: AlertMonitor
    exporter: LogExporter

    def purge_expired(self) -> int:
        """Retention sweep using the configured retention period."""
        return self.log_store.purge_older_than(self.settings.LOG_RETENTION_DAYS)

    def close(self) -> None:
        self.deliverer.close()
        self.engine.dispose()


def build_pipeline(
    settings: Settings | None = None,
    deliverer: Deliverer | None = None,
    clock: Callable[[], datetime] = utcnow,
    alert_callback: Callable[[dict], None] | None = None,
) -> Pipeline:
    settings = settings or Settings()
    engine = create_db_engine(settings)
    init_db(engine)
    session_factory = create_session_factory(engine)

    redaction = RedactionPolicy(settings)
    log_store = LogStore(session_factory, settings, redaction=redaction, clock=clock)
    deliverer = deliverer or Deliverer()
    orchestrator = Orchestrator(settings, redaction, log_store, deliverer)
    rate_limiter = RetryRateLimiter(log_store, settings)

    logger.debug("Pipeline ready (database=%s)", engine.url.render_as_string(hide_password=True))
    return Pipeline(
        settings=settings,
        engine=engine,
        redaction=redaction,
        log_store=log_store,
        deliverer=deliverer,
        orchestrator=orchestrator,
        rate_limiter=rate_limiter,
        retries=RetryCoordinator(log_store, orchestrator, rate_limiter),
        alerts=AlertMonitor(log_store, settings, callback=alert_callback),
        exporter=LogExporter(redaction),
    )
