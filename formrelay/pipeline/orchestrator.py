import logging
from typing import Any, NamedTuple

from formrelay.config import Settings
from formrelay.models.delivery import DeliveryOutcome
from formrelay.observability.stats import DeliveryStatistics, collect_statistics
from formrelay.pipeline.deliverer import Deliverer
from formrelay.pipeline.log_store import LogStore
from formrelay.pipeline.redaction import RedactionPolicy

logger = logging.getLogger(__name__)


class SendResult(NamedTuple):
    outcome: DeliveryOutcome
    log_id: int | None


class Orchestrator:
    """Entry point for fresh sends: redact, log, deliver, complete."""

    def __init__(
        self,
        settings: Settings,
        redaction: RedactionPolicy,
        log_store: LogStore,
        deliverer: Deliverer,
    ):
        self.settings = settings
        self.redaction = redaction
        self.log_store = log_store
        self.deliverer = deliverer

    def send(
        self,
        source_id: int,
        endpoint: str,
        method: str,
        payload: Any = None,
        headers: dict[str, Any] | None = None,
        timeout: float | None = None,
        content_type: str = "params",
        retry_of: int | None = None,
    ) -> SendResult:
        """Deliver one request and record it.

        The caller gets the raw, unredacted outcome back; the log only ever
        sees the redacted copy. A missing log id never blocks delivery.
        """
        timeout = self.settings.DEFAULT_TIMEOUT if timeout is None else timeout

        log_id = self.log_store.create(
            source_id,
            endpoint,
            method,
            self.redaction.redact(payload),
            self.redaction.redact_headers(self.deliverer.build_headers(headers, content_type)),
            retry_of=retry_of,
        )

        # ValueError (bad method/body definition) propagates; the record stays pending
        outcome = self.deliverer.execute(
            endpoint,
            method,
            payload=payload,
            headers=headers,
            timeout=timeout,
            content_type=content_type,
        )

        if log_id is not None and not self.log_store.complete(log_id, outcome):
            logger.warning("Delivery record %s could not be completed", log_id)

        if outcome.ok:
            logger.info("Delivered source %s to %s (log %s)", source_id, endpoint, log_id)
        else:
            logger.warning(
                "Delivery for source %s to %s failed: %s (log %s)",
                source_id, endpoint, outcome.error or outcome.status_code, log_id,
            )
        return SendResult(outcome, log_id)

    def statistics(self, source_id: int | None = None, window_hours: float = 24) -> DeliveryStatistics:
        return collect_statistics(self.log_store, source_id=source_id, window_hours=window_hours)
