import json
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from formrelay.models.delivery import DeliveryOutcome
from formrelay.models.record import DeliveryRecord
from formrelay.models.request import OutboundRequest
from formrelay.pipeline.log_store import LogStore
from formrelay.pipeline.orchestrator import Orchestrator
from formrelay.pipeline.redaction import REDACTED
from formrelay.replay.rate_limit import RetryRateLimiter, RetryRejection

logger = logging.getLogger(__name__)


@dataclass
class RetryResult:
    retry_of: int
    accepted: bool
    log_id: int | None = None
    outcome: DeliveryOutcome | None = None
    rejection: RetryRejection | None = None
    reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.accepted and self.outcome is not None and self.outcome.ok

    @classmethod
    def rejected(cls, log_id: int, rejection: RetryRejection, reason: str) -> "RetryResult":
        return cls(retry_of=log_id, accepted=False, rejection=rejection, reason=reason)


@dataclass
class BulkRetryReport:
    results: dict[int, RetryResult] = field(default_factory=dict)

    def add(self, result: RetryResult) -> None:
        self.results[result.retry_of] = result

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results.values() if r.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results.values() if r.accepted and not r.succeeded)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results.values() if not r.accepted)

    @property
    def rate_limited(self) -> bool:
        return any(r.rejection is RetryRejection.RATE_LIMITED for r in self.results.values())


class RetryCoordinator:
    """Replays failed deliveries from their stored snapshots.

    Each retry is a new record linked through ``retry_of``; the original
    record is never touched. Stored snapshots are redacted, so a redacted
    field is replayed as its placeholder, not as the original secret.

    Budget checks and the retry send run under one lock, so concurrent
    retries in this process cannot overspend a budget. Separate processes
    sharing one database are not coordinated.
    """

    def __init__(
        self,
        log_store: LogStore,
        orchestrator: Orchestrator,
        rate_limiter: RetryRateLimiter,
    ):
        self.log_store = log_store
        self.orchestrator = orchestrator
        self.rate_limiter = rate_limiter
        self._lock = threading.Lock()

    def retry(self, log_id: int) -> RetryResult:
        """Retry one record, or explain why it was rejected."""
        with self._lock:
            return self._retry(log_id)

    def _retry(self, log_id: int) -> RetryResult:
        original = self.log_store.get(log_id)
        if original is None:
            return RetryResult.rejected(
                log_id, RetryRejection.NOT_RETRYABLE, f"Log entry {log_id} not found"
            )
        if not original.is_failure:
            return RetryResult.rejected(
                log_id,
                RetryRejection.NOT_RETRYABLE,
                f"Entries with status '{original.status}' cannot be retried",
            )

        rejection = self.rate_limiter.check(log_id)
        if rejection is RetryRejection.NOT_RETRYABLE:
            return RetryResult.rejected(
                log_id,
                rejection,
                f"Retry limit of {self.rate_limiter.max_manual_retries} reached for this entry",
            )
        if rejection is RetryRejection.RATE_LIMITED:
            logger.warning("Hourly retry budget exhausted; rejecting retry of log %s", log_id)
            return RetryResult.rejected(
                log_id,
                rejection,
                f"Hourly retry limit of {self.rate_limiter.max_retries_per_hour} reached",
            )

        request = self.rebuild_request(original)
        if REDACTED in original.request_payload or REDACTED in (original.request_headers or ""):
            logger.warning("Retrying log %s with redacted fields replayed as placeholders", log_id)

        outcome, new_log_id = self.orchestrator.send(
            original.source_id,
            request.endpoint,
            request.method,
            payload=request.payload,
            headers=request.headers,
            content_type=request.content_type,
            retry_of=original.id,
        )
        logger.info(
            "Retried log %s as log %s: %s", log_id, new_log_id, outcome.status.value
        )
        return RetryResult(retry_of=log_id, accepted=True, log_id=new_log_id, outcome=outcome)

    def retry_many(self, log_ids: Iterable[int]) -> BulkRetryReport:
        """Retry several records, skipping the rest once the hourly budget is spent."""
        report = BulkRetryReport()
        for log_id in log_ids:
            if self.rate_limiter.remaining_this_hour() <= 0:
                report.add(RetryResult.rejected(
                    log_id,
                    RetryRejection.RATE_LIMITED,
                    f"Hourly retry limit of {self.rate_limiter.max_retries_per_hour} reached",
                ))
                continue
            report.add(self.retry(log_id))
        return report

    def retry_recent_failures(self, limit: int = 10, source_id: int | None = None) -> BulkRetryReport:
        failed = self.log_store.recent_errors(limit, source_id=source_id)
        return self.retry_many(record.id for record in failed)

    @staticmethod
    def rebuild_request(record: DeliveryRecord) -> OutboundRequest:
        """Reconstruct the outbound request from a stored (redacted) snapshot."""
        headers = _decode_json(record.request_headers)
        if not isinstance(headers, dict):
            headers = {}
        content_type = OutboundRequest.content_type_from_headers(headers)

        payload = record.request_payload or None
        if payload is not None and content_type == "params":
            decoded = _decode_json(payload)
            if isinstance(decoded, dict):
                payload = decoded

        return OutboundRequest(
            endpoint=record.endpoint,
            method=record.method,
            payload=payload,
            headers=headers,
            content_type=content_type,
        )


def _decode_json(raw: str | None):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return None
