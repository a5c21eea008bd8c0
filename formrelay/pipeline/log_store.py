"""
Delivery log persistence.

Persistence problems never propagate out of ``create``/``complete``: they are
logged and reported as ``None``/``False`` so that delivery always proceeds.
"""
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Select, case, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from formrelay.config import Settings
from formrelay.models.delivery import FAILURE_STATUSES, DeliveryOutcome, DeliveryStatus
from formrelay.models.record import DeliveryRecord
from formrelay.pipeline.redaction import RedactionPolicy
from formrelay.utils.dates import date_range, utcnow

logger = logging.getLogger(__name__)

StatusFilter = DeliveryStatus | str | Iterable[DeliveryStatus | str] | None


@dataclass
class LogFilter:
    """Filters for the admin log viewer."""
    status: StatusFilter = None
    source_id: int | None = None
    search: str = ""
    since: datetime | None = None
    until: datetime | None = None
    retries_only: bool = False
    limit: int = 20
    offset: int = 0

    @classmethod
    def for_date_filter(
        cls,
        filter_name: str,
        start: str = "",
        end: str = "",
        now: datetime | None = None,
        **kwargs,
    ) -> "LogFilter":
        since, until = date_range(filter_name, start, end, now=now)
        return cls(since=since, until=until, **kwargs)


class LogStore:
    """Create, complete, query and purge delivery records."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Settings,
        redaction: RedactionPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.redaction = redaction or RedactionPolicy(settings)
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return self.settings.LOGGING_ENABLED

    # -- writes ------------------------------------------------------------

    def create(
        self,
        source_id: int,
        endpoint: str,
        method: str,
        payload: Any,
        headers: dict[str, Any] | None = None,
        retry_of: int | None = None,
    ) -> int | None:
        """Insert a pending record from an already-redacted request snapshot.

        Returns the new id, or None when logging is disabled or the insert failed.
        """
        if not self.enabled:
            logger.debug("Delivery logging disabled; skipping record for %s", endpoint)
            return None

        record = DeliveryRecord(
            source_id=source_id,
            endpoint=endpoint,
            method=method.upper(),
            status=DeliveryStatus.PENDING.value,
            request_payload=_to_text(payload),
            request_headers=json.dumps(headers or {}, default=str),
            retry_count=0,
            retry_of=retry_of,
            created_at=self.clock(),
        )
        try:
            with self.session_factory() as session:
                session.add(record)
                session.commit()
                return record.id
        except SQLAlchemyError:
            logger.exception("Could not create delivery record for %s", endpoint)
            return None

    def complete(
        self,
        log_id: int | None,
        outcome: DeliveryOutcome,
        retry_count: int | None = None,
    ) -> bool:
        """Write the outcome onto a pending record, exactly once.

        Returns False when the record does not exist or is already complete;
        the first completion always wins.
        """
        if not log_id:
            return False
        try:
            with self.session_factory() as session:
                created_at = session.scalar(
                    select(DeliveryRecord.created_at).where(DeliveryRecord.id == log_id)
                )
                if created_at is None:
                    logger.warning("Cannot complete unknown delivery record %s", log_id)
                    return False

                values: dict[str, Any] = {
                    "execution_time": max((self.clock() - created_at).total_seconds(), 0.0),
                }
                if outcome.is_transport_error:
                    values["status"] = DeliveryStatus.ERROR.value
                    values["error_message"] = outcome.error or "Unknown transport error"
                else:
                    values["status"] = outcome.status.value
                    values["response_code"] = outcome.status_code
                    values["response_payload"] = self.redaction.serialize(outcome.body)
                    values["response_headers"] = json.dumps(
                        self.redaction.redact_headers(outcome.headers), default=str
                    )
                if retry_count is not None:
                    values["retry_count"] = retry_count

                # Compare-and-set on pending makes racing completions safe
                result = session.execute(
                    update(DeliveryRecord)
                    .where(
                        DeliveryRecord.id == log_id,
                        DeliveryRecord.status == DeliveryStatus.PENDING.value,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                updated = result.rowcount
                session.commit()
        except SQLAlchemyError:
            logger.exception("Could not complete delivery record %s", log_id)
            return False

        if updated != 1:
            logger.info("Delivery record %s was already completed; ignoring", log_id)
            return False
        return True

    def purge_older_than(self, days: int) -> int:
        """Delete records created more than ``days`` days ago."""
        cutoff = self.clock() - timedelta(days=days)
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(DeliveryRecord)
                    .where(DeliveryRecord.created_at < cutoff)
                    .execution_options(synchronize_session=False)
                )
                deleted = result.rowcount
                session.commit()
        except SQLAlchemyError:
            logger.exception("Could not purge delivery records older than %s days", days)
            return 0
        logger.info("Purged %s delivery records older than %s days", deleted, days)
        return deleted

    def delete(self, log_ids: Iterable[int]) -> int:
        ids = list(log_ids)
        if not ids:
            return 0
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(DeliveryRecord)
                    .where(DeliveryRecord.id.in_(ids))
                    .execution_options(synchronize_session=False)
                )
                deleted = result.rowcount
                session.commit()
        except SQLAlchemyError:
            logger.exception("Could not delete delivery records %s", ids)
            return 0
        return deleted

    # -- reads -------------------------------------------------------------

    def get(self, log_id: int) -> DeliveryRecord | None:
        with self.session_factory() as session:
            return session.get(DeliveryRecord, log_id)

    def list_recent(self, source_id: int | None, limit: int = 10) -> list[DeliveryRecord]:
        """Most recent records first. ``source_id=None`` lists every source."""
        stmt = self._newest_first(select(DeliveryRecord)).limit(limit)
        if source_id is not None:
            stmt = stmt.where(DeliveryRecord.source_id == source_id)
        return self._all(stmt)

    def recent_errors(self, limit: int = 10, source_id: int | None = None) -> list[DeliveryRecord]:
        stmt = (
            self._newest_first(select(DeliveryRecord))
            .where(DeliveryRecord.status.in_(_status_values(FAILURE_STATUSES)))
            .limit(limit)
        )
        if source_id is not None:
            stmt = stmt.where(DeliveryRecord.source_id == source_id)
        return self._all(stmt)

    def count_in_window(
        self,
        hours: float,
        status_filter: StatusFilter = None,
        source_id: int | None = None,
        retries_only: bool = False,
    ) -> int:
        stmt = select(func.count(DeliveryRecord.id)).where(
            DeliveryRecord.created_at >= self._window_start(hours)
        )
        stmt = _apply_filters(stmt, status_filter, source_id, retries_only)
        with self.session_factory() as session:
            return session.scalar(stmt) or 0

    def success_rate_in_window(self, hours: float, source_id: int | None = None) -> float:
        """Percentage of records in the window that succeeded; 0.0 when empty."""
        total = self.count_in_window(hours, source_id=source_id)
        if total == 0:
            return 0.0
        successes = self.count_in_window(hours, DeliveryStatus.SUCCESS, source_id=source_id)
        return round(successes / total * 100, 2)

    def avg_latency_in_window(self, hours: float, source_id: int | None = None) -> float:
        """Mean execution time of completed records, in milliseconds."""
        stmt = select(func.avg(DeliveryRecord.execution_time)).where(
            DeliveryRecord.created_at >= self._window_start(hours),
            DeliveryRecord.execution_time.is_not(None),
        )
        if source_id is not None:
            stmt = stmt.where(DeliveryRecord.source_id == source_id)
        with self.session_factory() as session:
            avg_seconds = session.scalar(stmt)
        if avg_seconds is None:
            return 0.0
        return round(float(avg_seconds) * 1000, 2)

    def count_retries_of(self, log_id: int) -> int:
        stmt = select(func.count(DeliveryRecord.id)).where(DeliveryRecord.retry_of == log_id)
        with self.session_factory() as session:
            return session.scalar(stmt) or 0

    def query(self, filters: LogFilter) -> list[DeliveryRecord]:
        stmt = self._filtered(select(DeliveryRecord), filters)
        stmt = self._newest_first(stmt).limit(filters.limit).offset(filters.offset)
        return self._all(stmt)

    def count(self, filters: LogFilter) -> int:
        stmt = self._filtered(select(func.count(DeliveryRecord.id)), filters)
        with self.session_factory() as session:
            return session.scalar(stmt) or 0

    def totals(self, source_id: int | None = None) -> dict[str, Any]:
        """Lifetime counters for one source, or for all sources."""
        succeeded = DeliveryRecord.status == DeliveryStatus.SUCCESS.value
        failed = DeliveryRecord.status.in_(_status_values(FAILURE_STATUSES))
        stmt = select(
            func.count(DeliveryRecord.id),
            func.sum(case((succeeded, 1), else_=0)),
            func.sum(case((failed, 1), else_=0)),
            func.avg(DeliveryRecord.execution_time),
            func.max(DeliveryRecord.retry_count + DeliveryRecord.retries_issued),
        )
        if source_id is not None:
            stmt = stmt.where(DeliveryRecord.source_id == source_id)
        with self.session_factory() as session:
            total, successful, failures, avg_time, max_retries = session.execute(stmt).one()
        return {
            "total_requests": total or 0,
            "successful_requests": successful or 0,
            "failed_requests": failures or 0,
            "avg_execution_time": float(avg_time) if avg_time is not None else 0.0,
            "max_retries": max_retries or 0,
        }

    # -- helpers -----------------------------------------------------------

    def _window_start(self, hours: float) -> datetime:
        return self.clock() - timedelta(hours=hours)

    def _all(self, stmt: Select) -> list[DeliveryRecord]:
        with self.session_factory() as session:
            return list(session.scalars(stmt).all())

    @staticmethod
    def _newest_first(stmt: Select) -> Select:
        return stmt.order_by(DeliveryRecord.created_at.desc(), DeliveryRecord.id.desc())

    @staticmethod
    def _filtered(stmt: Select, filters: LogFilter) -> Select:
        stmt = _apply_filters(stmt, filters.status, filters.source_id, filters.retries_only)
        if filters.since is not None:
            stmt = stmt.where(DeliveryRecord.created_at >= filters.since)
        if filters.until is not None:
            stmt = stmt.where(DeliveryRecord.created_at < filters.until)
        if filters.search:
            term = f"%{filters.search}%"
            stmt = stmt.where(
                or_(
                    DeliveryRecord.endpoint.ilike(term),
                    DeliveryRecord.error_message.ilike(term),
                )
            )
        return stmt


def _apply_filters(
    stmt: Select,
    status_filter: StatusFilter,
    source_id: int | None,
    retries_only: bool,
) -> Select:
    if status_filter is not None:
        stmt = stmt.where(DeliveryRecord.status.in_(_status_values(status_filter)))
    if source_id is not None:
        stmt = stmt.where(DeliveryRecord.source_id == source_id)
    if retries_only:
        stmt = stmt.where(DeliveryRecord.retry_of.is_not(None))
    return stmt


def _status_values(statuses: StatusFilter) -> list[str]:
    if isinstance(statuses, (DeliveryStatus, str)):
        statuses = [statuses]
    return [DeliveryStatus(s).value for s in statuses]


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)
