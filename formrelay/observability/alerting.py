import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from formrelay.config import Settings
from formrelay.models.delivery import FAILURE_STATUSES

if TYPE_CHECKING:
    from formrelay.pipeline.log_store import LogStore

logger = logging.getLogger(__name__)

ALERT_WINDOW_HOURS = 1


class AlertMonitor:
    """Raises an alert when the last hour's failures cross a threshold.

    Meant to be called periodically by an external scheduler. After an alert
    fires, further alerts are suppressed for ``ALERT_COOLDOWN_HOURS``.
    """

    def __init__(
        self,
        log_store: "LogStore",
        settings: Settings,
        callback: Callable[[dict], None] | None = None,
        last_sent: datetime | None = None,
    ):
        self.log_store = log_store
        self.settings = settings
        self.callback = callback
        self.last_sent = last_sent
        self._alerts: list[dict] = []

    def hourly_stats(self) -> dict:
        total = self.log_store.count_in_window(ALERT_WINDOW_HOURS)
        failures = self.log_store.count_in_window(ALERT_WINDOW_HOURS, FAILURE_STATUSES)
        rate = round(failures / total * 100, 2) if total else 0.0
        return {"total_requests": total, "errors": failures, "error_rate": rate}

    def in_cooldown(self) -> bool:
        if self.last_sent is None:
            return False
        cooldown = timedelta(hours=self.settings.ALERT_COOLDOWN_HOURS)
        return self.log_store.clock() < self.last_sent + cooldown

    def should_alert(self, stats: dict) -> bool:
        if stats["total_requests"] == 0:
            return False
        return (
            stats["errors"] >= self.settings.ALERT_ERROR_THRESHOLD
            or stats["error_rate"] >= self.settings.ALERT_RATE_THRESHOLD
        )

    def check(self) -> dict | None:
        """Check the last hour and fire an alert if warranted. Returns the alert or None."""
        if not self.settings.ALERTS_ENABLED or self.in_cooldown():
            return None

        stats = self.hourly_stats()
        if not self.should_alert(stats):
            return None

        alert = {
            "type": "delivery_error_rate",
            "total_requests": stats["total_requests"],
            "errors": stats["errors"],
            "error_rate": stats["error_rate"],
            "error_threshold": self.settings.ALERT_ERROR_THRESHOLD,
            "rate_threshold": self.settings.ALERT_RATE_THRESHOLD,
            "message": (
                f"{stats['errors']} of {stats['total_requests']} deliveries failed "
                f"in the last hour ({stats['error_rate']:.2f}%)"
            ),
        }
        self.last_sent = self.log_store.clock()
        self._alerts.append(alert)
        logger.warning("Delivery alert: %s", alert["message"])

        if self.callback:
            self.callback(alert)

        return alert

    def get_alerts(self) -> list[dict]:
        return list(self._alerts)

    def reset(self) -> None:
        self.last_sent = None
        self._alerts.clear()
