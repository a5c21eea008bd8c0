from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from formrelay.models.delivery import FAILURE_STATUSES
from formrelay.models.record import DeliveryRecord

if TYPE_CHECKING:
    from formrelay.pipeline.log_store import LogStore


@dataclass
class DeliveryStatistics:
    """Rolling-window delivery figures for dashboards."""
    window_hours: float
    count: int = 0
    failures: int = 0
    success_rate: float = 0.0  # percent, 0-100
    avg_latency: float = 0.0  # milliseconds
    recent_errors: list[DeliveryRecord] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        if self.count == 0:
            return 0.0
        return round(self.failures / self.count * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_hours": self.window_hours,
            "count": self.count,
            "failures": self.failures,
            "success_rate": self.success_rate,
            "failure_rate": self.failure_rate,
            "avg_latency": self.avg_latency,
            "recent_errors": [r.to_dict() for r in self.recent_errors],
        }


def collect_statistics(
    log_store: "LogStore",
    source_id: int | None = None,
    window_hours: float = 24,
    error_limit: int = 5,
) -> DeliveryStatistics:
    """Compute window statistics from the log store at call time."""
    return DeliveryStatistics(
        window_hours=window_hours,
        count=log_store.count_in_window(window_hours, source_id=source_id),
        failures=log_store.count_in_window(window_hours, FAILURE_STATUSES, source_id=source_id),
        success_rate=log_store.success_rate_in_window(window_hours, source_id=source_id),
        avg_latency=log_store.avg_latency_in_window(window_hours, source_id=source_id),
        recent_errors=log_store.recent_errors(error_limit, source_id=source_id),
    )
