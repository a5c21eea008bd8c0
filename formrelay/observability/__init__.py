from .stats import DeliveryStatistics, collect_statistics
from .alerting import AlertMonitor
from .export import LogExporter

__all__ = [
    "DeliveryStatistics", "collect_statistics",
    "AlertMonitor",
    "LogExporter",
]
