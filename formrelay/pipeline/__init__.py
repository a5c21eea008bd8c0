from .redaction import DEFAULT_SENSITIVE_PATTERNS, REDACTED, RedactionPolicy
from .deliverer import Deliverer, classify_status
from .log_store import LogFilter, LogStore
from .orchestrator import Orchestrator, SendResult

__all__ = [
    "RedactionPolicy", "REDACTED", "DEFAULT_SENSITIVE_PATTERNS",
    "Deliverer", "classify_status",
    "LogStore", "LogFilter",
    "Orchestrator", "SendResult",
]
