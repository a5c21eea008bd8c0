import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    ERROR = "error"  # transport failure, no HTTP response
    UNKNOWN = "unknown"


# Statuses a record may be retried from
FAILURE_STATUSES = frozenset({
    DeliveryStatus.ERROR,
    DeliveryStatus.CLIENT_ERROR,
    DeliveryStatus.SERVER_ERROR,
})


@dataclass
class DeliveryOutcome:
    """Result of exactly one call against an external endpoint.

    Either an HTTP response was obtained (``status_code`` set) or the call
    failed in transport (``error`` set), never both.
    """

    status: DeliveryStatus
    status_code: int | None = None
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.SUCCESS

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None

    def json(self) -> Any:
        """Decode the response body, or None when it is not JSON."""
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, ValueError):
            return None
