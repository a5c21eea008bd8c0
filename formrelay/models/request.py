from dataclasses import dataclass, field
from typing import Any


CONTENT_TYPES = ("params", "json", "xml", "raw")


@dataclass
class OutboundRequest:
    endpoint: str
    method: str
    payload: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    content_type: str = "params"  # "params", "json", "xml" or "raw"
    timeout: float | None = None

    @classmethod
    def content_type_from_headers(cls, headers: dict[str, Any] | None) -> str:
        """Pick the body encoding from a Content-Type header (case-insensitive name)."""
        for name, value in (headers or {}).items():
            if str(name).lower() != "content-type":
                continue
            value = str(value).lower()
            if "application/json" in value:
                return "json"
            if "text/xml" in value or "application/xml" in value:
                return "xml"
            break
        return "params"
