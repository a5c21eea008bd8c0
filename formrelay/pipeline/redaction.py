"""Redact sensitive fields from payloads and headers before they are stored."""

import json
from collections.abc import Mapping
from typing import Any

from formrelay.config import Settings

REDACTED = "***REDACTED***"

DEFAULT_SENSITIVE_PATTERNS = (
    "password",
    "passwd",
    "secret",
    "token",
    "auth",
    "authorization",
    "bearer",
    "api_key",
    "api-key",
    "apikey",
    "ssn",
    "social_security",
    "credit_card",
    "card_number",
)


class RedactionPolicy:
    """Case-insensitive substring matching of field names against a pattern set.

    Extra patterns are read from ``settings.SENSITIVE_PATTERNS`` on every call,
    so changes made through the settings object apply immediately.
    """

    def __init__(self, settings: Settings | None = None, extra_patterns: tuple[str, ...] = ()):
        self.settings = settings
        self.extra_patterns = extra_patterns

    @property
    def patterns(self) -> tuple[str, ...]:
        configured = self.settings.SENSITIVE_PATTERNS if self.settings is not None else []
        merged: dict[str, None] = {}
        for pattern in (*DEFAULT_SENSITIVE_PATTERNS, *configured, *self.extra_patterns):
            pattern = str(pattern).strip().lower()
            if pattern:
                merged[pattern] = None
        return tuple(merged)

    def is_sensitive(self, name: str) -> bool:
        lowered = str(name).lower()
        return any(pattern in lowered for pattern in self.patterns)

    def redact(self, value: Any) -> Any:
        """Return a redacted copy of ``value``.

        A string holding a JSON object or array is decoded first and the
        decoded structure is returned; any other string is returned as-is.
        """
        if isinstance(value, (str, bytes)):
            decoded = _decode_structured(value)
            if decoded is None:
                return value
            value = decoded
        if isinstance(value, (Mapping, list, tuple)):
            return self._redact_structure(value, self.patterns)
        return value

    def redact_headers(self, headers: Any) -> dict[str, Any]:
        """Redact a flat header map. Anything that is not a mapping yields {}."""
        if not isinstance(headers, Mapping):
            return {}
        patterns = self.patterns
        return {
            str(name): REDACTED if _matches(name, patterns) else value
            for name, value in headers.items()
        }

    def serialize(self, value: Any) -> str:
        """Redact and render for storage: text stays text, structures become JSON."""
        redacted = self.redact(value)
        if redacted is None:
            return ""
        if isinstance(redacted, bytes):
            return redacted.decode("utf-8", errors="replace")
        if isinstance(redacted, str):
            return redacted
        return json.dumps(redacted, default=str)

    def _redact_structure(self, value: Any, patterns: tuple[str, ...]) -> Any:
        if isinstance(value, Mapping):
            out = {}
            for key, item in value.items():
                if _matches(key, patterns):
                    out[key] = REDACTED
                elif isinstance(item, (Mapping, list, tuple)):
                    out[key] = self._redact_structure(item, patterns)
                else:
                    out[key] = item
            return out
        return [
            self._redact_structure(item, patterns) if isinstance(item, (Mapping, list, tuple)) else item
            for item in value
        ]


def _matches(name: Any, patterns: tuple[str, ...]) -> bool:
    lowered = str(name).lower()
    return any(pattern in lowered for pattern in patterns)


def _decode_structured(raw: str | bytes) -> dict | list | None:
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return None
    if isinstance(decoded, (dict, list)):
        return decoded
    return None
