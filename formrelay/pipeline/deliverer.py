import json
import logging
import threading
import time
from collections.abc import Mapping
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict

from formrelay.models.delivery import DeliveryOutcome, DeliveryStatus
from formrelay.models.request import CONTENT_TYPES, OutboundRequest

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})
DEFAULT_TIMEOUT = 30.0
MAX_REDIRECTS = 5


def classify_status(status_code: int) -> DeliveryStatus:
    """Map an HTTP status code to a delivery status."""
    if 200 <= status_code < 300:
        return DeliveryStatus.SUCCESS
    if 400 <= status_code < 500:
        return DeliveryStatus.CLIENT_ERROR
    if 500 <= status_code < 600:
        return DeliveryStatus.SERVER_ERROR
    return DeliveryStatus.UNKNOWN


class Deliverer:
    """Executes one HTTP call per request and reports a classified outcome.

    Never retries and never writes audit records; both are the caller's job.
    Each thread gets its own ``requests.Session`` unless one is injected, in
    which case the caller guarantees it is not shared across threads.
    """

    def __init__(self, session: requests.Session | None = None, user_agent: str = "formrelay"):
        self.user_agent = user_agent
        self._injected = session
        if session is not None:
            session.max_redirects = MAX_REDIRECTS
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._injected is not None:
            return self._injected
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.max_redirects = MAX_REDIRECTS
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def execute(
        self,
        endpoint: str,
        method: str,
        payload: Any = None,
        headers: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        content_type: str = "params",
    ) -> DeliveryOutcome:
        """Deliver once. Raises ValueError only for a malformed request definition."""
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        if content_type not in CONTENT_TYPES:
            raise ValueError(f"Unsupported content type: {content_type}")
        timeout = DEFAULT_TIMEOUT if timeout is None else timeout

        request_headers = self.build_headers(headers, content_type)
        body_kwargs = self._encode_body(method, payload, content_type)

        start = time.monotonic()
        status_code = None
        body = ""
        response_headers: dict[str, str] = {}
        error = None

        try:
            resp = self.session.request(
                method,
                endpoint,
                headers=request_headers,
                timeout=timeout,
                **body_kwargs,
            )
            status_code = resp.status_code
            body = resp.text
            response_headers = dict(resp.headers)
        except requests.exceptions.Timeout:
            error = f"Request timed out after {timeout}s"
        except requests.exceptions.SSLError as e:
            error = f"TLS handshake failed: {e}"
        except requests.exceptions.ConnectionError as e:
            error = f"Connection failed: {e}"
        except requests.exceptions.RequestException as e:
            error = str(e) or e.__class__.__name__

        elapsed_ms = (time.monotonic() - start) * 1000

        if status_code is None:
            outcome = DeliveryOutcome(status=DeliveryStatus.ERROR, error=error, elapsed_ms=elapsed_ms)
        else:
            outcome = DeliveryOutcome(
                status=classify_status(status_code),
                status_code=status_code,
                body=body,
                headers=response_headers,
                elapsed_ms=elapsed_ms,
            )

        logger.debug(
            "%s %s -> %s (%s) in %.1fms",
            method, endpoint, outcome.status.value, status_code or error, elapsed_ms,
        )
        return outcome

    def send(self, request: OutboundRequest) -> DeliveryOutcome:
        return self.execute(
            request.endpoint,
            request.method,
            payload=request.payload,
            headers=request.headers,
            timeout=request.timeout,
            content_type=request.content_type,
        )

    def close(self) -> None:
        if self._injected is not None:
            self._injected.close()
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def build_headers(
        self,
        headers: Mapping[str, Any] | None,
        content_type: str = "params",
    ) -> dict[str, str]:
        """The exact header set ``execute`` sends for these inputs."""
        merged = CaseInsensitiveDict({"User-Agent": self.user_agent})
        merged.update({str(k): str(v) for k, v in (headers or {}).items()})
        if content_type == "json":
            merged["Content-Type"] = "application/json"
        elif content_type == "xml":
            merged["Content-Type"] = "text/xml"
        return dict(merged.items())

    @staticmethod
    def _encode_body(method: str, payload: Any, content_type: str) -> dict[str, Any]:
        if content_type == "json":
            if payload is None:
                return {}
            if isinstance(payload, (str, bytes)):
                try:
                    json.loads(payload)
                except (json.JSONDecodeError, ValueError) as e:
                    raise ValueError(f"Invalid JSON body: {e}") from e
                return {"data": payload}
            return {"data": json.dumps(payload, default=str)}

        if content_type == "xml":
            if payload is None:
                return {}
            if not isinstance(payload, (str, bytes)):
                raise ValueError("XML bodies must be given as a string")
            return {"data": payload}

        if payload is None:
            return {}

        if content_type == "raw":
            return {"data": payload}

        # params: query string for GET, form body otherwise
        if method == "GET":
            if isinstance(payload, Mapping):
                return {"params": dict(payload)}
            return {}
        if isinstance(payload, Mapping):
            return {"data": dict(payload)}
        return {"data": payload}
