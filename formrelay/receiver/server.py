import json
import threading
import time
from collections import deque
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Self
from urllib.parse import parse_qs, urlsplit


class _EndpointHandler(BaseHTTPRequestHandler):
    """Records every request and answers with the configured response."""

    def _handle(self):
        content_length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(content_length) if content_length else b""
        body = raw.decode("utf-8", errors="replace")

        server_config = self.server.config  # type: ignore[attr-defined]

        if server_config["response_delay"] > 0:
            time.sleep(server_config["response_delay"])

        parts = urlsplit(self.path)
        content_type = self.headers.get("Content-Type", "")
        parsed_json = None
        form = {}
        if "json" in content_type:
            try:
                parsed_json = json.loads(body)
            except (json.JSONDecodeError, ValueError):
                parsed_json = None
        elif "x-www-form-urlencoded" in content_type:
            form = {k: v[0] if len(v) == 1 else v for k, v in parse_qs(body).items()}

        with server_config["lock"]:
            server_config["received"].append({
                "method": self.command,
                "path": parts.path,
                "query": {k: v[0] if len(v) == 1 else v for k, v in parse_qs(parts.query).items()},
                "headers": dict(self.headers),
                "body": body,
                "json": parsed_json,
                "form": form,
            })
            if server_config["code_sequence"]:
                code = server_config["code_sequence"].popleft()
            else:
                code = server_config["response_code"]

        payload = server_config["response_body"]
        if payload is None:
            payload = {"status": "ok"} if 200 <= code < 300 else {"error": f"HTTP {code}"}
        data = payload if isinstance(payload, str) else json.dumps(payload)

        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        for name, value in server_config["response_headers"].items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(data.encode())))
        self.end_headers()
        self.wfile.write(data.encode())

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_PATCH = _handle
    do_DELETE = _handle

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class _StubHTTPServer(ThreadingHTTPServer):
    request_queue_size = 64
    daemon_threads = True


class StubEndpointServer:
    """Configurable local HTTP endpoint standing in for a third-party API."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        self._host = host
        self._port = port
        self._config = {
            "response_code": 200,
            "code_sequence": deque(),
            "response_delay": 0,
            "response_body": None,
            "response_headers": {},
            "received": [],
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def set_response_code(self, code: int) -> Self:
        self._config["response_code"] = code
        return self

    def set_response_sequence(self, codes: list[int]) -> Self:
        """Answer with these codes in order, then fall back to the response code."""
        with self._config["lock"]:
            self._config["code_sequence"] = deque(codes)
        return self

    def set_response_delay(self, seconds: float) -> Self:
        self._config["response_delay"] = seconds
        return self

    def set_response_body(self, body: dict | str | None) -> Self:
        self._config["response_body"] = body
        return self

    def set_response_headers(self, headers: dict[str, str]) -> Self:
        self._config["response_headers"] = dict(headers)
        return self

    def start(self) -> None:
        self._server = _StubHTTPServer((self._host, self._port), _EndpointHandler)
        self._server.config = self._config  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/api/leads"

    @property
    def port(self) -> int:
        return self._port

    def get_received(self) -> list[dict[str, Any]]:
        with self._config["lock"]:
            return list(self._config["received"])

    def get_request_count(self) -> int:
        with self._config["lock"]:
            return len(self._config["received"])

    def last_request(self) -> dict[str, Any] | None:
        with self._config["lock"]:
            received = self._config["received"]
            return received[-1] if received else None

    def clear(self) -> None:
        with self._config["lock"]:
            self._config["received"].clear()
