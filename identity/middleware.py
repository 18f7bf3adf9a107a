import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

# Per-request correlation IDs, read by the log filter in logging_config.
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="-")
span_id_var: ContextVar[str] = ContextVar("span_id", default="-")

# Inbound trace IDs are echoed into logs and headers, so keep them plain.
_TRACE_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def new_id() -> str:
    return uuid.uuid4().hex


def _inbound_trace_id(scope: Scope) -> str | None:
    for name, value in scope.get("headers", []):
        if name == b"x-trace-id":
            candidate = value.decode("latin-1")
            return candidate if _TRACE_ID_RE.match(candidate) else None
    return None


# ---------------------------------------------------------------------------
# Middleware (pure ASGI; ContextVar values set here are visible downstream)
# ---------------------------------------------------------------------------

class RequestLoggingMiddleware:
    """
    Pure ASGI middleware that opens a trace span for each HTTP request.

    A caller-supplied ``X-Trace-ID`` is kept, otherwise a new one is minted;
    every request gets a fresh span ID.  Both are returned as ``X-Trace-ID``
    / ``X-Span-ID`` headers and stamped on every log record emitted while
    the request runs.  One line per request is logged (method, path, status,
    duration) and ``X-Response-Time-Ms`` is added to the response.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        trace_id = _inbound_trace_id(scope) or new_id()
        span_id = new_id()
        trace_token = trace_id_var.set(trace_id)
        span_token = span_id_var.set(span_id)

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-trace-id", trace_id.encode()))
                headers.append((b"x-span-id", span_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            level = logging.WARNING if status_code >= 500 else logging.INFO
            logger.log(
                level,
                "%s %s status=%s duration_ms=%s",
                scope["method"], scope["path"], status_code, duration_ms,
            )
            span_id_var.reset(span_token)
            trace_id_var.reset(trace_token)
