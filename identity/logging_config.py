import logging
import sys

from identity.middleware import span_id_var, trace_id_var

LOG_FORMAT = (
    "time=%(asctime)s level=%(levelname)s logger=%(name)s "
    "trace_id=%(trace_id)s span_id=%(span_id)s msg=%(message)s"
)


class RequestContextFilter(logging.Filter):
    """Stamp the current request's trace and span IDs on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_var.get()
        record.span_id = span_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger.  Safe to call twice."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if getattr(handler, "_identity_handler", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter())
    handler._identity_handler = True
    root.addHandler(handler)

    # Request lines come from RequestLoggingMiddleware.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
