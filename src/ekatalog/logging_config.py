import logging
import sys
import os
from opentelemetry import trace


class TraceIdFilter(logging.Filter):
    """Logging filter that injects current OpenTelemetry trace and span ids
    into log records as `trace_id` and `span_id` fields.

    If no span is active, both fields are set to `-`.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            ctx = trace.get_current_span().get_span_context()
            if ctx is not None and getattr(ctx, "trace_id", 0):
                record.trace_id = format(ctx.trace_id, "032x")
                record.span_id = format(ctx.span_id, "016x")
            else:
                record.trace_id = "-"
                record.span_id = "-"
        except Exception:
            record.trace_id = "-"
            record.span_id = "-"
        return True


class SafeFormatter(logging.Formatter):
    """Formatter that tolerates records which never passed through TraceIdFilter."""

    def format(self, record):
        if not hasattr(record, "trace_id"):
            record.trace_id = "-"
        if not hasattr(record, "span_id"):
            record.span_id = "-"
        return super().format(record)


def configure_logging():
    """
    Configure application-wide logging for the console backend and the
    sync client. Log lines carry trace/span ids so a membership action can be
    followed from the route through the store write.
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    fmt = "%(asctime)s [%(levelname)s] %(name)s [trace=%(trace_id)s span=%(span_id)s] - %(message)s"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SafeFormatter(fmt))
    handler.addFilter(TraceIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # httpx logs every request at INFO; the sync client already logs tier decisions
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
