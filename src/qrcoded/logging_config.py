import logging
import sys
import os
from opentelemetry import trace

LOG_FORMAT = (
    "%(asctime)s [%(levelname)s] %(name)s (%(threadName)s) "
    "[trace=%(trace_id)s span=%(span_id)s] - %(message)s"
)

NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3", "PIL")


class TraceIdFilter(logging.Filter):
    """Stamp the active OpenTelemetry trace/span ids on each record.

    Generation jobs run on worker threads with their own spans, so a job's
    render/upload/persist lines share one trace id. Outside a span both
    fields are `-`.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            record.trace_id = format(ctx.trace_id, "032x")
            record.span_id = format(ctx.span_id, "016x")
        else:
            record.trace_id = "-"
            record.span_id = "-"
        return True


class SafeFormatter(logging.Formatter):
    # Records from handlers without the filter still need both fields.
    def format(self, record):
        if not hasattr(record, "trace_id"):
            record.trace_id = "-"
        if not hasattr(record, "span_id"):
            record.span_id = "-"
        return super().format(record)


def configure_logging():
    """
    Configure application-wide logging to stdout.
    Level comes from LOG_LEVEL (default INFO).
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SafeFormatter(LOG_FORMAT))
    handler.addFilter(TraceIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
