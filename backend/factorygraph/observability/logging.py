"""Logging configuration with job and trace context."""

from __future__ import annotations

import logging
from logging.handlers import SysLogHandler

from opentelemetry import trace

from factorygraph.config import Settings, get_settings
from factorygraph.observability.job_context import get_job_id

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s job_id=%(job_id)s "
    "trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
)


class JobContextFilter(logging.Filter):
    """Attach job_id, trace_id and span_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        span_context = span.get_span_context()
        if span_context and span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = "-"
            record.span_id = "-"
        record.job_id = get_job_id() or "-"
        return True


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging to include job and trace context."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    root_logger = logging.getLogger()

    if settings.syslog_host:
        syslog_handler = SysLogHandler(address=(settings.syslog_host, settings.syslog_port))
        syslog_handler.setLevel(logging.INFO)
        syslog_handler.setFormatter(logging.Formatter("%(name)s %(levelname)s job_id=%(job_id)s %(message)s"))
        root_logger.addHandler(syslog_handler)

    # Handler-level so records propagated from module loggers get the fields too.
    context_filter = JobContextFilter()
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)
