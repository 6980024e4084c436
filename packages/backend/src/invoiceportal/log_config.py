"""structlog configuration.

Learn: Development gets colored console output, anything else gets one
JSON object per line for log shippers. merge_contextvars pulls in the
request_id bound by RequestIdMiddleware.
"""

import logging

import structlog

from invoiceportal.config import settings


def configure_logging() -> None:
    level = logging.DEBUG if settings.debug else logging.INFO

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
