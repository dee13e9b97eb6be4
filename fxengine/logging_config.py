import logging
import sys
from typing import Optional

import structlog

from fxengine.config import settings


def setup_logging(json_logs: Optional[bool] = None):
    """
    Configure structlog for the API process and the maintenance scripts.

    Scripts print their audit report to stdout, so log lines go to stderr.
    """
    if json_logs is None:
        json_logs = settings.ENVIRONMENT != "development"
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    # httpx logs every request at INFO; keep oracle polling quiet.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
