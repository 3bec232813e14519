"""Structured logging setup.

Every module logs through ``structlog.get_logger(__name__)`` with snake_case
event names and keyword context. Sensitive values are redacted before any
renderer sees them.
"""

import logging
import sys

import structlog

from antigravity_manager.utils.masking import mask_sensitive_processor


def setup_logging(json_logs: bool = False, log_level_name: str = "INFO") -> None:
    """Configure structlog and route standard library logging through it.

    Args:
        json_logs: Render one JSON object per line instead of console output
        log_level_name: Minimum level name, e.g. ``"DEBUG"``
    """
    level = logging.getLevelName(log_level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            mask_sensitive_processor,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    # Third-party noise
    for name in ("httpx", "httpcore", "apscheduler", "aiosqlite"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
