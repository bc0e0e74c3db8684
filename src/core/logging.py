"""
Structured Logging Configuration with structlog

Outputs JSON logs in production and colored console logs in development.
Every log includes: version, timestamp and, inside a job, correlation_id
and stage.
"""

import sys
import logging
import structlog
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timezone
from contextvars import ContextVar, Token

# Context variables for job-scoped logging
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
stage_var: ContextVar[Optional[str]] = ContextVar("stage", default=None)

_context_vars: Dict[str, ContextVar] = {
    "correlation_id": correlation_id_var,
    "stage": stage_var,
}

APP_VERSION = "1.0.0"


def add_job_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Stamp version, UTC timestamp and the current job context."""
    event_dict["timestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    event_dict["version"] = APP_VERSION
    for key, var in _context_vars.items():
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = True,
):
    """
    Configure structured logging for the web process and Celery workers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON; if False, output colored console logs
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Silence noisy loggers
    for noisy in ("httpx", "httpcore", "PIL", "onnxruntime"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            add_job_context,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """
    Scope correlation_id and/or stage to a block; the previous values are
    restored on exit so nested stages inside a job unwind cleanly.

    Usage:
        with LogContext(correlation_id="3EB0C4"):
            with LogContext(stage="outline"):
                logger.info("outline_starting")
    """

    def __init__(self, correlation_id: Optional[str] = None, stage: Optional[str] = None):
        self._values = {"correlation_id": correlation_id, "stage": stage}
        self._tokens: List[Tuple[ContextVar, Token]] = []

    def __enter__(self):
        for key, value in self._values.items():
            if value:
                var = _context_vars[key]
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


# Example log output structure:
# {
#   "timestamp": "2024-05-20T10:00:00.000000Z",
#   "level": "warning",
#   "event": "stage_degraded",
#   "stage": "background_removal",
#   "correlation_id": "3EB0C431C1B3D1B2A5F8",
#   "version": "1.0.0",
#   "error": "Background removal returned an empty image"
# }
