"""
Global Exception Handling

Provides structured error types for the sticker pipeline, a circuit
breaker for the background-removal tool, and FastAPI handlers that
render errors as JSON.
"""

import threading
import time
import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.core.logging import get_logger, correlation_id_var

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Custom Exceptions
# =============================================================================

class StickerBotException(Exception):
    """Base exception for the sticker bot."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        correlation_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.correlation_id = correlation_id or correlation_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)


class PipelineStageError(StickerBotException):
    """Raised when a pipeline stage fails."""

    def __init__(self, message: str, stage: str, **kwargs):
        super().__init__(message, code=500, stage=stage, **kwargs)


class StorageError(StickerBotException):
    """Raised when staging storage operations fail."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=500, **kwargs)


class StagingNotFoundError(StorageError):
    """Raised when a job's staging artifact is missing."""

    def __init__(self, staging_key: str, **kwargs):
        super().__init__(f"Staging file not found: {staging_key}", **kwargs)
        self.code = 404
        self.details["staging_key"] = staging_key


class DeliveryError(StickerBotException):
    """Raised when the messaging transport rejects an outbound message."""

    def __init__(self, message: str, http_status: Optional[int] = None, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.details["http_status"] = http_status


class MediaTooLargeError(StickerBotException):
    """Raised when referenced media exceeds the input size limit."""

    def __init__(self, size: int, max_bytes: int, **kwargs):
        super().__init__(f"Media exceeds {max_bytes} bytes", code=413, **kwargs)
        self.size = size
        self.max_bytes = max_bytes
        self.details.update({"size": size, "max_bytes": max_bytes})


class QueueUnavailableError(StickerBotException):
    """Raised when the queue broker cannot be reached."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=503, **kwargs)


# =============================================================================
# Circuit Breaker for the background-removal tool
# =============================================================================

class CircuitBreaker:
    """
    Stops calling a tool that keeps failing.

    CLOSED lets calls through. After failure_threshold consecutive
    failures the circuit goes OPEN and calls are refused until
    recovery_timeout seconds pass. The next call is then a single
    HALF_OPEN trial: success closes the circuit, failure reopens it.
    """

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: float = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    def _current_state(self) -> str:
        if self._opened_at is None:
            return "CLOSED"
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            return "HALF_OPEN"
        return "OPEN"

    @property
    def state(self) -> str:
        with self._lock:
            return self._current_state()

    def can_execute(self) -> bool:
        with self._lock:
            state = self._current_state()
            if state == "CLOSED":
                return True
            if state == "HALF_OPEN" and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self):
        with self._lock:
            if self._opened_at is not None:
                logger.info("circuit_breaker_closed", circuit=self.name)
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self, error: Optional[Exception] = None):
        with self._lock:
            self._failures += 1
            trial_failed = self._trial_in_flight
            self._trial_in_flight = False
            if trial_failed or self._failures >= self.failure_threshold:
                self._opened_at = time.monotonic()
                logger.warning(
                    "circuit_breaker_opened",
                    circuit=self.name,
                    failure_count=self._failures,
                    error=str(error) if error else None
                )

    def reset(self):
        with self._lock:
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False


circuit_breakers: Dict[str, CircuitBreaker] = {
    "background_removal": CircuitBreaker("background_removal", failure_threshold=3, recovery_timeout=120),
}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    return circuit_breakers.setdefault(name, CircuitBreaker(name))


# =============================================================================
# FastAPI Exception Handlers
# =============================================================================

def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(StickerBotException)
    async def sticker_exception_handler(request: Request, exc: StickerBotException):
        logger.error(
            "sticker_bot_exception",
            error=exc.message,
            code=exc.code,
            stage=exc.stage,
            details=exc.details
        )

        return JSONResponse(
            status_code=exc.code,
            content={
                "error": exc.message,
                "correlation_id": exc.correlation_id or correlation_id_var.get(),
                "code": exc.code,
                "stage": exc.stage,
                "details": exc.details,
                "timestamp": _utcnow().isoformat()
            }
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "correlation_id": correlation_id_var.get(),
                "code": 500,
                "timestamp": _utcnow().isoformat()
            }
        )
