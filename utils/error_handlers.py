"""
Error handling middleware and utilities for the Quiz Question Ingestion Service

This module provides the error handling middleware, the circuit breaker that
guards calls to the question generator, and logging helpers used across
the pipeline.
"""
import asyncio
import inspect
import logging
import threading
import time
import traceback
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional, Callable, Awaitable, List
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from utils.exceptions import (
    QuizIngestionException, ErrorCode, CircuitOpenError
)

logger = logging.getLogger(__name__)


class ErrorHandlingMiddleware:
    """
    Middleware for handling errors and providing consistent error responses
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        """ASGI middleware implementation"""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)

        try:
            await self.app(scope, receive, send)
        except Exception as e:
            response = await self.handle_error(request, e)
            await response(scope, receive, send)

    async def handle_error(self, request: Request, exc: Exception) -> JSONResponse:
        """
        Handle different types of exceptions and return appropriate responses

        Args:
            request: The FastAPI request object
            exc: The exception that occurred

        Returns:
            JSONResponse with error details
        """
        self._log_error(request, exc)

        if isinstance(exc, QuizIngestionException):
            return self._handle_ingestion_exception(exc)
        elif isinstance(exc, HTTPException):
            return self._handle_http_exception(exc)
        elif isinstance(exc, RequestValidationError):
            return self._handle_validation_exception(exc)
        else:
            return self._handle_generic_exception(exc)

    def _log_error(self, request: Request, exc: Exception) -> None:
        """Log error with request context"""
        error_id = f"error_{int(time.time() * 1000)}"

        context = {
            "error_id": error_id,
            "method": request.method,
            "url": str(request.url),
            "user_agent": request.headers.get("user-agent", "unknown"),
            "exception_type": type(exc).__name__,
            "exception_message": str(exc)
        }

        client_ip = request.client.host if request.client else "unknown"
        context["client_ip"] = client_ip

        if isinstance(exc, (QuizIngestionException, HTTPException)):
            logger.warning(f"Handled exception: {context}")
        else:
            logger.error(f"Unhandled exception: {context}")
            logger.error(f"Traceback: {traceback.format_exc()}")

    def _handle_ingestion_exception(self, exc: QuizIngestionException) -> JSONResponse:
        """Handle the service's own exceptions"""
        return JSONResponse(
            status_code=get_status_code_for_error_code(exc.error_code),
            content=exc.to_dict()
        )

    def _handle_http_exception(self, exc: HTTPException) -> JSONResponse:
        """Handle FastAPI HTTP exceptions"""
        if isinstance(exc.detail, dict):
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.detail
            )

        return create_error_response(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            message=str(exc.detail),
            status_code=exc.status_code
        )

    def _handle_validation_exception(self, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors"""
        return create_error_response(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Request validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"validation_errors": exc.errors()}
        )

    def _handle_generic_exception(self, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions"""
        return create_error_response(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            message="An unexpected error occurred",
            details={"error_type": type(exc).__name__}
        )


def get_status_code_for_error_code(error_code: ErrorCode) -> int:
    """Map error codes to HTTP status codes"""
    status_map = {
        ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
        ErrorCode.DOCUMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
        ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorCode.CIRCUIT_OPEN: status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorCode.GENERATION_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
        ErrorCode.GENERATION_INVALID_RESPONSE: status.HTTP_502_BAD_GATEWAY,
        ErrorCode.GENERATION_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
        ErrorCode.RESULT_STREAM_UNREACHABLE: status.HTTP_502_BAD_GATEWAY,
        ErrorCode.MALFORMED_RESULT_ROW: status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.INGESTION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    return status_map.get(error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


class CircuitState(str, Enum):
    """States of a circuit breaker"""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerConfig:
    """Thresholds and timings for a circuit breaker"""
    failure_rate_threshold: float = 50.0  # percent
    sliding_window_size: int = 10
    minimum_number_of_calls: int = 5
    wait_duration_in_open_state: float = 60.0  # seconds
    permitted_calls_in_half_open_state: int = 3

    def __post_init__(self):
        if not 0 < self.failure_rate_threshold <= 100:
            raise ValueError("failure_rate_threshold must be in (0, 100]")
        if self.sliding_window_size < 1:
            raise ValueError("sliding_window_size must be at least 1")
        if not 1 <= self.minimum_number_of_calls <= self.sliding_window_size:
            raise ValueError("minimum_number_of_calls must be between 1 and sliding_window_size")
        if self.wait_duration_in_open_state < 0:
            raise ValueError("wait_duration_in_open_state cannot be negative")
        if self.permitted_calls_in_half_open_state < 1:
            raise ValueError("permitted_calls_in_half_open_state must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "CircuitBreakerConfig":
        """Build a config from the application settings"""
        return cls(
            failure_rate_threshold=settings.circuit_breaker_failure_rate_threshold,
            sliding_window_size=settings.circuit_breaker_sliding_window_size,
            minimum_number_of_calls=settings.circuit_breaker_minimum_number_of_calls,
            wait_duration_in_open_state=settings.circuit_breaker_wait_duration_seconds,
            permitted_calls_in_half_open_state=settings.circuit_breaker_permitted_calls_in_half_open_state
        )


@dataclass
class CircuitBreakerMetrics:
    """Point-in-time snapshot of a circuit breaker"""
    name: str
    state: CircuitState
    buffered_calls: int
    failed_calls: int
    failure_rate: float
    not_permitted_calls: int


class CircuitBreaker:
    """
    Circuit breaker pattern implementation for external service calls

    Outcomes of calls made while CLOSED are kept in a count-based sliding
    window. Once the window holds at least ``minimum_number_of_calls``
    outcomes and the failure rate reaches ``failure_rate_threshold`` the
    circuit opens and calls are short-circuited to the fallback. After
    ``wait_duration_in_open_state`` seconds the circuit goes HALF_OPEN and
    admits ``permitted_calls_in_half_open_state`` trial calls: all of them
    succeeding closes the circuit, any of them failing opens it again.

    All state changes happen under one lock, so a single instance can be
    shared by concurrent callers.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize circuit breaker

        Args:
            name: Name of the protected operation
            config: Thresholds and timings (defaults if None)
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._outcomes = deque(maxlen=self.config.sliding_window_size)  # True marks a failure
        self._opened_at: Optional[float] = None
        self._half_open_admitted = 0
        self._half_open_successes = 0
        self._not_permitted_calls = 0

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the wait has elapsed"""
        with self._lock:
            self._refresh_state()
            return self._state

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        fallback: Callable[[Exception], Any]
    ) -> Any:
        """
        Run an operation under the circuit breaker

        Args:
            operation: Zero-argument callable returning the awaitable to guard
            fallback: Called with the triggering exception when the call is not
                permitted or fails; its return value becomes the result

        Returns:
            The operation's result, or the fallback's result
        """
        if not self.try_acquire_permission():
            error = CircuitOpenError(
                self.name,
                retry_after=int(self.config.wait_duration_in_open_state)
            )
            logger.warning(f"Circuit breaker '{self.name}' short-circuited a call")
            return await _resolve(fallback(error))

        try:
            result = await operation()
        except asyncio.CancelledError:
            self.release_permission()
            raise
        except Exception as e:
            self.on_failure(e)
            return await _resolve(fallback(e))

        self.on_success()
        return result

    def try_acquire_permission(self) -> bool:
        """Return True if a call may go through right now"""
        with self._lock:
            self._refresh_state()

            if self._state == CircuitState.CLOSED:
                return True

            if (self._state == CircuitState.HALF_OPEN
                    and self._half_open_admitted < self.config.permitted_calls_in_half_open_state):
                self._half_open_admitted += 1
                return True

            self._not_permitted_calls += 1
            return False

    def release_permission(self) -> None:
        """Give back a permission for a call that ended without an outcome"""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._half_open_admitted > 0:
                self._half_open_admitted -= 1

    def on_success(self) -> None:
        """Record a successful call"""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.permitted_calls_in_half_open_state:
                    self._transition_to(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._outcomes.append(False)
                self._open_if_threshold_reached()
            # Late results of calls admitted before the circuit opened are ignored

    def on_failure(self, error: Optional[Exception] = None) -> None:
        """Record a failed call"""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit breaker '{self.name}' trial call failed: {error}")
                self._transition_to(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                self._outcomes.append(True)
                self._open_if_threshold_reached()

    def reset(self) -> None:
        """Return the breaker to CLOSED with an empty window"""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._not_permitted_calls = 0

    def get_metrics(self) -> CircuitBreakerMetrics:
        """Get a snapshot of the breaker's state and window"""
        with self._lock:
            self._refresh_state()
            return CircuitBreakerMetrics(
                name=self.name,
                state=self._state,
                buffered_calls=len(self._outcomes),
                failed_calls=sum(1 for failed in self._outcomes if failed),
                failure_rate=self._failure_rate(),
                not_permitted_calls=self._not_permitted_calls
            )

    # Callers must hold self._lock for the methods below

    def _refresh_state(self) -> None:
        if self._state == CircuitState.OPEN and self._wait_elapsed():
            self._transition_to(CircuitState.HALF_OPEN)

    def _wait_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self.config.wait_duration_in_open_state

    def _failure_rate(self) -> float:
        if not self._outcomes:
            return 0.0
        failures = sum(1 for failed in self._outcomes if failed)
        return failures * 100.0 / len(self._outcomes)

    def _failure_threshold_reached(self) -> bool:
        if len(self._outcomes) < self.config.minimum_number_of_calls:
            return False
        return self._failure_rate() >= self.config.failure_rate_threshold

    def _open_if_threshold_reached(self) -> None:
        if self._failure_threshold_reached():
            logger.warning(
                f"Circuit breaker '{self.name}' failure rate "
                f"{self._failure_rate():.1f}% reached threshold "
                f"{self.config.failure_rate_threshold}%"
            )
            self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        previous = self._state
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        else:
            self._opened_at = None

        if new_state == CircuitState.CLOSED:
            self._outcomes.clear()

        self._half_open_admitted = 0
        self._half_open_successes = 0

        if previous != new_state:
            logger.info(f"Circuit breaker '{self.name}' changed state: {previous.value} -> {new_state.value}")


class CircuitBreakerRegistry:
    """
    Process-wide registry of circuit breakers keyed by operation name
    """

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        """
        Get the breaker registered under ``name``, creating it if needed

        The config is only used when the breaker is created.
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, config)
                self._breakers[name] = breaker
                logger.info(f"Registered circuit breaker '{name}'")
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        with self._lock:
            return self._breakers.get(name)

    def all(self) -> List[CircuitBreaker]:
        with self._lock:
            return list(self._breakers.values())

    def clear(self) -> None:
        with self._lock:
            self._breakers.clear()


# Shared by every pipeline run in the process
circuit_breaker_registry = CircuitBreakerRegistry()


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


# Utility functions for error handling

def log_processing_step(step_name: str, details: Optional[Dict[str, Any]] = None):
    """
    Log a processing step with optional details

    Args:
        step_name: Name of the processing step
        details: Optional dictionary with step details
    """
    log_message = f"Processing step: {step_name}"
    if details:
        log_message += f" - {details}"

    logger.info(log_message)


def log_performance_metric(operation: str, duration_ms: int, details: Optional[Dict[str, Any]] = None):
    """
    Log performance metrics for operations

    Args:
        operation: Name of the operation
        duration_ms: Duration in milliseconds
        details: Optional dictionary with additional details
    """
    log_message = f"Performance: {operation} completed in {duration_ms}ms"
    if details:
        log_message += f" - {details}"

    logger.info(log_message)


def create_error_response(
    error_code: ErrorCode,
    message: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """
    Create a standardized error response

    Args:
        error_code: The error code
        message: Error message
        status_code: HTTP status code
        details: Optional error details

    Returns:
        JSONResponse with error information
    """
    error_dict = {
        "error": {
            "code": error_code.value,
            "message": message,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }
    }

    if details:
        error_dict["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=error_dict
    )
