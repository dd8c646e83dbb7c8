"""
Tests for comprehensive error handling implementation
"""
import asyncio
import logging

import pytest
from fastapi.testclient import TestClient
from unittest.mock import Mock

from main import app
from api.dependencies import get_question_service
from utils.exceptions import (
    QuizIngestionException, ErrorCode, GenerationServiceError, DecodeError,
    IngestionError, CircuitOpenError, ServiceUnavailableError, DocumentNotFoundError,
    ValidationError, create_malformed_row_error, create_generator_timeout_error
)
from utils.error_handlers import (
    CircuitBreaker, CircuitBreakerConfig, CircuitBreakerRegistry, CircuitState,
    get_status_code_for_error_code
)


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


async def succeed():
    return "ok"


async def fail():
    raise GenerationServiceError("generator down")


def fallback(error):
    return "fallback"


class TestCustomExceptions:
    """Test custom exception classes"""

    def test_ingestion_exception_creation(self):
        """Test basic QuizIngestionException creation"""
        exc = QuizIngestionException(
            message="Test error",
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field": "test"}
        )

        assert exc.message == "Test error"
        assert exc.error_code == ErrorCode.VALIDATION_ERROR
        assert exc.details == {"field": "test"}
        assert exc.timestamp is not None
        assert str(exc) == "VALIDATION_ERROR: Test error"

    def test_ingestion_exception_to_dict(self):
        """Test QuizIngestionException to_dict conversion"""
        exc = QuizIngestionException(
            message="Test error",
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field": "test"}
        )

        result = exc.to_dict()

        assert result["error"]["code"] == ErrorCode.VALIDATION_ERROR.value
        assert result["error"]["message"] == "Test error"
        assert result["error"]["details"] == {"field": "test"}
        assert "timestamp" in result["error"]

    def test_generation_service_error(self):
        exc = GenerationServiceError(
            message="Bad gateway",
            endpoint="http://generator/test-s3-url",
            status_code=502
        )

        assert exc.error_code == ErrorCode.GENERATION_SERVICE_ERROR
        assert exc.details == {"endpoint": "http://generator/test-s3-url", "status_code": 502}

    def test_decode_error_defaults_to_unreachable(self):
        exc = DecodeError("Cannot open result file", stream_pointer="/tmp/result.csv")

        assert exc.error_code == ErrorCode.RESULT_STREAM_UNREACHABLE
        assert exc.details["stream_pointer"] == "/tmp/result.csv"

    def test_ingestion_error(self):
        exc = IngestionError("Insert failed", document_id=7, question_number=3)

        assert exc.error_code == ErrorCode.INGESTION_FAILED
        assert exc.details == {"document_id": 7, "question_number": 3}

    def test_circuit_open_error_is_service_unavailable(self):
        exc = CircuitOpenError("question-generation", retry_after=60)

        assert isinstance(exc, ServiceUnavailableError)
        assert exc.error_code == ErrorCode.CIRCUIT_OPEN
        assert exc.breaker_name == "question-generation"
        assert exc.details["retry_after_seconds"] == 60

    def test_validation_error_truncates_long_values(self):
        exc = ValidationError(
            message="Too long",
            field_name="document_storage_url",
            field_value="x" * 150,
            validation_rule="max_length"
        )

        assert exc.details["field_value"].endswith("...")
        assert len(exc.details["field_value"]) == 103

    def test_create_malformed_row_error(self):
        exc = create_malformed_row_error("/tmp/result.csv", line_number=4, field_count=1)

        assert exc.error_code == ErrorCode.MALFORMED_RESULT_ROW
        assert exc.details["line_number"] == 4
        assert "4" in exc.message

    def test_create_generator_timeout_error(self):
        original = TimeoutError("read timed out")
        exc = create_generator_timeout_error("http://generator/test-s3-url", original_exception=original)

        assert exc.error_code == ErrorCode.GENERATION_TIMEOUT
        assert exc.original_exception is original

    @pytest.mark.parametrize("error_code,expected", [
        (ErrorCode.VALIDATION_ERROR, 400),
        (ErrorCode.DOCUMENT_NOT_FOUND, 404),
        (ErrorCode.CIRCUIT_OPEN, 503),
        (ErrorCode.GENERATION_SERVICE_ERROR, 502),
        (ErrorCode.GENERATION_TIMEOUT, 504),
        (ErrorCode.MALFORMED_RESULT_ROW, 422),
        (ErrorCode.INGESTION_FAILED, 500),
    ])
    def test_status_code_mapping(self, error_code, expected):
        assert get_status_code_for_error_code(error_code) == expected


class TestCircuitBreakerConfig:
    """Test circuit breaker configuration validation"""

    def test_defaults(self):
        config = CircuitBreakerConfig()

        assert config.failure_rate_threshold == 50.0
        assert config.sliding_window_size == 10
        assert config.minimum_number_of_calls == 5
        assert config.permitted_calls_in_half_open_state == 3

    @pytest.mark.parametrize("kwargs", [
        {"failure_rate_threshold": 0},
        {"failure_rate_threshold": 150},
        {"sliding_window_size": 0},
        {"sliding_window_size": 4, "minimum_number_of_calls": 5},
        {"wait_duration_in_open_state": -1},
        {"permitted_calls_in_half_open_state": 0},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            CircuitBreakerConfig(**kwargs)


class TestCircuitBreaker:
    """Test circuit breaker state transitions"""

    def setup_method(self):
        self.clock = FakeClock()
        self.config = CircuitBreakerConfig(
            failure_rate_threshold=50.0,
            sliding_window_size=4,
            minimum_number_of_calls=4,
            wait_duration_in_open_state=30.0,
            permitted_calls_in_half_open_state=2
        )
        self.breaker = CircuitBreaker("generator", self.config, clock=self.clock)

    def run(self, operation):
        return asyncio.run(self.breaker.execute(operation, fallback=fallback))

    def trip(self):
        for _ in range(4):
            self.run(fail)
        assert self.breaker.state == CircuitState.OPEN

    def test_closed_state_passes_results_through(self):
        assert self.run(succeed) == "ok"
        assert self.breaker.state == CircuitState.CLOSED

    def test_failure_returns_fallback(self):
        assert self.run(fail) == "fallback"
        assert self.breaker.get_metrics().failed_calls == 1

    def test_fallback_receives_the_error(self):
        received = []

        asyncio.run(self.breaker.execute(fail, fallback=lambda error: received.append(error)))

        assert isinstance(received[0], GenerationServiceError)

    def test_async_fallback_is_awaited(self):
        async def async_fallback(error):
            return -1

        assert asyncio.run(self.breaker.execute(fail, fallback=async_fallback)) == -1

    def test_stays_closed_below_minimum_number_of_calls(self):
        for _ in range(3):
            self.run(fail)

        assert self.breaker.state == CircuitState.CLOSED

    def test_opens_when_failure_rate_reaches_threshold(self):
        self.run(succeed)
        self.run(succeed)
        self.run(fail)
        assert self.breaker.state == CircuitState.CLOSED

        self.run(fail)

        assert self.breaker.state == CircuitState.OPEN

    def test_sliding_window_forgets_old_outcomes(self):
        self.run(fail)
        for _ in range(7):
            self.run(succeed)

        metrics = self.breaker.get_metrics()
        assert metrics.buffered_calls == 4
        assert metrics.failed_calls == 0

    def test_open_circuit_short_circuits(self):
        self.trip()
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        received = []
        result = asyncio.run(self.breaker.execute(
            operation,
            fallback=lambda error: received.append(error) or "fallback"
        ))

        assert result == "fallback"
        assert calls == []
        assert isinstance(received[0], CircuitOpenError)
        assert self.breaker.get_metrics().not_permitted_calls == 1

    def test_half_open_after_wait(self):
        self.trip()

        self.clock.advance(29)
        assert self.breaker.state == CircuitState.OPEN

        self.clock.advance(1)
        assert self.breaker.state == CircuitState.HALF_OPEN

    def test_half_open_successes_close_circuit(self):
        self.trip()
        self.clock.advance(30)

        self.run(succeed)
        assert self.breaker.state == CircuitState.HALF_OPEN
        self.run(succeed)

        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.get_metrics().buffered_calls == 0

    def test_half_open_failure_reopens_circuit(self):
        self.trip()
        self.clock.advance(30)

        self.run(succeed)
        self.run(fail)

        assert self.breaker.state == CircuitState.OPEN
        self.clock.advance(10)
        assert self.breaker.state == CircuitState.OPEN

    def test_half_open_limits_trial_calls(self):
        self.trip()
        self.clock.advance(30)

        assert self.breaker.try_acquire_permission()
        assert self.breaker.try_acquire_permission()
        assert not self.breaker.try_acquire_permission()

    def test_cancelled_call_is_not_counted(self):
        async def scenario():
            started = asyncio.Event()

            async def slow():
                started.set()
                await asyncio.sleep(10)

            task = asyncio.create_task(self.breaker.execute(slow, fallback=fallback))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert self.breaker.get_metrics().buffered_calls == 0

    def test_cancelled_half_open_call_returns_its_permit(self):
        self.trip()
        self.clock.advance(30)
        self.breaker.try_acquire_permission()
        self.breaker.try_acquire_permission()

        self.breaker.release_permission()

        assert self.breaker.try_acquire_permission()

    def test_reset(self):
        self.trip()

        self.breaker.reset()

        metrics = self.breaker.get_metrics()
        assert metrics.state == CircuitState.CLOSED
        assert metrics.buffered_calls == 0
        assert metrics.not_permitted_calls == 0


class TestCircuitBreakerRegistry:
    """Test the breaker registry"""

    def test_same_name_returns_same_breaker(self):
        registry = CircuitBreakerRegistry()

        first = registry.get_or_create("question-generation")
        second = registry.get_or_create("question-generation", CircuitBreakerConfig(sliding_window_size=20))

        assert first is second
        assert first.config.sliding_window_size == 10

    def test_get_and_clear(self):
        registry = CircuitBreakerRegistry()
        registry.get_or_create("a")
        registry.get_or_create("b")

        assert registry.get("a") is not None
        assert {b.name for b in registry.all()} == {"a", "b"}

        registry.clear()
        assert registry.get("a") is None


class TestAPIErrorHandling:
    """Test API error handling integration"""

    def setup_method(self):
        """Set up test client with a stubbed question service"""
        self.question_service = Mock()
        app.dependency_overrides[get_question_service] = lambda: self.question_service
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_health_endpoint(self):
        """Test basic health endpoint works"""
        response = self.client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"] == "1.0.0"

    def test_validation_error_handling(self):
        """Non-numeric document ids are rejected with field details"""
        response = self.client.post("/documents/not-a-number/questions")

        assert response.status_code == 422
        data = response.json()

        assert data["error"]["code"] == "VALIDATION_ERROR"
        assert "field_errors" in data["error"]["details"]

    def test_document_not_found_error(self):
        self.question_service.get_document.return_value = None

        response = self.client.post("/documents/42/questions")

        assert response.status_code == 404
        data = response.json()
        assert data["error"]["code"] == "DOCUMENT_NOT_FOUND"
        assert data["error"]["details"] == {"document_id": 42}

    def test_service_exception_maps_to_status(self):
        self.question_service.get_document_info.side_effect = DocumentNotFoundError(5)

        response = self.client.get("/documents/5")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "DOCUMENT_NOT_FOUND"


class TestLoggingIntegration:
    """Test logging integration with error handling"""

    def test_structured_logging_format(self):
        """Test that structured logging is working"""
        from utils.logging import setup_logging

        logger = setup_logging(log_level="INFO", log_format="structured")
        assert logger is logging.getLogger()

    def test_structured_formatter_emits_json(self):
        import json
        from utils.logging import StructuredFormatter

        record = logging.LogRecord(
            "services.question_service", logging.INFO, __file__, 10,
            "Ingested %d questions", (3,), None
        )
        record.document_id = 7

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Ingested 3 questions"
        assert entry["level"] == "INFO"
        assert entry["extra"]["document_id"] == 7

    def _filtered_record(self):
        from utils.logging import ContextFilter

        record = logging.LogRecord(
            "services.result_decoder", logging.INFO, __file__, 20, "Decoded rows", (), None
        )
        ContextFilter().filter(record)
        return record

    def test_context_filter_adds_pipeline_fields(self):
        from utils.logging import pipeline_context

        with pipeline_context(document_id=7, circuit_breaker="question-generation"):
            record = self._filtered_record()

        assert record.service == "quiz-question-ingestion"
        assert record.document_id == 7
        assert record.circuit_breaker == "question-generation"

    def test_pipeline_fields_cleared_after_block(self):
        from utils.logging import pipeline_context, current_pipeline_context

        with pipeline_context(document_id=7):
            with pipeline_context(circuit_breaker="question-generation"):
                assert current_pipeline_context() == {
                    "document_id": 7, "circuit_breaker": "question-generation"
                }
            assert current_pipeline_context() == {"document_id": 7}

        record = self._filtered_record()
        assert current_pipeline_context() == {}
        assert not hasattr(record, "document_id")

    def test_structured_formatter_groups_pipeline_fields(self):
        import json
        from utils.logging import StructuredFormatter, pipeline_context

        with pipeline_context(document_id=7, circuit_breaker="question-generation"):
            record = self._filtered_record()
        record.line_number = 4

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["service"] == "quiz-question-ingestion"
        assert entry["pipeline"] == {"document_id": 7, "circuit_breaker": "question-generation"}
        assert entry["extra"] == {"line_number": 4}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
