"""
Custom exception classes for the Quiz Question Ingestion Service

This module defines the exceptions raised along the question-ingestion
pipeline, providing structured error handling with error codes and details
that can be logged or turned into API error responses.
"""
import time
from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(Enum):
    """Enumeration of error codes for consistent error handling"""

    # General errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"

    # Generator service errors
    GENERATION_SERVICE_ERROR = "GENERATION_SERVICE_ERROR"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    GENERATION_INVALID_RESPONSE = "GENERATION_INVALID_RESPONSE"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"

    # Result stream errors
    RESULT_STREAM_UNREACHABLE = "RESULT_STREAM_UNREACHABLE"
    MALFORMED_RESULT_ROW = "MALFORMED_RESULT_ROW"

    # Persistence errors
    INGESTION_FAILED = "INGESTION_FAILED"


class QuizIngestionException(Exception):
    """
    Base exception class for all Quiz Question Ingestion errors

    Provides structured error information with error codes, messages,
    and optional details for debugging and user feedback.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        """
        Initialize the exception

        Args:
            message: Human-readable error message
            error_code: Structured error code for programmatic handling
            details: Optional dictionary with additional error details
            original_exception: Original exception that caused this error (if any)
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary format for API responses

        Returns:
            Dictionary representation of the error
        """
        error_dict = {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict

    def __str__(self) -> str:
        """String representation of the exception"""
        return f"{self.error_code.value}: {self.message}"


class GenerationServiceError(QuizIngestionException):
    """Exception for failures reaching or talking to the question generator"""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.GENERATION_SERVICE_ERROR,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if endpoint:
            details["endpoint"] = endpoint
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            original_exception=original_exception
        )


class DecodeError(QuizIngestionException):
    """Exception for unreachable or malformed result streams"""

    def __init__(
        self,
        message: str,
        stream_pointer: Optional[str] = None,
        line_number: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.RESULT_STREAM_UNREACHABLE,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if stream_pointer:
            details["stream_pointer"] = stream_pointer
        if line_number is not None:
            details["line_number"] = line_number

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            original_exception=original_exception
        )


class IngestionError(QuizIngestionException):
    """Exception for persistence failures while writing a question batch"""

    def __init__(
        self,
        message: str,
        document_id: Optional[int] = None,
        question_number: Optional[int] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if document_id is not None:
            details["document_id"] = document_id
        if question_number is not None:
            details["question_number"] = question_number

        super().__init__(
            message=message,
            error_code=ErrorCode.INGESTION_FAILED,
            details=details,
            original_exception=original_exception
        )


class ServiceUnavailableError(QuizIngestionException):
    """Exception for service unavailability"""

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        retry_after: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if service_name:
            details["service_name"] = service_name
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            original_exception=original_exception
        )


class CircuitOpenError(ServiceUnavailableError):
    """Raised in place of a call that the circuit breaker did not permit"""

    def __init__(self, breaker_name: str, retry_after: Optional[int] = None):
        super().__init__(
            message=f"Circuit breaker '{breaker_name}' is open; call not permitted",
            service_name=breaker_name,
            retry_after=retry_after,
            error_code=ErrorCode.CIRCUIT_OPEN
        )
        self.breaker_name = breaker_name


class DocumentNotFoundError(QuizIngestionException):
    """Exception for lookups of documents that do not exist"""

    def __init__(self, document_id: int):
        super().__init__(
            message=f"Document {document_id} not found",
            error_code=ErrorCode.DOCUMENT_NOT_FOUND,
            details={"document_id": document_id}
        )


class ValidationError(QuizIngestionException):
    """Exception for input validation errors"""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        field_value: Optional[Any] = None,
        validation_rule: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if field_name:
            details["field_name"] = field_name
        if field_value is not None:
            # Convert to string and truncate for safety
            value_str = str(field_value)
            details["field_value"] = value_str[:100] + "..." if len(value_str) > 100 else value_str
        if validation_rule:
            details["validation_rule"] = validation_rule

        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            original_exception=original_exception
        )


# Convenience functions for creating common exceptions

def create_malformed_row_error(stream_pointer: str, line_number: int, field_count: int) -> DecodeError:
    """Create an error for a result row with too few columns"""
    return DecodeError(
        message=f"Result row {line_number} has {field_count} field(s); expected question and answer columns",
        stream_pointer=stream_pointer,
        line_number=line_number,
        error_code=ErrorCode.MALFORMED_RESULT_ROW
    )


def create_generator_timeout_error(endpoint: str, original_exception: Optional[Exception] = None) -> GenerationServiceError:
    """Create a generator timeout error"""
    return GenerationServiceError(
        message="Question generator request timed out",
        endpoint=endpoint,
        error_code=ErrorCode.GENERATION_TIMEOUT,
        original_exception=original_exception
    )
