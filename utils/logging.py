"""
Logging configuration for the Quiz Question Ingestion Service
"""
import logging
import logging.handlers
import sys
import os
import json
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
from config import settings


# Attributes every LogRecord carries; anything else was passed via ``extra``
_STANDARD_RECORD_KEYS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'getMessage', 'exc_info', 'exc_text', 'stack_info'
}

# Set by ContextFilter on every record; emitted at the top level of JSON entries
_SERVICE_KEYS = ('service', 'version', 'pid')

# Fields of the pipeline run the current task or worker thread belongs to.
# asyncio tasks and asyncio.to_thread copy it, so decoder and writer logs
# carry the document of the run that started them.
_pipeline_fields: ContextVar[Dict[str, Any]] = ContextVar("pipeline_fields", default={})


@contextmanager
def pipeline_context(**fields: Any) -> Iterator[None]:
    """
    Attach fields such as document_id to every record logged inside the block

    Nested blocks add to the enclosing fields; the previous fields are
    restored on exit.
    """
    token = _pipeline_fields.set({**_pipeline_fields.get(), **fields})
    try:
        yield
    finally:
        _pipeline_fields.reset(token)


def current_pipeline_context() -> Dict[str, Any]:
    """Fields attached by the innermost active pipeline_context"""
    return dict(_pipeline_fields.get())


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record

    Service identity goes at the top level, pipeline fields under
    "pipeline" and any other ``extra`` values under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_KEYS
        }

        for key in _SERVICE_KEYS:
            if key in extra_fields:
                log_entry[key] = extra_fields.pop(key)

        pipeline = {
            key: extra_fields.pop(key)
            for key in getattr(record, "pipeline_keys", ())
            if key in extra_fields
        }
        extra_fields.pop("pipeline_keys", None)
        if pipeline:
            log_entry["pipeline"] = pipeline

        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str)


class ContextFilter(logging.Filter):
    """
    Filter that adds service identity and the active pipeline fields
    (document_id, circuit_breaker) to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = "quiz-question-ingestion"
        record.version = settings.app_version
        record.pid = os.getpid()

        pipeline_keys = []
        for key, value in _pipeline_fields.get().items():
            # Values passed explicitly through ``extra`` win
            if not hasattr(record, key):
                setattr(record, key, value)
            pipeline_keys.append(key)
        record.pipeline_keys = tuple(pipeline_keys)
        return True


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure application logging

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type ("structured" for JSON, "simple" for text)
        log_file: Optional file path for file logging
        max_file_size: Maximum size of log files before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured root logger
    """
    if log_level is None:
        log_level = settings.log_level
    if log_format is None:
        log_format = settings.log_format
    if log_file is None:
        log_file = settings.log_file

    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_format == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(service)s - %(name)s - %(levelname)s - %(message)s - '
            '[%(module)s:%(funcName)s:%(lineno)d] [PID:%(pid)d]'
        )

    context_filter = ContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    configure_service_loggers(level)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": log_level,
            "log_format": log_format,
            "log_file": log_file,
            "handlers": len(root_logger.handlers)
        }
    )

    return root_logger


def configure_service_loggers(level: int):
    """Configure logging for pipeline modules and third-party libraries"""

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    service_loggers = [
        "services.generation_client",
        "services.result_decoder",
        "services.ingestion_writer",
        "services.question_service",
        "utils.error_handlers",
        "api.document_controller",
    ]

    for logger_name in service_loggers:
        logging.getLogger(logger_name).setLevel(level)


def log_api_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    user_agent: Optional[str] = None,
    client_ip: Optional[str] = None
):
    """
    Log API request information

    Args:
        method: HTTP method
        path: Request path
        status_code: HTTP status code
        duration_ms: Request duration in milliseconds
        user_agent: User agent string
        client_ip: Client IP address
    """
    logger = logging.getLogger("api")

    extra = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "user_agent": user_agent,
        "client_ip": client_ip
    }

    if status_code >= 500:
        logger.error(f"API request failed: {method} {path}", extra=extra)
    elif status_code >= 400:
        logger.warning(f"API request error: {method} {path}", extra=extra)
    else:
        logger.info(f"API request: {method} {path}", extra=extra)
