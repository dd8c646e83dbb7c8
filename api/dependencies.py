"""
Dependency injection for the Quiz Question Ingestion Service API
"""
import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from config import settings
from services.generation_client import GenerationClient
from services.result_decoder import ResultDecoder
from services.ingestion_writer import IngestionWriter
from services.question_service import QuestionService
from utils.error_handlers import CircuitBreaker, CircuitBreakerConfig, circuit_breaker_registry

logger = logging.getLogger(__name__)


@lru_cache()
def get_circuit_breaker() -> CircuitBreaker:
    """
    Get the breaker guarding the question generator (shared per process)
    """
    return circuit_breaker_registry.get_or_create(
        settings.circuit_breaker_name,
        CircuitBreakerConfig.from_settings(settings)
    )


@lru_cache()
def get_generation_client() -> GenerationClient:
    """
    Get generation client instance (cached singleton)
    """
    return GenerationClient()


@lru_cache()
def get_result_decoder() -> ResultDecoder:
    """
    Get result decoder instance (cached singleton)
    """
    return ResultDecoder()


@lru_cache()
def get_ingestion_writer() -> IngestionWriter:
    """
    Get ingestion writer instance (cached singleton)
    """
    return IngestionWriter()


@lru_cache()
def get_question_service() -> QuestionService:
    """
    Get question service instance (cached singleton)
    """
    return QuestionService(
        generation_client=get_generation_client(),
        result_decoder=get_result_decoder(),
        ingestion_writer=get_ingestion_writer(),
        circuit_breaker=get_circuit_breaker()
    )


# Type annotations for dependency injection
QuestionServiceDep = Annotated[QuestionService, Depends(get_question_service)]
