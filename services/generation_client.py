"""
Client for the external question generator service
"""
import logging
import time
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from config import settings
from models.generation import GenerationRequest, GenerationResponse
from utils.exceptions import (
    GenerationServiceError, ValidationError, ErrorCode, create_generator_timeout_error
)
from utils.error_handlers import log_performance_metric

logger = logging.getLogger(__name__)

GENERATION_PATH = "/test-s3-url"


class GenerationClient:
    """Asks the generator to build questions for a stored document"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the generation client

        Args:
            base_url: Generator base URL (if None, will use settings.generator_base_url)
            timeout: Request timeout in seconds (if None, will use settings.generator_timeout_seconds)
            http_client: Shared AsyncClient; a short-lived one is opened per call if None
        """
        self.base_url = (base_url or settings.generator_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.generator_timeout_seconds
        self.http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{GENERATION_PATH}"

    async def request_generation(self, document_storage_url: str) -> GenerationResponse:
        """
        Request question generation for a document

        Makes exactly one POST to the generator. Failures are raised from the
        coroutine; cancelling the awaiting task abandons the request.

        Args:
            document_storage_url: Storage URL of the uploaded document

        Returns:
            GenerationResponse pointing at the result CSV

        Raises:
            ValidationError: If the storage URL is empty
            GenerationServiceError: On transport errors, non-2xx replies or malformed bodies
        """
        if not isinstance(document_storage_url, str) or not document_storage_url.strip():
            raise ValidationError(
                message="Document storage URL cannot be empty",
                field_name="document_storage_url",
                field_value=document_storage_url,
                validation_rule="non_empty"
            )

        payload = GenerationRequest(document_storage_url=document_storage_url).to_payload()
        start_time = time.time()

        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.endpoint, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Generator request timed out: {e}")
            raise create_generator_timeout_error(self.endpoint, original_exception=e)
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach generator at {self.endpoint}: {e}")
            raise GenerationServiceError(
                message=f"Failed to reach question generator: {e}",
                endpoint=self.endpoint,
                original_exception=e
            )

        duration_ms = int((time.time() - start_time) * 1000)
        log_performance_metric("generator_call", duration_ms, {"status_code": response.status_code})

        if not response.is_success:
            logger.error(f"Generator returned HTTP {response.status_code}")
            raise GenerationServiceError(
                message=f"Question generator returned HTTP {response.status_code}",
                endpoint=self.endpoint,
                status_code=response.status_code
            )

        try:
            generation_response = GenerationResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.error(f"Malformed generator response: {e}")
            raise GenerationServiceError(
                message="Question generator returned a malformed response",
                endpoint=self.endpoint,
                status_code=response.status_code,
                error_code=ErrorCode.GENERATION_INVALID_RESPONSE,
                original_exception=e
            )

        logger.info(f"Generator produced result file: {generation_response.result_url}")
        return generation_response

    async def aclose(self) -> None:
        """Close the shared HTTP client, if any"""
        if self.http_client is not None:
            await self.http_client.aclose()
