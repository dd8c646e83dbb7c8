"""
Question generation pipeline for the Quiz Question Ingestion Service
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker, selectinload

from config import settings
from database.database import SessionLocal
from database.models import Document, Question
from models.document import DocumentInfo, QuestionInfo
from services.generation_client import GenerationClient
from services.result_decoder import ResultDecoder
from services.ingestion_writer import IngestionWriter
from utils.error_handlers import (
    CircuitBreaker, CircuitBreakerConfig, circuit_breaker_registry,
    log_processing_step, log_performance_metric
)
from utils.logging import pipeline_context

logger = logging.getLogger(__name__)

# Returned instead of a count when generation could not be completed
FALLBACK_QUESTION_COUNT = -1


class QuestionService:
    """
    Service for generating and storing the quiz questions of a document

    One run asks the generator for a result file, decodes it and writes the
    questions, all guarded by a shared circuit breaker. Any failure along
    the way, or an open circuit, yields FALLBACK_QUESTION_COUNT.
    """

    def __init__(
        self,
        generation_client: Optional[GenerationClient] = None,
        result_decoder: Optional[ResultDecoder] = None,
        ingestion_writer: Optional[IngestionWriter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        session_factory: Optional[sessionmaker] = None
    ):
        """
        Initialize the question service

        Args:
            generation_client: Client for the external generator
            result_decoder: Decoder for generator result files
            ingestion_writer: Writer for decoded records
            circuit_breaker: Breaker guarding the run (if None, the registry's
                breaker named by settings.circuit_breaker_name)
            session_factory: Session factory for read queries
        """
        self.session_factory = session_factory or SessionLocal
        self.generation_client = generation_client or GenerationClient()
        self.result_decoder = result_decoder or ResultDecoder()
        self.ingestion_writer = ingestion_writer or IngestionWriter(self.session_factory)
        self.circuit_breaker = circuit_breaker or circuit_breaker_registry.get_or_create(
            settings.circuit_breaker_name,
            CircuitBreakerConfig.from_settings(settings)
        )

    async def create_question(self, document_storage_url: str, document: Document) -> int:
        """
        Generate and store the questions of a document

        Args:
            document_storage_url: Storage URL of the uploaded document
            document: Persisted document that will own the questions

        Returns:
            Number of ingested questions, or FALLBACK_QUESTION_COUNT
        """
        with pipeline_context(document_id=document.id, circuit_breaker=self.circuit_breaker.name):
            start_time = time.time()
            log_processing_step("question_generation_started", {"document_id": document.id})

            question_count = await self.circuit_breaker.execute(
                lambda: self._generate_and_ingest(document_storage_url, document),
                fallback=lambda error: self._create_question_fallback(document, error)
            )

            duration_ms = int((time.time() - start_time) * 1000)
            log_performance_metric("question_generation", duration_ms, {
                "document_id": document.id,
                "question_count": question_count
            })

        return question_count

    def schedule_question_creation(self, document_storage_url: str, document: Document) -> "asyncio.Task[int]":
        """
        Start create_question in the background

        Returns:
            Task resolving to the question count; cancelling it abandons the
            generator call but never interrupts a batch being written
        """
        return asyncio.create_task(
            self.create_question(document_storage_url, document),
            name=f"create-questions-{document.id}"
        )

    async def _generate_and_ingest(self, document_storage_url: str, document: Document) -> int:
        response = await self.generation_client.request_generation(document_storage_url)
        log_processing_step("result_file_received", {
            "document_id": document.id,
            "csv_url": response.result_url
        })

        # Decoding and writing run to completion once started
        return await asyncio.shield(
            asyncio.to_thread(self._ingest_result_file, response.result_url, document)
        )

    def _ingest_result_file(self, result_url: str, document: Document) -> int:
        with self.result_decoder.open(result_url) as records:
            return self.ingestion_writer.ingest(document, records)

    def _create_question_fallback(self, document: Document, error: Exception) -> int:
        logger.error(f"Fallback for document {document.id}: {error}")
        return FALLBACK_QUESTION_COUNT

    def get_document(self, document_id: int) -> Optional[Document]:
        """Load a document, or None if it does not exist"""
        with self.session_factory() as session:
            return session.get(Document, document_id)

    def get_document_info(self, document_id: int) -> Optional[DocumentInfo]:
        """
        Get a document with its questions and answers

        Args:
            document_id: Document identifier

        Returns:
            DocumentInfo with questions in question_number order, or None
        """
        with self.session_factory() as session:
            document = session.execute(
                select(Document)
                .options(selectinload(Document.questions).selectinload(Question.answer))
                .where(Document.id == document_id)
            ).scalar_one_or_none()

            if document is None:
                return None

            return DocumentInfo(
                document_id=document.id,
                title=document.title,
                questions=[
                    QuestionInfo(
                        question_id=question.id,
                        question_number=question.question_number,
                        content=question.content,
                        correct_answer=question.answer.correct_answer if question.answer else None,
                        score=question.answer.score if question.answer else 0
                    )
                    for question in document.questions
                ]
            )

    def get_service_stats(self) -> Dict[str, Any]:
        """Get circuit breaker state and generator configuration"""
        metrics = self.circuit_breaker.get_metrics()
        return {
            "generator_endpoint": self.generation_client.endpoint,
            "circuit_breaker": {
                "name": metrics.name,
                "state": metrics.state.value,
                "buffered_calls": metrics.buffered_calls,
                "failed_calls": metrics.failed_calls,
                "failure_rate": metrics.failure_rate,
                "not_permitted_calls": metrics.not_permitted_calls
            }
        }
