"""
Persists decoded question/answer records for a document
"""
import logging
import time
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal, session_scope
from database.models import Document, Question, Answer
from services.result_decoder import QuestionRecord
from utils.exceptions import IngestionError
from utils.error_handlers import log_performance_metric

logger = logging.getLogger(__name__)


class IngestionWriter:
    """Writes a batch of records as Question/Answer pairs in one transaction"""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Initialize the ingestion writer

        Args:
            session_factory: Session factory (if None, will use database.SessionLocal)
        """
        self.session_factory = session_factory or SessionLocal

    def ingest(self, document: Document, records: Iterable[QuestionRecord]) -> int:
        """
        Persist records as numbered questions of a document

        Questions are numbered from 1 in iteration order. Each question gets
        its answer (score 0) in the same transaction, and the transaction
        commits only after the last record. Any failure rolls everything
        back.

        Args:
            document: Already persisted document the questions belong to
            records: Decoded records, consumed in order

        Returns:
            Number of questions ingested

        Raises:
            IngestionError: If the database rejects the batch
            DecodeError: Propagated unchanged if the records iterator fails
        """
        document_id = document.id
        question_count = 0
        start_time = time.time()

        try:
            with session_scope(self.session_factory) as session:
                for record in records:
                    question_count += 1

                    question = Question(
                        content=record.question,
                        document_id=document_id,
                        question_number=question_count
                    )
                    session.add(question)

                    answer = Answer(
                        correct_answer=record.answer,
                        question=question,
                        score=0
                    )
                    session.add(answer)

                session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to ingest questions for document {document_id}: {e}")
            raise IngestionError(
                message=f"Failed to persist questions for document {document_id}",
                document_id=document_id,
                question_number=question_count or None,
                original_exception=e
            )

        duration_ms = int((time.time() - start_time) * 1000)
        log_performance_metric("question_ingestion", duration_ms, {
            "document_id": document_id,
            "question_count": question_count
        })
        logger.info(f"Ingested {question_count} questions for document {document_id}")

        return question_count
