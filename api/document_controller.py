"""
Document question-generation controller for the Quiz Question Ingestion Service REST API
"""
import logging
from fastapi import APIRouter, status

from models.api import QuestionGenerationResponse, ErrorResponse
from models.document import DocumentInfo
from services.question_service import FALLBACK_QUESTION_COUNT
from utils.exceptions import DocumentNotFoundError

logger = logging.getLogger(__name__)

# Create router for document endpoints
router = APIRouter(prefix="/documents", tags=["documents"])

# Import dependencies
from api.dependencies import QuestionServiceDep


@router.post(
    "/{document_id}/questions",
    response_model=QuestionGenerationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Generate quiz questions for a stored document",
    description="Ask the question generator to derive questions from the document and store them"
)
async def generate_questions(
    document_id: int,
    question_service: QuestionServiceDep
) -> QuestionGenerationResponse:
    """
    Generate and store the questions of an uploaded document.

    A generator failure or an open circuit is not an HTTP error: the run
    reports a question_count of -1 and generated=false.

    Args:
        document_id: Identifier of a document created by the upload flow

    Returns:
        QuestionGenerationResponse with the number of ingested questions

    Raises:
        DocumentNotFoundError: If the document does not exist (404)
    """
    document = question_service.get_document(document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)

    logger.info(f"Generating questions for document {document_id}")
    question_count = await question_service.create_question(document.storage_url, document)

    return QuestionGenerationResponse(
        document_id=document_id,
        question_count=question_count,
        generated=question_count != FALLBACK_QUESTION_COUNT
    )


@router.get(
    "/{document_id}",
    response_model=DocumentInfo,
    responses={404: {"model": ErrorResponse}},
    summary="Get a document with its questions",
    description="Get a document's title and its generated questions and answers in order"
)
async def get_document_info(
    document_id: int,
    question_service: QuestionServiceDep
) -> DocumentInfo:
    """
    Get a document together with its generated questions.

    Raises:
        DocumentNotFoundError: If the document does not exist (404)
    """
    document_info = question_service.get_document_info(document_id)
    if document_info is None:
        raise DocumentNotFoundError(document_id)
    return document_info
