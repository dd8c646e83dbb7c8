"""
Tests for data models validation
"""
import pytest
from pydantic import ValidationError

from models import (
    DocumentInfo, QuestionInfo,
    GenerationRequest, GenerationResponse,
    QuestionGenerationResponse, ErrorResponse
)


class TestGenerationModels:
    """Test the generator wire models"""

    def test_request_serializes_with_wire_name(self):
        request = GenerationRequest(document_storage_url="https://bucket/uploads/a.pdf")

        assert request.to_payload() == {"s3_url": "https://bucket/uploads/a.pdf"}

    def test_request_accepts_wire_name(self):
        request = GenerationRequest(s3_url="https://bucket/uploads/a.pdf")

        assert request.document_storage_url == "https://bucket/uploads/a.pdf"

    def test_request_rejects_empty_url(self):
        with pytest.raises(ValidationError):
            GenerationRequest(document_storage_url="")

    def test_response_reads_wire_name(self):
        response = GenerationResponse.model_validate({"csv_url": "https://bucket/results/a.csv"})

        assert response.result_url == "https://bucket/results/a.csv"

    def test_response_requires_result_url(self):
        with pytest.raises(ValidationError) as exc_info:
            GenerationResponse.model_validate({"status": "done"})

        assert "csv_url" in str(exc_info.value)


class TestDocumentModels:
    """Test document read models"""

    def test_document_info_defaults_to_no_questions(self):
        info = DocumentInfo(document_id=1, title="Week 1")

        assert info.questions == []

    def test_question_info(self):
        question = QuestionInfo(
            question_id=10,
            question_number=1,
            content="What is a process?",
            correct_answer="A program in execution"
        )

        assert question.score == 0

    def test_question_number_is_one_based(self):
        with pytest.raises(ValidationError):
            QuestionInfo(question_id=10, question_number=0, content="Q")


class TestAPIModels:
    """Test API request/response models"""

    def test_generation_response_with_fallback_count(self):
        response = QuestionGenerationResponse(document_id=3, question_count=-1, generated=False)

        assert response.question_count == -1
        assert response.generated is False

    def test_generation_response_rejects_other_negative_counts(self):
        with pytest.raises(ValidationError):
            QuestionGenerationResponse(document_id=3, question_count=-2, generated=False)

    def test_error_response(self):
        error = ErrorResponse(error={"code": "DOCUMENT_NOT_FOUND", "message": "Document 3 not found"})

        assert error.error["code"] == "DOCUMENT_NOT_FOUND"
