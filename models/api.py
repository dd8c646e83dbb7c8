"""
API request and response models for the Quiz Question Ingestion Service
"""
from pydantic import BaseModel, Field, ConfigDict


class QuestionGenerationResponse(BaseModel):
    """Outcome of a question generation run"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "document_id": 7,
                "question_count": 12,
                "generated": True
            }
        }
    )

    document_id: int = Field(..., description="Document the questions were generated for")
    question_count: int = Field(..., ge=-1, description="Number of ingested questions, or -1 when generation fell back")
    generated: bool = Field(..., description="False when the fallback result was returned")


class ErrorResponse(BaseModel):
    """Standard error response model"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "DOCUMENT_NOT_FOUND",
                    "message": "Document 7 not found",
                    "details": {
                        "document_id": 7
                    },
                    "timestamp": "2024-01-15T10:30:00Z"
                }
            }
        }
    )

    error: dict = Field(..., description="Error details")
