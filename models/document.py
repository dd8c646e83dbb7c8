"""
Read models for documents and their generated questions
"""
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class QuestionInfo(BaseModel):
    """A generated question together with its answer"""

    question_id: int = Field(..., description="Question identifier")
    question_number: int = Field(..., ge=1, description="1-based position within the document")
    content: str = Field(..., description="Question text")
    correct_answer: Optional[str] = Field(None, description="Correct answer text")
    score: int = Field(0, description="Score recorded for the answer")


class DocumentInfo(BaseModel):
    """Document summary with its questions in question_number order"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "document_id": 7,
                "title": "Operating Systems - Week 3",
                "questions": [
                    {
                        "question_id": 31,
                        "question_number": 1,
                        "content": "What is a process?",
                        "correct_answer": "A program in execution",
                        "score": 0
                    }
                ]
            }
        }
    )

    document_id: int = Field(..., description="Document identifier")
    title: str = Field(..., description="Document title")
    questions: list[QuestionInfo] = Field(default_factory=list, description="Generated questions")
