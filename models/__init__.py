"""
Data models for the Quiz Question Ingestion Service
"""

from .document import DocumentInfo, QuestionInfo
from .generation import GenerationRequest, GenerationResponse
from .api import QuestionGenerationResponse, ErrorResponse

__all__ = [
    # Document read models
    "DocumentInfo",
    "QuestionInfo",

    # Generator wire models
    "GenerationRequest",
    "GenerationResponse",

    # API models
    "QuestionGenerationResponse",
    "ErrorResponse"
]
