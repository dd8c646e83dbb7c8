"""
Service layer for the Quiz Question Ingestion Service
"""
from .generation_client import GenerationClient
from .result_decoder import ResultDecoder, QuestionRecord
from .ingestion_writer import IngestionWriter
from .question_service import QuestionService, FALLBACK_QUESTION_COUNT

__all__ = [
    'GenerationClient',
    'ResultDecoder', 'QuestionRecord',
    'IngestionWriter',
    'QuestionService', 'FALLBACK_QUESTION_COUNT'
]
