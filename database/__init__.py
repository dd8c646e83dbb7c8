"""
Persistence layer for the Quiz Question Ingestion Service
"""
from .database import Base, engine, SessionLocal, session_scope, create_tables
from .models import Document, Question, Answer

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "session_scope",
    "create_tables",
    "Document",
    "Question",
    "Answer",
]
