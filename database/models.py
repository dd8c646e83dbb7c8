"""
SQLAlchemy models for documents and their generated quiz items
Document → Question → Answer ownership
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.database import Base


class Document(Base):
    """
    Uploaded source document.
    Created by the upload flow; question ingestion only reads it.
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    storage_url = Column(String(1024), nullable=False)  # where the uploaded bytes live
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    questions = relationship(
        "Question",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Question.question_number"
    )

    def __repr__(self):
        return f"<Document(id={self.id}, title='{self.title}')>"


class Question(Base):
    """Generated quiz question; question_number is 1-based within its document."""
    __tablename__ = "questions"
    __table_args__ = (
        UniqueConstraint("document_id", "question_number", name="uq_question_document_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    question_number = Column(Integer, nullable=False)

    document = relationship("Document", back_populates="questions")
    answer = relationship(
        "Answer",
        back_populates="question",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self):
        return f"<Question(id={self.id}, document_id={self.document_id}, number={self.question_number})>"


class Answer(Base):
    """Correct answer for exactly one question. Score starts at zero."""
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    correct_answer = Column(Text, nullable=False)
    score = Column(Integer, default=0, nullable=False)

    question = relationship("Question", back_populates="answer")

    def __repr__(self):
        return f"<Answer(id={self.id}, question_id={self.question_id}, score={self.score})>"
