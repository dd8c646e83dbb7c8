"""
Shared fixtures for the Quiz Question Ingestion Service tests
"""
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

from database.database import build_engine, create_tables
from database.models import Document


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created"""
    db_engine = build_engine("sqlite://")
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def document(session_factory):
    """A stored document, detached from its session"""
    with session_factory() as session:
        doc = Document(
            title="Operating Systems - Week 3",
            storage_url="https://bucket.s3.amazonaws.com/uploads/os-week3.pdf"
        )
        session.add(doc)
        session.commit()
        session.refresh(doc)
    return doc


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text to a file and return its path"""
    def _write(content: str, name: str = "result.csv") -> str:
        path = Path(tmp_path) / name
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write
