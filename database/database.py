"""
Database connection and session management
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL

    SQLite connections are shared with worker threads and get foreign key
    enforcement switched on so that cascades behave as on Postgres.
    """
    if database_url.startswith("sqlite"):
        engine_kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every thread sees its own empty database
            engine_kwargs["poolclass"] = StaticPool

        db_engine = create_engine(database_url, echo=echo, **engine_kwargs)

        @event.listens_for(db_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return db_engine

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )


# Create engine
engine = build_engine(settings.database_url, echo=settings.database_echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def create_tables(bind: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet"""
    # Register the mapped classes on Base.metadata
    from database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope(session_factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations

    Commits when the block exits normally, rolls back on any exception and
    always closes the session.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
