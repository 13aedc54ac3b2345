from collections.abc import Generator
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tests.models import Base


@pytest.fixture(scope="session")
def db_engine():
    """Create an in-memory SQLite engine for the test session.

    StaticPool keeps one connection alive so every session sees the same
    in-memory database, including sessions committing on worker threads.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> Generator[sessionmaker[Session], Any, None]:
    """Create the schema and a session factory for one test, dropping the schema afterwards."""
    Base.metadata.create_all(db_engine)

    yield sessionmaker(bind=db_engine)

    Base.metadata.drop_all(db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, Any, None]:
    """Create a new database session for each test.

    The session is rolled back and closed after the test.
    """
    session = session_factory()

    yield session

    session.rollback()
    session.close()
