"""Pytest configuration and shared fixtures."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from audited.database import Base
from audited.models.audit import Audit  # noqa: F401
from audited.services.auditor import Auditor
from fixture_app import User


@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory database, audited."""
    # In-memory SQLite for fast tests
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    Auditor().install(TestingSessionLocal)

    yield TestingSessionLocal

    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()

    yield session

    session.close()


@pytest.fixture
def user(db_session):
    """A saved user; its create audit is version 1."""
    user = User(name="Testing")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
