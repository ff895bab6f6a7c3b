"""Pytest configuration and fixtures."""
import os

# Must be set before app.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

import pytest
from sqlalchemy.orm import sessionmaker

from app.models.base import Base, build_engine
import app.models  # noqa: F401  registers every table on Base.metadata

from tests.factories import FakeMLConnector, make_account, make_settings


@pytest.fixture
def db():
    """Fresh in-memory database per test"""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def connector():
    return FakeMLConnector()


@pytest.fixture
def account(db):
    return make_account(db)
