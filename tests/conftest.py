"""
Pytest configuration and shared fixtures.

The environment is set here, before anything imports the app, because the
database engine and settings are created at import time.
"""

import os

os.environ["JWT_SECRET"] = "test-secret-key-for-peer-room-chat-0123456789"
os.environ["DATABASE_URL"] = "sqlite:///./test_peerchat.db"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_MESSAGES_PER_MINUTE"] = "0"
os.environ["SEED_DEMO_ROOMS"] = "false"

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from peerchat.config import get_settings
get_settings.cache_clear()

from peerchat import db_models  # noqa: E402,F401  registers the tables
from peerchat.storage import Base, SessionLocal, engine  # noqa: E402

from support import seed_directory  # noqa: E402


@pytest.fixture(scope="function")
def db():
    """Fresh tables with the test users and rooms for each test."""
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed_directory(session)

    yield SessionLocal

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Test client against a seeded database."""
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as test_client:
        yield test_client
