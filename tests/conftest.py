"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from fakes import dual_pricing_document, snapshot  # noqa: E402
from proposal_service import models  # noqa: E402,F401
from proposal_service.database import Base  # noqa: E402
from proposal_service.services.job_store import JobStore  # noqa: E402


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """Create a file-backed SQLite database for each test, shared across worker threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield TestingSessionLocal

    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory=session_factory)


@pytest.fixture
def create_job(store):
    """Create a pending job; defaults to one dual pricing document."""

    def _create(documents=None, **snapshot_kwargs):
        if documents is None:
            documents = [dual_pricing_document()]
        return store.create("user-1", snapshot(**snapshot_kwargs), documents, organization_id="org-1")

    return _create
