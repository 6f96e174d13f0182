"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test runs against its own in-memory SQLite database and a
controllable clock; no PostgreSQL or network access is needed.
"""
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Must be set before config / nora.db.database are imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy.orm import sessionmaker

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings
from nora.comparison.models import ComparisonResult, MissingConcept, UnderstoodConcept
from nora.db.database import build_engine, init_db
from nora.documents.repository import SqlDocumentRepository
from nora.revision.errors import ComparatorError
from nora.revision.service import RevisionService
from nora.revision.store import RevisionSessionStore

USER_ID = 42
OTHER_USER_ID = 7

SAMPLE_SUMMARY = """## Photosynthesis
**Photosynthesis** : process by which plants turn light into chemical energy.
Chlorophyll absorbs mostly blue and red light in the chloroplasts.
The reaction releases oxygen (O2) as a by-product."""

SAMPLE_INSTRUCTIONS = "The definition of photosynthesis is mandatory."


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# ========================================
# Clock
# ========================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 15, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


# ========================================
# Comparator
# ========================================


def make_result(understood: int, missing: int, feedback: str = "Keep it up!") -> ComparisonResult:
    """Build a comparison result with the given number of concepts."""
    return ComparisonResult(
        understood_concepts=[
            UnderstoodConcept(
                concept=f"Segment {i}",
                user_text=f"recalled idea {i}",
                source_text=f"source idea {i}",
            )
            for i in range(1, understood + 1)
        ],
        missing_concepts=[
            MissingConcept(concept=f"Segment {i}", source_text=f"source idea {i}")
            for i in range(understood + 1, understood + missing + 1)
        ],
        overall_score=round(100 * understood / (understood + missing)) if understood + missing else 0,
        feedback=feedback,
    )


class FakeComparator:
    """Comparator returning a canned result and recording its calls."""

    def __init__(self, result: ComparisonResult | None = None, error: Exception | None = None):
        self.result = result or make_result(2, 1)
        self.error = error
        self.calls: list[dict] = []
        self.before_return = None

    def compare(
        self,
        original_summary,
        user_recall,
        specific_instructions=None,
        requirement_level=None,
        custom_settings=None,
    ):
        self.calls.append(
            {
                "original_summary": original_summary,
                "user_recall": user_recall,
                "specific_instructions": specific_instructions,
                "requirement_level": requirement_level,
                "custom_settings": custom_settings,
            }
        )
        if self.before_return is not None:
            self.before_return()
        if self.error is not None:
            raise self.error
        return self.result


# ========================================
# Fixtures
# ========================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def engine():
    """Fresh in-memory database with all tables."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, database_url="sqlite://")


@pytest.fixture
def store(session_factory, clock):
    return RevisionSessionStore(session_factory=session_factory, clock=clock)


@pytest.fixture
def documents(session_factory):
    return SqlDocumentRepository(session_factory)


@pytest.fixture
def document_id(documents):
    """A study document owned by USER_ID."""
    return documents.create(
        USER_ID,
        "Photosynthesis",
        SAMPLE_SUMMARY,
        specific_instructions=SAMPLE_INSTRUCTIONS,
    )


@pytest.fixture
def comparator():
    return FakeComparator()


@pytest.fixture
def failing_comparator():
    return FakeComparator(error=ComparatorError())


@pytest.fixture
def service(store, documents, comparator, settings):
    """Revision service wired to the in-memory database and fake comparator."""
    return RevisionService(
        store=store,
        documents=documents,
        comparator=comparator,
        settings=settings,
    )
