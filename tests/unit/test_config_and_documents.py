"""
Unit tests for settings, comparator selection and the document repository.
"""

import pytest

from config import Settings
from conftest import OTHER_USER_ID, SAMPLE_INSTRUCTIONS, SAMPLE_SUMMARY, USER_ID
from nora.comparison import GeminiRecallComparator, HttpRecallComparator, build_comparator
from nora.db.database import check_database_health


class TestSettings:
    """Tests for Settings defaults and helpers."""

    def test_revision_defaults(self, settings):
        config = settings.get_revision_config()

        assert config["expiry_seconds"] == 900
        assert config["max_iterations"] == 8
        assert config["min_recall_length"] == 10
        assert config["default_loop_seconds"] == 120
        assert config["default_level"] == "intermediate"

    def test_comparator_timeout_default(self, settings):
        assert settings.get_comparator_config()["timeout_seconds"] == 30.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("REVISION_EXPIRY_SECONDS", "60")
        monkeypatch.setenv("COMPARATOR_PROVIDER", "http")

        settings = Settings(_env_file=None)

        assert settings.revision_expiry_seconds == 60
        assert settings.comparator_provider == "http"

    def test_has_comparator_configured(self):
        assert not Settings(_env_file=None, gemini_api_key=None).has_comparator_configured()
        assert Settings(_env_file=None, gemini_api_key="key").has_comparator_configured()
        assert not Settings(_env_file=None, comparator_provider="http").has_comparator_configured()


class TestBuildComparator:
    """Tests for build_comparator."""

    def test_gemini(self):
        settings = Settings(_env_file=None, gemini_api_key="key", comparator_timeout_seconds=9)

        comparator = build_comparator(settings)

        assert isinstance(comparator, GeminiRecallComparator)
        assert comparator.timeout_seconds == 9

    def test_http(self):
        settings = Settings(
            _env_file=None, comparator_provider="http", comparator_url="http://cmp.test/"
        )

        comparator = build_comparator(settings)

        assert isinstance(comparator, HttpRecallComparator)
        assert comparator.api_url == "http://cmp.test"
        comparator.close()

    def test_http_requires_url(self):
        with pytest.raises(ValueError):
            build_comparator(Settings(_env_file=None, comparator_provider="http"))


class TestSqlDocumentRepository:
    """Tests for the study document repository."""

    def test_summary_and_instructions(self, documents, document_id):
        content = documents.get_summary_and_instructions(document_id, USER_ID)

        assert content.summary_content == SAMPLE_SUMMARY
        assert content.specific_instructions == SAMPLE_INSTRUCTIONS

    def test_scoped_by_owner(self, documents, document_id):
        assert documents.get_summary_and_instructions(document_id, OTHER_USER_ID) is None
        assert documents.set_mastery_score(document_id, OTHER_USER_ID, 50) is False

    def test_empty_instructions_are_none(self, documents):
        doc_id = documents.create(USER_ID, "Cells", "Cells are the unit of life.", "")

        assert documents.get_summary_and_instructions(doc_id, USER_ID).specific_instructions is None

    def test_set_mastery_score(self, documents, document_id):
        assert documents.set_mastery_score(document_id, USER_ID, 80) is True
        assert documents.get_mastery_score(document_id, USER_ID) == 80

    def test_mastery_score_range(self, documents, document_id):
        with pytest.raises(ValueError):
            documents.set_mastery_score(document_id, USER_ID, 101)

    def test_mastery_score_joins_open_transaction(self, documents, session_factory, document_id):
        with session_factory() as db:
            assert documents.set_mastery_score(document_id, USER_ID, 60, db=db) is True
            db.rollback()

        assert documents.get_mastery_score(document_id, USER_ID) is None


class TestDatabaseHealth:
    """Tests for check_database_health."""

    def test_ok(self, engine):
        assert check_database_health(engine) == ("ok", None)
