"""
tests/test_config.py

Pytest tests for environment-driven settings.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import pytest

from db.config import (
    is_supported_database_url,
    load_env_files,
    normalize_database_url,
    resolve_database_url,
    resolve_migration_database_url,
)
from modeljobs.config import get_parsing_settings, get_storage_settings, get_worker_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Iterator[None]:
    get_worker_settings.cache_clear()
    get_parsing_settings.cache_clear()
    get_storage_settings.cache_clear()
    yield
    get_worker_settings.cache_clear()
    get_parsing_settings.cache_clear()
    get_storage_settings.cache_clear()


class TestWorkerSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "MODEL_JOBS_TRAIN_QUEUE",
            "MODEL_JOBS_TRAIN_WORKERS",
            "MODEL_JOBS_VISIBILITY_TIMEOUT_SECONDS",
            "MODEL_JOBS_PROCESSING_TIMEOUT_SECONDS",
            "MODEL_JOBS_MAX_DEQUEUE_COUNT",
            "MODEL_JOBS_STATUS_CHECK_INTERVAL_SECONDS",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = get_worker_settings()

        assert settings.train_queue_name == "train-models"
        assert settings.train_workers == 2
        assert settings.max_dequeue_count == 5
        assert settings.visibility_timeout == timedelta(hours=1)
        assert settings.processing_timeout < settings.visibility_timeout
        assert settings.status_check_interval_seconds == 60.0

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MODEL_JOBS_TRAIN_QUEUE", "  train-fast ")
        monkeypatch.setenv("MODEL_JOBS_DELETE_WORKERS", "3")
        monkeypatch.setenv("MODEL_JOBS_RELEASE_DELAY_SECONDS", "2.5")
        monkeypatch.setenv("MODEL_JOBS_STATUS_CHECK_INTERVAL_SECONDS", "90")

        settings = get_worker_settings()

        assert settings.train_queue_name == "train-fast"
        assert settings.delete_workers == 3
        assert settings.release_delay == timedelta(seconds=2.5)
        assert settings.status_check_interval_seconds == 90.0

    def test_invalid_values_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MODEL_JOBS_TRAIN_WORKERS", "many")
        monkeypatch.setenv("MODEL_JOBS_MAX_DEQUEUE_COUNT", "0")

        settings = get_worker_settings()

        assert settings.train_workers == 2
        assert settings.max_dequeue_count == 1

    def test_processing_timeout_is_capped_by_visibility_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MODEL_JOBS_VISIBILITY_TIMEOUT_SECONDS", "60")
        monkeypatch.setenv("MODEL_JOBS_PROCESSING_TIMEOUT_SECONDS", "600")

        settings = get_worker_settings()

        assert settings.processing_timeout_seconds == 60.0


def test_parsing_and_storage_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MODEL_JOBS_MAX_PARSING_ERRORS", "25")
    monkeypatch.setenv("MODEL_JOBS_IGNORE_UNKNOWN_ITEM_IDS", "yes")
    monkeypatch.setenv("MODEL_JOBS_STORE_ROOT", "/var/lib/models")

    assert get_parsing_settings().max_parsing_errors == 25
    assert get_parsing_settings().ignore_unknown_item_ids is True
    assert get_storage_settings().root_dir == "/var/lib/models"


class TestDatabaseUrl:
    def test_normalizes_postgres_urls(self) -> None:
        assert normalize_database_url("postgres://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
        assert normalize_database_url("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
        assert normalize_database_url("sqlite:///tmp.db") == "sqlite:///tmp.db"

    def test_supported_urls(self) -> None:
        assert is_supported_database_url("sqlite:///tmp.db")
        assert is_supported_database_url("postgresql+psycopg://h/db")
        assert not is_supported_database_url("mysql://h/db")

    def test_database_url_takes_priority(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MODEL_JOBS_DATABASE_URL", raising=False)
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@primary/db")
        monkeypatch.setenv("LOCAL_DATABASE_URL", "sqlite:///local.db")

        assert resolve_database_url() == "postgresql+psycopg://u:p@primary/db"

    def test_project_url_beats_database_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MODEL_JOBS_DATABASE_URL", "postgresql://u:p@models/db")
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@primary/db")

        assert resolve_database_url() == "postgresql+psycopg://u:p@models/db"

    def test_cloud_url_only_in_cloud_environments(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("MODEL_JOBS_DATABASE_URL", "DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("CLOUD_DATABASE_URL", "postgres://u:p@cloud/db")
        monkeypatch.setenv("LOCAL_DATABASE_URL", "sqlite:///local.db")

        monkeypatch.setenv("ENVIRONMENT", "local")
        assert resolve_database_url() == "sqlite:///local.db"

        monkeypatch.setenv("ENVIRONMENT", "Staging")
        assert resolve_database_url() == "postgresql+psycopg://u:p@cloud/db"

    def test_migrations_require_postgres(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ALEMBIC_DATABASE_URL", raising=False)

        assert (
            resolve_migration_database_url(override="postgres://u:p@h/db")
            == "postgresql+psycopg://u:p@h/db"
        )
        with pytest.raises(RuntimeError, match="PostgreSQL"):
            resolve_migration_database_url(override="sqlite:///local.db")

    def test_alembic_variable_beats_ini_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ALEMBIC_DATABASE_URL", "postgresql://u:p@migrations/db")

        assert (
            resolve_migration_database_url(ini_url="postgresql://u:p@ini/db")
            == "postgresql+psycopg://u:p@migrations/db"
        )


def test_env_files_do_not_override_process_environment(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "# comment",
                "export MODEL_JOBS_TEST_EXPORTED='quoted value'",
                "MODEL_JOBS_TEST_PRESET=from-file",
                "not a pair",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.delenv("MODEL_JOBS_TEST_EXPORTED", raising=False)
    monkeypatch.setenv("MODEL_JOBS_TEST_PRESET", "from-process")

    load_env_files(tmp_path)

    assert os.environ["MODEL_JOBS_TEST_EXPORTED"] == "quoted value"
    assert os.environ["MODEL_JOBS_TEST_PRESET"] == "from-process"
    os.environ.pop("MODEL_JOBS_TEST_EXPORTED", None)
