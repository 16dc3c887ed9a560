"""
tests/conftest.py

Shared fixtures: every test gets its own SQLite database file and model store
directory under pytest's tmp_path.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.base import Base
from db.models import ModelEntry, QueueMessage, RegistrySetting  # noqa: F401
from db.repositories.model_queue import SqlModelQueue
from db.repositories.model_registry import ModelRegistry
from db.repositories.model_store import LocalModelStore
from db.session import create_db_engine, create_session_factory
from modeljobs.config import WorkerSettings


@pytest.fixture()
def engine(tmp_path: Path) -> Iterator[Engine]:
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'modeljobs.db'}")
    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture()
def registry(session_factory: sessionmaker[Session]) -> ModelRegistry:
    return ModelRegistry(session_factory=session_factory)


@pytest.fixture()
def train_queue(session_factory: sessionmaker[Session]) -> SqlModelQueue:
    return SqlModelQueue("train-models", session_factory=session_factory)


@pytest.fixture()
def delete_queue(session_factory: sessionmaker[Session]) -> SqlModelQueue:
    return SqlModelQueue("delete-models", session_factory=session_factory)


@pytest.fixture()
def model_store(tmp_path: Path) -> LocalModelStore:
    return LocalModelStore(tmp_path / "store")


@pytest.fixture()
def worker_settings() -> WorkerSettings:
    return WorkerSettings(
        train_workers=1,
        delete_workers=1,
        poll_interval_seconds=0.1,
        visibility_timeout_seconds=60.0,
        processing_timeout_seconds=30.0,
        max_dequeue_count=3,
        release_delay_seconds=0.0,
        status_check_interval_seconds=0.05,
    )
