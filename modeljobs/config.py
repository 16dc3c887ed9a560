"""
modeljobs/config.py

Environment-driven settings for the model job workers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class WorkerSettings:
    """
    Queue polling and job processing behaviour.

    The visibility timeout must outlast the processing timeout, otherwise a
    slow but healthy job is redelivered to a second worker while still running.
    """

    train_queue_name: str = "train-models"
    delete_queue_name: str = "delete-models"
    train_workers: int = 2
    delete_workers: int = 1
    poll_interval_seconds: float = 5.0
    visibility_timeout_seconds: float = 3600.0
    processing_timeout_seconds: float = 3300.0
    max_dequeue_count: int = 5
    release_delay_seconds: float = 30.0
    status_check_interval_seconds: float = 60.0
    role_name: str = "worker"

    @property
    def visibility_timeout(self) -> timedelta:
        return timedelta(seconds=self.visibility_timeout_seconds)

    @property
    def processing_timeout(self) -> timedelta:
        return timedelta(seconds=self.processing_timeout_seconds)

    @property
    def release_delay(self) -> timedelta:
        return timedelta(seconds=self.release_delay_seconds)


@dataclass(frozen=True)
class ParsingSettings:
    """
    Input dataset parsing limits.
    """

    max_parsing_errors: int = 1000
    ignore_unknown_item_ids: bool = False


@dataclass(frozen=True)
class StorageSettings:
    """
    Model store location.
    """

    root_dir: str = "data/models"


@lru_cache(maxsize=1)
def get_worker_settings() -> WorkerSettings:
    """
    Return cached worker settings from environment variables.
    """

    visibility_timeout = max(1.0, _get_float_env("MODEL_JOBS_VISIBILITY_TIMEOUT_SECONDS", 3600.0))
    processing_timeout = max(1.0, _get_float_env("MODEL_JOBS_PROCESSING_TIMEOUT_SECONDS", 3300.0))
    return WorkerSettings(
        train_queue_name=_get_str_env("MODEL_JOBS_TRAIN_QUEUE", "train-models"),
        delete_queue_name=_get_str_env("MODEL_JOBS_DELETE_QUEUE", "delete-models"),
        train_workers=max(1, _get_int_env("MODEL_JOBS_TRAIN_WORKERS", 2)),
        delete_workers=max(1, _get_int_env("MODEL_JOBS_DELETE_WORKERS", 1)),
        poll_interval_seconds=max(0.1, _get_float_env("MODEL_JOBS_POLL_INTERVAL_SECONDS", 5.0)),
        visibility_timeout_seconds=visibility_timeout,
        processing_timeout_seconds=min(processing_timeout, visibility_timeout),
        max_dequeue_count=max(1, _get_int_env("MODEL_JOBS_MAX_DEQUEUE_COUNT", 5)),
        release_delay_seconds=max(0.0, _get_float_env("MODEL_JOBS_RELEASE_DELAY_SECONDS", 30.0)),
        status_check_interval_seconds=max(
            1.0, _get_float_env("MODEL_JOBS_STATUS_CHECK_INTERVAL_SECONDS", 60.0)
        ),
        role_name=_get_str_env("MODEL_JOBS_ROLE_NAME", "worker"),
    )


@lru_cache(maxsize=1)
def get_parsing_settings() -> ParsingSettings:
    """
    Return cached parsing settings from environment variables.
    """

    return ParsingSettings(
        max_parsing_errors=max(0, _get_int_env("MODEL_JOBS_MAX_PARSING_ERRORS", 1000)),
        ignore_unknown_item_ids=_get_bool_env("MODEL_JOBS_IGNORE_UNKNOWN_ITEM_IDS", False),
    )


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """
    Return cached model store settings from environment variables.
    """

    return StorageSettings(root_dir=_get_str_env("MODEL_JOBS_STORE_ROOT", "data/models"))
