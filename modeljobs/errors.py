"""
Failure taxonomy for model job processing.

Every exception raised while processing a job is classified into one of:

    transient      infrastructure hiccup; the queue message is released and retried
    invalid_input  the dataset can never train a model; the job fails without retry
    fatal          anything unexpected; the job fails without retry
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from db.repositories.errors import ModelDatasetNotFoundError, ModelStoreError


class FailureKind:
    TRANSIENT = "transient"
    INVALID_INPUT = "invalid_input"
    FATAL = "fatal"


class ModelJobError(Exception):
    """Base exception for job processing failures."""


class TransientJobError(ModelJobError):
    """Raised for failures worth retrying on another delivery."""


class JobTimeoutError(TransientJobError):
    """Raised when a job exceeds its processing timeout."""


class JobCancelledError(ModelJobError):
    """Raised when the worker is shutting down mid-job."""


class ModelDeletedError(ModelJobError):
    """Raised when the model being trained is removed from the registry."""


class InvalidInputDataError(ModelJobError):
    """Raised when the input dataset cannot produce a model (no valid lines, corrupt file)."""

    def __init__(self, message: str, *, parsing_report: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.parsing_report = parsing_report


def classify_failure(exc: BaseException) -> str:
    if isinstance(exc, TransientJobError):
        return FailureKind.TRANSIENT
    if isinstance(exc, (InvalidInputDataError, ModelDatasetNotFoundError, UnicodeDecodeError)):
        return FailureKind.INVALID_INPUT
    if isinstance(exc, (ModelStoreError, OSError, OperationalError, PoolTimeoutError)):
        return FailureKind.TRANSIENT
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return FailureKind.TRANSIENT
    return FailureKind.FATAL


def describe_failure(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"
