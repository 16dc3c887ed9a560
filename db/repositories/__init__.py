"""
Repository layer exports.
"""

from db.repositories.errors import (
    ModelDatasetNotFoundError,
    ModelJobsRepositoryError,
    ModelNotFoundError,
    ModelStoreError,
    QueueMessageLostError,
)
from db.repositories.model_queue import ModelQueue, SqlModelQueue
from db.repositories.model_registry import (
    ModelRegistry,
    is_transition_allowed,
    lease_owner,
    trim_error_message,
)
from db.repositories.model_store import LocalModelStore, ModelStore
from db.repositories.types import DeleteResult, ModelJob, QueueMessageHandle, UpdateResult

__all__ = [
    "ModelRegistry",
    "ModelQueue",
    "SqlModelQueue",
    "ModelStore",
    "LocalModelStore",
    "ModelJob",
    "QueueMessageHandle",
    "UpdateResult",
    "DeleteResult",
    "is_transition_allowed",
    "lease_owner",
    "trim_error_message",
    "ModelJobsRepositoryError",
    "QueueMessageLostError",
    "ModelStoreError",
    "ModelDatasetNotFoundError",
    "ModelNotFoundError",
]
