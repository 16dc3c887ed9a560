"""
Repository-layer exceptions for registry, queue and model store flows.
"""

from __future__ import annotations


class ModelJobsRepositoryError(Exception):
    """Base exception for repository failures."""


class QueueMessageLostError(ModelJobsRepositoryError):
    """Raised when a queue handle no longer owns its message (lease expired)."""


class ModelStoreError(ModelJobsRepositoryError):
    """Raised when reading, writing or deleting model files fails."""


class ModelDatasetNotFoundError(ModelStoreError):
    """Raised when a model has no input dataset in the store."""


class ModelNotFoundError(ModelJobsRepositoryError):
    """Raised when a model id has no registry entry."""
