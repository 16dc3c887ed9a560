"""
Typed DTOs and result codes shared by the registry, queue and store flows.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from db.base import utcnow


class UpdateResult:
    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class DeleteResult:
    DELETED = "deleted"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ModelJob:
    """
    One train or delete request travelling through a model queue.
    """

    model_id: uuid.UUID
    operation: str
    enqueue_time: datetime = field(default_factory=utcnow)
    dequeue_count: int = 0


@dataclass(frozen=True)
class QueueMessageHandle:
    """
    Lease on one queue message. `pop_receipt` is None for a freshly enqueued message.
    """

    queue_name: str
    message_id: uuid.UUID
    pop_receipt: str | None = None
