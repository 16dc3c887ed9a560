"""
db/models/queue_message.py

Durable message row backing the train / delete model queues.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, utcnow


class ModelOperation:
    TRAIN = "Train"
    DELETE = "Delete"

    ALL = frozenset({TRAIN, DELETE})


class QueueMessageState:
    ACTIVE = "active"
    DEAD_LETTERED = "dead_lettered"


class QueueMessage(Base):
    __tablename__ = "queue_messages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    queue_name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    model_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    operation: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="Train, Delete",
    )
    state: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=QueueMessageState.ACTIVE,
    )
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    visible_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Message is hidden from dequeue until this instant",
    )
    dequeue_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    pop_receipt: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Token of the current lease; rotates on every dequeue",
    )
    dead_lettered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_queue_messages_dequeue", "queue_name", "state", "visible_at"),
        Index("ix_queue_messages_model_id", "model_id"),
    )
