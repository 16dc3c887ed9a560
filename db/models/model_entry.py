"""
db/models/model_entry.py

Registry record holding a model's metadata and current lifecycle status.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONDocument, TimestampMixin


class ModelStatus:
    NEW = "New"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    TERMINAL = frozenset({COMPLETED, FAILED})
    ALL = frozenset({NEW, IN_PROGRESS, COMPLETED, FAILED})


class ModelEntry(Base, TimestampMixin):
    __tablename__ = "model_entries"

    model_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ModelStatus.NEW,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    parameters: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Training parameters supplied at submission",
    )
    parsing_report: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Aggregated input parsing report of the last training run",
    )
    statistics: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Training durations and dataset counts",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    status_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Progress of the current or last training run",
    )
    owner: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Lease token '<message id>:<dequeue count>' holding the InProgress claim",
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_model_entries_status", "status"),
        Index("ix_model_entries_created_at", "created_at"),
    )
