"""
Durable model queues backed by the `queue_messages` table.

Delivery is at-least-once: `dequeue` leases a message by pushing its
`visible_at` into the future and rotating its pop receipt. A message that is
neither acknowledged, released nor dead-lettered before the lease runs out
becomes visible again and is handed to the next consumer with an incremented
`dequeue_count`.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from db.base import ensure_utc, utcnow
from db.models.queue_message import ModelOperation, QueueMessage, QueueMessageState
from db.repositories.errors import QueueMessageLostError
from db.repositories.types import ModelJob, QueueMessageHandle

logger = logging.getLogger(__name__)

_MAX_CLAIM_ATTEMPTS = 5


class ModelQueue(Protocol):
    """
    Logical queue of model jobs.
    """

    name: str

    def enqueue(self, job: ModelJob) -> QueueMessageHandle:
        ...

    def dequeue(self, visibility_timeout: timedelta) -> tuple[ModelJob, QueueMessageHandle] | None:
        ...

    def acknowledge(self, handle: QueueMessageHandle) -> None:
        ...

    def release(self, handle: QueueMessageHandle, *, delay: timedelta | None = None) -> None:
        ...

    def dead_letter(self, handle: QueueMessageHandle) -> None:
        ...


class SqlModelQueue:
    """
    One named queue stored in the shared `queue_messages` table.
    """

    def __init__(
        self,
        name: str,
        *,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        if not name or not name.strip():
            raise ValueError("Queue name must not be empty.")
        self.name = name.strip()
        if session_factory is None:
            from db.session import get_session_factory

            self._session_factory = get_session_factory()
        else:
            self._session_factory = session_factory

    def enqueue(self, job: ModelJob) -> QueueMessageHandle:
        if job.operation not in ModelOperation.ALL:
            raise ValueError(f"Unknown model operation: {job.operation!r}")

        message = QueueMessage(
            queue_name=self.name,
            model_id=job.model_id,
            operation=job.operation,
            enqueued_at=job.enqueue_time,
            visible_at=job.enqueue_time,
            dequeue_count=0,
        )
        with self._session_factory() as session:
            session.add(message)
            session.commit()

        logger.debug(
            "Enqueued message queue=%s message_id=%s model_id=%s operation=%s",
            self.name,
            message.id,
            job.model_id,
            job.operation,
        )
        return QueueMessageHandle(queue_name=self.name, message_id=message.id)

    def dequeue(self, visibility_timeout: timedelta) -> tuple[ModelJob, QueueMessageHandle] | None:
        """
        Lease the oldest visible message, or return None when the queue is idle.
        """

        if visibility_timeout <= timedelta(0):
            raise ValueError("visibility_timeout must be positive.")

        for _ in range(_MAX_CLAIM_ATTEMPTS):
            now = utcnow()
            with self._session_factory() as session:
                candidate = session.execute(
                    select(QueueMessage.id, QueueMessage.pop_receipt)
                    .where(
                        QueueMessage.queue_name == self.name,
                        QueueMessage.state == QueueMessageState.ACTIVE,
                        QueueMessage.visible_at <= now,
                    )
                    .order_by(QueueMessage.visible_at, QueueMessage.enqueued_at)
                    .limit(1)
                ).first()
                if candidate is None:
                    return None

                receipt = uuid.uuid4().hex
                claim = (
                    update(QueueMessage)
                    .where(
                        QueueMessage.id == candidate.id,
                        QueueMessage.state == QueueMessageState.ACTIVE,
                        QueueMessage.visible_at <= now,
                        _receipt_matches(candidate.pop_receipt),
                    )
                    .values(
                        visible_at=now + visibility_timeout,
                        dequeue_count=QueueMessage.dequeue_count + 1,
                        pop_receipt=receipt,
                    )
                    .execution_options(synchronize_session=False)
                )
                if session.execute(claim).rowcount != 1:
                    # Another consumer leased it between the read and the write.
                    session.rollback()
                    continue
                session.commit()

                message = session.get(QueueMessage, candidate.id)
                if message is None:
                    continue

                job = ModelJob(
                    model_id=message.model_id,
                    operation=message.operation,
                    enqueue_time=ensure_utc(message.enqueued_at),
                    dequeue_count=message.dequeue_count,
                )
                handle = QueueMessageHandle(
                    queue_name=self.name,
                    message_id=message.id,
                    pop_receipt=receipt,
                )
                logger.debug(
                    "Dequeued message queue=%s message_id=%s dequeue_count=%d",
                    self.name,
                    message.id,
                    message.dequeue_count,
                )
                return job, handle

        return None

    def acknowledge(self, handle: QueueMessageHandle) -> None:
        stmt = delete(QueueMessage).where(*self._owned_by(handle))
        self._execute_owned(stmt, handle, action="acknowledge")

    def release(self, handle: QueueMessageHandle, *, delay: timedelta | None = None) -> None:
        visible_at = utcnow() + (delay or timedelta(0))
        stmt = (
            update(QueueMessage)
            .where(*self._owned_by(handle))
            .values(visible_at=visible_at, pop_receipt=None)
        )
        self._execute_owned(stmt, handle, action="release")

    def dead_letter(self, handle: QueueMessageHandle) -> None:
        stmt = (
            update(QueueMessage)
            .where(*self._owned_by(handle))
            .values(
                state=QueueMessageState.DEAD_LETTERED,
                dead_lettered_at=utcnow(),
                pop_receipt=None,
            )
        )
        self._execute_owned(stmt, handle, action="dead_letter")

    def count_visible(self) -> int:
        stmt = select(func.count()).select_from(QueueMessage).where(
            QueueMessage.queue_name == self.name,
            QueueMessage.state == QueueMessageState.ACTIVE,
            QueueMessage.visible_at <= utcnow(),
        )
        with self._session_factory() as session:
            return int(session.scalar(stmt) or 0)

    def list_dead_lettered(self, *, limit: int = 100) -> list[QueueMessage]:
        stmt = (
            select(QueueMessage)
            .where(
                QueueMessage.queue_name == self.name,
                QueueMessage.state == QueueMessageState.DEAD_LETTERED,
            )
            .order_by(QueueMessage.dead_lettered_at.desc())
            .limit(max(1, limit))
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    def _owned_by(self, handle: QueueMessageHandle) -> tuple:
        if handle.queue_name != self.name:
            raise ValueError(
                f"Handle belongs to queue {handle.queue_name!r}, not {self.name!r}."
            )
        if handle.pop_receipt is None:
            raise ValueError("Handle has not been dequeued.")
        return (
            QueueMessage.id == handle.message_id,
            QueueMessage.state == QueueMessageState.ACTIVE,
            QueueMessage.pop_receipt == handle.pop_receipt,
        )

    def _execute_owned(self, stmt, handle: QueueMessageHandle, *, action: str) -> None:
        stmt = stmt.execution_options(synchronize_session=False)
        with self._session_factory() as session:
            rowcount = session.execute(stmt).rowcount
            session.commit()
        if rowcount != 1:
            raise QueueMessageLostError(
                f"Cannot {action} message {handle.message_id} on queue {self.name!r}: "
                "its lease expired and it was handed to another consumer."
            )
        logger.debug("%s message queue=%s message_id=%s", action, self.name, handle.message_id)


def _receipt_matches(pop_receipt: str | None):
    if pop_receipt is None:
        return QueueMessage.pop_receipt.is_(None)
    return QueueMessage.pop_receipt == pop_receipt
