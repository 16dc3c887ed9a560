"""
tests/test_model_queue.py

Pytest tests for SqlModelQueue against a SQLite database.

Coverage
--------
- Enqueue / dequeue / acknowledge
- Visibility timeout hides leased messages and redelivers expired leases
- Stale handles raise QueueMessageLostError
- Release with and without delay
- Dead-lettering
- Queue isolation inside the shared table
"""

from __future__ import annotations

import time
import uuid
from datetime import timedelta

import pytest

from db.models.queue_message import ModelOperation
from db.repositories.errors import QueueMessageLostError
from db.repositories.model_queue import SqlModelQueue
from db.repositories.types import ModelJob, QueueMessageHandle

LEASE = timedelta(minutes=5)


def _train_job(model_id: uuid.UUID | None = None) -> ModelJob:
    return ModelJob(model_id=model_id or uuid.uuid4(), operation=ModelOperation.TRAIN)


# ---------------------------------------------------------------------------
# Basic delivery
# ---------------------------------------------------------------------------


class TestDelivery:
    def test_dequeue_empty_queue_returns_none(self, train_queue: SqlModelQueue) -> None:
        assert train_queue.dequeue(LEASE) is None

    def test_enqueue_dequeue_acknowledge(self, train_queue: SqlModelQueue) -> None:
        job = _train_job()
        enqueued = train_queue.enqueue(job)

        leased = train_queue.dequeue(LEASE)

        assert leased is not None
        dequeued_job, handle = leased
        assert dequeued_job.model_id == job.model_id
        assert dequeued_job.operation == ModelOperation.TRAIN
        assert dequeued_job.dequeue_count == 1
        assert dequeued_job.enqueue_time.tzinfo is not None
        assert handle.message_id == enqueued.message_id
        assert handle.pop_receipt is not None

        train_queue.acknowledge(handle)
        assert train_queue.count_visible() == 0
        assert train_queue.dequeue(LEASE) is None

    def test_leased_message_is_hidden(self, train_queue: SqlModelQueue) -> None:
        train_queue.enqueue(_train_job())
        train_queue.dequeue(LEASE)

        assert train_queue.dequeue(LEASE) is None
        assert train_queue.count_visible() == 0

    def test_oldest_message_first(self, train_queue: SqlModelQueue) -> None:
        second = _train_job()
        first = ModelJob(
            model_id=uuid.uuid4(),
            operation=ModelOperation.TRAIN,
            enqueue_time=second.enqueue_time - timedelta(seconds=1),
        )
        train_queue.enqueue(second)
        train_queue.enqueue(first)

        assert train_queue.dequeue(LEASE)[0].model_id == first.model_id
        assert train_queue.dequeue(LEASE)[0].model_id == second.model_id

    def test_rejects_non_positive_visibility_timeout(self, train_queue: SqlModelQueue) -> None:
        with pytest.raises(ValueError):
            train_queue.dequeue(timedelta(0))

    def test_rejects_unknown_operation(self, train_queue: SqlModelQueue) -> None:
        with pytest.raises(ValueError):
            train_queue.enqueue(ModelJob(model_id=uuid.uuid4(), operation="Retrain"))


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------


class TestLeases:
    def test_expired_lease_is_redelivered_with_incremented_count(self, train_queue: SqlModelQueue) -> None:
        train_queue.enqueue(_train_job())
        _, first_handle = train_queue.dequeue(timedelta(milliseconds=50))

        time.sleep(0.2)
        redelivered = train_queue.dequeue(LEASE)

        assert redelivered is not None
        job, second_handle = redelivered
        assert job.dequeue_count == 2
        assert second_handle.message_id == first_handle.message_id
        assert second_handle.pop_receipt != first_handle.pop_receipt

    def test_stale_handle_cannot_settle(self, train_queue: SqlModelQueue) -> None:
        train_queue.enqueue(_train_job())
        _, stale = train_queue.dequeue(timedelta(milliseconds=50))
        time.sleep(0.2)
        _, current = train_queue.dequeue(LEASE)

        with pytest.raises(QueueMessageLostError):
            train_queue.acknowledge(stale)
        with pytest.raises(QueueMessageLostError):
            train_queue.release(stale)
        with pytest.raises(QueueMessageLostError):
            train_queue.dead_letter(stale)

        train_queue.acknowledge(current)

    def test_acknowledge_twice_raises(self, train_queue: SqlModelQueue) -> None:
        train_queue.enqueue(_train_job())
        _, handle = train_queue.dequeue(LEASE)
        train_queue.acknowledge(handle)

        with pytest.raises(QueueMessageLostError):
            train_queue.acknowledge(handle)

    def test_enqueue_handle_cannot_settle(self, train_queue: SqlModelQueue) -> None:
        handle = train_queue.enqueue(_train_job())

        with pytest.raises(ValueError):
            train_queue.acknowledge(handle)

    def test_handle_of_other_queue_is_rejected(
        self,
        train_queue: SqlModelQueue,
        delete_queue: SqlModelQueue,
    ) -> None:
        train_queue.enqueue(_train_job())
        _, handle = train_queue.dequeue(LEASE)

        with pytest.raises(ValueError):
            delete_queue.acknowledge(handle)


# ---------------------------------------------------------------------------
# Release and dead letter
# ---------------------------------------------------------------------------


class TestReleaseAndDeadLetter:
    def test_release_makes_message_visible_again(self, train_queue: SqlModelQueue) -> None:
        train_queue.enqueue(_train_job())
        _, handle = train_queue.dequeue(LEASE)

        train_queue.release(handle)

        job, _ = train_queue.dequeue(LEASE)
        assert job.dequeue_count == 2

    def test_release_with_delay_hides_message(self, train_queue: SqlModelQueue) -> None:
        train_queue.enqueue(_train_job())
        _, handle = train_queue.dequeue(LEASE)

        train_queue.release(handle, delay=timedelta(minutes=10))

        assert train_queue.dequeue(LEASE) is None

    def test_dead_letter(self, train_queue: SqlModelQueue) -> None:
        job = _train_job()
        train_queue.enqueue(job)
        _, handle = train_queue.dequeue(LEASE)

        train_queue.dead_letter(handle)

        assert train_queue.dequeue(LEASE) is None
        dead = train_queue.list_dead_lettered()
        assert [message.model_id for message in dead] == [job.model_id]
        assert dead[0].dead_lettered_at is not None


def test_queues_are_isolated(train_queue: SqlModelQueue, delete_queue: SqlModelQueue) -> None:
    model_id = uuid.uuid4()
    delete_queue.enqueue(ModelJob(model_id=model_id, operation=ModelOperation.DELETE))

    assert train_queue.dequeue(LEASE) is None
    job, handle = delete_queue.dequeue(LEASE)
    assert job.model_id == model_id
    assert handle == QueueMessageHandle(
        queue_name="delete-models",
        message_id=handle.message_id,
        pop_receipt=handle.pop_receipt,
    )


def test_queue_name_is_required() -> None:
    with pytest.raises(ValueError):
        SqlModelQueue("  ")
