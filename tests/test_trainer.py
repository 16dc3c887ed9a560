"""
tests/test_trainer.py

Pytest unit tests for CooccurrenceTrainer.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone

import pytest

from modeljobs.domain.parsing import UsageEvent
from modeljobs.errors import InvalidInputDataError, JobCancelledError
from modeljobs.services.trainer import CooccurrenceTrainer

_TS = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _event(user: str, item: str, weight: float = 1.0) -> UsageEvent:
    return UsageEvent(user_id=user, item_id=item, timestamp=_TS, weight=weight)


@pytest.fixture()
def events() -> list[UsageEvent]:
    return [
        _event("u1", "a"),
        _event("u1", "b"),
        _event("u2", "a"),
        _event("u2", "b"),
        _event("u2", "c", 3.0),
        _event("u3", "c"),
    ]


def test_counts_users_items_and_events(events: list[UsageEvent]) -> None:
    artifact = CooccurrenceTrainer().train(uuid.uuid4(), events)

    assert artifact.number_of_usage_events == 6
    assert artifact.number_of_users == 3
    assert artifact.number_of_items == 3
    assert artifact.training_duration.total_seconds() >= 0


def test_artifact_ranks_cooccurring_items(events: list[UsageEvent]) -> None:
    model_id = uuid.uuid4()

    payload = json.loads(CooccurrenceTrainer().train(model_id, events).content)

    assert payload["model_id"] == str(model_id)
    assert payload["similar_items"]["a"][0] == ["b", 2.0]
    assert payload["popularity"]["c"] == 4.0


def test_max_similar_items_truncates(events: list[UsageEvent]) -> None:
    payload = json.loads(CooccurrenceTrainer(max_similar_items=1).train(uuid.uuid4(), events).content)

    assert all(len(partners) == 1 for partners in payload["similar_items"].values())


def test_empty_events_are_invalid_input() -> None:
    with pytest.raises(InvalidInputDataError):
        CooccurrenceTrainer().train(uuid.uuid4(), [])


def test_cancelled_training_raises(events: list[UsageEvent]) -> None:
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(JobCancelledError):
        CooccurrenceTrainer().train(uuid.uuid4(), events, cancel_event)


def test_progress_is_reported(events: list[UsageEvent]) -> None:
    messages: list[str] = []

    CooccurrenceTrainer().train(uuid.uuid4(), events, progress=messages.append)

    assert messages == [
        "Counted 6 usage events of 3 users",
        "Scored co-occurrences of 3 items",
    ]


def test_max_similar_items_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CooccurrenceTrainer(max_similar_items=0)
