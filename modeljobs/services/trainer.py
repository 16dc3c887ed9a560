"""
modeljobs/services/trainer.py

Default model trainer: item-to-item co-occurrence counts.

Two items co-occur when the same user interacted with both. For every item the
trainer keeps the `max_similar_items` partners with the highest summed event
weight and serializes the result as a JSON artifact.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from itertools import combinations
from typing import Protocol

from modeljobs.domain.parsing import UsageEvent
from modeljobs.errors import InvalidInputDataError, JobCancelledError

logger = logging.getLogger(__name__)

ARTIFACT_FORMAT_VERSION = 1
DEFAULT_MAX_SIMILAR_ITEMS = 50
_CANCEL_CHECK_INTERVAL = 500


@dataclass(frozen=True)
class TrainedArtifact:
    """
    Serialized model plus the dataset counts gathered while training.
    """

    content: bytes
    training_duration: timedelta
    number_of_usage_events: int
    number_of_users: int
    number_of_items: int


ProgressHandler = Callable[[str], None]


class Trainer(Protocol):
    def train(
        self,
        model_id: uuid.UUID,
        events: Sequence[UsageEvent],
        cancel_event: threading.Event | None = None,
        progress: ProgressHandler | None = None,
    ) -> TrainedArtifact:
        ...


def _raise_if_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise JobCancelledError("Training was cancelled.")


class CooccurrenceTrainer:
    def __init__(self, *, max_similar_items: int = DEFAULT_MAX_SIMILAR_ITEMS) -> None:
        if max_similar_items < 1:
            raise ValueError("max_similar_items must be >= 1")
        self._max_similar_items = max_similar_items

    def train(
        self,
        model_id: uuid.UUID,
        events: Sequence[UsageEvent],
        cancel_event: threading.Event | None = None,
        progress: ProgressHandler | None = None,
    ) -> TrainedArtifact:
        if not events:
            raise InvalidInputDataError("Cannot train a model without usage events.")

        started = time.monotonic()

        user_items: dict[str, dict[str, float]] = defaultdict(dict)
        popularity: dict[str, float] = defaultdict(float)
        for index, event in enumerate(events):
            if index % _CANCEL_CHECK_INTERVAL == 0:
                _raise_if_cancelled(cancel_event)
            items = user_items[event.user_id]
            items[event.item_id] = items.get(event.item_id, 0.0) + event.weight
            popularity[event.item_id] += event.weight
        if progress is not None:
            progress(f"Counted {len(events)} usage events of {len(user_items)} users")

        cooccurrence: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        for index, items in enumerate(user_items.values()):
            if index % _CANCEL_CHECK_INTERVAL == 0:
                _raise_if_cancelled(cancel_event)
            for left, right in combinations(sorted(items), 2):
                weight = min(items[left], items[right])
                cooccurrence[left][right] += weight
                cooccurrence[right][left] += weight
        if progress is not None:
            progress(f"Scored co-occurrences of {len(cooccurrence)} items")

        _raise_if_cancelled(cancel_event)
        similar_items = {
            item_id: [
                [partner, round(score, 6)]
                for partner, score in sorted(
                    partners.items(), key=lambda pair: (-pair[1], pair[0])
                )[: self._max_similar_items]
            ]
            for item_id, partners in sorted(cooccurrence.items())
        }
        payload = {
            "format_version": ARTIFACT_FORMAT_VERSION,
            "model_id": str(model_id),
            "popularity": {
                item_id: round(score, 6) for item_id, score in sorted(popularity.items())
            },
            "similar_items": similar_items,
        }
        content = json.dumps(payload, separators=(",", ":")).encode("utf-8")

        artifact = TrainedArtifact(
            content=content,
            training_duration=timedelta(seconds=time.monotonic() - started),
            number_of_usage_events=len(events),
            number_of_users=len(user_items),
            number_of_items=len(popularity),
        )
        logger.info(
            "Trained co-occurrence model model_id=%s users=%d items=%d bytes=%d",
            model_id,
            artifact.number_of_users,
            artifact.number_of_items,
            len(content),
        )
        return artifact
