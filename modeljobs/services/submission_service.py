"""
modeljobs/services/submission_service.py

Submitter side of the model pipeline: registers new models, stores their
input datasets and enqueues train and delete jobs.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from db.models.model_entry import ModelEntry
from db.models.queue_message import ModelOperation
from db.repositories.errors import ModelNotFoundError
from db.repositories.model_queue import ModelQueue
from db.repositories.model_registry import ModelRegistry
from db.repositories.model_store import ModelStore
from db.repositories.types import ModelJob, QueueMessageHandle
from modeljobs.schemas.model import ModelEntryResponse

logger = logging.getLogger(__name__)


class ModelSubmissionService:
    def __init__(
        self,
        *,
        registry: ModelRegistry,
        model_store: ModelStore,
        train_queue: ModelQueue,
        delete_queue: ModelQueue,
    ) -> None:
        self._registry = registry
        self._model_store = model_store
        self._train_queue = train_queue
        self._delete_queue = delete_queue

    def submit_train(
        self,
        *,
        dataset: bytes,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> ModelEntry:
        """
        Register a New model, upload its usage events and queue it for training.
        """

        if not dataset:
            raise ValueError("Usage events dataset must not be empty.")

        model_id = uuid.uuid4()
        dataset_path = self._model_store.put_input_dataset(model_id, dataset)
        entry = self._registry.create(
            model_id=model_id,
            description=description,
            parameters={**(parameters or {}), "dataset_path": dataset_path},
        )
        handle = self._train_queue.enqueue(
            ModelJob(model_id=model_id, operation=ModelOperation.TRAIN)
        )
        logger.info(
            "Submitted train job model_id=%s queue=%s message_id=%s",
            model_id,
            handle.queue_name,
            handle.message_id,
        )
        return entry

    def submit_delete(self, model_id: uuid.UUID) -> QueueMessageHandle:
        if self._registry.get(model_id) is None:
            raise ModelNotFoundError(f"Model {model_id} does not exist.")

        handle = self._delete_queue.enqueue(
            ModelJob(model_id=model_id, operation=ModelOperation.DELETE)
        )
        logger.info(
            "Submitted delete job model_id=%s queue=%s message_id=%s",
            model_id,
            handle.queue_name,
            handle.message_id,
        )
        return handle

    def get_model(
        self,
        model_id: uuid.UUID,
        *,
        include_error_details: bool = False,
    ) -> ModelEntryResponse:
        entry = self._registry.get(model_id)
        if entry is None:
            raise ModelNotFoundError(f"Model {model_id} does not exist.")
        return ModelEntryResponse.from_entry(entry, include_error_details=include_error_details)

    def list_models(self, *, status: str | None = None, limit: int = 100) -> list[ModelEntryResponse]:
        return [
            ModelEntryResponse.from_entry(entry)
            for entry in self._registry.list_models(status=status, limit=limit)
        ]

    def get_default_model(self) -> ModelEntryResponse | None:
        entry = self._registry.get_default_model()
        return ModelEntryResponse.from_entry(entry) if entry is not None else None

    def set_default_model(self, model_id: uuid.UUID) -> None:
        """
        Make a Completed model the default. Raises ValueError for any other status.
        """

        entry = self._registry.get(model_id)
        if entry is None:
            raise ModelNotFoundError(f"Model {model_id} does not exist.")
        if not self._registry.set_default_model_id(model_id):
            raise ValueError(f"Model {model_id} is {entry.status} and cannot be the default model.")

    def clear_default_model(self) -> bool:
        return self._registry.clear_default_model_id()
