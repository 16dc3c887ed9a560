"""
modeljobs/services/job_processor.py

Background processing of queued model jobs.

One call to `process` drives a single queue message through

    Dequeued -> Validating -> Processing -> Finalizing -> Acknowledged | Released | DeadLettered

and never lets an exception escape: every terminal outcome is written to the
model registry and the message is settled on its queue. A job abandoned
because of cancellation or a lost lease is left for redelivery once its
visibility timeout elapses.

Each train job runs under a `JobMonitor`, which interrupts a running parse or
training once the job has to stop.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any, BinaryIO, Protocol

from db.models.model_entry import ModelStatus
from db.models.queue_message import ModelOperation
from db.repositories.errors import QueueMessageLostError
from db.repositories.model_queue import ModelQueue
from db.repositories.model_registry import ModelRegistry, lease_owner
from db.repositories.model_store import ModelStore
from db.repositories.types import DeleteResult, ModelJob, QueueMessageHandle, UpdateResult
from modeljobs.config import ParsingSettings, WorkerSettings, get_parsing_settings, get_worker_settings
from modeljobs.domain.parsing import FileParsingReport, UsageEvent
from modeljobs.errors import (
    FailureKind,
    InvalidInputDataError,
    JobCancelledError,
    ModelDeletedError,
    classify_failure,
    describe_failure,
)
from modeljobs.parsing.usage_events_parser import UsageEventsParser
from modeljobs.schemas.model import ModelStatistics
from modeljobs.services.job_monitor import JobMonitor
from modeljobs.services.parsing_report import create_parsing_report
from modeljobs.services.trainer import CooccurrenceTrainer, Trainer
from modeljobs.tracing import Tracer

logger = logging.getLogger(__name__)

DEFAULT_DATASET_FILE_NAME = "usage.csv"


class JobOutcome:
    ACKNOWLEDGED = "acknowledged"
    RELEASED = "released"
    DEAD_LETTERED = "dead_lettered"
    ABANDONED = "abandoned"


class FileParser(Protocol):
    def parse(
        self,
        stream: BinaryIO,
        cancel_event: threading.Event | None = None,
    ) -> tuple[FileParsingReport, list[UsageEvent]]:
        ...


ParserFactory = Callable[[dict[str, Any]], FileParser]


def build_usage_events_parser(
    parameters: dict[str, Any],
    *,
    settings: ParsingSettings | None = None,
) -> UsageEventsParser:
    """
    Build the default parser, letting per-model parameters override the
    configured error budget.
    """

    settings = settings or get_parsing_settings()
    max_parsing_errors = settings.max_parsing_errors
    raw_budget = parameters.get("max_parsing_errors")
    if raw_budget is not None:
        try:
            max_parsing_errors = max(0, int(raw_budget))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid max_parsing_errors parameter %r", raw_budget)

    return UsageEventsParser(
        max_parsing_errors=max_parsing_errors,
        ignore_unknown_item_ids=settings.ignore_unknown_item_ids,
        file_name=PurePosixPath(str(parameters.get("dataset_path") or DEFAULT_DATASET_FILE_NAME)).name,
    )


class JobProcessor:
    """
    Executes train and delete jobs taken from a model queue.

    Collaborators are injected so that tests can swap the store, parser and
    trainer; `clock` drives the processing timeout.
    """

    def __init__(
        self,
        *,
        registry: ModelRegistry,
        model_store: ModelStore,
        trainer: Trainer | None = None,
        parser_factory: ParserFactory | None = None,
        settings: WorkerSettings | None = None,
        tracer: Tracer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._model_store = model_store
        self._trainer = trainer or CooccurrenceTrainer()
        self._parser_factory = parser_factory or build_usage_events_parser
        self._settings = settings or get_worker_settings()
        self._tracer = tracer or Tracer(__name__, role=self._settings.role_name)
        self._clock = clock

    def process_next(
        self,
        queue: ModelQueue,
        cancel_event: threading.Event | None = None,
    ) -> str | None:
        """
        Lease and process one message. Returns None when the queue is idle.
        """

        if cancel_event is not None and cancel_event.is_set():
            return None
        leased = queue.dequeue(self._settings.visibility_timeout)
        if leased is None:
            return None
        job, handle = leased
        return self.process(job, handle, queue, cancel_event)

    def process(
        self,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        cancel_event: threading.Event | None = None,
    ) -> str:
        tracer = self._tracer.bind(
            queue=queue.name,
            message_id=str(handle.message_id),
            model_id=str(job.model_id),
            operation=job.operation,
            dequeue_count=job.dequeue_count,
        )
        tracer.information("job_started")
        try:
            return self._process(job, handle, queue, cancel_event, tracer)
        except JobCancelledError:
            tracer.warning("job_cancelled")
            return JobOutcome.ABANDONED
        except QueueMessageLostError as exc:
            tracer.warning("queue_message_lost", error=str(exc))
            return JobOutcome.ABANDONED
        except Exception as exc:
            # Settling the message failed; it becomes visible again after its lease.
            logger.exception("Unhandled error while settling message_id=%s", handle.message_id)
            tracer.error("job_settlement_failed", error=describe_failure(exc))
            return JobOutcome.ABANDONED

    def _process(
        self,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        cancel_event: threading.Event | None,
        tracer: Tracer,
    ) -> str:
        if job.dequeue_count > self._settings.max_dequeue_count:
            return self._handle_poison_message(job, handle, queue, tracer)

        try:
            if job.operation == ModelOperation.TRAIN:
                return self._train(job, handle, queue, cancel_event, tracer)
            if job.operation == ModelOperation.DELETE:
                return self._delete(job, handle, queue, cancel_event, tracer)
            raise ValueError(f"Unknown model operation: {job.operation!r}")
        except (JobCancelledError, QueueMessageLostError):
            raise
        except ModelDeletedError:
            return self._handle_deleted_model(job, handle, queue, tracer)
        except Exception as exc:
            return self._handle_failure(exc, job, handle, queue, tracer)

    # ------------------------------------------------------------------
    # Train
    # ------------------------------------------------------------------

    def _train(
        self,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        cancel_event: threading.Event | None,
        tracer: Tracer,
    ) -> str:
        owner = _owner_of(job, handle)
        monitor = JobMonitor(
            model_id=job.model_id,
            registry=self._registry,
            timeout_seconds=self._settings.processing_timeout_seconds,
            status_check_interval_seconds=self._settings.status_check_interval_seconds,
            shutdown_event=cancel_event,
            clock=self._clock,
        )
        started = self._clock()

        entry = self._registry.get_or_create(job.model_id)
        claim = self._registry.update_status(
            job.model_id,
            ModelStatus.IN_PROGRESS,
            owner=owner,
            status_message="Model training started",
        )
        if claim != UpdateResult.SUCCESS:
            tracer.information("job_skipped", claim_result=claim)
            queue.acknowledge(handle)
            return JobOutcome.ACKNOWLEDGED

        parameters = dict(entry.parameters or {})
        input_root_path = self._model_store.input_root_path(job.model_id)

        with monitor:
            monitor.raise_if_interrupted()
            self._report_progress(job.model_id, owner, "Parsing input dataset")

            parse_started = self._clock()
            parser = self._parser_factory(parameters)
            try:
                with self._model_store.get_input_dataset(job.model_id) as stream:
                    file_report, events = parser.parse(stream, monitor.event)
            except JobCancelledError:
                monitor.raise_if_interrupted()
                raise
            parse_duration = timedelta(seconds=self._clock() - parse_started)
            tracer.verbose(
                "dataset_parsed",
                successful_lines=file_report.successful_lines_count,
                errors=len(file_report.errors),
                warnings=len(file_report.warnings),
            )

            if not file_report.is_completed_successfully or file_report.successful_lines_count == 0:
                report = create_parsing_report(
                    file_report, parse_duration, input_root_path=input_root_path
                )
                message = (
                    "Parsing stopped after too many invalid lines in the input dataset."
                    if not file_report.is_completed_successfully
                    else "The input dataset does not contain any valid usage events."
                )
                raise InvalidInputDataError(message, parsing_report=report.model_dump(mode="json"))
            monitor.raise_if_interrupted()

            self._report_progress(job.model_id, owner, "Training model")
            try:
                artifact = self._trainer.train(
                    job.model_id,
                    events,
                    monitor.event,
                    lambda message: self._report_progress(job.model_id, owner, message),
                )
            except JobCancelledError:
                monitor.raise_if_interrupted()
                raise
            monitor.raise_if_interrupted()

            self._report_progress(job.model_id, owner, "Storing trained model")
            location = self._model_store.put_model_artifact(job.model_id, artifact.content)

        report = create_parsing_report(
            file_report,
            parse_duration,
            destination_path=location,
            input_root_path=input_root_path,
        )
        statistics = ModelStatistics(
            total_duration=timedelta(seconds=self._clock() - started),
            training_duration=artifact.training_duration,
            number_of_usage_events=artifact.number_of_usage_events,
            number_of_users=artifact.number_of_users,
            number_of_items=artifact.number_of_items,
        )

        result = self._registry.update_status(
            job.model_id,
            ModelStatus.COMPLETED,
            owner=owner,
            parsing_report=report.model_dump(mode="json"),
            statistics=statistics.model_dump(mode="json"),
            status_message="Model training completed",
        )
        if result == UpdateResult.NOT_FOUND:
            self._model_store.delete_model(job.model_id)
            tracer.warning("model_deleted_during_training")
        elif result == UpdateResult.CONFLICT:
            tracer.warning("model_completion_rejected")
        else:
            tracer.information(
                "job_completed",
                destination_path=location,
                report_entries=len(report.errors),
                total_duration_seconds=statistics.total_duration.total_seconds(),
            )
            if self._registry.set_default_model_id_if_empty(job.model_id):
                tracer.information("default_model_set")

        queue.acknowledge(handle)
        return JobOutcome.ACKNOWLEDGED

    def _report_progress(self, model_id: uuid.UUID, owner: str, message: str) -> None:
        result = self._registry.update_status_message(model_id, message, owner=owner)
        if result != UpdateResult.SUCCESS:
            logger.debug("Skipped progress update model_id=%s result=%s", model_id, result)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def _delete(
        self,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        cancel_event: threading.Event | None,
        tracer: Tracer,
    ) -> str:
        if cancel_event is not None and cancel_event.is_set():
            raise JobCancelledError("Job processing was cancelled.")
        store_result = self._model_store.delete_model(job.model_id)
        registry_result = self._registry.delete(job.model_id)
        if store_result == DeleteResult.NOT_FOUND and registry_result == DeleteResult.NOT_FOUND:
            tracer.information("model_already_deleted")
        else:
            tracer.information(
                "job_completed",
                store_result=store_result,
                registry_result=registry_result,
            )
        queue.acknowledge(handle)
        return JobOutcome.ACKNOWLEDGED

    # ------------------------------------------------------------------
    # Failures
    # ------------------------------------------------------------------

    def _handle_deleted_model(
        self,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        tracer: Tracer,
    ) -> str:
        self._model_store.delete_model(job.model_id)
        tracer.warning("model_deleted_during_training")
        queue.acknowledge(handle)
        return JobOutcome.ACKNOWLEDGED

    def _handle_poison_message(
        self,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        tracer: Tracer,
    ) -> str:
        tracer.error("poison_message", max_dequeue_count=self._settings.max_dequeue_count)
        if job.operation == ModelOperation.TRAIN:
            result = self._registry.update_status(
                job.model_id,
                ModelStatus.FAILED,
                owner=_owner_of(job, handle),
                error_message=(
                    f"Model processing failed after {job.dequeue_count - 1} attempts "
                    "and will not be retried."
                ),
                force=True,
            )
            if result != UpdateResult.SUCCESS:
                tracer.warning("poison_status_update_skipped", update_result=result)
        queue.dead_letter(handle)
        return JobOutcome.DEAD_LETTERED

    def _handle_failure(
        self,
        exc: Exception,
        job: ModelJob,
        handle: QueueMessageHandle,
        queue: ModelQueue,
        tracer: Tracer,
    ) -> str:
        kind = classify_failure(exc)
        message = describe_failure(exc)
        is_train = job.operation == ModelOperation.TRAIN
        owner = _owner_of(job, handle)

        if kind == FailureKind.TRANSIENT and job.dequeue_count < self._settings.max_dequeue_count:
            tracer.warning("job_failed_transient", error=message, failure_kind=kind)
            if is_train:
                result = self._registry.update_status(
                    job.model_id,
                    ModelStatus.NEW,
                    owner=owner,
                    status_message="Model training will be retried",
                )
                if result != UpdateResult.SUCCESS:
                    tracer.warning("retry_status_update_skipped", update_result=result)
            queue.release(handle, delay=self._settings.release_delay)
            return JobOutcome.RELEASED

        if kind == FailureKind.FATAL:
            logger.error("Model job failed model_id=%s", job.model_id, exc_info=exc)
        tracer.error("job_failed", error=message, failure_kind=kind)

        if is_train:
            result = self._registry.update_status(
                job.model_id,
                ModelStatus.FAILED,
                owner=owner,
                error_message=message,
                parsing_report=getattr(exc, "parsing_report", None),
                status_message="Model training failed",
            )
            if result != UpdateResult.SUCCESS:
                tracer.warning("failure_status_update_skipped", update_result=result)

        if kind == FailureKind.INVALID_INPUT:
            queue.acknowledge(handle)
            return JobOutcome.ACKNOWLEDGED
        queue.dead_letter(handle)
        return JobOutcome.DEAD_LETTERED


def _owner_of(job: ModelJob, handle: QueueMessageHandle) -> str:
    return lease_owner(handle.message_id, job.dequeue_count)
