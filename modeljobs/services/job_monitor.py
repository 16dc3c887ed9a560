"""
modeljobs/services/job_monitor.py

Watches one running train job and sets its interrupt event when the job has
to stop: the worker is shutting down, the processing deadline has passed, or
the model was deleted from the registry.

Parsers and trainers only see the event. Once they stop, the job processor
calls `raise_if_interrupted` to turn the recorded reason into the matching
exception.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable

from db.repositories.model_registry import ModelRegistry
from modeljobs.errors import JobCancelledError, JobTimeoutError, ModelDeletedError

logger = logging.getLogger(__name__)

_MAX_TICK_SECONDS = 0.25


class InterruptReason:
    SHUTDOWN = "shutdown"
    TIMEOUT = "timeout"
    MODEL_DELETED = "model_deleted"


class JobMonitor:
    def __init__(
        self,
        *,
        model_id: uuid.UUID,
        registry: ModelRegistry,
        timeout_seconds: float,
        status_check_interval_seconds: float,
        shutdown_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._model_id = model_id
        self._registry = registry
        self._timeout_seconds = timeout_seconds
        self._status_check_interval = max(0.01, status_check_interval_seconds)
        self._shutdown_event = shutdown_event
        self._clock = clock
        self._deadline = clock() + timeout_seconds

        self._event = threading.Event()
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._thread: threading.Thread | None = None

    @property
    def event(self) -> threading.Event:
        """Set once the job must stop; pass it to parsers and trainers."""
        return self._event

    @property
    def reason(self) -> str | None:
        return self._reason

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"job-monitor-{self._model_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._status_check_interval + 1.0)

    def __enter__(self) -> "JobMonitor":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def poll(self, *, check_status: bool = True) -> str | None:
        """
        Evaluate every stop condition once and return the interrupt reason, if any.
        """

        if self._event.is_set():
            return self._reason
        if self._shutdown_event is not None and self._shutdown_event.is_set():
            return self._interrupt(InterruptReason.SHUTDOWN)
        if self._clock() > self._deadline:
            return self._interrupt(InterruptReason.TIMEOUT)
        if check_status and self._registry.get(self._model_id) is None:
            return self._interrupt(InterruptReason.MODEL_DELETED)
        return None

    def raise_if_interrupted(self) -> None:
        reason = self.poll()
        if reason == InterruptReason.SHUTDOWN:
            raise JobCancelledError("Job processing was cancelled.")
        if reason == InterruptReason.TIMEOUT:
            raise JobTimeoutError(f"Job processing exceeded {self._timeout_seconds:g} seconds.")
        if reason == InterruptReason.MODEL_DELETED:
            raise ModelDeletedError(f"Model {self._model_id} was deleted from the registry.")

    def _interrupt(self, reason: str) -> str:
        with self._lock:
            if self._reason is None:
                self._reason = reason
                logger.info("Interrupting job model_id=%s reason=%s", self._model_id, reason)
            self._event.set()
            return self._reason

    def _run(self) -> None:
        tick = min(_MAX_TICK_SECONDS, self._status_check_interval)
        next_status_check = time.monotonic() + self._status_check_interval
        while not self._stopped.wait(tick):
            check_status = time.monotonic() >= next_status_check
            if check_status:
                next_status_check = time.monotonic() + self._status_check_interval
            try:
                if self.poll(check_status=check_status) is not None:
                    return
            except Exception:  # noqa: BLE001
                # The next tick retries; checkpoints surface persistent registry errors.
                logger.warning(
                    "Model status check failed model_id=%s", self._model_id, exc_info=True
                )
