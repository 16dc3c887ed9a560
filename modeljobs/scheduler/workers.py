"""
modeljobs/scheduler/workers.py

APScheduler-based worker pool polling the model queues.

Pool layout
-----------
Every worker is one interval job on a shared ``BackgroundScheduler`` whose
thread pool has one thread per worker:

  train-worker-<n>   polls the train queue  (``MODEL_JOBS_TRAIN_WORKERS`` jobs)
  delete-worker-<n>  polls the delete queue (``MODEL_JOBS_DELETE_WORKERS`` jobs)

Each run drains its queue until it is idle, then waits for the next tick.
``max_instances=1`` and ``coalesce=True`` keep a worker to one job at a time.

Lifecycle
----------
``WorkerPool.start()`` starts polling. ``WorkerPool.shutdown()`` sets the
shared cancel event so in-flight jobs stop at their next checkpoint without
being acknowledged, then stops the scheduler.
"""

from __future__ import annotations

import logging
import threading

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from db.repositories.model_queue import ModelQueue
from modeljobs.config import WorkerSettings, get_worker_settings
from modeljobs.services.job_processor import JobOutcome, JobProcessor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Worker loop
# ---------------------------------------------------------------------------


def drain_queue(
    processor: JobProcessor,
    queue: ModelQueue,
    cancel_event: threading.Event,
    *,
    max_messages: int | None = None,
) -> dict[str, int]:
    """
    Process messages until the queue is idle, the cancel event is set or
    `max_messages` have been handled. Returns outcome counts.
    """

    counts: dict[str, int] = {}
    handled = 0
    while not cancel_event.is_set():
        if max_messages is not None and handled >= max_messages:
            break
        try:
            outcome = processor.process_next(queue, cancel_event)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Worker: polling queue=%s failed: %s", queue.name, exc)
            break
        if outcome is None:
            break
        handled += 1
        counts[outcome] = counts.get(outcome, 0) + 1
        if outcome == JobOutcome.ABANDONED and cancel_event.is_set():
            break

    if handled:
        logger.info("Worker: queue=%s handled=%d outcomes=%s", queue.name, handled, counts)
    return counts


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_worker_scheduler(
    processor: JobProcessor,
    *,
    train_queue: ModelQueue,
    delete_queue: ModelQueue,
    cancel_event: threading.Event,
    settings: WorkerSettings | None = None,
) -> BackgroundScheduler:
    """
    Build a configured but *not yet started* ``BackgroundScheduler``.
    """

    settings = settings or get_worker_settings()
    total_workers = settings.train_workers + settings.delete_workers
    scheduler = BackgroundScheduler(
        timezone="UTC",
        executors={"default": ThreadPoolExecutor(max_workers=total_workers)},
    )

    for prefix, queue, workers in (
        ("train-worker", train_queue, settings.train_workers),
        ("delete-worker", delete_queue, settings.delete_workers),
    ):
        for index in range(1, workers + 1):
            scheduler.add_job(
                drain_queue,
                trigger="interval",
                seconds=settings.poll_interval_seconds,
                args=(processor, queue, cancel_event),
                id=f"{prefix}-{index}",
                name=f"{prefix} {index} ({queue.name})",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=None,
            )

    return scheduler


class WorkerPool:
    def __init__(
        self,
        processor: JobProcessor,
        *,
        train_queue: ModelQueue,
        delete_queue: ModelQueue,
        settings: WorkerSettings | None = None,
    ) -> None:
        self._processor = processor
        self._train_queue = train_queue
        self._delete_queue = delete_queue
        self._settings = settings or get_worker_settings()
        self._cancel_event = threading.Event()
        self._scheduler: BackgroundScheduler | None = None

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._cancel_event.clear()
        self._scheduler = build_worker_scheduler(
            self._processor,
            train_queue=self._train_queue,
            delete_queue=self._delete_queue,
            cancel_event=self._cancel_event,
            settings=self._settings,
        )
        self._scheduler.start()
        logger.info(
            "Worker pool started train_workers=%d delete_workers=%d poll_interval=%ss",
            self._settings.train_workers,
            self._settings.delete_workers,
            self._settings.poll_interval_seconds,
        )

    def run_once(self) -> dict[str, dict[str, int]]:
        """
        Drain both queues synchronously on the calling thread.
        """

        return {
            self._train_queue.name: drain_queue(
                self._processor, self._train_queue, self._cancel_event
            ),
            self._delete_queue.name: drain_queue(
                self._processor, self._delete_queue, self._cancel_event
            ),
        }

    def shutdown(self, *, wait: bool = True) -> None:
        self._cancel_event.set()
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Worker pool stopped")
