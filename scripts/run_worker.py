"""
Run the model job workers from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading

from db.repositories.model_queue import SqlModelQueue
from db.repositories.model_registry import ModelRegistry
from db.repositories.model_store import LocalModelStore
from modeljobs.config import get_storage_settings, get_worker_settings
from modeljobs.scheduler.workers import WorkerPool
from modeljobs.services.job_processor import JobProcessor


def main() -> int:
    parser = argparse.ArgumentParser(description="Process queued model train / delete jobs.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Drain both queues once and exit instead of polling.",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default="INFO",
        help="Root log level (DEBUG enables verbose job traces).",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    settings = get_worker_settings()
    processor = JobProcessor(
        registry=ModelRegistry(),
        model_store=LocalModelStore(get_storage_settings().root_dir),
        settings=settings,
    )
    pool = WorkerPool(
        processor,
        train_queue=SqlModelQueue(settings.train_queue_name),
        delete_queue=SqlModelQueue(settings.delete_queue_name),
        settings=settings,
    )

    if args.once:
        print(json.dumps(pool.run_once(), indent=2))
        return 0

    stop_requested = threading.Event()

    def _request_stop(signum, frame) -> None:  # noqa: ARG001
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    pool.start()
    try:
        stop_requested.wait()
    finally:
        pool.shutdown(wait=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
