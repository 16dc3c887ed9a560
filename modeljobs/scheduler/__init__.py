"""
Worker pool scheduling.
"""

from modeljobs.scheduler.workers import WorkerPool, build_worker_scheduler, drain_queue

__all__ = ["WorkerPool", "build_worker_scheduler", "drain_queue"]
