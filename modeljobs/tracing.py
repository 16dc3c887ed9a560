"""
Structured tracing for job processing.

Context (role, queue, message, model) is passed explicitly by the caller and
bound to a Tracer instance; nothing is kept in process-wide state.
"""

from __future__ import annotations

import json
import logging
from typing import Any

VERBOSE = logging.DEBUG


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


class Tracer:
    """
    Fire-and-forget observability sink with a bound context.
    """

    def __init__(self, name: str, **context: Any) -> None:
        if not name or not name.strip():
            raise ValueError("Tracer name must not be empty.")
        self._logger = logging.getLogger(name)
        self._context = {key: value for key, value in context.items() if value is not None}

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **context: Any) -> "Tracer":
        tracer = Tracer(self._logger.name)
        tracer._context = {
            **self._context,
            **{key: value for key, value in context.items() if value is not None},
        }
        return tracer

    def verbose(self, event: str, **fields: Any) -> None:
        log_event(self._logger, VERBOSE, event, **self._context, **fields)

    def information(self, event: str, **fields: Any) -> None:
        log_event(self._logger, logging.INFO, event, **self._context, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        log_event(self._logger, logging.WARNING, event, **self._context, **fields)

    def error(self, event: str, **fields: Any) -> None:
        log_event(self._logger, logging.ERROR, event, **self._context, **fields)
