"""
Repository for the model registry: the single source of truth for model status.

Status changes go through `update_status`, which is a compare-and-swap on the
row's version column. A writer that loses a race re-reads the row and
re-evaluates the transition, so concurrent workers converge on one winner.

The InProgress claim is held by a lease token `<message id>:<dequeue count>`.
A redelivery of the same message carries a higher dequeue count and may take
the claim over; writes from an older lease of that message are rejected.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from db.base import utcnow
from db.models.model_entry import ModelEntry, ModelStatus
from db.models.registry_setting import RegistrySetting, RegistrySettingKey
from db.repositories.types import DeleteResult, UpdateResult

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 10_000
MAX_STATUS_MESSAGE_LENGTH = 10_000
_TRIMMED_SUFFIX = "... [trimmed]"
_MAX_CAS_ATTEMPTS = 5


def _trim(message: str | None, limit: int) -> str | None:
    if message is None or len(message) <= limit:
        return message
    return message[:limit] + _TRIMMED_SUFFIX


def trim_error_message(message: str | None) -> str | None:
    return _trim(message, MAX_ERROR_MESSAGE_LENGTH)


def lease_owner(message_id: uuid.UUID | str, dequeue_count: int) -> str:
    """
    Owner token for one delivery of a queue message.
    """

    return f"{message_id}:{dequeue_count}"


def _split_owner(owner: str) -> tuple[str, int] | None:
    message_id, separator, generation = owner.rpartition(":")
    if not separator or not generation.isdigit():
        return None
    return message_id, int(generation)


def supersedes(owner: str, current_owner: str | None) -> bool:
    """
    True when `owner` is a later delivery of the message that holds the claim.
    """

    if current_owner is None:
        return False
    candidate = _split_owner(owner)
    holder = _split_owner(current_owner)
    if candidate is None or holder is None:
        return False
    return candidate[0] == holder[0] and candidate[1] > holder[1]


def is_transition_allowed(
    *,
    current_status: str,
    current_owner: str | None,
    target_status: str,
    owner: str | None,
    force: bool = False,
) -> bool:
    """
    Decide whether an entry may move from its current status to `target_status`.

    Terminal entries never change. An InProgress entry only accepts writes from
    the owner that claimed it, a re-claim from a later delivery of the same
    message, or a forced move to Failed.
    """

    if current_status in ModelStatus.TERMINAL:
        return False
    if current_status == ModelStatus.IN_PROGRESS:
        if force and target_status == ModelStatus.FAILED:
            return True
        if owner is None:
            return False
        if owner == current_owner:
            return True
        return target_status == ModelStatus.IN_PROGRESS and supersedes(owner, current_owner)
    return target_status in (ModelStatus.NEW, ModelStatus.IN_PROGRESS, ModelStatus.FAILED)


class ModelRegistry:
    def __init__(self, *, session_factory: sessionmaker[Session] | None = None) -> None:
        if session_factory is None:
            from db.session import get_session_factory

            self._session_factory = get_session_factory()
        else:
            self._session_factory = session_factory

    def create(
        self,
        *,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
        model_id: uuid.UUID | None = None,
    ) -> ModelEntry:
        entry = ModelEntry(
            model_id=model_id or uuid.uuid4(),
            status=ModelStatus.NEW,
            description=description,
            parameters=parameters,
        )
        with self._session_factory() as session:
            session.add(entry)
            session.commit()
        logger.info("Created model entry model_id=%s", entry.model_id)
        return entry

    def get(self, model_id: uuid.UUID) -> ModelEntry | None:
        with self._session_factory() as session:
            return session.get(ModelEntry, model_id)

    def get_or_create(self, model_id: uuid.UUID) -> ModelEntry:
        existing = self.get(model_id)
        if existing is not None:
            return existing
        try:
            return self.create(model_id=model_id)
        except IntegrityError:
            # Another worker inserted the same id first.
            entry = self.get(model_id)
            if entry is None:
                raise
            return entry

    def list_models(self, *, status: str | None = None, limit: int = 100) -> list[ModelEntry]:
        stmt = select(ModelEntry)
        if status:
            stmt = stmt.where(ModelEntry.status == status)
        stmt = stmt.order_by(ModelEntry.created_at.desc()).limit(max(1, limit))
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    def update_status(
        self,
        model_id: uuid.UUID,
        status: str,
        *,
        owner: str | None = None,
        parsing_report: dict[str, Any] | None = None,
        statistics: dict[str, Any] | None = None,
        error_message: str | None = None,
        status_message: str | None = None,
        force: bool = False,
    ) -> str:
        """
        Atomically move a model to `status`.

        Returns UpdateResult.SUCCESS, CONFLICT (the transition is not allowed,
        e.g. another owner holds the InProgress claim) or NOT_FOUND.
        """

        if status not in ModelStatus.ALL:
            raise ValueError(f"Unknown model status: {status!r}")
        if status == ModelStatus.IN_PROGRESS and not owner:
            raise ValueError("Claiming a model requires an owner.")

        for attempt in range(1, _MAX_CAS_ATTEMPTS + 1):
            with self._session_factory() as session:
                entry = session.get(ModelEntry, model_id)
                if entry is None:
                    return UpdateResult.NOT_FOUND

                if not is_transition_allowed(
                    current_status=entry.status,
                    current_owner=entry.owner,
                    target_status=status,
                    owner=owner,
                    force=force,
                ):
                    logger.info(
                        "Rejected status change model_id=%s from=%s to=%s owner=%s holder=%s",
                        model_id,
                        entry.status,
                        status,
                        owner,
                        entry.owner,
                    )
                    return UpdateResult.CONFLICT

                if entry.status == ModelStatus.NEW and status == ModelStatus.NEW:
                    return UpdateResult.SUCCESS

                self._apply(
                    entry,
                    status=status,
                    owner=owner,
                    parsing_report=parsing_report,
                    statistics=statistics,
                    error_message=error_message,
                    status_message=status_message,
                )
                try:
                    session.commit()
                except StaleDataError:
                    session.rollback()
                    logger.debug(
                        "Concurrent update detected model_id=%s attempt=%d", model_id, attempt
                    )
                    continue

                logger.info("Model status updated model_id=%s status=%s", model_id, status)
                return UpdateResult.SUCCESS

        logger.warning("Gave up updating model_id=%s after %d attempts", model_id, _MAX_CAS_ATTEMPTS)
        return UpdateResult.CONFLICT

    def update_status_message(self, model_id: uuid.UUID, message: str, *, owner: str) -> str:
        """
        Record training progress on an entry still claimed by `owner`.
        """

        for _ in range(_MAX_CAS_ATTEMPTS):
            with self._session_factory() as session:
                entry = session.get(ModelEntry, model_id)
                if entry is None:
                    return UpdateResult.NOT_FOUND
                if entry.status != ModelStatus.IN_PROGRESS or entry.owner != owner:
                    return UpdateResult.CONFLICT
                entry.status_message = _trim(message, MAX_STATUS_MESSAGE_LENGTH)
                try:
                    session.commit()
                except StaleDataError:
                    session.rollback()
                    continue
                logger.debug("Model status message updated model_id=%s message=%s", model_id, message)
                return UpdateResult.SUCCESS
        return UpdateResult.CONFLICT

    def delete(self, model_id: uuid.UUID) -> str:
        """
        Remove the entry, clearing the default model pointer when it names it.
        """

        for _ in range(_MAX_CAS_ATTEMPTS):
            with self._session_factory() as session:
                entry = session.get(ModelEntry, model_id)
                if entry is None:
                    return DeleteResult.NOT_FOUND
                session.delete(entry)
                default = session.get(RegistrySetting, RegistrySettingKey.DEFAULT_MODEL_ID)
                if default is not None and default.value == str(model_id):
                    session.delete(default)
                    logger.info("Cleared default model model_id=%s", model_id)
                try:
                    session.commit()
                except StaleDataError:
                    session.rollback()
                    continue
                logger.info("Deleted model entry model_id=%s", model_id)
                return DeleteResult.DELETED
        return DeleteResult.NOT_FOUND

    # ------------------------------------------------------------------
    # Default model
    # ------------------------------------------------------------------

    def get_default_model_id(self) -> uuid.UUID | None:
        with self._session_factory() as session:
            setting = session.get(RegistrySetting, RegistrySettingKey.DEFAULT_MODEL_ID)
            return uuid.UUID(setting.value) if setting is not None else None

    def get_default_model(self) -> ModelEntry | None:
        model_id = self.get_default_model_id()
        if model_id is None:
            logger.debug("Default model is not set")
            return None
        return self.get(model_id)

    def set_default_model_id(self, model_id: uuid.UUID) -> bool:
        """
        Point the default model at a Completed model. Returns False otherwise.
        """

        with self._session_factory() as session:
            entry = session.get(ModelEntry, model_id)
            if entry is None or entry.status != ModelStatus.COMPLETED:
                logger.info("Refused to set default model model_id=%s", model_id)
                return False
            setting = session.get(RegistrySetting, RegistrySettingKey.DEFAULT_MODEL_ID)
            if setting is None:
                session.add(
                    RegistrySetting(key=RegistrySettingKey.DEFAULT_MODEL_ID, value=str(model_id))
                )
            else:
                setting.value = str(model_id)
            session.commit()
        logger.info("Default model updated model_id=%s", model_id)
        return True

    def set_default_model_id_if_empty(self, model_id: uuid.UUID) -> bool:
        """
        Make `model_id` the default unless a default already exists.
        """

        with self._session_factory() as session:
            if session.get(RegistrySetting, RegistrySettingKey.DEFAULT_MODEL_ID) is not None:
                return False
            entry = session.get(ModelEntry, model_id)
            if entry is None or entry.status != ModelStatus.COMPLETED:
                return False
            session.add(RegistrySetting(key=RegistrySettingKey.DEFAULT_MODEL_ID, value=str(model_id)))
            try:
                session.commit()
            except IntegrityError:
                # Another worker set a default first.
                session.rollback()
                return False
        logger.info("Default model set model_id=%s", model_id)
        return True

    def clear_default_model_id(self) -> bool:
        with self._session_factory() as session:
            setting = session.get(RegistrySetting, RegistrySettingKey.DEFAULT_MODEL_ID)
            if setting is None:
                return False
            session.delete(setting)
            session.commit()
        logger.info("Default model cleared")
        return True

    @staticmethod
    def _apply(
        entry: ModelEntry,
        *,
        status: str,
        owner: str | None,
        parsing_report: dict[str, Any] | None,
        statistics: dict[str, Any] | None,
        error_message: str | None,
        status_message: str | None,
    ) -> None:
        now = utcnow()
        entry.status = status
        if status_message is not None:
            entry.status_message = _trim(status_message, MAX_STATUS_MESSAGE_LENGTH)

        if status == ModelStatus.IN_PROGRESS:
            entry.owner = owner
            entry.started_at = now
            entry.completed_at = None
            entry.error_message = None
        elif status == ModelStatus.NEW:
            entry.owner = None
            entry.started_at = None
        elif status == ModelStatus.COMPLETED:
            entry.owner = None
            entry.completed_at = now
            entry.error_message = None
            entry.parsing_report = parsing_report
            if statistics is not None:
                entry.statistics = statistics
        else:
            entry.owner = None
            entry.completed_at = now
            entry.error_message = trim_error_message(error_message)
            if parsing_report is not None:
                entry.parsing_report = parsing_report
            if statistics is not None:
                entry.statistics = statistics
