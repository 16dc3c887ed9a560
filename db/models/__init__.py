"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.model_entry import ModelEntry, ModelStatus
from db.models.queue_message import ModelOperation, QueueMessage, QueueMessageState
from db.models.registry_setting import RegistrySetting, RegistrySettingKey

__all__ = [
    "ModelEntry",
    "ModelStatus",
    "ModelOperation",
    "QueueMessage",
    "QueueMessageState",
    "RegistrySetting",
    "RegistrySettingKey",
]
