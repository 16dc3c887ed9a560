"""
db/models/registry_setting.py

Registry-wide key/value settings, such as the id of the default model.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class RegistrySettingKey:
    DEFAULT_MODEL_ID = "default_model_id"


class RegistrySetting(Base, TimestampMixin):
    __tablename__ = "registry_settings"

    key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    value: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
