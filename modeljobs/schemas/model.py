"""
modeljobs/schemas/model.py

Serializable report and read models stored on / read from the model registry.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from db.base import ensure_utc
from db.models.model_entry import ModelEntry
from modeljobs.domain.parsing import ParsingErrorReason

REDACTED_ERROR_MESSAGE = "Model processing failed. Contact an administrator for details."


class ParsingErrorSample(BaseModel):
    """
    Location of the first line that failed for a given reason.
    """

    model_config = ConfigDict(frozen=True)

    file: str | None = None
    line: int = Field(..., ge=0)


class ParsingReportEntry(BaseModel):
    """
    Count of input lines rejected or skipped for one reason.
    """

    model_config = ConfigDict(frozen=True)

    error: ParsingErrorReason
    count: int = Field(..., ge=1)
    sample: ParsingErrorSample | None = None


class ParsingReport(BaseModel):
    """
    User-facing summary of the data-quality issues found in an input dataset.
    """

    successful_lines_count: int = Field(..., ge=0)
    duration: timedelta
    errors: list[ParsingReportEntry] = Field(default_factory=list)
    destination_path: str | None = None
    total_lines_count: int | None = Field(default=None, ge=0)


class ModelStatistics(BaseModel):
    """
    Durations and dataset counts gathered while training.
    """

    total_duration: timedelta
    training_duration: timedelta | None = None
    number_of_usage_events: int | None = Field(default=None, ge=0)
    number_of_users: int | None = Field(default=None, ge=0)
    number_of_items: int | None = Field(default=None, ge=0)


class ModelEntryResponse(BaseModel):
    """
    Read model of a registry entry.
    """

    model_config = ConfigDict(protected_namespaces=())

    model_id: uuid.UUID
    status: str
    description: str | None = None
    created_time: datetime | None = None
    completed_time: datetime | None = None
    parsing_report: ParsingReport | None = None
    statistics: ModelStatistics | None = None
    error_message: str | None = None
    status_message: str | None = None
    parameters: dict[str, Any] | None = None

    @classmethod
    def from_entry(
        cls,
        entry: ModelEntry,
        *,
        include_error_details: bool = False,
    ) -> "ModelEntryResponse":
        """
        Build the read model; internal error details are replaced with a generic
        message unless the caller is authorized to see them.
        """

        error_message = entry.error_message
        if error_message and not include_error_details:
            error_message = REDACTED_ERROR_MESSAGE

        return cls(
            model_id=entry.model_id,
            status=entry.status,
            description=entry.description,
            created_time=ensure_utc(entry.created_at),
            completed_time=ensure_utc(entry.completed_at),
            parsing_report=(
                ParsingReport.model_validate(entry.parsing_report) if entry.parsing_report else None
            ),
            statistics=(
                ModelStatistics.model_validate(entry.statistics) if entry.statistics else None
            ),
            error_message=error_message,
            status_message=entry.status_message,
            parameters=entry.parameters,
        )
