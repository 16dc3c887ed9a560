"""
modeljobs/domain/parsing.py

Raw parsing results produced while reading a model's input dataset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ParsingErrorReason(str, Enum):
    MALFORMED_LINE = "MalformedLine"
    MISSING_FIELDS = "MissingFields"
    BAD_TIMESTAMP_FORMAT = "BadTimestampFormat"
    BAD_WEIGHT_FORMAT = "BadWeightFormat"
    MALFORMED_CATALOG_ITEM_FEATURE = "MalformedCatalogItemFeature"
    ITEM_ID_TOO_LONG = "ItemIdTooLong"
    ILLEGAL_CHARACTERS_IN_ITEM_ID = "IllegalCharactersInItemId"
    USER_ID_TOO_LONG = "UserIdTooLong"
    ILLEGAL_CHARACTERS_IN_USER_ID = "IllegalCharactersInUserId"
    UNKNOWN_ITEM_ID = "UnknownItemId"
    DUPLICATE_ITEM_ID = "DuplicateItemId"
    BAD_USER_ID_FORMAT = "BadUserIdFormat"
    BAD_ITEM_ID_FORMAT = "BadItemIdFormat"


@dataclass(frozen=True)
class ParsingError:
    """
    One rejected (error) or skipped (warning) input line.
    """

    line_number: int
    reason: ParsingErrorReason
    line_content: str | None = None
    file_name: str | None = None

    def __post_init__(self) -> None:
        if self.line_number < 0:
            raise ValueError("line_number must be >= 0")


@dataclass
class FileParsingReport:
    """
    Per-line outcome of parsing one input dataset.
    """

    successful_lines_count: int = 0
    total_lines_count: int = 0
    is_completed_successfully: bool = True
    errors: list[ParsingError] = field(default_factory=list)
    warnings: list[ParsingError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class UsageEvent:
    """
    One parsed user/item interaction.
    """

    user_id: str
    item_id: str
    timestamp: datetime
    weight: float = 1.0
