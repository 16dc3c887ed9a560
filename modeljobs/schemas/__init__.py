"""
Schema exports.
"""

from modeljobs.schemas.model import (
    ModelEntryResponse,
    ModelStatistics,
    ParsingErrorSample,
    ParsingReport,
    ParsingReportEntry,
)

__all__ = [
    "ModelEntryResponse",
    "ModelStatistics",
    "ParsingErrorSample",
    "ParsingReport",
    "ParsingReportEntry",
]
