"""
Domain models for model job processing.
"""

from modeljobs.domain.parsing import FileParsingReport, ParsingError, ParsingErrorReason, UsageEvent

__all__ = [
    "FileParsingReport",
    "ParsingError",
    "ParsingErrorReason",
    "UsageEvent",
]
