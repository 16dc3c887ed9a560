"""
modeljobs/services/parsing_report.py

Reduces the raw per-line parsing errors and warnings of an input dataset to a
compact report with one entry per reason.

Warnings are reported through the same `errors` list as true errors and are
distinguished only by their reason. Errors and warnings are grouped
independently, so a reason present in both lists yields two entries.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import timedelta

from modeljobs.domain.parsing import FileParsingReport, ParsingError, ParsingErrorReason
from modeljobs.schemas.model import ParsingErrorSample, ParsingReport, ParsingReportEntry


def _sample_file(file_name: str | None, input_root_path: str | None) -> str | None:
    if not file_name or not input_root_path:
        return file_name
    return f"{input_root_path.rstrip('/')}/{file_name}"


def group_parsing_errors(
    parsing_errors: Iterable[ParsingError],
    input_root_path: str | None = None,
) -> list[ParsingReportEntry]:
    """
    Group errors by reason in first-seen order, sampling the first occurrence.

    Sample file names are prefixed with `input_root_path` when given.
    """

    counts: dict[ParsingErrorReason, int] = {}
    samples: dict[ParsingErrorReason, ParsingError] = {}
    for parsing_error in parsing_errors:
        reason = parsing_error.reason
        if reason not in counts:
            counts[reason] = 0
            samples[reason] = parsing_error
        counts[reason] += 1

    return [
        ParsingReportEntry(
            error=reason,
            count=count,
            sample=ParsingErrorSample(
                file=_sample_file(samples[reason].file_name, input_root_path),
                line=samples[reason].line_number,
            ),
        )
        for reason, count in counts.items()
    ]


def create_parsing_report(
    file_report: FileParsingReport,
    duration: timedelta,
    destination_path: str | None = None,
    input_root_path: str | None = None,
) -> ParsingReport:
    errors = group_parsing_errors(file_report.errors, input_root_path)
    errors.extend(group_parsing_errors(file_report.warnings, input_root_path))

    return ParsingReport(
        successful_lines_count=file_report.successful_lines_count,
        total_lines_count=file_report.total_lines_count or None,
        duration=duration,
        errors=errors,
        destination_path=destination_path,
    )
