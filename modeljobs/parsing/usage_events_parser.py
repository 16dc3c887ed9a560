"""
modeljobs/parsing/usage_events_parser.py

Parser for usage events datasets: headerless CSV lines of

    user_id,item_id[,timestamp[,weight]]

Bad lines are recorded as parsing errors and skipped. Lines that are valid but
ignored (unknown or repeated events) are recorded as warnings. Parsing stops
once the number of errors exceeds the configured budget.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import threading
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import BinaryIO

from modeljobs.domain.parsing import FileParsingReport, ParsingError, ParsingErrorReason, UsageEvent
from modeljobs.errors import JobCancelledError

logger = logging.getLogger(__name__)

ITEM_ID_MAX_LENGTH = 450
USER_ID_MAX_LENGTH = 255
DEFAULT_EVENT_WEIGHT = 1.0

TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
)

_CANCEL_CHECK_INTERVAL = 1000


def _is_id_character(char: str) -> bool:
    return char.isalnum() or char in {"-", "_"}


def parse_timestamp(raw_value: str) -> datetime | None:
    value = raw_value.strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class UsageEventsParser:
    """
    Parses one usage events stream into events plus a FileParsingReport.
    """

    def __init__(
        self,
        *,
        max_parsing_errors: int = 1000,
        known_item_ids: set[str] | None = None,
        ignore_unknown_item_ids: bool = False,
        file_name: str | None = None,
    ) -> None:
        self._max_parsing_errors = max(0, max_parsing_errors)
        self._known_item_ids = known_item_ids or set()
        self._ignore_unknown_item_ids = ignore_unknown_item_ids
        self._file_name = file_name

    def parse(
        self,
        stream: BinaryIO,
        cancel_event: threading.Event | None = None,
    ) -> tuple[FileParsingReport, list[UsageEvent]]:
        report = FileParsingReport()
        events: list[UsageEvent] = []
        default_timestamp = datetime.now(timezone.utc)
        seen: set[tuple[str, str, datetime]] = set()

        text_stream = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")
        try:
            for line_number, fields in self._read_lines(text_stream, report):
                if cancel_event is not None and line_number % _CANCEL_CHECK_INTERVAL == 0:
                    if cancel_event.is_set():
                        raise JobCancelledError("Usage events parsing was cancelled.")

                if fields is None:
                    if not self._record_error(report, line_number, ParsingErrorReason.MALFORMED_LINE, None):
                        break
                    continue

                event, reason, is_warning = self._parse_fields(fields, default_timestamp)
                line_content = ",".join(fields)
                if reason is not None and not is_warning:
                    if not self._record_error(report, line_number, reason, line_content):
                        break
                    continue
                if reason is not None:
                    report.warnings.append(self._error(line_number, reason, line_content))
                    continue

                key = (event.user_id, event.item_id, event.timestamp)
                if key in seen:
                    report.warnings.append(
                        self._error(line_number, ParsingErrorReason.DUPLICATE_ITEM_ID, line_content)
                    )
                    continue
                seen.add(key)

                report.successful_lines_count += 1
                events.append(event)
        finally:
            try:
                text_stream.detach()
            except ValueError:
                pass

        logger.info(
            "Parsed usage events file=%s total=%d successful=%d errors=%d warnings=%d completed=%s",
            self._file_name,
            report.total_lines_count,
            report.successful_lines_count,
            len(report.errors),
            len(report.warnings),
            report.is_completed_successfully,
        )
        return report, events

    def _read_lines(
        self,
        text_stream: io.TextIOWrapper,
        report: FileParsingReport,
    ) -> Iterator[tuple[int, list[str] | None]]:
        for line_number, raw_line in enumerate(text_stream, start=1):
            if not raw_line.strip():
                continue
            report.total_lines_count += 1
            try:
                rows = list(csv.reader([raw_line], strict=True))
            except csv.Error:
                yield line_number, None
                continue
            yield line_number, [value.strip() for value in rows[0]] if rows else []

    def _parse_fields(
        self,
        fields: list[str],
        default_timestamp: datetime,
    ) -> tuple[UsageEvent | None, ParsingErrorReason | None, bool]:
        if len(fields) < 2 or not fields[0] or not fields[1]:
            return None, ParsingErrorReason.MISSING_FIELDS, False

        timestamp = default_timestamp
        if len(fields) > 2 and fields[2]:
            parsed = parse_timestamp(fields[2])
            if parsed is None:
                return None, ParsingErrorReason.BAD_TIMESTAMP_FORMAT, False
            timestamp = parsed

        weight = DEFAULT_EVENT_WEIGHT
        if len(fields) > 3 and fields[3]:
            try:
                weight = float(fields[3])
            except ValueError:
                return None, ParsingErrorReason.BAD_WEIGHT_FORMAT, False
            if not math.isfinite(weight):
                return None, ParsingErrorReason.BAD_WEIGHT_FORMAT, False

        item_id = fields[1].lower()
        if len(item_id) > ITEM_ID_MAX_LENGTH:
            return None, ParsingErrorReason.ITEM_ID_TOO_LONG, False
        if not all(_is_id_character(char) for char in item_id):
            return None, ParsingErrorReason.ILLEGAL_CHARACTERS_IN_ITEM_ID, False
        if self._ignore_unknown_item_ids and item_id not in self._known_item_ids:
            return None, ParsingErrorReason.UNKNOWN_ITEM_ID, True

        user_id = fields[0].lower()
        if len(user_id) > USER_ID_MAX_LENGTH:
            return None, ParsingErrorReason.USER_ID_TOO_LONG, False
        if not all(_is_id_character(char) for char in user_id):
            return None, ParsingErrorReason.ILLEGAL_CHARACTERS_IN_USER_ID, False

        return UsageEvent(user_id=user_id, item_id=item_id, timestamp=timestamp, weight=weight), None, False

    def _record_error(
        self,
        report: FileParsingReport,
        line_number: int,
        reason: ParsingErrorReason,
        line_content: str | None,
    ) -> bool:
        """
        Record one error; returns False once the error budget is exhausted.
        """

        report.errors.append(self._error(line_number, reason, line_content))
        if len(report.errors) > self._max_parsing_errors:
            report.is_completed_successfully = False
            return False
        return True

    def _error(self, line_number: int, reason: ParsingErrorReason, line_content: str | None) -> ParsingError:
        return ParsingError(
            line_number=line_number,
            reason=reason,
            line_content=line_content,
            file_name=self._file_name,
        )
