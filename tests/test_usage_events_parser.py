"""
tests/test_usage_events_parser.py

Pytest unit tests for UsageEventsParser.

Coverage
--------
- Valid lines with optional timestamp and weight
- One error reason per kind of bad line, non-finite weights included
- Repeated events reported as DuplicateItemId warnings
- Unknown item ids as warnings when a catalog is enforced
- Error budget stops parsing and marks the report incomplete
- Cancellation
"""

from __future__ import annotations

import io
import threading
from datetime import datetime, timezone

import pytest

from modeljobs.domain.parsing import ParsingErrorReason
from modeljobs.errors import JobCancelledError
from modeljobs.parsing.usage_events_parser import UsageEventsParser, parse_timestamp


def _stream(*lines: str) -> io.BytesIO:
    return io.BytesIO("\n".join(lines).encode("utf-8"))


@pytest.fixture()
def parser() -> UsageEventsParser:
    return UsageEventsParser(max_parsing_errors=100, file_name="usage.csv")


# ---------------------------------------------------------------------------
# Valid input
# ---------------------------------------------------------------------------


class TestValidLines:
    def test_parses_all_field_variants(self, parser: UsageEventsParser) -> None:
        report, events = parser.parse(
            _stream(
                "user-1,item-1",
                "user-1,item-2,2026-01-05T10:00:00",
                "User_2,ITEM-3,2026/01/06,2.5",
            )
        )

        assert report.successful_lines_count == 3
        assert report.total_lines_count == 3
        assert report.errors == []
        assert report.is_completed_successfully is True
        assert events[1].timestamp == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        assert events[2].user_id == "user_2"
        assert events[2].item_id == "item-3"
        assert events[2].weight == 2.5
        assert events[0].weight == 1.0

    def test_blank_lines_are_ignored(self, parser: UsageEventsParser) -> None:
        report, events = parser.parse(_stream("u1,i1", "", "   ", "u2,i2"))

        assert report.total_lines_count == 2
        assert len(events) == 2

    def test_utf8_bom_is_stripped(self, parser: UsageEventsParser) -> None:
        report, events = parser.parse(io.BytesIO(b"\xef\xbb\xbfu1,i1\n"))

        assert report.successful_lines_count == 1
        assert events[0].user_id == "u1"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrorLines:
    @pytest.mark.parametrize(
        ("line", "reason"),
        [
            ("only-user", ParsingErrorReason.MISSING_FIELDS),
            (",item", ParsingErrorReason.MISSING_FIELDS),
            ("u1,i1,not-a-date", ParsingErrorReason.BAD_TIMESTAMP_FORMAT),
            ("u1,i1,2026-01-01,heavy", ParsingErrorReason.BAD_WEIGHT_FORMAT),
            ("u1,i1,2026-01-01,nan", ParsingErrorReason.BAD_WEIGHT_FORMAT),
            ("u1,i1,2026-01-01,inf", ParsingErrorReason.BAD_WEIGHT_FORMAT),
            ("u1,i1,2026-01-01,-Infinity", ParsingErrorReason.BAD_WEIGHT_FORMAT),
            ("u1,i" + "x" * 450, ParsingErrorReason.ITEM_ID_TOO_LONG),
            ("u1,item#1", ParsingErrorReason.ILLEGAL_CHARACTERS_IN_ITEM_ID),
            ("u" * 256 + ",i1", ParsingErrorReason.USER_ID_TOO_LONG),
            ("user 1,i1", ParsingErrorReason.ILLEGAL_CHARACTERS_IN_USER_ID),
            ('u1,"i1', ParsingErrorReason.MALFORMED_LINE),
        ],
    )
    def test_reason_per_bad_line(
        self,
        parser: UsageEventsParser,
        line: str,
        reason: ParsingErrorReason,
    ) -> None:
        report, events = parser.parse(_stream("u0,i0", line))

        assert events and len(events) == 1
        assert [error.reason for error in report.errors] == [reason]
        assert report.errors[0].line_number == 2
        assert report.errors[0].file_name == "usage.csv"

    def test_error_budget_stops_parsing(self) -> None:
        parser = UsageEventsParser(max_parsing_errors=2)

        report, events = parser.parse(
            _stream("u1,i1", "bad", "bad", "bad", "u2,i2", "u3,i3")
        )

        assert report.is_completed_successfully is False
        assert len(report.errors) == 3
        assert report.successful_lines_count == 1
        assert len(events) == 1


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


class TestWarningLines:
    def test_repeated_event_is_duplicate_warning(self, parser: UsageEventsParser) -> None:
        report, events = parser.parse(
            _stream(
                "u1,i1,2026-01-01",
                "u1,i1,2026-01-01",
                "U1,I1,2026-01-01",
                "u1,i1,2026-01-02",
            )
        )

        assert len(events) == 2
        assert report.errors == []
        assert [warning.reason for warning in report.warnings] == [
            ParsingErrorReason.DUPLICATE_ITEM_ID,
            ParsingErrorReason.DUPLICATE_ITEM_ID,
        ]
        assert [warning.line_number for warning in report.warnings] == [2, 3]

    def test_unknown_items_are_warnings_when_catalog_enforced(self) -> None:
        parser = UsageEventsParser(known_item_ids={"i1"}, ignore_unknown_item_ids=True)

        report, events = parser.parse(_stream("u1,i1", "u1,i2"))

        assert [event.item_id for event in events] == ["i1"]
        assert [warning.reason for warning in report.warnings] == [ParsingErrorReason.UNKNOWN_ITEM_ID]
        assert report.errors == []


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


def test_cancellation_raises() -> None:
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(JobCancelledError):
        UsageEventsParser().parse(_stream(*[f"u{i},i{i}" for i in range(1, 2001)]), cancel_event)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2026-03-01", datetime(2026, 3, 1, tzinfo=timezone.utc)),
        ("2026-03-01T12:30:00Z", datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)),
        ("03/01/2026 08:00:00", datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)),
        ("garbage", None),
        ("", None),
    ],
)
def test_parse_timestamp(raw: str, expected: datetime | None) -> None:
    assert parse_timestamp(raw) == expected
