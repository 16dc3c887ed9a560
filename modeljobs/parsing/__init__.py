"""
Input dataset parsers.
"""

from modeljobs.parsing.usage_events_parser import UsageEventsParser, parse_timestamp

__all__ = ["UsageEventsParser", "parse_timestamp"]
