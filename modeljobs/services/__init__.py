"""
Model job services.
"""

from modeljobs.services.job_monitor import InterruptReason, JobMonitor
from modeljobs.services.job_processor import JobOutcome, JobProcessor, build_usage_events_parser
from modeljobs.services.parsing_report import create_parsing_report, group_parsing_errors
from modeljobs.services.submission_service import ModelSubmissionService
from modeljobs.services.trainer import CooccurrenceTrainer, TrainedArtifact

__all__ = [
    "CooccurrenceTrainer",
    "InterruptReason",
    "JobMonitor",
    "JobOutcome",
    "JobProcessor",
    "ModelSubmissionService",
    "TrainedArtifact",
    "build_usage_events_parser",
    "create_parsing_report",
    "group_parsing_errors",
]
