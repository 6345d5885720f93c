"""Concurrent extraction pipeline."""

from newsvault.pipeline.outcomes import OutcomeStatus, RunSummary, TaskOutcome
from newsvault.pipeline.scheduler import RunAggregator, TaskScheduler, default_concurrency
from newsvault.pipeline.service import ArticlePipeline

__all__ = [
    "ArticlePipeline",
    "OutcomeStatus",
    "RunAggregator",
    "RunSummary",
    "TaskOutcome",
    "TaskScheduler",
    "default_concurrency",
]
