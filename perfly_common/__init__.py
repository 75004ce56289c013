"""
Perfly Common module.

This module contains shared domain models and interfaces used across
the Perfly components (server, processor, persistence, analysis).

The common module has no dependencies on other perfly_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .models import (
    COMPLETED,
    FAILED,
    PENDING,
    RUNNING,
    AnalysisResult,
    Job,
    LighthouseScores,
    RunSnapshot,
    Summary,
    WebVitals,
)
from .repository import JobRepository

__all__ = [
    "AnalysisResult",
    "COMPLETED",
    "FAILED",
    "Job",
    "JobRepository",
    "LighthouseScores",
    "PENDING",
    "RUNNING",
    "RunSnapshot",
    "Summary",
    "WebVitals",
]
