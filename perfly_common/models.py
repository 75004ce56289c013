"""
Data models for performance test storage.

These models represent the domain objects used throughout the application,
independent of the underlying storage mechanism.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Job statuses. Transitions only move forward:
# PENDING -> RUNNING -> COMPLETED | FAILED (FAILED is also reachable from PENDING)
PENDING = "PENDING"
RUNNING = "RUNNING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"

STATUSES = (PENDING, RUNNING, COMPLETED, FAILED)
TERMINAL_STATUSES = (COMPLETED, FAILED)

# Allowed source states for each target state
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    RUNNING: (PENDING,),
    COMPLETED: (RUNNING,),
    FAILED: (PENDING, RUNNING),
}


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Summary:
    """Aggregate score and headline timings for one analysis."""

    score: int
    grade: str
    load_time: float = 0
    first_byte_time: float = 0
    start_render: float = 0
    visual_complete: float = 0
    speed_index: float = 0
    requests_doc: int = 0
    bytes_in_doc: int = 0
    requests: int = 0
    bytes_in: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "grade": self.grade,
            "loadTime": self.load_time,
            "firstByteTime": self.first_byte_time,
            "startRender": self.start_render,
            "visualComplete": self.visual_complete,
            "speedIndex": self.speed_index,
            "requestsDoc": self.requests_doc,
            "bytesInDoc": self.bytes_in_doc,
            "requests": self.requests,
            "bytesIn": self.bytes_in,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Summary":
        return cls(
            score=data["score"],
            grade=data["grade"],
            load_time=data.get("loadTime", 0),
            first_byte_time=data.get("firstByteTime", 0),
            start_render=data.get("startRender", 0),
            visual_complete=data.get("visualComplete", 0),
            speed_index=data.get("speedIndex", 0),
            requests_doc=data.get("requestsDoc", 0),
            bytes_in_doc=data.get("bytesInDoc", 0),
            requests=data.get("requests", 0),
            bytes_in=data.get("bytesIn", 0),
        )


@dataclass
class WebVitals:
    """
    Core Web Vitals in milliseconds (CLS is unitless).

    When the provider has no field data for First Input Delay, ``fid`` holds
    Total Blocking Time instead and ``fid_approximated`` is True.
    """

    lcp: float = 0
    fid: float = 0
    cls: float = 0
    ttfb: float = 0
    fcp: float = 0
    si: float = 0
    tbt: float = 0
    fid_approximated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "LCP": self.lcp,
            "FID": self.fid,
            "CLS": self.cls,
            "TTFB": self.ttfb,
            "FCP": self.fcp,
            "SI": self.si,
            "TBT": self.tbt,
            "fidApproximated": self.fid_approximated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebVitals":
        return cls(
            lcp=data.get("LCP", 0),
            fid=data.get("FID", 0),
            cls=data.get("CLS", 0),
            ttfb=data.get("TTFB", 0),
            fcp=data.get("FCP", 0),
            si=data.get("SI", 0),
            tbt=data.get("TBT", 0),
            fid_approximated=data.get("fidApproximated", False),
        )


@dataclass
class LighthouseScores:
    """Lighthouse category scores (0-100). None means the category was not reported."""

    performance: int | None = None
    accessibility: int | None = None
    best_practices: int | None = None
    seo: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "performance": self.performance,
            "accessibility": self.accessibility,
            "bestPractices": self.best_practices,
            "seo": self.seo,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LighthouseScores":
        return cls(
            performance=data.get("performance"),
            accessibility=data.get("accessibility"),
            best_practices=data.get("bestPractices"),
            seo=data.get("seo"),
        )


@dataclass
class RunSnapshot:
    """First-view timings of a single test run."""

    load_time: float = 0
    ttfb: float = 0
    render: float = 0
    visual_complete: float = 0
    speed_index: float = 0
    bytes_in: int = 0
    requests: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "firstView": {
                "loadTime": self.load_time,
                "TTFB": self.ttfb,
                "render": self.render,
                "visualComplete": self.visual_complete,
                "speedIndex": self.speed_index,
                "bytesIn": self.bytes_in,
                "requests": self.requests,
            }
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunSnapshot":
        first_view = data.get("firstView", {})
        return cls(
            load_time=first_view.get("loadTime", 0),
            ttfb=first_view.get("TTFB", 0),
            render=first_view.get("render", 0),
            visual_complete=first_view.get("visualComplete", 0),
            speed_index=first_view.get("speedIndex", 0),
            bytes_in=first_view.get("bytesIn", 0),
            requests=first_view.get("requests", 0),
        )


@dataclass
class AnalysisResult:
    """
    Normalized analysis of a single URL, independent of the provider.

    Persisted as JSON text in the ``results`` column of a completed job.
    """

    test_id: str
    url: str
    summary: Summary
    web_vitals: WebVitals
    lighthouse: LighthouseScores | None = None
    runs: list[RunSnapshot] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary format (camelCase keys, JSON-ready)."""
        return {
            "testId": self.test_id,
            "url": self.url,
            "summary": self.summary.to_dict(),
            "webVitals": self.web_vitals.to_dict(),
            "lighthouse": self.lighthouse.to_dict() if self.lighthouse else None,
            "runs": [run.to_dict() for run in self.runs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisResult":
        """Create result from dictionary format."""
        lighthouse = data.get("lighthouse")
        return cls(
            test_id=data["testId"],
            url=data["url"],
            summary=Summary.from_dict(data["summary"]),
            web_vitals=WebVitals.from_dict(data.get("webVitals", {})),
            lighthouse=LighthouseScores.from_dict(lighthouse) if lighthouse else None,
            runs=[RunSnapshot.from_dict(run) for run in data.get("runs", [])],
        )

    def to_json(self) -> str:
        """Serialize for storage in the ``results`` column."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> "AnalysisResult":
        return cls.from_dict(json.loads(text))


@dataclass
class Job:
    """
    Represents a performance test of one URL.

    Jobs progress through states: PENDING -> RUNNING -> COMPLETED
    A job that cannot be analyzed ends in FAILED instead.
    """

    id: str
    url: str
    status: str = PENDING  # "PENDING", "RUNNING", "COMPLETED", or "FAILED"
    user_id: str | None = None  # Owner, None for anonymous submissions
    results: str | None = None  # Serialized AnalysisResult (COMPLETED only)
    error: str | None = None  # Failure reason (FAILED only)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def parsed_results(self) -> dict[str, Any] | None:
        """Return the stored results as a dictionary, or None if not completed."""
        return json.loads(self.results) if self.results else None

    def to_dict(self) -> dict[str, Any]:
        """Convert job to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "results": self.parsed_results(),
            "error": self.error,
            "createdAt": _isoformat(self.created_at),
        }

    def to_summary_dict(self) -> dict[str, Any]:
        """Convert job to summary format (without results, for listings)."""
        summary = None
        if self.results:
            summary = self.parsed_results().get("summary")
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "score": summary["score"] if summary else None,
            "grade": summary["grade"] if summary else None,
            "createdAt": _isoformat(self.created_at),
            "completedAt": _isoformat(self.completed_at),
        }
