"""
Result normalization shared by all analysis providers.

Turns an AuditRecord into the AnalysisResult stored with a completed job.
Parsing is lenient: a metric the provider did not report becomes 0, a
Lighthouse category it did not report becomes None. Nothing in here raises
because of missing data.
"""

import logging
import math
from typing import Any

from perfly_common.models import (
    AnalysisResult,
    LighthouseScores,
    RunSnapshot,
    Summary,
    WebVitals,
)

from .records import AuditRecord

logger = logging.getLogger(__name__)

# (lower bound, grade), checked top to bottom; bounds are inclusive
GRADE_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))

# Vitals-based scoring for providers without a Lighthouse performance score.
# metric -> ((threshold, penalty), ...), largest threshold first
VITALS_PENALTIES: dict[str, tuple[tuple[float, int], ...]] = {
    "lcp": ((4000, 25), (2500, 10)),
    "fid": ((300, 20), (100, 8)),
    "cls": ((0.25, 20), (0.1, 8)),
    "si": ((5800, 15), (3400, 6)),
    "ttfb": ((1800, 10), (800, 4)),
    "fcp": ((3000, 10), (1800, 4)),
}


def as_number(value: Any) -> float | None:
    """Return value if it is a finite number, None otherwise."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def _metric(value: Any) -> float:
    number = as_number(value)
    if number is None or number < 0:
        return 0
    return number


def _count(value: Any) -> int:
    return int(_metric(value))


def to_percent(fraction: Any) -> int | None:
    """
    Convert a 0.0-1.0 fraction to an integer 0-100, rounding half up.

    Returns None when the fraction is missing or not a number.
    """
    number = as_number(fraction)
    if number is None:
        return None
    return max(0, min(100, math.floor(number * 100 + 0.5)))


def grade_for_score(score: int) -> str:
    """Letter grade for a 0-100 score: A >= 90, B >= 80, C >= 70, D >= 60, else F."""
    for lower_bound, grade in GRADE_THRESHOLDS:
        if score >= lower_bound:
            return grade
    return "F"


def vitals_score(
    lcp: float = 0,
    fid: float = 0,
    cls: float = 0,
    si: float = 0,
    ttfb: float = 0,
    fcp: float = 0,
) -> int:
    """
    Estimate a 0-100 performance score from Core Web Vitals.

    Starts at 100 and subtracts a penalty for each metric over its "needs
    improvement" or "poor" threshold.
    """
    values = {"lcp": lcp, "fid": fid, "cls": cls, "si": si, "ttfb": ttfb, "fcp": fcp}
    score = 100
    for metric, penalties in VITALS_PENALTIES.items():
        value = _metric(values[metric])
        for threshold, penalty in penalties:
            if value > threshold:
                score -= penalty
                break
    return max(0, score)


def _web_vitals(record: AuditRecord) -> WebVitals:
    tbt = _metric(record.tbt)

    # Prefer real-user FID, then a lab-measured one. Without either, Total
    # Blocking Time stands in and the result is flagged as approximated.
    field_fid = as_number(record.field_fid)
    lab_fid = as_number(record.lab_fid)
    if field_fid is not None:
        fid, approximated = _metric(field_fid), False
    elif lab_fid is not None:
        fid, approximated = _metric(lab_fid), False
    else:
        fid, approximated = tbt, True

    return WebVitals(
        lcp=_metric(record.lcp),
        fid=fid,
        cls=_metric(record.cls),
        ttfb=_metric(record.ttfb),
        fcp=_metric(record.fcp),
        si=_metric(record.speed_index),
        tbt=tbt,
        fid_approximated=approximated,
    )


def _lighthouse(record: AuditRecord) -> LighthouseScores | None:
    if not record.has_categories:
        return None
    return LighthouseScores(
        performance=to_percent(record.performance),
        accessibility=to_percent(record.accessibility),
        best_practices=to_percent(record.best_practices),
        seo=to_percent(record.seo),
    )


def _fallback(value: Any, default: float) -> float:
    number = as_number(value)
    return default if number is None else _metric(number)


def normalize(record: AuditRecord) -> AnalysisResult:
    """
    Build the normalized AnalysisResult for an audit.

    Args:
        record: Provider-agnostic audit record from an adapter

    Returns:
        AnalysisResult with score, grade, web vitals, Lighthouse scores and
        at least one run
    """
    if record.score is not None:
        score = max(0, min(100, int(record.score)))
    else:
        score = to_percent(record.performance) or 0

    vitals = _web_vitals(record)
    requests = _count(record.requests)
    bytes_in = _count(record.bytes_in)

    summary = Summary(
        score=score,
        grade=grade_for_score(score),
        load_time=_fallback(record.load_time, _metric(record.interactive)),
        first_byte_time=vitals.ttfb,
        start_render=_fallback(record.start_render, vitals.fcp),
        visual_complete=_fallback(record.visual_complete, vitals.si),
        speed_index=vitals.si,
        requests_doc=int(_fallback(record.requests_doc, requests)),
        bytes_in_doc=int(_fallback(record.bytes_in_doc, bytes_in)),
        requests=requests,
        bytes_in=bytes_in,
    )

    runs = list(record.runs)
    if not runs:
        runs = [
            RunSnapshot(
                load_time=summary.load_time,
                ttfb=summary.first_byte_time,
                render=summary.start_render,
                visual_complete=summary.visual_complete,
                speed_index=summary.speed_index,
                bytes_in=summary.bytes_in,
                requests=summary.requests,
            )
        ]

    if vitals.fid_approximated:
        logger.debug(f"No FID data for {record.url}, using TBT as a proxy")

    return AnalysisResult(
        test_id=record.test_id,
        url=record.url,
        summary=summary,
        web_vitals=vitals,
        lighthouse=_lighthouse(record),
        runs=runs,
    )
