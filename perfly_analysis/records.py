"""
Provider-agnostic audit record.

Each provider adapter translates its raw response into an AuditRecord; the
shared normalizer turns an AuditRecord into an AnalysisResult. Adapters only
copy values across, all scoring and defaulting happens in the normalizer.
"""

from dataclasses import dataclass, field

from perfly_common.models import RunSnapshot


@dataclass
class AuditRecord:
    """
    Raw metrics of one audit, None wherever the provider did not report a value.

    Category scores are fractions in 0.0-1.0. Timings are in milliseconds.
    """

    test_id: str
    url: str

    # Overall 0-100 score computed by the adapter. When None the score is
    # derived from the performance category.
    score: int | None = None

    # Lighthouse categories (fractions). has_categories is False when the
    # provider returned no category block at all.
    performance: float | None = None
    accessibility: float | None = None
    best_practices: float | None = None
    seo: float | None = None
    has_categories: bool = True

    lcp: float | None = None
    fcp: float | None = None
    speed_index: float | None = None
    tbt: float | None = None
    cls: float | None = None
    ttfb: float | None = None
    interactive: float | None = None
    field_fid: float | None = None  # Field (real-user) First Input Delay
    lab_fid: float | None = None  # Lab-measured First Input Delay

    # Page weight
    requests: int | None = None
    bytes_in: int | None = None
    requests_doc: int | None = None
    bytes_in_doc: int | None = None

    # Timings only some providers report separately
    load_time: float | None = None
    start_render: float | None = None
    visual_complete: float | None = None

    runs: list[RunSnapshot] = field(default_factory=list)
