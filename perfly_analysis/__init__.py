"""
Perfly Analysis module.

Clients for third-party performance-audit providers and the shared
normalization that maps every provider's response onto AnalysisResult.
"""

from .errors import ProviderError
from .gemini import GeminiSummarizer
from .normalizer import grade_for_score, normalize
from .pagespeed import PageSpeedClient, pagespeed_record
from .records import AuditRecord
from .webpagetest import WebPageTestClient, webpagetest_record

__all__ = [
    "AuditRecord",
    "GeminiSummarizer",
    "PageSpeedClient",
    "ProviderError",
    "WebPageTestClient",
    "grade_for_score",
    "normalize",
    "pagespeed_record",
    "webpagetest_record",
]
