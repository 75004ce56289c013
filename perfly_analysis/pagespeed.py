"""
Google PageSpeed Insights client.

The PageSpeed Insights API is a blocking request/response audit: one GET
returns the complete Lighthouse report. The HTTP call runs on a worker thread
so the event loop stays free while the audit is in progress.
"""

import asyncio
import logging
import os
import time
from typing import Any
from urllib.parse import urlparse

import requests

from perfly_common.models import AnalysisResult

from .errors import ProviderError
from .normalizer import as_number, normalize
from .records import AuditRecord

logger = logging.getLogger(__name__)

PAGESPEED_API_BASE_URL = "https://www.googleapis.com/pagespeedonline/v5"
PAGESPEED_CATEGORIES = ("performance", "accessibility", "best-practices", "seo")
STRATEGIES = ("mobile", "desktop")


def _get(mapping: Any, *keys: str) -> Any:
    """Walk nested dictionaries, returning None as soon as a key is missing."""
    for key in keys:
        if not isinstance(mapping, dict):
            return None
        mapping = mapping.get(key)
    return mapping


def pagespeed_record(payload: dict[str, Any], requested_url: str) -> AuditRecord:
    """
    Translate a runPagespeed response into an AuditRecord.

    Args:
        payload: Decoded JSON body of the PageSpeed Insights response
        requested_url: URL that was submitted, used when the payload has no id

    Returns:
        AuditRecord with every value the payload carries
    """
    if not isinstance(payload, dict):
        payload = {}

    lighthouse = payload.get("lighthouseResult") or {}
    audits = _get(lighthouse, "audits") or {}
    categories = _get(lighthouse, "categories")

    def audit_value(name: str) -> Any:
        return _get(audits, name, "numericValue")

    def category_score(name: str) -> Any:
        return _get(categories, name, "score")

    network_requests = _get(audits, "network-requests", "details", "items")
    if not isinstance(network_requests, list):
        network_requests = []
    bytes_in = sum(
        as_number(_get(item, "transferSize")) or 0 for item in network_requests
    )

    return AuditRecord(
        test_id=_get(lighthouse, "fetchTime") or str(int(time.time() * 1000)),
        url=payload.get("id") or requested_url,
        performance=category_score("performance"),
        accessibility=category_score("accessibility"),
        best_practices=category_score("best-practices"),
        seo=category_score("seo"),
        lcp=audit_value("largest-contentful-paint"),
        fcp=audit_value("first-contentful-paint"),
        speed_index=audit_value("speed-index"),
        tbt=audit_value("total-blocking-time"),
        cls=audit_value("cumulative-layout-shift"),
        ttfb=audit_value("server-response-time"),
        interactive=audit_value("interactive"),
        field_fid=_get(
            payload, "loadingExperience", "metrics", "FIRST_INPUT_DELAY_MS", "percentile"
        ),
        requests=len(network_requests),
        bytes_in=int(bytes_in),
    )


def validate_target_url(url: str) -> None:
    """
    Check that url is an absolute http(s) URL.

    Raises:
        ValueError: If the URL is not absolute or uses another scheme
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not an absolute http(s) URL: {url}")


class PageSpeedClient:
    """Runs PageSpeed Insights audits and returns normalized results."""

    provider = "pagespeed"

    def __init__(
        self,
        api_key: str,
        api_base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize the client.

        Args:
            api_key: Google API key with PageSpeed Insights enabled
            api_base_url: Override for the API base URL (for testing)
            session: requests session to reuse connections (created if omitted)
            timeout: Seconds to wait for the audit response
        """
        self.api_key = api_key
        self.api_base_url = (api_base_url or PAGESPEED_API_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "PageSpeedClient":
        """
        Create a client from the environment.

        Environment variables:
        - PAGESPEED_API_KEY (or GOOGLE_PAGESPEED_API_KEY): API key

        Raises:
            RuntimeError: If no API key is configured
        """
        api_key = os.environ.get("PAGESPEED_API_KEY") or os.environ.get(
            "GOOGLE_PAGESPEED_API_KEY"
        )
        if not api_key:
            raise RuntimeError("PAGESPEED_API_KEY environment variable is required")
        return cls(api_key=api_key)

    def build_params(self, url: str, strategy: str) -> list[tuple[str, str]]:
        """Query parameters for runPagespeed; category repeats once per category."""
        params = [("url", url), ("strategy", strategy), ("key", self.api_key)]
        params.extend(("category", category) for category in PAGESPEED_CATEGORIES)
        return params

    def fetch(self, url: str, strategy: str = "mobile") -> dict[str, Any]:
        """
        Run the audit and return the raw JSON payload (blocking).

        Raises:
            ProviderError: If the API answers with a non-2xx status
            requests.RequestException: On transport failures
        """
        endpoint = f"{self.api_base_url}/runPagespeed"
        logger.debug(f"PageSpeed Insights API call for {url} ({strategy})")

        response = self.session.get(
            endpoint, params=self.build_params(url, strategy), timeout=self.timeout
        )
        if not response.ok:
            logger.error(
                f"PageSpeed Insights API error for {url}: "
                f"{response.status_code} {response.reason}"
            )
            raise ProviderError(
                f"PageSpeed Insights API error: {response.reason}",
                provider=self.provider,
                status_code=response.status_code,
                status_text=response.reason,
            )

        return response.json()

    async def analyze(self, url: str, strategy: str = "mobile") -> AnalysisResult:
        """
        Audit a URL and return the normalized result.

        Args:
            url: Absolute http(s) URL to audit
            strategy: "mobile" or "desktop" device profile

        Returns:
            Normalized AnalysisResult

        Raises:
            ValueError: If url or strategy is invalid
            ProviderError: If the API answers with a non-2xx status
            requests.RequestException: On transport failures
        """
        validate_target_url(url)
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {strategy}")

        payload = await asyncio.to_thread(self.fetch, url, strategy)
        return normalize(pagespeed_record(payload, url))
