"""
WebPageTest client.

Unlike PageSpeed Insights, WebPageTest queues the test and is polled for
completion. Results go through the same normalizer as every other provider;
the overall score is estimated from Core Web Vitals because WebPageTest does
not report one.
"""

import asyncio
import logging
import os
import time
from typing import Any

import requests

from perfly_common.models import AnalysisResult, RunSnapshot

from .errors import ProviderError
from .normalizer import as_number, normalize, vitals_score
from .pagespeed import STRATEGIES, validate_target_url
from .records import AuditRecord

logger = logging.getLogger(__name__)

WEBPAGETEST_BASE_URL = "https://www.webpagetest.org"

# Lighthouse category labels as WebPageTest reports them (scores are 0-100)
LIGHTHOUSE_LABELS = {
    "performance": "Performance",
    "accessibility": "Accessibility",
    "best_practices": "Best Practices",
    "seo": "SEO",
}


def _num(value: Any) -> float:
    return as_number(value) or 0


def _user_timing(first_view: dict[str, Any], name: str) -> Any:
    """
    Read a chromeUserTiming entry.

    Depending on the agent version chromeUserTiming is either a mapping of
    name to value or a list of {"name": ..., "value": ...} entries.
    """
    timings = first_view.get("chromeUserTiming")
    if isinstance(timings, dict):
        return timings.get(name)
    if isinstance(timings, list):
        for entry in timings:
            if isinstance(entry, dict) and entry.get("name") == name:
                return entry.get("value")
    return None


def _run_snapshot(first_view: dict[str, Any]) -> RunSnapshot:
    return RunSnapshot(
        load_time=_num(first_view.get("loadTime")),
        ttfb=_num(first_view.get("TTFB")),
        render=_num(first_view.get("render")),
        visual_complete=_num(first_view.get("visualComplete")),
        speed_index=_num(first_view.get("SpeedIndex")),
        bytes_in=int(_num(first_view.get("bytesIn"))),
        requests=int(_num(first_view.get("requests"))),
    )


def webpagetest_record(result: dict[str, Any], test_id: str) -> AuditRecord:
    """
    Translate the ``data`` block of a jsonResult.php response into an AuditRecord.

    Args:
        result: The ``data`` object of the WebPageTest result
        test_id: WebPageTest test ID

    Returns:
        AuditRecord describing the first view of the first run

    Raises:
        ProviderError: If the result has no first-view data for run 1
    """
    runs = result.get("runs")
    if not isinstance(runs, dict):
        runs = {}
    first_run = runs.get("1") or runs.get(1) or {}
    first_view = first_run.get("firstView") if isinstance(first_run, dict) else None
    if not isinstance(first_view, dict):
        raise ProviderError("No test data available", provider="webpagetest")

    lcp = _user_timing(first_view, "LargestContentfulPaint")
    fid = _user_timing(first_view, "FirstInputDelay")
    cls = _user_timing(first_view, "CumulativeLayoutShift")
    ttfb = first_view.get("TTFB")
    fcp = first_view.get("firstContentfulPaint")
    speed_index = first_view.get("SpeedIndex")

    score = vitals_score(
        lcp=_num(lcp),
        fid=_num(fid),
        cls=_num(cls),
        si=_num(speed_index),
        ttfb=_num(ttfb),
        fcp=_num(fcp),
    )

    lighthouse = result.get("lighthouse")
    categories: dict[str, float | None] = {}
    for field_name, label in LIGHTHOUSE_LABELS.items():
        value = as_number(lighthouse.get(label)) if isinstance(lighthouse, dict) else None
        categories[field_name] = value / 100 if value is not None else None

    snapshots = []
    for key in sorted(runs, key=lambda k: int(k) if str(k).isdigit() else 0):
        run = runs[key]
        if isinstance(run, dict) and isinstance(run.get("firstView"), dict):
            snapshots.append(_run_snapshot(run["firstView"]))

    return AuditRecord(
        test_id=test_id,
        url=result.get("url") or first_view.get("URL") or "",
        score=score,
        has_categories=isinstance(lighthouse, dict) and bool(lighthouse),
        lcp=lcp,
        fcp=fcp,
        speed_index=speed_index,
        tbt=first_view.get("TotalBlockingTime"),
        cls=cls,
        ttfb=ttfb,
        lab_fid=fid,
        requests=first_view.get("requests"),
        bytes_in=first_view.get("bytesIn"),
        requests_doc=first_view.get("requestsDoc"),
        bytes_in_doc=first_view.get("bytesInDoc"),
        load_time=first_view.get("loadTime"),
        start_render=first_view.get("render"),
        visual_complete=first_view.get("visualComplete"),
        runs=snapshots,
        **categories,
    )


class WebPageTestClient:
    """Submits WebPageTest runs, polls for completion and normalizes results."""

    provider = "webpagetest"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        location: str = "Dulles:Chrome",
        connectivity: str = "Cable",
        runs: int = 1,
        poll_interval: float = 10.0,
        max_wait: float = 600.0,
    ):
        """
        Initialize the client.

        Args:
            api_key: WebPageTest API key
            base_url: Override for the WebPageTest server URL
            session: requests session to reuse connections (created if omitted)
            timeout: Seconds to wait for each HTTP response
            location: Test location and browser
            connectivity: Connection profile
            runs: Number of test runs
            poll_interval: Seconds between status checks in analyze()
            max_wait: Seconds analyze() waits for a test to complete
        """
        self.api_key = api_key
        self.base_url = (base_url or WEBPAGETEST_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.location = location
        self.connectivity = connectivity
        self.runs = runs
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    @classmethod
    def from_env(cls) -> "WebPageTestClient":
        """
        Create a client from the environment.

        Environment variables:
        - WEBPAGETEST_API_KEY: API key

        Raises:
            RuntimeError: If no API key is configured
        """
        api_key = os.environ.get("WEBPAGETEST_API_KEY")
        if not api_key:
            raise RuntimeError("WEBPAGETEST_API_KEY environment variable is required")
        return cls(api_key=api_key)

    def _request(self, method: str, path: str, params: dict[str, str]) -> dict[str, Any]:
        response = self.session.request(
            method,
            f"{self.base_url}/{path}",
            params={"k": self.api_key, "f": "json", **params},
            timeout=self.timeout,
        )
        if not response.ok:
            raise ProviderError(
                f"WebPageTest API error: {response.reason}",
                provider=self.provider,
                status_code=response.status_code,
                status_text=response.reason,
            )
        return response.json()

    def run_test(
        self,
        url: str,
        strategy: str = "desktop",
        lighthouse: bool = True,
        first_view_only: bool = True,
    ) -> str:
        """
        Queue a test and return its WebPageTest test ID (blocking).

        Raises:
            ProviderError: If the test could not be queued
        """
        params = {
            "url": url,
            "location": self.location,
            "runs": str(self.runs),
            "fvonly": "1" if first_view_only else "0",
            "connectivity": self.connectivity,
            "lighthouse": "1" if lighthouse else "0",
        }
        if strategy == "mobile":
            params["mobile"] = "1"

        data = self._request("POST", "runtest.php", params)
        test_id = _get_test_id(data)
        if data.get("statusCode") != 200 or not test_id:
            raise ProviderError(
                f"WebPageTest API error: {data.get('statusText', 'test not queued')}",
                provider=self.provider,
                status_code=data.get("statusCode"),
                status_text=data.get("statusText"),
            )

        logger.info(f"WebPageTest test {test_id} queued for {url}")
        return test_id

    def get_test_status(self, test_id: str) -> dict[str, Any]:
        """Return the testStatus.php payload (blocking)."""
        return self._request("GET", "testStatus.php", {"test": test_id})

    def get_test_results(self, test_id: str) -> AnalysisResult:
        """
        Fetch and normalize the results of a finished test (blocking).

        Raises:
            ProviderError: If the test is not complete, failed, or has no data
        """
        data = self._request("GET", "jsonResult.php", {"test": test_id})
        if data.get("statusCode") != 200:
            raise ProviderError(
                f"Test not complete or failed: {data.get('statusText')}",
                provider=self.provider,
                status_code=data.get("statusCode"),
                status_text=data.get("statusText"),
            )
        return normalize(webpagetest_record(data.get("data") or {}, test_id))

    async def analyze(self, url: str, strategy: str = "mobile") -> AnalysisResult:
        """
        Queue a test, wait for it to complete and return the normalized result.

        Raises:
            ValueError: If url or strategy is invalid
            ProviderError: If the test fails or does not finish within max_wait
        """
        validate_target_url(url)
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {strategy}")

        test_id = await asyncio.to_thread(self.run_test, url, strategy)

        deadline = time.monotonic() + self.max_wait
        while True:
            status = await asyncio.to_thread(self.get_test_status, test_id)
            status_code = status.get("statusCode")
            if status_code == 200:
                break
            if isinstance(status_code, int) and status_code >= 400:
                raise ProviderError(
                    f"WebPageTest test failed: {status.get('statusText')}",
                    provider=self.provider,
                    status_code=status_code,
                    status_text=status.get("statusText"),
                )
            if time.monotonic() >= deadline:
                raise ProviderError(
                    f"WebPageTest test {test_id} did not complete within "
                    f"{self.max_wait:.0f}s",
                    provider=self.provider,
                )
            logger.debug(f"WebPageTest test {test_id}: {status.get('statusText')}")
            await asyncio.sleep(self.poll_interval)

        return await asyncio.to_thread(self.get_test_results, test_id)


def _get_test_id(data: dict[str, Any]) -> str | None:
    inner = data.get("data")
    return inner.get("testId") if isinstance(inner, dict) else None
