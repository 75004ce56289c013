"""
Unit tests for perfly_analysis.webpagetest.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from perfly_analysis.errors import ProviderError
from perfly_analysis.webpagetest import WebPageTestClient, webpagetest_record


def make_first_view(**overrides):
    first_view = {
        "URL": "https://example.com/",
        "loadTime": 2400,
        "TTFB": 300,
        "render": 1100,
        "visualComplete": 2600,
        "SpeedIndex": 1500,
        "firstContentfulPaint": 1000,
        "TotalBlockingTime": 80,
        "bytesIn": 500000,
        "bytesInDoc": 40000,
        "requests": 35,
        "requestsDoc": 30,
        "chromeUserTiming": [
            {"name": "LargestContentfulPaint", "value": 2000},
            {"name": "CumulativeLayoutShift", "value": 0.05},
        ],
    }
    first_view.update(overrides)
    return first_view


def make_result(**overrides):
    result = {
        "url": "https://example.com/",
        "runs": {"1": {"firstView": make_first_view()}},
        "lighthouse": {
            "Performance": 91,
            "Accessibility": 85,
            "Best Practices": 100,
            "SEO": 90,
        },
    }
    result.update(overrides)
    return result


def make_response(payload):
    response = Mock(spec=requests.Response)
    response.status_code = 200
    response.reason = "OK"
    response.ok = True
    response.json.return_value = payload
    return response


class TestWebPageTestRecord:
    """Test suite for translating a WebPageTest result."""

    def test_good_vitals_score_100(self):
        record = webpagetest_record(make_result(), "240115_AB_1")

        assert record.test_id == "240115_AB_1"
        assert record.score == 100
        assert record.lcp == 2000
        assert record.cls == 0.05
        assert record.lab_fid is None

    def test_lighthouse_scores_become_fractions(self):
        record = webpagetest_record(make_result(), "id")

        assert record.performance == 0.91
        assert record.best_practices == 1.0
        assert record.has_categories is True

    def test_without_lighthouse(self):
        record = webpagetest_record(make_result(lighthouse=None), "id")

        assert record.has_categories is False
        assert record.performance is None

    def test_user_timing_as_mapping(self):
        first_view = make_first_view(
            chromeUserTiming={"LargestContentfulPaint": 4500, "FirstInputDelay": 150}
        )
        record = webpagetest_record(make_result(runs={"1": {"firstView": first_view}}), "id")

        assert record.lcp == 4500
        assert record.lab_fid == 150
        # LCP poor (-25), FID needs improvement (-8)
        assert record.score == 67

    def test_collects_every_run_in_order(self):
        runs = {
            "2": {"firstView": make_first_view(loadTime=2600)},
            "1": {"firstView": make_first_view(loadTime=2400)},
        }

        record = webpagetest_record(make_result(runs=runs), "id")

        assert [run.load_time for run in record.runs] == [2400, 2600]

    def test_missing_first_view_raises(self):
        with pytest.raises(ProviderError, match="No test data available"):
            webpagetest_record({"runs": {"1": {}}}, "id")

    def test_missing_runs_raises(self):
        with pytest.raises(ProviderError):
            webpagetest_record({}, "id")


class TestWebPageTestClient:
    """Test suite for WebPageTestClient."""

    @pytest.fixture
    def session(self):
        return Mock(spec=requests.Session)

    @pytest.fixture
    def client(self, session):
        return WebPageTestClient(api_key="wpt-key", session=session, poll_interval=0)

    def test_run_test_mobile(self, client, session):
        session.request.return_value = make_response(
            {"statusCode": 200, "data": {"testId": "240115_AB_1"}}
        )

        test_id = client.run_test("https://example.com/", strategy="mobile")

        assert test_id == "240115_AB_1"
        method, url = session.request.call_args.args
        params = session.request.call_args.kwargs["params"]
        assert method == "POST"
        assert url.endswith("/runtest.php")
        assert params["k"] == "wpt-key"
        assert params["mobile"] == "1"
        assert params["lighthouse"] == "1"

    def test_run_test_rejected(self, client, session):
        session.request.return_value = make_response(
            {"statusCode": 400, "statusText": "Invalid API Key"}
        )

        with pytest.raises(ProviderError, match="Invalid API Key"):
            client.run_test("https://example.com/")

    def test_get_test_results_not_complete(self, client, session):
        session.request.return_value = make_response(
            {"statusCode": 101, "statusText": "Test Started"}
        )

        with pytest.raises(ProviderError, match="Test not complete or failed"):
            client.get_test_results("240115_AB_1")

    @pytest.mark.asyncio
    async def test_analyze_polls_until_complete(self, client, session):
        session.request.side_effect = [
            make_response({"statusCode": 200, "data": {"testId": "240115_AB_1"}}),
            make_response({"statusCode": 100, "statusText": "Test Pending"}),
            make_response({"statusCode": 200, "statusText": "Test Complete"}),
            make_response({"statusCode": 200, "data": make_result()}),
        ]

        result = await client.analyze("https://example.com/")

        assert result.test_id == "240115_AB_1"
        assert result.summary.score == 100
        assert result.summary.grade == "A"
        assert result.summary.load_time == 2400
        assert result.summary.requests_doc == 30
        assert result.lighthouse.performance == 91
        assert session.request.call_count == 4

    @pytest.mark.asyncio
    async def test_analyze_failed_test(self, client, session):
        session.request.side_effect = [
            make_response({"statusCode": 200, "data": {"testId": "240115_AB_1"}}),
            make_response({"statusCode": 400, "statusText": "Test failed"}),
        ]

        with pytest.raises(ProviderError, match="Test failed"):
            await client.analyze("https://example.com/")

    def test_from_env_requires_key(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(RuntimeError, match="WEBPAGETEST_API_KEY"):
                WebPageTestClient.from_env()
