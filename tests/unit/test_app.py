"""
Unit tests for the FastAPI endpoints.

Most tests override the repository, processor and summarizer dependencies
with mocks and never enter the lifespan handler. TestLifespan runs it against
a temporary database.
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

import perfly_server.app as app_module
from perfly_analysis.gemini import GeminiSummarizer
from perfly_common.models import COMPLETED, FAILED, PENDING, RUNNING, Job
from perfly_server.app import app, get_processor, get_repository, get_summarizer

CREATED = datetime(2024, 1, 15, 10, 30, 0, tzinfo=UTC)

RESULTS = {
    "testId": "2024-01-15T10:30:00.000Z",
    "url": "https://example.com/",
    "summary": {"score": 95, "grade": "A"},
    "webVitals": {"LCP": 1800},
    "lighthouse": None,
    "runs": [],
}


@pytest.fixture
def mock_repository():
    repo = AsyncMock()
    repo.create_job = AsyncMock()
    repo.get_job = AsyncMock(return_value=None)
    repo.list_jobs = AsyncMock(return_value=[])
    repo.list_jobs_by_status = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def mock_processor():
    processor = Mock()
    processor.start = AsyncMock()
    return processor


@pytest.fixture
def test_client(mock_repository, mock_processor):
    """Create a test client with mocked dependencies."""
    app.dependency_overrides[get_repository] = lambda: mock_repository
    app.dependency_overrides[get_processor] = lambda: mock_processor
    app.dependency_overrides[get_summarizer] = lambda: None

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


class TestRunTest:
    """Tests for POST /api/tests/run."""

    def test_queues_job(self, test_client, mock_repository, mock_processor):
        response = test_client.post("/api/tests/run", json={"url": "https://example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Test queued successfully"
        assert body["estimatedTime"] == "2-5 minutes"

        job = mock_repository.create_job.await_args.args[0]
        assert job.id == body["testId"]
        assert job.url == "https://example.com/"
        assert job.status == PENDING
        mock_processor.start.assert_awaited_once()

    def test_adds_https_scheme(self, test_client, mock_repository):
        response = test_client.post("/api/tests/run", json={"url": "example.com/about"})

        assert response.status_code == 200
        job = mock_repository.create_job.await_args.args[0]
        assert job.url == "https://example.com/about"

    def test_unique_ids(self, test_client):
        first = test_client.post("/api/tests/run", json={"url": "example.com"})
        second = test_client.post("/api/tests/run", json={"url": "example.com"})

        assert first.json()["testId"] != second.json()["testId"]

    @pytest.mark.parametrize("body", [{}, {"url": None}, {"url": ""}, {"url": "   "}])
    def test_missing_url(self, test_client, mock_repository, body):
        response = test_client.post("/api/tests/run", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "URL is required"
        mock_repository.create_job.assert_not_called()

    def test_invalid_url(self, test_client, mock_repository, mock_processor):
        response = test_client.post("/api/tests/run", json={"url": "ftp://example.com"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid URL format"
        mock_repository.create_job.assert_not_called()
        mock_processor.start.assert_not_called()

    def test_processor_start_failure_still_queues(self, test_client, mock_processor):
        """Test that the job is accepted even if the processor cannot start."""
        mock_processor.start.side_effect = RuntimeError("event loop closed")

        response = test_client.post("/api/tests/run", json={"url": "example.com"})

        assert response.status_code == 200
        assert "testId" in response.json()


class TestGetTest:
    """Tests for GET /api/tests/{test_id}."""

    def test_not_found(self, test_client):
        response = test_client.get("/api/tests/missing")

        assert response.status_code == 404
        assert response.json()["detail"] == "Test not found"

    def test_pending_job(self, test_client, mock_repository):
        mock_repository.get_job.return_value = Job(
            id="job-1", url="https://example.com/", created_at=CREATED
        )

        response = test_client.get("/api/tests/job-1")

        assert response.status_code == 200
        assert response.json() == {
            "id": "job-1",
            "url": "https://example.com/",
            "status": PENDING,
            "results": None,
            "error": None,
            "createdAt": "2024-01-15T10:30:00+00:00",
        }

    def test_completed_job_has_parsed_results(self, test_client, mock_repository):
        mock_repository.get_job.return_value = Job(
            id="job-1",
            url="https://example.com/",
            status=COMPLETED,
            results=json.dumps(RESULTS),
        )

        body = test_client.get("/api/tests/job-1").json()

        assert body["status"] == COMPLETED
        assert body["results"]["summary"] == {"score": 95, "grade": "A"}

    def test_failed_job(self, test_client, mock_repository):
        mock_repository.get_job.return_value = Job(
            id="job-1",
            url="https://example.com/",
            status=FAILED,
            error="PageSpeed Insights API error: Forbidden",
        )

        body = test_client.get("/api/tests/job-1").json()

        assert body["status"] == FAILED
        assert "Forbidden" in body["error"]
        assert body["results"] is None


class TestListTests:
    """Tests for GET /api/tests."""

    def test_lists_recent(self, test_client, mock_repository):
        mock_repository.list_jobs.return_value = [
            Job(id="job-2", url="https://example.com/b", status=RUNNING),
            Job(
                id="job-1",
                url="https://example.com/a",
                status=COMPLETED,
                results=json.dumps(RESULTS),
            ),
        ]

        response = test_client.get("/api/tests?limit=10")

        assert response.status_code == 200
        body = response.json()
        assert [item["id"] for item in body] == ["job-2", "job-1"]
        assert body[1]["score"] == 95
        mock_repository.list_jobs.assert_awaited_once_with(status=None, limit=10)

    def test_filter_by_status_lists_newest(self, test_client, mock_repository):
        """Test that a status filter uses the newest-first listing, not the pickup order."""
        response = test_client.get("/api/tests?status=PENDING&limit=3")

        assert response.status_code == 200
        mock_repository.list_jobs.assert_awaited_once_with(status=PENDING, limit=3)
        mock_repository.list_jobs_by_status.assert_not_called()

    def test_unknown_status(self, test_client):
        response = test_client.get("/api/tests?status=DONE")

        assert response.status_code == 400


class TestAnalyze:
    """Tests for POST /api/ai/analyze."""

    def test_missing_results(self, test_client):
        response = test_client.post("/api/ai/analyze", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "Test results are required"

    def test_fallback_analysis(self, test_client):
        response = test_client.post("/api/ai/analyze", json={"testResults": RESULTS})

        assert response.status_code == 200
        analysis = response.json()["analysis"]
        assert analysis["score"] == 95
        assert analysis["grade"] == "A"
        assert analysis["recommendations"]

    def test_summarizer_answer(self, test_client):
        summarizer = AsyncMock()
        summarizer.generate.return_value = json.dumps(
            {"score": 95, "recommendations": [{"title": "Lazy-load images"}]}
        )
        app.dependency_overrides[get_summarizer] = lambda: summarizer

        response = test_client.post("/api/ai/analyze", json={"testResults": RESULTS})

        assert response.status_code == 200
        assert response.json()["analysis"]["recommendations"][0]["title"] == (
            "Lazy-load images"
        )

    def test_summarizer_failure(self, test_client):
        summarizer = AsyncMock()
        summarizer.generate.side_effect = ConnectionError("model unavailable")
        app.dependency_overrides[get_summarizer] = lambda: summarizer

        response = test_client.post("/api/ai/analyze", json={"testResults": RESULTS})

        assert response.status_code == 502

class TestLifespan:
    """Test suite for the startup wiring of the app's dependencies."""

    @pytest.fixture
    def app_env(self, monkeypatch, tmp_path):
        """Point the app at a temporary database and restore its globals."""
        monkeypatch.setenv("PERFLY_DB_PATH", str(tmp_path / "perfly.db"))
        monkeypatch.delenv("AUTO_START_PROCESSOR", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        for name in ("repository", "processor", "summarizer"):
            monkeypatch.setattr(app_module, name, None)
        return monkeypatch

    def test_builds_gemini_summarizer_when_key_set(self, app_env):
        app_env.setenv("GEMINI_API_KEY", "key-123")
        app_env.setenv("GEMINI_MODEL", "gemini-pro")

        with TestClient(app):
            assert isinstance(app_module.summarizer, GeminiSummarizer)
            assert app_module.summarizer.model == "gemini-pro"
            assert get_summarizer() is app_module.summarizer

    def test_no_summarizer_without_key(self, app_env):
        app_env.delenv("GEMINI_API_KEY", raising=False)

        with TestClient(app) as client:
            assert app_module.summarizer is None
            response = client.post("/api/ai/analyze", json={"testResults": RESULTS})

        assert response.status_code == 200
        assert response.json()["analysis"]["score"] == 95



def test_health(test_client):
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
