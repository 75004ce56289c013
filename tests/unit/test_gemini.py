"""
Unit tests for perfly_analysis.gemini.

The HTTP session is mocked so no request ever leaves the process.
"""

from unittest.mock import Mock

import pytest
import requests

from perfly_analysis.errors import ProviderError
from perfly_analysis.gemini import (
    DEFAULT_GEMINI_MODEL,
    GEMINI_API_BASE_URL,
    GeminiSummarizer,
)


def make_response(status_code=200, reason="OK", payload=None):
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    response.ok = status_code < 400
    response.json.return_value = payload if payload is not None else {}
    return response


def text_payload(*texts):
    return {
        "candidates": [
            {"content": {"parts": [{"text": text} for text in texts]}},
        ]
    }


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


class TestGenerate:
    """Test suite for GeminiSummarizer.generate."""

    @pytest.mark.asyncio
    async def test_returns_joined_text(self, session):
        session.post.return_value = make_response(
            payload=text_payload("## Summary\n", "Compress images.")
        )
        summarizer = GeminiSummarizer("key-123", session=session)

        text = await summarizer.generate("Analyze this")

        assert text == "## Summary\nCompress images."

    def test_posts_prompt_to_model(self, session):
        session.post.return_value = make_response(payload=text_payload("ok"))
        summarizer = GeminiSummarizer("key-123", model="gemini-pro", session=session)

        summarizer.generate_sync("Analyze this")

        args, kwargs = session.post.call_args
        assert args[0] == f"{GEMINI_API_BASE_URL}/models/gemini-pro:generateContent"
        assert kwargs["params"] == {"key": "key-123"}
        assert kwargs["json"] == {"contents": [{"parts": [{"text": "Analyze this"}]}]}

    def test_custom_base_url(self, session):
        session.post.return_value = make_response(payload=text_payload("ok"))
        summarizer = GeminiSummarizer(
            "key-123", api_base_url="http://localhost:9000/v1/", session=session
        )

        summarizer.generate_sync("hi")

        assert session.post.call_args[0][0] == (
            f"http://localhost:9000/v1/models/{DEFAULT_GEMINI_MODEL}:generateContent"
        )

    def test_error_status_raises(self, session):
        session.post.return_value = make_response(403, "Forbidden")
        summarizer = GeminiSummarizer("bad-key", session=session)

        with pytest.raises(ProviderError) as exc_info:
            summarizer.generate_sync("hi")

        assert exc_info.value.provider == "gemini"
        assert exc_info.value.status_code == 403
        assert exc_info.value.status_text == "Forbidden"

    def test_no_candidates_raises(self, session):
        session.post.return_value = make_response(payload={"candidates": []})
        summarizer = GeminiSummarizer("key-123", session=session)

        with pytest.raises(ProviderError, match="no candidates"):
            summarizer.generate_sync("hi")


class TestFromEnv:
    """Test suite for GeminiSummarizer.from_env."""

    def test_none_without_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

        assert GeminiSummarizer.from_env() is None

    def test_reads_key_and_model(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "key-123")
        monkeypatch.setenv("GEMINI_MODEL", "gemini-pro")

        summarizer = GeminiSummarizer.from_env()

        assert summarizer.api_key == "key-123"
        assert summarizer.model == "gemini-pro"

    def test_google_api_key_fallback(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_MODEL", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")

        summarizer = GeminiSummarizer.from_env()

        assert summarizer.api_key == "google-key"
        assert summarizer.model == DEFAULT_GEMINI_MODEL
