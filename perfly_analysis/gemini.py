"""
Google Gemini text generation for AI insights.

Implements the ``Summarizer`` interface from ``insights`` over the Gemini
generateContent REST endpoint. The HTTP call runs on a worker thread so the
event loop stays free while the model answers.
"""

import asyncio
import logging
import os
from typing import Any

import requests

from .errors import ProviderError

logger = logging.getLogger(__name__)

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"


def _response_text(payload: dict[str, Any]) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise ProviderError("Gemini API returned no candidates", provider="gemini")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiSummarizer:
    """Generates text with a Gemini model."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        api_base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base_url = (api_base_url or GEMINI_API_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "GeminiSummarizer | None":
        """
        Create a summarizer from the environment.

        Environment variables:
        - GEMINI_API_KEY (or GOOGLE_API_KEY): API key
        - GEMINI_MODEL: Model name (default gemini-1.5-flash)

        Returns:
            The summarizer, or None when no API key is configured
        """
        api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            return None
        return cls(
            api_key=api_key,
            model=os.environ.get("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        )

    def generate_sync(self, prompt: str) -> str:
        """
        Send the prompt and return the generated text (blocking).

        Raises:
            ProviderError: If the API answers with a non-2xx status or no candidates
        """
        response = self.session.post(
            f"{self.api_base_url}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"Gemini API error: {response.status_code} {response.reason}")
            raise ProviderError(
                f"Gemini API error: {response.reason}",
                provider=self.provider,
                status_code=response.status_code,
                status_text=response.reason,
            )
        return _response_text(response.json())

    async def generate(self, prompt: str) -> str:
        return await asyncio.to_thread(self.generate_sync, prompt)
