"""
Unit tests for perfly_analysis.insights.
"""

import json
from unittest.mock import AsyncMock

import pytest

from perfly_analysis.insights import (
    analyze_results,
    build_prompt,
    fallback_analysis,
    parse_analysis,
)

RESULTS = {"summary": {"score": 82, "grade": "B"}, "webVitals": {"LCP": 2900}}

ANALYSIS = {
    "score": 82,
    "grade": "B",
    "summary": "Good, LCP could be faster",
    "issues": [],
    "recommendations": [{"title": "Preload hero image"}],
    "keyInsights": ["LCP is the main bottleneck"],
}


class TestParseAnalysis:
    """Test suite for parse_analysis."""

    def test_plain_json(self):
        assert parse_analysis(json.dumps(ANALYSIS)) == ANALYSIS

    def test_strips_code_fences(self):
        text = f"```json\n{json.dumps(ANALYSIS)}\n```"

        assert parse_analysis(text) == ANALYSIS

    def test_rejects_missing_recommendations(self):
        with pytest.raises(ValueError, match="Invalid AI response structure"):
            parse_analysis(json.dumps({"score": 80}))

    def test_rejects_non_json(self):
        with pytest.raises(ValueError):
            parse_analysis("I think the site is fast.")


class TestAnalyzeResults:
    """Test suite for analyze_results."""

    def test_prompt_embeds_results(self):
        prompt = build_prompt(RESULTS)

        assert '"LCP": 2900' in prompt
        assert '"keyInsights"' in prompt

    def test_fallback_uses_stored_score(self):
        analysis = fallback_analysis(RESULTS)

        assert analysis["score"] == 82
        assert analysis["grade"] == "B"
        assert len(analysis["recommendations"]) == 3

    def test_fallback_defaults(self):
        analysis = fallback_analysis({})

        assert analysis["score"] == 70
        assert analysis["grade"] == "C"

    @pytest.mark.asyncio
    async def test_without_summarizer_returns_fallback(self):
        analysis = await analyze_results(RESULTS, None)

        assert analysis == fallback_analysis(RESULTS)

    @pytest.mark.asyncio
    async def test_uses_summarizer_answer(self):
        summarizer = AsyncMock()
        summarizer.generate.return_value = json.dumps(ANALYSIS)

        analysis = await analyze_results(RESULTS, summarizer)

        assert analysis == ANALYSIS
        prompt = summarizer.generate.call_args.args[0]
        assert '"score": 82' in prompt

    @pytest.mark.asyncio
    async def test_unparseable_answer_falls_back(self):
        summarizer = AsyncMock()
        summarizer.generate.return_value = "not json"

        analysis = await analyze_results(RESULTS, summarizer)

        assert analysis["recommendations"][0]["title"] == "Optimize Images"

    @pytest.mark.asyncio
    async def test_summarizer_errors_propagate(self):
        summarizer = AsyncMock()
        summarizer.generate.side_effect = ConnectionError("model unavailable")

        with pytest.raises(ConnectionError):
            await analyze_results(RESULTS, summarizer)
