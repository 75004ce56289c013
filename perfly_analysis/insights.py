"""
AI-generated optimization insights for normalized results.

The text generation itself is an external collaborator (any object with an
async ``generate(prompt) -> str``). This module builds the prompt, validates
the model's answer and supplies a deterministic fallback analysis when no
model is configured or its answer cannot be used.
"""

import json
import logging
import re
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```json\n?|```\n?")

PROMPT_TEMPLATE = """
You are a web performance expert. Analyze the following performance test results and provide detailed optimization recommendations.

Test Results:
{results}

Provide your analysis in the following JSON format (respond with valid JSON only, no markdown):

{{
  "score": number (0-100),
  "grade": "A" | "B" | "C" | "D" | "F",
  "summary": "Brief overall performance summary",
  "issues": [
    {{
      "metric": "Metric name (e.g., LCP, FID, CLS)",
      "current": number,
      "target": number,
      "severity": "high" | "medium" | "low",
      "description": "What this issue means"
    }}
  ],
  "recommendations": [
    {{
      "title": "Recommendation title",
      "description": "Detailed description",
      "priority": "High" | "Medium" | "Low",
      "expectedImpact": "Expected improvement",
      "implementation": "How to implement this",
      "metrics": ["List of metrics this affects"]
    }}
  ],
  "keyInsights": [
    "Important insights about the website's performance"
  ]
}}

Focus on Core Web Vitals (LCP, FID, CLS), loading performance, and user experience. Be specific and actionable in your recommendations.
"""

FALLBACK_RECOMMENDATIONS = [
    {
        "title": "Optimize Images",
        "description": "Compress and optimize images to reduce load times",
        "priority": "High",
        "expectedImpact": "Improved LCP and overall load time",
        "implementation": "Use modern image formats (WebP, AVIF) and appropriate sizing",
        "metrics": ["LCP", "Load Time"],
    },
    {
        "title": "Enable Caching",
        "description": "Implement browser and server-side caching strategies",
        "priority": "High",
        "expectedImpact": "Faster repeat visits and reduced server load",
        "implementation": "Configure cache headers and use a CDN",
        "metrics": ["TTFB", "Load Time"],
    },
    {
        "title": "Minify Resources",
        "description": "Minify CSS, JavaScript, and HTML files",
        "priority": "Medium",
        "expectedImpact": "Reduced file sizes and faster downloads",
        "implementation": "Use build tools to automatically minify files",
        "metrics": ["Load Time", "FCP"],
    },
]

FALLBACK_INSIGHTS = [
    "Focus on Core Web Vitals for better user experience",
    "Regular performance monitoring is essential",
    "Mobile performance should be prioritized",
]


class Summarizer(Protocol):
    """Anything that can turn a prompt into generated text."""

    async def generate(self, prompt: str) -> str: ...


def build_prompt(test_results: dict[str, Any]) -> str:
    return PROMPT_TEMPLATE.format(results=json.dumps(test_results, indent=2))


def fallback_analysis(test_results: dict[str, Any]) -> dict[str, Any]:
    """Generic analysis built only from the stored score and grade."""
    summary = test_results.get("summary") or {}
    return {
        "score": summary.get("score") or 70,
        "grade": summary.get("grade") or "C",
        "summary": (
            "Performance analysis completed. Review the detailed metrics below "
            "for optimization opportunities."
        ),
        "issues": [],
        "recommendations": [dict(item) for item in FALLBACK_RECOMMENDATIONS],
        "keyInsights": list(FALLBACK_INSIGHTS),
    }


def parse_analysis(text: str) -> dict[str, Any]:
    """
    Parse the model's answer, tolerating markdown code fences.

    Raises:
        ValueError: If the answer is not JSON or lacks a score or recommendations
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    analysis = json.loads(cleaned)

    if (
        not isinstance(analysis, dict)
        or not analysis.get("score")
        or not isinstance(analysis.get("recommendations"), list)
    ):
        raise ValueError("Invalid AI response structure")
    return analysis


async def analyze_results(
    test_results: dict[str, Any], summarizer: Summarizer | None
) -> dict[str, Any]:
    """
    Produce an optimization analysis for normalized test results.

    Falls back to a generic analysis when no summarizer is configured or its
    answer is unusable. Errors from the summarizer itself propagate.
    """
    if summarizer is None:
        logger.debug("No summarizer configured, returning fallback analysis")
        return fallback_analysis(test_results)

    text = await summarizer.generate(build_prompt(test_results))
    try:
        return parse_analysis(text)
    except ValueError as e:
        logger.error(f"Failed to parse AI response: {e}")
        logger.debug(f"Raw AI response: {text}")
        return fallback_analysis(test_results)
