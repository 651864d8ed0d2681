"""
Quiz feature: lenient JSON extraction from model output.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_]\w*)\s*:")


def _extract_object(text: str) -> str:
    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        text = fence_match.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in model response")
    return text[start:end + 1]


def _repair(text: str) -> str:
    """Drop trailing commas and quote bare keys."""
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    return _UNQUOTED_KEY_RE.sub(r'\1"\2":', text)


def safe_parse_json(text: str) -> dict[str, Any]:
    """Parse the first JSON object in ``text``, trying progressively looser readings.

    1. As-is (after stripping code fences / surrounding prose).
    2. Allowing raw control characters (newlines, tabs) inside strings.
    3. After removing trailing commas and quoting unquoted keys.

    Raises:
        ValueError: If no strategy yields a JSON object.
    """
    candidate = _extract_object(text or "")

    attempts = (
        lambda: json.loads(candidate),
        lambda: json.loads(candidate, strict=False),
        lambda: json.loads(_repair(candidate), strict=False),
    )
    last_error: Exception | None = None
    for attempt in attempts:
        try:
            parsed = attempt()
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            return parsed
        last_error = ValueError(f"Expected a JSON object, got {type(parsed).__name__}")

    logger.warning(f"⚠️ All JSON parsing strategies failed: {last_error}")
    raise ValueError(f"JSON parsing failed after all strategies: {last_error}")
