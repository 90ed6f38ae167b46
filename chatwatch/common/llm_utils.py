"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re
from typing import Optional

_RETRY_IN_RE = re.compile(r"try again in (\d+\.?\d*)\s*s", re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fence lines (```json ... ```) from a response."""
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text.strip()


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict
    """
    if not raw:
        return {}

    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            data = json.loads(raw[start:end])
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass

    return {}


def parse_llm_json_array(raw: str) -> Optional[list]:
    """Parse a JSON array from an LLM response.

    Same fallback chain as parse_llm_json but for '[' ... ']'. Returns None
    (not an empty list) when no array can be recovered, so callers can tell
    "the model said nothing" apart from "the model said garbage".
    """
    if not raw:
        return None

    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
        return data if isinstance(data, list) else None
    except json.JSONDecodeError:
        pass

    start = raw.find("[")
    end = raw.rfind("]") + 1
    if start >= 0 and end > start:
        try:
            data = json.loads(raw[start:end])
            return data if isinstance(data, list) else None
        except json.JSONDecodeError:
            pass

    return None


def parse_retry_after(body: str) -> Optional[float]:
    """Extract a suggested retry delay in seconds from a throttling error body.

    Providers phrase it as "... Please try again in 12.5s" inside
    {"error": {"message": ...}}. One second of slack is added.
    """
    message = parse_llm_json(body).get("error", {})
    if isinstance(message, dict):
        message = message.get("message", "")
    if not isinstance(message, str):
        return None

    match = _RETRY_IN_RE.search(message)
    if not match:
        return None
    return float(match.group(1)) + 1.0
