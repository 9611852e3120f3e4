"""Salvage JSON from free-form LLM replies.

Models wrap JSON in prose or code fences; this helper locates the outermost
array substring and parses it. Any failure yields an empty result.
"""

from __future__ import annotations

import json
import logging
import re

logger = logging.getLogger(__name__)

_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def extract_json_array(raw: str | None) -> list:
    """Return the first JSON array found in raw, or [] when none parses."""
    if not raw:
        return []
    match = _ARRAY_RE.search(raw)
    if not match:
        logger.warning("No JSON array in LLM reply (len=%d)", len(raw))
        return []
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        logger.warning("Malformed JSON array in LLM reply: %s", exc)
        return []
    return parsed if isinstance(parsed, list) else []

