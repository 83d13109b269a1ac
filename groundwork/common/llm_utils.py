"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re
from typing import Any, List

_INDEX_RE = re.compile(r"\d+")


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict

    Anything that is not a JSON object (a list, a bare string) yields an empty dict.
    """
    if not raw:
        return {}

    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)

    parsed: Any = None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = raw.find("{")
        end = raw.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                parsed = json.loads(raw[start:end])
            except json.JSONDecodeError:
                parsed = None

    return parsed if isinstance(parsed, dict) else {}


def parse_index_list(raw: str, upper: int) -> List[int]:
    """Parse a "1, 3" style answer into 0-based indices.

    "0" or "none" means an empty selection. Numbers outside 1..upper are
    dropped, duplicates keep their first position.
    """
    text = (raw or "").strip().strip(".").strip()
    if not text or text == "0" or text.lower() == "none":
        return []

    indices: List[int] = []
    for match in _INDEX_RE.findall(text):
        value = int(match)
        if 0 < value <= upper and (value - 1) not in indices:
            indices.append(value - 1)
    return indices
