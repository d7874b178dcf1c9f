"""Helpers for pulling structured data out of free-form worker output."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in *text*, or None.

    Markdown-fenced blocks are preferred; otherwise the span from the first
    ``{`` to the last ``}`` is tried.
    """
    if not text:
        return None

    candidates: list[str] = [m.group(1) for m in _FENCED_JSON_RE.finditer(text)]
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None
