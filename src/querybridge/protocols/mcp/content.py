"""Helpers for reading ``tools/call`` results.

A tool result is usually ``{"content": [{"type": "text", "text": ...}, ...]}``,
but chart servers also answer with bare URLs or JSON objects carrying one.
"""

from __future__ import annotations

import json
import re
from typing import Any

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>)\]]+")
_URL_FIELDS = ("url", "chartUrl", "imageUrl", "resultUrl")


def content_blocks(result: Any) -> list[dict[str, Any]]:
    """Return the ``content`` blocks of a tool result (empty if absent)."""
    if isinstance(result, dict):
        content = result.get("content")
        if isinstance(content, list):
            return [block for block in content if isinstance(block, dict)]
    return []


def extract_text(result: Any) -> str:
    """Join the text blocks of a tool result."""
    if result is None:
        return ""
    parts = [
        str(block.get("text", ""))
        for block in content_blocks(result)
        if block.get("type") == "text"
    ]
    return "\n".join(parts) if parts else str(result)


def extract_urls(result: Any) -> list[str]:
    """Find http(s) URLs in a tool result, e.g. rendered chart links.

    Looks in text blocks, plain strings, JSON-encoded strings, and the
    usual URL fields of objects.  Duplicates are dropped, order is kept.
    """
    found: list[str] = []
    _collect_urls(result, found)
    return list(dict.fromkeys(found))


def _collect_urls(value: Any, found: list[str]) -> None:
    if isinstance(value, str):
        matches = _URL_PATTERN.findall(value)
        if matches:
            found.extend(matches)
            return
        try:
            decoded = json.loads(value)
        except ValueError:
            return
        if isinstance(decoded, (dict, list)):
            _collect_urls(decoded, found)
    elif isinstance(value, list):
        for item in value:
            _collect_urls(item, found)
    elif isinstance(value, dict):
        if value.get("type") == "text":
            _collect_urls(value.get("text", ""), found)
            return
        for key in _URL_FIELDS:
            if isinstance(value.get(key), str):
                _collect_urls(value[key], found)
        if "content" in value:
            _collect_urls(value["content"], found)


def first_text(result: Any) -> str | None:
    """Return the first text block of a tool result, if any."""
    for block in content_blocks(result):
        if block.get("type") == "text" and isinstance(block.get("text"), str):
            return block["text"]
    return None
