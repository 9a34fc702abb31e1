from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def _find_closing_quote(s: str, start: int) -> int:
    for i in range(start, len(s)):
        if s[i] == '"' and (i == 0 or s[i - 1] != "\\"):
            return i
    return -1


def _unescape(value: str) -> str:
    return (
        value.replace("\\n", "\n")
        .replace("\\t", "\t")
        .replace('\\"', '"')
        .replace("\\\\", "\\")
    )


def extract_delta(line: str) -> Optional[str]:
    """Pull the ``delta.content`` text out of one SSE line.

    This scans for markers rather than parsing JSON so that partial or
    malformed chunks never raise. Returns ``None`` when the line carries no
    content (keep-alives, ``[DONE]``, role-only deltas, garbage).
    """
    try:
        chunk = line
        if chunk.startswith(DATA_PREFIX):
            chunk = chunk[len(DATA_PREFIX):]

        if not chunk.strip() or chunk == DONE_SENTINEL:
            return None

        delta_index = chunk.find('"delta"')
        if delta_index == -1:
            return None

        content_index = chunk.find('"content"', delta_index)
        if content_index == -1:
            return None

        colon_index = chunk.find(":", content_index)
        if colon_index == -1:
            return None

        start_quote = chunk.find('"', colon_index + 1)
        if start_quote == -1:
            return None

        end_quote = _find_closing_quote(chunk, start_quote + 1)
        if end_quote == -1:
            return None

        return _unescape(chunk[start_quote + 1:end_quote])
    except Exception:
        logger.debug("Failed to parse stream chunk: %r", line)
        return None
