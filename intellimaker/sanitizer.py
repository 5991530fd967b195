"""Sanitising and parsing of raw provider output.

Providers are asked for bare JSON but routinely return stray control
characters, fullwidth brackets in odd encodings, or a Markdown code fence
around the payload. ``parse()`` cleans those up and decodes the result;
anything else (explanatory prose, truncated output) is a parse failure.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from intellimaker.errors import ResponseParseError

logger = logging.getLogger(__name__)

#: C0 and C1 control characters (this includes \n, \r and \t).
_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F-\u009F]")

#: Vertical presentation and halfwidth forms mapped to the canonical corner brackets.
_BRACKETS = str.maketrans({
    "\ufe41": "\u300c",
    "\ufe42": "\u300d",
    "\ufe43": "\u300e",
    "\ufe44": "\u300f",
    "\uff62": "\u300c",
    "\uff63": "\u300d",
})

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*")
_FENCE_CLOSE = re.compile(r"```\s*$")


def _clean_once(text: str) -> str:
    cleaned = _FENCE_OPEN.sub("", text, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    return cleaned.translate(_BRACKETS).strip()


def sanitize(text: str) -> str:
    """Return *text* with control characters, bracket variants and code fences cleaned.

    Nested fences are unwrapped one layer per pass until nothing changes,
    so applying ``sanitize`` to its own output is a no-op.
    """
    cleaned = text or ""
    while True:
        unwrapped = _clean_once(cleaned)
        if unwrapped == cleaned:
            return cleaned
        cleaned = unwrapped


def parse(section_label: str, raw_text: str, topic: str = "") -> Any:
    """Sanitise *raw_text* and decode it as JSON.

    The caller checks the top-level shape of the returned value.

    Args:
        section_label: Human-readable section name used in the error message.
        raw_text: The raw completion text from a provider.
        topic: The originating topic (diagnostics only).

    Returns:
        The decoded JSON value.

    Raises:
        ResponseParseError: If the cleaned text is not valid JSON. The error
            carries at most 500 characters of *raw_text*.
    """
    cleaned = sanitize(raw_text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        error = ResponseParseError(section_label, raw_text, cause=exc)
        logger.warning(
            "JSON parse failed section=%r topic=%r excerpt=%r",
            section_label, topic, error.excerpt,
        )
        raise error from exc
