"""Inline emphasis markup.

Generated quotes mark salient terms as ``<keyword>term</keyword>``. Instead
of passing marked-up strings around, quote/content fields hold a ``Markup``
value: an ordered list of plain and emphasised segments.

Examples:
    >>> Markup.parse("実は<keyword>二刀流</keyword>は100年ぶり").plain
    '実は二刀流は100年ぶり'
    >>> strip_emphasis("<keyword>WAR</keyword>とは")
    'WARとは'
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

EMPHASIS_OPEN = "<keyword>"
EMPHASIS_CLOSE = "</keyword>"

_DELIMITER = re.compile(r"</?keyword>")


class Segment(BaseModel):
    """A run of text rendered either plainly or with emphasis."""

    text: str
    emphasized: bool = False


class Markup(BaseModel):
    """Text split on the paired emphasis delimiter."""

    segments: list[Segment] = Field(default_factory=list)

    @classmethod
    def parse(cls, marked: str) -> Markup:
        """Split *marked* into plain / emphasised segments.

        ``<keyword>`` opens emphasis and ``</keyword>`` closes it. An
        unterminated ``<keyword>`` emphasises the rest of the string; a stray
        ``</keyword>`` is dropped. Adjacent runs with the same style merge.
        """
        text = marked or ""
        segments: list[Segment] = []
        emphasized = False
        position = 0
        for match in _DELIMITER.finditer(text):
            _append(segments, text[position:match.start()], emphasized)
            emphasized = match.group() == EMPHASIS_OPEN
            position = match.end()
        _append(segments, text[position:], emphasized)
        return cls(segments=segments)

    @property
    def plain(self) -> str:
        return "".join(s.text for s in self.segments)

    @property
    def emphasized_terms(self) -> list[str]:
        return [s.text for s in self.segments if s.emphasized]

    def marked(self) -> str:
        """Re-serialise to the ``<keyword>`` convention."""
        return "".join(
            f"{EMPHASIS_OPEN}{s.text}{EMPHASIS_CLOSE}" if s.emphasized else s.text
            for s in self.segments
        )


def _append(segments: list[Segment], text: str, emphasized: bool) -> None:
    if not text:
        return
    if segments and segments[-1].emphasized == emphasized:
        segments[-1] = Segment(text=segments[-1].text + text, emphasized=emphasized)
    else:
        segments.append(Segment(text=text, emphasized=emphasized))


def strip_emphasis(text: str) -> str:
    """Remove all emphasis delimiters, keeping the enclosed text."""
    return _DELIMITER.sub("", text or "")
