"""
Pydantic models shared across the Intelli Maker core.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, Field, field_validator

from intellimaker.markup import Markup, strip_emphasis

logger = logging.getLogger(__name__)

#: Image shown next to a key person; providers are never asked for photos.
PLACEHOLDER_IMAGE = "https://placehold.jp/100x100.png"


# ── Section lifecycle ──────────────────────────────────────────────────────────


class SectionName(str, Enum):
    """The five independently lifecycled content categories."""

    TOPICS = "topics"
    TRIVIA = "trivia"
    GLOSSARY = "glossary"
    KEY_PERSONS = "key_persons"
    SYNTHESIS = "synthesis"


#: First-stage sections, in display order.
FIRST_STAGE: tuple[SectionName, ...] = (
    SectionName.TOPICS,
    SectionName.TRIVIA,
    SectionName.GLOSSARY,
    SectionName.KEY_PERSONS,
)

#: Human-readable section titles used in prompts, errors and diagnostics.
SECTION_LABELS: dict[SectionName, str] = {
    SectionName.TOPICS: "賢く聞こえるセリフ",
    SectionName.TRIVIA: "雑学",
    SectionName.GLOSSARY: "関連用語",
    SectionName.KEY_PERSONS: "キーパーソン",
    SectionName.SYNTHESIS: "決めゼリフ",
}


class SectionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class Tag(str, Enum):
    """Category tags a phrase may carry."""

    TREND = "トレンド"
    ISSUE = "問題提起"
    COMPETITIVE = "競合情報"
    COMMENDATION = "表彰・称賛"


# ── Records ────────────────────────────────────────────────────────────────────


def _marked(value: Any) -> Any:
    """Accept either a raw ``<keyword>`` string or an already-built Markup."""
    if isinstance(value, str):
        return Markup.parse(value)
    return value


#: Markup field that also accepts the raw ``<keyword>`` string form.
MarkedText = Annotated[Markup, BeforeValidator(_marked)]


class Phrase(BaseModel):
    """A conversation-starter line with its background explanation."""

    quote: MarkedText
    background: str
    tags: list[Tag] = Field(default_factory=list)
    rating: Optional[float] = None

    @field_validator("background", mode="before")
    @classmethod
    def _strip_background(cls, value: Any) -> Any:
        return strip_emphasis(value) if isinstance(value, str) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _known_tags(cls, value: Any) -> list[str]:
        """Keep recognised tags once each, in the order given."""
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return value
        known = {t.value for t in Tag}
        tags: list[str] = []
        for tag in value:
            if not isinstance(tag, str) or tag not in known:
                logger.debug("Dropping unknown phrase tag %r", tag)
            elif tag not in tags:
                tags.append(tag)
        return tags

    @field_validator("rating", mode="before")
    @classmethod
    def _clamp_rating(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return None
        try:
            rating = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(rating):
            return None
        return min(max(rating, 0.0), 5.0)


class Trivia(BaseModel):
    content: MarkedText


class GlossaryItem(BaseModel):
    term: str
    definition: str

    @field_validator("term", "definition", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return strip_emphasis(value) if isinstance(value, str) else value


class KeyPerson(BaseModel):
    """A notable person related to the topic, with optional social links."""

    name: str
    description: str
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    website: Optional[str] = None
    image: str = PLACEHOLDER_IMAGE

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return strip_emphasis(value) if isinstance(value, str) else value

    @field_validator("twitter", "linkedin", "website", mode="before")
    @classmethod
    def _blank_link(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Remark(BaseModel):
    """A short synthesised remark about the topic."""

    content: MarkedText


class FirstStageResults(BaseModel):
    """Read-only bundle of the four first-stage results fed to synthesis."""

    model_config = {"frozen": True}

    topics: list[Phrase] = Field(default_factory=list)
    trivia: list[Trivia] = Field(default_factory=list)
    glossary: list[GlossaryItem] = Field(default_factory=list)
    key_persons: list[KeyPerson] = Field(default_factory=list)
