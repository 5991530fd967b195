"""Tests for intellimaker/markup.py and intellimaker/models.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from intellimaker.markup import Markup, Segment, strip_emphasis
from intellimaker.models import (
    PLACEHOLDER_IMAGE,
    GlossaryItem,
    KeyPerson,
    Phrase,
    Remark,
    Tag,
    Trivia,
)


# ── Emphasis markup ────────────────────────────────────────────────────────────


class TestMarkup:
    def test_splits_into_segments(self):
        markup = Markup.parse("実は<keyword>二刀流</keyword>は<keyword>100年</keyword>ぶり")
        assert markup.segments == [
            Segment(text="実は", emphasized=False),
            Segment(text="二刀流", emphasized=True),
            Segment(text="は", emphasized=False),
            Segment(text="100年", emphasized=True),
            Segment(text="ぶり", emphasized=False),
        ]

    def test_plain_text(self):
        assert Markup.parse("<keyword>WAR</keyword>が高い").plain == "WARが高い"

    def test_emphasized_terms(self):
        markup = Markup.parse("<keyword>A</keyword>と<keyword>B</keyword>")
        assert markup.emphasized_terms == ["A", "B"]

    def test_marked_reproduces_source(self):
        source = "実は<keyword>二刀流</keyword>はすごい"
        assert Markup.parse(source).marked() == source

    def test_no_markers_is_one_plain_segment(self):
        assert Markup.parse("ただの文").segments == [Segment(text="ただの文")]

    def test_unterminated_marker_emphasises_rest(self):
        markup = Markup.parse("前<keyword>後ろ")
        assert markup.segments[-1] == Segment(text="後ろ", emphasized=True)

    def test_stray_closing_marker_is_dropped(self):
        markup = Markup.parse("前置き</keyword>本文")
        assert markup.segments == [Segment(text="前置き本文")]
        assert markup.emphasized_terms == []

    def test_stray_closing_marker_before_pair(self):
        markup = Markup.parse("</keyword>実は<keyword>二刀流</keyword>です")
        assert markup.emphasized_terms == ["二刀流"]
        assert markup.plain == "実は二刀流です"

    def test_empty_string(self):
        assert Markup.parse("").segments == []


class TestStripEmphasis:
    def test_removes_markers_keeps_text(self):
        assert strip_emphasis("<keyword>用語</keyword>の説明") == "用語の説明"

    def test_none_is_empty(self):
        assert strip_emphasis(None) == ""


# ── Records ────────────────────────────────────────────────────────────────────


class TestPhrase:
    def test_quote_keeps_emphasis_background_does_not(self):
        phrase = Phrase.model_validate(
            {
                "quote": "<keyword>大谷</keyword>の話",
                "background": "<keyword>大谷</keyword>は選手",
            }
        )
        assert phrase.quote.emphasized_terms == ["大谷"]
        assert phrase.background == "大谷は選手"

    def test_unknown_and_duplicate_tags_dropped(self):
        phrase = Phrase.model_validate(
            {
                "quote": "q",
                "background": "b",
                "tags": ["トレンド", "謎", "競合情報", "トレンド", 3],
            }
        )
        assert phrase.tags == [Tag.TREND, Tag.COMPETITIVE]

    def test_missing_tags_default_to_empty(self):
        assert Phrase.model_validate({"quote": "q", "background": "b"}).tags == []

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (4.5, 4.5), ("3", 3.0), (9, 5.0), (-1, 0.0), ("high", None), (None, None),
            (float("nan"), None), ("NaN", None), (float("inf"), None),
        ],
    )
    def test_rating_clamped(self, raw, expected):
        phrase = Phrase.model_validate({"quote": "q", "background": "b", "rating": raw})
        assert phrase.rating == expected

    def test_missing_background_is_invalid(self):
        with pytest.raises(ValidationError):
            Phrase.model_validate({"quote": "q"})


class TestOtherRecords:
    def test_trivia_content_is_markup(self):
        trivia = Trivia.model_validate({"content": "<keyword>x</keyword>y"})
        assert trivia.content.plain == "xy"

    def test_remark_content_is_markup(self):
        remark = Remark.model_validate({"content": "ちなみに<keyword>x</keyword>"})
        assert remark.content.emphasized_terms == ["x"]

    def test_glossary_strips_markers(self):
        item = GlossaryItem.model_validate(
            {"term": "<keyword>WAR</keyword>", "definition": "<keyword>勝利</keyword>貢献度"}
        )
        assert item.term == "WAR"
        assert item.definition == "勝利貢献度"

    def test_glossary_requires_definition(self):
        with pytest.raises(ValidationError):
            GlossaryItem.model_validate({"term": "WAR"})

    def test_key_person_blank_links_become_none(self):
        person = KeyPerson.model_validate(
            {"name": "n", "description": "d", "twitter": " ", "website": "https://x.com"}
        )
        assert person.twitter is None
        assert person.linkedin is None
        assert person.website == "https://x.com"
        assert person.image == PLACEHOLDER_IMAGE
