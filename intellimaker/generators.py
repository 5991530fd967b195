"""
Section generators.

Every section follows the same flow:

1. build a prompt for the topic
2. ask the section's provider for a completion
3. sanitise + parse the completion as JSON
4. check the expected top-level array and validate each record
5. write Success / Error into the section's state cell

``SectionSpec`` captures what differs between sections (prompt, provider,
result key, record model); ``SectionGenerator`` owns the shared control
flow. ``SynthesisGenerator`` is the second-stage variant whose prompt is
built from the four first-stage results and whose response is a bare array.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from intellimaker import prompts, sanitizer
from intellimaker.diagnostics import SECTION_FAILED, DiagnosticEvent, Diagnostics
from intellimaker.errors import ResponseParseError, ResponseValidationError
from intellimaker.models import (
    SECTION_LABELS,
    FirstStageResults,
    GlossaryItem,
    KeyPerson,
    Phrase,
    Remark,
    SectionName,
    Trivia,
)
from intellimaker.providers import CompletionClient, Prompt
from intellimaker.state import SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionSpec:
    """Everything that distinguishes one section from another."""

    section: SectionName
    build_prompt: Callable[..., Prompt]
    record_model: type[BaseModel]
    #: Key holding the record array, or ``None`` when the response is the array.
    result_key: Optional[str]
    expected_count: int
    #: Keys removed from each raw item before validation.
    ignored_fields: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return SECTION_LABELS[self.section]


PHRASES = SectionSpec(
    section=SectionName.TOPICS,
    build_prompt=prompts.phrases_prompt,
    record_model=Phrase,
    result_key="phrases",
    expected_count=prompts.PHRASE_COUNT,
)
TRIVIA = SectionSpec(
    section=SectionName.TRIVIA,
    build_prompt=prompts.trivia_prompt,
    record_model=Trivia,
    result_key="trivia",
    expected_count=prompts.TRIVIA_COUNT,
)
GLOSSARY = SectionSpec(
    section=SectionName.GLOSSARY,
    build_prompt=prompts.glossary_prompt,
    record_model=GlossaryItem,
    result_key="glossary",
    expected_count=prompts.GLOSSARY_COUNT,
)
KEY_PERSONS = SectionSpec(
    section=SectionName.KEY_PERSONS,
    build_prompt=prompts.key_persons_prompt,
    record_model=KeyPerson,
    result_key="keyPersons",
    expected_count=prompts.KEY_PERSON_COUNT,
    ignored_fields=("image",),
)
SYNTHESIS = SectionSpec(
    section=SectionName.SYNTHESIS,
    build_prompt=prompts.synthesis_prompt,
    record_model=Remark,
    result_key=None,
    expected_count=prompts.REMARK_COUNT,
)

FIRST_STAGE_SPECS: tuple[SectionSpec, ...] = (PHRASES, TRIVIA, GLOSSARY, KEY_PERSONS)


def extract_records(spec: SectionSpec, payload: Any) -> list[BaseModel]:
    """Pull the record array out of *payload* and validate every item.

    Raises:
        ResponseParseError: If the array is missing or is not a list.
        ResponseValidationError: If an item lacks required fields.
    """
    items = payload
    if spec.result_key is not None:
        items = payload.get(spec.result_key) if isinstance(payload, dict) else None
    if not isinstance(items, list):
        where = f"'{spec.result_key}'" if spec.result_key else "トップレベル"
        raise ResponseParseError(
            spec.label, repr(payload), reason=f"{where}に配列がありません"
        )

    records: list[BaseModel] = []
    for index, item in enumerate(items):
        if isinstance(item, dict) and spec.ignored_fields:
            item = {k: v for k, v in item.items() if k not in spec.ignored_fields}
        try:
            records.append(spec.record_model.model_validate(item))
        except ValidationError as exc:
            raise ResponseValidationError(
                spec.label, f"{index}番目: {exc.error_count()}件のエラー ({exc.errors()[0]['msg']})"
            ) from exc

    if len(records) != spec.expected_count:
        logger.warning(
            "%s: expected %d records, got %d",
            spec.section.value, spec.expected_count, len(records),
        )
    return records


class SectionGenerator:
    """Runs one section's request and owns that section's lifecycle."""

    def __init__(
        self,
        spec: SectionSpec,
        client: CompletionClient,
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self.spec = spec
        self.client = client
        self.diagnostics = diagnostics or Diagnostics()

    @property
    def section(self) -> SectionName:
        return self.spec.section

    def build_prompt(self, topic: str, context: Any = None) -> Prompt:
        return self.spec.build_prompt(topic)

    async def fetch(self, topic: str, context: Any = None) -> list[BaseModel]:
        """Request, sanitise, parse and validate; raises on any failure."""
        prompt = self.build_prompt(topic, context)
        raw_text = await self.client.complete(prompt)
        logger.debug("%s raw response: %r", self.section.value, raw_text[:200])
        payload = sanitizer.parse(self.spec.label, raw_text, topic)
        return extract_records(self.spec, payload)

    async def generate(
        self,
        topic: str,
        state: SessionState,
        session_id: int,
        context: Any = None,
    ) -> list[BaseModel]:
        """Run the section and record the outcome in *state*.

        Failures never propagate: the section is marked Error, a diagnostic
        event is emitted and an empty list is returned. Results for a
        session that is no longer current are not written.

        Returns:
            The validated records, or ``[]`` on failure.
        """
        state.begin_section(self.section, session_id)
        records: list[BaseModel] = []
        error: Optional[str] = None
        try:
            records = await self.fetch(topic, context)
        except asyncio.CancelledError:
            error = f"{self.spec.label}の生成がキャンセルされました"
            raise
        except Exception as exc:
            error = f"{self.spec.label}の生成中にエラーが発生しました: {exc}"
            if state.is_current(session_id):
                self.diagnostics.emit(
                    DiagnosticEvent(
                        kind=SECTION_FAILED,
                        topic=topic,
                        section=self.section.value,
                        message=str(exc),
                        session_id=session_id,
                    )
                )
            records = []
        finally:
            state.settle_section(self.section, session_id, records, error)
        return records


class SynthesisGenerator(SectionGenerator):
    """Second-stage generator fed with the four first-stage results."""

    def __init__(
        self,
        client: CompletionClient,
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        super().__init__(SYNTHESIS, client, diagnostics)

    def build_prompt(self, topic: str, context: Any = None) -> Prompt:
        results = context if context is not None else FirstStageResults()
        return self.spec.build_prompt(topic, results)
