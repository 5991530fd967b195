"""
Generation session orchestrator.

Flow
────
1. start(topic)
     → new session id, all five sections Loading, ``session_started`` event
2. the four first-stage generators run concurrently; each one that settles
   bumps the progress counter (a failed generator settles with ``[]``)
3. hard join, then the synthesis generator runs on the four results
   (counter reaches 5/5)
4. the session settles, whatever mix of Success / Error the sections hold

retry(section) re-runs a single generator against the active session and
leaves every other section alone.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel

from intellimaker.diagnostics import (
    SESSION_FAILED,
    SESSION_STARTED,
    DiagnosticEvent,
    Diagnostics,
)
from intellimaker.generators import (
    FIRST_STAGE_SPECS,
    SectionGenerator,
    SynthesisGenerator,
)
from intellimaker.models import FirstStageResults, SectionName, SectionStatus
from intellimaker.providers import CompletionClient
from intellimaker.state import SessionState

logger = logging.getLogger(__name__)


class SectionBusyError(RuntimeError):
    """Raised when retrying a section that is still loading."""


class Orchestrator:
    """Drives generation sessions over a shared ``SessionState``."""

    def __init__(
        self,
        generators: list[SectionGenerator],
        synthesis: SynthesisGenerator,
        state: Optional[SessionState] = None,
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self.generators: dict[SectionName, SectionGenerator] = {
            g.section: g for g in generators
        }
        self.synthesis = synthesis
        self.state = state or SessionState()
        self.diagnostics = diagnostics or Diagnostics()
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_clients(
        cls,
        chat_client: CompletionClient,
        prompt_client: CompletionClient,
        state: Optional[SessionState] = None,
        diagnostics: Optional[Diagnostics] = None,
    ) -> Orchestrator:
        """Standard wiring: first-stage sections on *chat_client*, synthesis on *prompt_client*."""
        diagnostics = diagnostics or Diagnostics()
        generators = [
            SectionGenerator(spec, chat_client, diagnostics) for spec in FIRST_STAGE_SPECS
        ]
        synthesis = SynthesisGenerator(prompt_client, diagnostics)
        return cls(generators, synthesis, state=state, diagnostics=diagnostics)

    # ── Sessions ───────────────────────────────────────────────────────────

    async def start(self, topic: str) -> int:
        """Run a full generation session for *topic* and wait for it to settle.

        Any session still in flight is invalidated and its tasks cancelled.

        Args:
            topic: The user's topic.

        Returns:
            The id of the session that was run.

        Raises:
            ValueError: If topic is blank.
        """
        session_id, task = self._begin(topic)
        await self._settled(task, session_id)
        return session_id

    async def begin(self, topic: str) -> int:
        """Start a session for *topic* without waiting for it; returns its id."""
        session_id, _ = self._begin(topic)
        return session_id

    def _begin(self, topic: str) -> tuple[int, asyncio.Task]:
        topic = topic.strip()
        if not topic:
            raise ValueError("Topic must not be empty.")

        self._cancel_in_flight()
        session_id = self.state.begin_session(topic)
        self.diagnostics.emit(
            DiagnosticEvent(kind=SESSION_STARTED, topic=topic, session_id=session_id)
        )
        return session_id, self._spawn(self.run(topic, session_id))

    async def run(self, topic: str, session_id: int) -> None:
        try:
            results = await asyncio.gather(
                *(self._counted(g, topic, session_id) for g in self.generators.values())
            )
            if not self.state.is_current(session_id):
                return
            context = FirstStageResults(
                **{
                    section.value: records
                    for section, records in zip(self.generators, results)
                }
            )
            await self.synthesis.generate(topic, self.state, session_id, context)
            self.state.advance(session_id)
            self.state.finish_session(session_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Generation session %s failed for topic=%r", session_id, topic)
            if self.state.is_current(session_id):
                self.diagnostics.emit(
                    DiagnosticEvent(
                        kind=SESSION_FAILED,
                        topic=topic,
                        message=str(exc),
                        session_id=session_id,
                    )
                )
            self.state.finish_session(session_id, error=f"予期しないエラーが発生しました: {exc}")

    async def _counted(
        self, generator: SectionGenerator, topic: str, session_id: int
    ) -> list[BaseModel]:
        try:
            return await generator.generate(topic, self.state, session_id)
        finally:
            self.state.advance(session_id)

    # ── Retry ──────────────────────────────────────────────────────────────

    async def retry(self, section: SectionName) -> list[BaseModel]:
        """Re-run one section for the active session and wait for it.

        Synthesis retries use the first-stage data currently held in state.

        Raises:
            LookupError: If no session has been started.
            SectionBusyError: If the section is still loading.
        """
        session_id, task = self._begin_retry(SectionName(section))
        records = await self._settled(task, session_id)
        return records or []

    async def begin_retry(self, section: SectionName) -> None:
        """Schedule a retry of *section* without waiting for it."""
        self._begin_retry(SectionName(section))

    def _begin_retry(self, section: SectionName) -> tuple[int, asyncio.Task]:
        session_id = self.state.session_id
        topic = self.state.topic
        if session_id == 0 or not topic:
            raise LookupError("No generation session to retry.")
        if self.state.section(section).status == SectionStatus.LOADING:
            raise SectionBusyError(f"Section {section.value!r} is still loading.")

        logger.info("Retrying %s for session %s", section.value, session_id)
        self.state.begin_section(section, session_id)
        if section == SectionName.SYNTHESIS:
            coro = self.synthesis.generate(
                topic, self.state, session_id, self.state.results()
            )
        else:
            coro = self.generators[section].generate(topic, self.state, session_id)
        return session_id, self._spawn(coro)

    async def _settled(self, task: asyncio.Task, session_id: int):
        """Await *task*; a cancellation caused by a newer session is not an error."""
        try:
            return await task
        except asyncio.CancelledError:
            if self.state.is_current(session_id):
                raise
            logger.info("Session %s superseded before it settled", session_id)
            return None

    # ── Task bookkeeping ───────────────────────────────────────────────────

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_in_flight(self) -> None:
        for task in list(self._tasks):
            if not task.done():
                logger.info("Cancelling in-flight task from a previous session")
                task.cancel()
