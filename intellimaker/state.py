"""Session and section state.

``SessionState`` is the single source of truth for one generation session:
five section cells, the aggregate progress counter and the
``is_generating`` flag. Only generators and the orchestrator write to it;
the web layer reads snapshots or subscribes to ``StateChange`` events.

Every write names the session id it belongs to. Writes for a session that is
no longer current are dropped, so a slow request from an earlier topic can
never overwrite the active one.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel

from intellimaker.models import (
    FirstStageResults,
    SECTION_LABELS,
    SectionName,
    SectionStatus,
)

logger = logging.getLogger(__name__)

#: Four first-stage generators plus synthesis.
TOTAL_STEPS = len(SectionName)


@dataclass
class SectionState:
    """One section cell: lifecycle status, last good data and last error."""

    name: SectionName
    status: SectionStatus = SectionStatus.IDLE
    data: list[BaseModel] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name.value,
            "label": SECTION_LABELS[self.name],
            "status": self.status.value,
            "data": [record.model_dump(mode="json") for record in self.data],
            "error": self.error,
        }


@dataclass(frozen=True)
class StateChange:
    """Notification sent to subscribers after each state transition."""

    kind: str
    session_id: int
    section: Optional[SectionName] = None
    state: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[StateChange], None]


class SessionState:
    """Thread-safe holder of the active session's state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self.session_id = 0
        self.topic = ""
        self.is_generating = False
        self.completed = 0
        self.total = TOTAL_STEPS
        self.error: Optional[str] = None
        self._sections: dict[SectionName, SectionState] = {
            name: SectionState(name) for name in SectionName
        }

    # ── Subscriptions ──────────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, change: StateChange) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(change)
            except Exception:
                logger.exception("State subscriber %r failed", callback)

    # ── Session lifecycle ──────────────────────────────────────────────────

    def begin_session(self, topic: str) -> int:
        """Start a new session: every section Loading and empty.

        Returns:
            The new session id. Any earlier id becomes stale.
        """
        with self._lock:
            self.session_id += 1
            self.topic = topic
            self.is_generating = True
            self.completed = 0
            self.error = None
            for name in SectionName:
                self._sections[name] = SectionState(name, status=SectionStatus.LOADING)
            session_id = self.session_id
            state = self._snapshot_locked()
        self._notify(StateChange("session_started", session_id, state=state))
        return session_id

    def is_current(self, session_id: int) -> bool:
        with self._lock:
            return session_id == self.session_id

    def advance(self, session_id: int) -> None:
        """Count one settled generator towards the session's progress."""
        with self._lock:
            if session_id != self.session_id:
                return
            self.completed = min(self.completed + 1, self.total)
            progress = {"completed": self.completed, "total": self.total}
        self._notify(StateChange("progress", session_id, state=progress))

    def finish_session(self, session_id: int, error: Optional[str] = None) -> None:
        with self._lock:
            if session_id != self.session_id:
                return
            self.is_generating = False
            if error is not None:
                self.error = error
            state = self._snapshot_locked()
        self._notify(StateChange("session_settled", session_id, state=state))

    # ── Section transitions ────────────────────────────────────────────────

    def begin_section(self, name: SectionName, session_id: int) -> bool:
        """Mark *name* Loading and clear its error; previous data is kept."""
        with self._lock:
            if session_id != self.session_id:
                return False
            section = self._sections[name]
            section.status = SectionStatus.LOADING
            section.error = None
            state = section.to_dict()
        self._notify(StateChange("section", session_id, name, state))
        return True

    def settle_section(
        self,
        name: SectionName,
        session_id: int,
        records: list[BaseModel],
        error: Optional[str] = None,
    ) -> bool:
        """Move *name* out of Loading in a single step.

        With *error* the section becomes Error and keeps its previous data;
        otherwise it becomes Success with *records*.

        Returns:
            ``False`` if *session_id* is stale and nothing was written.
        """
        with self._lock:
            if session_id != self.session_id:
                logger.info(
                    "Discarding %s result from stale session %s (current %s)",
                    name.value, session_id, self.session_id,
                )
                return False
            section = self._sections[name]
            if error is not None:
                section.status = SectionStatus.ERROR
                section.error = error
            else:
                section.status = SectionStatus.SUCCESS
                section.data = list(records)
                section.error = None
            state = section.to_dict()
        self._notify(StateChange("section", session_id, name, state))
        return True

    # ── Reads ──────────────────────────────────────────────────────────────

    def section(self, name: SectionName) -> SectionState:
        """Return a copy of the section cell."""
        with self._lock:
            return copy.copy(self._sections[name])

    def results(self) -> FirstStageResults:
        """Current first-stage data, as consumed by synthesis."""
        with self._lock:
            return FirstStageResults(
                topics=list(self._sections[SectionName.TOPICS].data),
                trivia=list(self._sections[SectionName.TRIVIA].data),
                glossary=list(self._sections[SectionName.GLOSSARY].data),
                key_persons=list(self._sections[SectionName.KEY_PERSONS].data),
            )

    @property
    def progress(self) -> float:
        with self._lock:
            return self.completed / self.total

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "topic": self.topic,
            "is_generating": self.is_generating,
            "completed": self.completed,
            "total": self.total,
            "error": self.error,
            "sections": {
                name.value: section.to_dict() for name, section in self._sections.items()
            },
        }
