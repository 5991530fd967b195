"""Diagnostic events.

Generation failures and session starts are recorded as ``DiagnosticEvent``
objects. Every event is logged; callers may also register sinks (a list
collector in tests, a telemetry forwarder in production).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

SESSION_STARTED = "session_started"
SECTION_FAILED = "section_failed"
SESSION_FAILED = "session_failed"


@dataclass(frozen=True)
class DiagnosticEvent:
    """One diagnostic record."""

    kind: str
    topic: str
    section: Optional[str] = None
    message: str = ""
    session_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


DiagnosticSink = Callable[[DiagnosticEvent], None]


class Diagnostics:
    """Fan-out of diagnostic events to the log and registered sinks."""

    def __init__(self, sinks: Optional[list[DiagnosticSink]] = None) -> None:
        self.sinks: list[DiagnosticSink] = list(sinks or [])

    def add_sink(self, sink: DiagnosticSink) -> None:
        self.sinks.append(sink)

    def emit(self, event: DiagnosticEvent) -> None:
        if event.kind == SESSION_STARTED:
            logger.info("Session %s started topic=%r", event.session_id, event.topic)
        else:
            logger.error(
                "%s session=%s section=%r topic=%r: %s",
                event.kind, event.session_id, event.section, event.topic, event.message,
            )
        for sink in self.sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Diagnostic sink %r failed", sink)
