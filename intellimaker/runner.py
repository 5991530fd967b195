"""
Background event loop for synchronous callers.

Flask handles each request on its own thread, but generation sessions have
to outlive the request that started them and share one event loop (so that
a new session can cancel the previous one's tasks). ``BackgroundLoop`` runs
that loop on a daemon thread and accepts coroutines from any thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Coroutine
from typing import Any, Optional

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """An asyncio loop running on a dedicated daemon thread."""

    def __init__(self, name: str = "intellimaker-loop") -> None:
        self.name = name
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    def start(self) -> BackgroundLoop:
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait()
        return self

    def _run(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        """Schedule *coro* on the loop; returns a thread-safe future."""
        if self.loop is None:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(self._log_failure)
        return future

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """Run *coro* on the loop and block until it finishes."""
        return self.submit(coro).result(timeout=timeout)

    def stop(self) -> None:
        if self.loop is None or self._thread is None:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        self.loop = None
        self._ready.clear()

    @staticmethod
    def _log_failure(future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background task failed: %r", exc)
