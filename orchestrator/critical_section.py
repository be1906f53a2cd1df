"""
Orchestrator - Critical Section.

============================================================
RESPONSIBILITY
============================================================
Tracks in-flight units of work that facilities depend on.

Application code marks work with `async with section:` (or
enter()/leave()); shutdown waits until the section is clear
before any facility is torn down.

============================================================
"""

import asyncio
import logging
from typing import Optional


class CriticalSection:
    """Counter of in-flight work with a clear notification."""

    def __init__(self):
        self._depth = 0
        self._clear: Optional[asyncio.Event] = None
        self._logger = logging.getLogger(__name__)

    def _event(self) -> asyncio.Event:
        if self._clear is None:
            self._clear = asyncio.Event()
            if self._depth == 0:
                self._clear.set()
        return self._clear

    @property
    def active(self) -> bool:
        """Check if any work is in flight."""
        return self._depth > 0

    @property
    def depth(self) -> int:
        """Number of in-flight units of work."""
        return self._depth

    def enter(self) -> None:
        """Mark one unit of work as in flight."""
        self._depth += 1
        if self._clear is not None:
            self._clear.clear()

    def leave(self) -> None:
        """Mark one unit of work as done, notifying waiters at zero."""
        if self._depth == 0:
            raise RuntimeError("CriticalSection.leave() without matching enter()")
        self._depth -= 1
        if self._depth == 0:
            if self._clear is not None:
                self._clear.set()
            self._logger.debug("Critical section clear")

    async def __aenter__(self) -> "CriticalSection":
        self.enter()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.leave()

    async def wait_clear(self, timeout: Optional[float] = None) -> None:
        """
        Wait until no work is in flight.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Raises:
            asyncio.TimeoutError: If the timeout expires first
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._depth > 0:
            event = self._event()
            if deadline is None:
                await event.wait()
                continue

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            await asyncio.wait_for(event.wait(), timeout=remaining)


__all__ = [
    "CriticalSection",
]
