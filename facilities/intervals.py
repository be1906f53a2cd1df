"""
Facilities - Intervals.

Built-in facility providing named recurring timers. Declared by
every worker at priority -10 so it starts before, and stops
after, everything that schedules work on it.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Union

from .base import Facility


TimerCallback = Callable[[], Union[None, Awaitable[None]]]


class IntervalsFacility(Facility):
    """Named recurring timers on asyncio tasks."""

    name = "intervals"

    def __init__(self, owner: Any, opts, ctx=None):
        super().__init__(owner, opts, ctx)
        self._timers: Dict[str, asyncio.Task] = {}

    def add(self, key: str, callback: TimerCallback, interval_seconds: float) -> None:
        """
        Run callback every interval_seconds until cleared.

        Raises:
            ValueError: If the key is taken or the interval is not positive
        """
        if key in self._timers:
            raise ValueError(f"Interval already registered: {key}")
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive: {interval_seconds}")

        loop = asyncio.get_running_loop()
        self._timers[key] = loop.create_task(
            self._run(key, callback, interval_seconds),
            name=f"interval:{key}",
        )
        self._logger.debug(f"Interval added: {key} every {interval_seconds}s")

    def clear(self, key: str) -> bool:
        """Cancel one timer; returns False if it did not exist."""
        task = self._timers.pop(key, None)
        if task is None:
            return False
        task.cancel()
        self._logger.debug(f"Interval cleared: {key}")
        return True

    def has(self, key: str) -> bool:
        """Check if a timer is registered."""
        return key in self._timers

    def keys(self) -> List[str]:
        """Registered timer keys."""
        return list(self._timers)

    async def _run(self, key: str, callback: TimerCallback, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error(f"Interval {key} failed: {e}", exc_info=True)

    async def _stop(self) -> None:
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
