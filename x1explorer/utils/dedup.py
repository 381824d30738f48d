"""Coalescing of concurrent identical calls."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class CallDeduplicator:
    """Shares one in-flight call between every caller using the same key.

    The first caller schedules the thunk after a short delay so callers
    arriving in the same tick can join it. The registration is removed as
    soon as the thunk settles, success or failure, before any waiter sees
    the outcome.
    """

    def __init__(self, default_delay_ms: int = 100):
        self.default_delay_ms = default_delay_ms
        self._in_flight: Dict[str, asyncio.Task] = {}
        self.calls_started = 0
        self.calls_coalesced = 0

    async def dedupe(
        self,
        key: str,
        thunk: Callable[[], Awaitable[Any]],
        delay_ms: Optional[int] = None,
    ) -> Any:
        """Run thunk once per key at a time and return its result to every caller.

        Args:
            key: Identity of the call
            thunk: Zero-argument coroutine factory doing the real work
            delay_ms: Coalescing delay before thunk starts (default from constructor)

        Returns:
            The thunk's result; its exception is raised to every caller instead
        """
        task = self._in_flight.get(key)
        if task is None:
            delay = self.default_delay_ms if delay_ms is None else delay_ms
            task = asyncio.ensure_future(self._run(key, thunk, delay / 1000.0))
            task.add_done_callback(self._settled)
            self._in_flight[key] = task
            self.calls_started += 1
        else:
            self.calls_coalesced += 1
            logger.debug("call_coalesced", key=key)

        # Shield so one cancelled waiter does not cancel the shared call
        return await asyncio.shield(task)

    async def _run(self, key: str, thunk: Callable[[], Awaitable[Any]], delay: float) -> Any:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            return await thunk()
        finally:
            self._in_flight.pop(key, None)

    @staticmethod
    def _settled(task: asyncio.Task) -> None:
        # Reads the outcome even when every waiter has been cancelled
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("shared_call_failed", error=str(error))

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)
