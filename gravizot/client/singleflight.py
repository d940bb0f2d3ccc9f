"""Deduplicate concurrent async operations."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class SingleFlight:
    """Share one in-flight call per key among all concurrent callers.

    The first caller for a key starts ``fn``; callers arriving while it is
    pending await the same future and get the same result or exception. The
    key is released as soon as the call settles, so the next caller starts a
    new one. A waiter being cancelled does not cancel the shared call.
    """

    def __init__(self) -> None:
        self._calls: Dict[Hashable, asyncio.Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._calls

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        future = self._calls.get(key)
        if future is None:
            future = asyncio.ensure_future(fn())
            self._calls[key] = future
            future.add_done_callback(lambda done, key=key: self._forget(key, done))
        return await asyncio.shield(future)

    def _forget(self, key: Hashable, done: Any) -> None:
        if self._calls.get(key) is done:
            del self._calls[key]
