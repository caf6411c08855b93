"""TTL cache that coalesces concurrent loads of the same key.

Purpose
-------
Keep composed bundles (and the root config) for a bounded time and make sure
at most one load per key is in flight, however many callers ask at once.

Contents
    - ``DEFAULT_TTL``: five minutes, in seconds.
    - ``CacheState``: ``ABSENT`` / ``PENDING`` / ``CACHED`` per key.
    - ``CoalescingCache``: the cache object itself.

System Role
-----------
Owned by :class:`lib_tag_config.core.TagConfigResolver`; one instance for
bundles keyed by tag, one for the root config keyed by ``None``. Each test
constructs its own resolver, so no global state has to be reset between
tests.

State only changes at synchronous boundaries: the pending task is registered
before the first suspension, and the cached entry is written from the task's
done callback before any waiter resumes.
"""

from __future__ import annotations

import asyncio
import enum
import time
from typing import Awaitable, Callable, Final, Generic, Hashable, TypeVar

from ..domain.model import CacheEntry
from ..observability import log_debug

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_TTL: Final[float] = 5 * 60.0


class CacheState(enum.Enum):
    ABSENT = "absent"
    PENDING = "pending"
    CACHED = "cached"


class CoalescingCache(Generic[K, V]):
    """Per-key TTL cache with request coalescing and forced refresh.

    Why
    ----
    Composing a bundle costs one read set per ancestor; bursts of callers for
    the same tag should share one composition, and repeated callers within the
    TTL should not hit the transport at all.

    What
    ----
    ``Absent -> Pending -> Cached -> (TTL expiry) -> Absent``. A failed load
    leaves the key ``Absent`` and propagates the exception to every waiter.
    A caller that is cancelled while waiting does not cancel the shared load;
    it still completes and populates the cache.

    Parameters
    ----------
    ttl:
        Seconds an entry stays fresh.
    clock:
        Monotonic time source, injectable for tests.
    name:
        Label used in log events.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._name = name
        self._entries: dict[K, CacheEntry[V]] = {}
        self._pending: dict[K, asyncio.Future[V]] = {}

    async def get(self, key: K, load: Callable[[], Awaitable[V]], *, force: bool = False) -> V:
        """Return the value for *key*, loading it through *load* when needed.

        With ``force=True`` any cached entry and any in-flight load for *key*
        are discarded first and a new load starts. The discarded load still
        runs to completion but its result is not stored.
        """

        if force:
            self.discard(key)
        else:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.is_fresh(self._clock(), self.ttl):
                    log_debug(f"{self._name}_cache_hit", key=key)
                    return entry.value
                del self._entries[key]
            pending = self._pending.get(key)
            if pending is not None:
                log_debug(f"{self._name}_coalesced", key=key)
                return await asyncio.shield(pending)

        task = asyncio.ensure_future(load())
        self._pending[key] = task
        task.add_done_callback(lambda finished: self._settle(key, finished))
        return await asyncio.shield(task)

    def state(self, key: K) -> CacheState:
        """Report where *key* sits in the cache state machine right now."""

        if key in self._pending:
            return CacheState.PENDING
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock(), self.ttl):
            return CacheState.CACHED
        return CacheState.ABSENT

    def discard(self, key: K) -> None:
        """Forget the cached entry and any in-flight load for *key*."""

        self._entries.pop(key, None)
        self._pending.pop(key, None)

    def clear(self) -> None:
        """Forget every key."""

        self._entries.clear()
        self._pending.clear()

    def _settle(self, key: K, task: asyncio.Future[V]) -> None:
        if self._pending.get(key) is not task:
            # superseded by a forced refresh or a reset
            if not task.cancelled():
                task.exception()
            return
        del self._pending[key]
        if task.cancelled() or task.exception() is not None:
            return
        self._entries[key] = CacheEntry(task.result(), self._clock())
