"""In-memory transport for exercising resolution without a server.

Purpose
    Let test suites (ours and consumers') describe a tag tree as a plain dict
    and assert exactly which documents a resolution read.

Contents
    - ``InMemoryTransport``: dict-backed transport that records every call.

System Integration
    Satisfies :class:`lib_tag_config.application.ports.Transport`; the
    resolution pipeline cannot tell it apart from the HTTP transport.
"""

from __future__ import annotations

import asyncio
import copy
from collections import Counter
from typing import Any, Mapping


class InMemoryTransport:
    """Serve documents from a ``{path: payload}`` mapping.

    Payloads are deep-copied on every read so callers cannot mutate the
    fixture through a fetched document. A path mapped to an ``Exception``
    instance raises it, which lets tests exercise contract-breaking
    transports.

    Examples
    --------
    >>> transport = InMemoryTransport({"default.json": {"defaultTag": "base"}})
    >>> asyncio.run(transport.fetch("default.json"))
    {'defaultTag': 'base'}
    >>> asyncio.run(transport.fetch("missing.json")) is None
    True
    >>> transport.calls
    ['default.json', 'missing.json']
    """

    def __init__(self, documents: Mapping[str, Any] | None = None, *, delay: float = 0.0) -> None:
        self.documents: dict[str, Any] = dict(documents or {})
        self.delay = delay
        self.calls: list[str] = []

    async def fetch(self, path: str) -> Any | None:
        self.calls.append(path)
        if self.delay:
            await asyncio.sleep(self.delay)
        payload = self.documents.get(path)
        if isinstance(payload, Exception):
            raise payload
        return copy.deepcopy(payload)

    def count(self, prefix: str = "") -> int:
        """Return how many recorded calls start with *prefix*."""

        return sum(1 for path in self.calls if path.startswith(prefix))

    def call_counts(self) -> Counter[str]:
        return Counter(self.calls)

    def reset_calls(self) -> None:
        self.calls.clear()
