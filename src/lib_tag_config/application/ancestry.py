"""Walk declared parent pointers to build a tag's ancestry chain.

Contents
    - ``MAX_DEPTH``: upper bound on chain length.
    - ``LayerSession``: fetches each tag's layer at most once per resolution.
    - ``build_ancestry``: returns the chain's layers ordered root first.
"""

from __future__ import annotations

import asyncio
from typing import Final

from ..domain.model import TagLayer
from ..observability import log_debug, log_warning, make_event
from .layers import fetch_layer
from .ports import Transport
from .tags import sanitize_tag

MAX_DEPTH: Final[int] = 16


class LayerSession:
    """Memoise layer fetches for the lifetime of one resolution.

    Why
    ----
    Discovering a parent pointer requires fetching the whole layer; the same
    layer is needed again for composition. Sharing the fetched value keeps the
    transport call count at one read set per tag.

    Concurrent requests for the same tag await the same task.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._layers: dict[str, asyncio.Task[TagLayer]] = {}

    async def get(self, tag: str) -> TagLayer:
        task = self._layers.get(tag)
        if task is None:
            task = asyncio.ensure_future(fetch_layer(self._transport, tag))
            self._layers[tag] = task
        return await task

    @property
    def fetched_tags(self) -> tuple[str, ...]:
        return tuple(self._layers)


async def build_ancestry(
    tag: str,
    session: LayerSession,
    *,
    max_depth: int = MAX_DEPTH,
) -> list[TagLayer]:
    """Return the layers of *tag* and its ancestors, root ancestor first.

    Why
    ----
    A tag inherits from the tag named by ``parent`` in its own config, which
    in turn may declare a parent; composition must fold them root to leaf.

    What
    ----
    Starting at *tag*, fetch the layer, record it, then follow the sanitised
    ``parent`` pointer. The walk stops when no parent is declared, when the
    parent was already visited (a cycle), or when *max_depth* layers were
    collected.

    Examples
    --------
    >>> from lib_tag_config.testing import InMemoryTransport
    >>> transport = InMemoryTransport({"a/conf.json": {"parent": "b"}, "b/conf.json": {"parent": "a"}})
    >>> layers = asyncio.run(build_ancestry("a", LayerSession(transport)))
    >>> [layer.tag for layer in layers]
    ['b', 'a']
    """

    collected: list[TagLayer] = []
    visited: set[str] = set()
    current: str | None = tag
    while current is not None:
        if len(collected) >= max_depth:
            log_warning("ancestry_depth_capped", **make_event(tag, None, {"max_depth": max_depth, "next": current}))
            break
        layer = await session.get(current)
        collected.append(layer)
        visited.add(current)
        parent = sanitize_tag(layer.declared_parent)
        if parent is not None and parent in visited:
            log_warning("ancestry_cycle", **make_event(tag, None, {"at": current, "parent": parent}))
            parent = None
        current = parent

    collected.reverse()
    log_debug("ancestry_built", **make_event(tag, None, {"chain": [layer.tag for layer in collected]}))
    return collected
