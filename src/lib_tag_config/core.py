"""Composition root for ``lib_tag_config``.

Purpose
-------
Wire a transport, a tag source, and the two coalescing caches into the
resolution pipeline: tag resolution, ancestry building, composition, and the
inverse delta emission.

Contents
--------
* :class:`TagConfigResolver` – owns all cache state; the primary API.
* :func:`resolve_effective_config` / :func:`reset_cache` /
  :func:`build_override_document` – module-level wrappers delegating to a
  process-default resolver built from :func:`load_settings`.
* :func:`configure` / :func:`get_default_resolver` – install or fetch that
  default resolver.

System Role
-----------
Everything below this module is either pure (``application``) or a narrow
adapter. This is the canonical place to change precedence, caching policy,
or how failures surface to callers.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Iterable

from .adapters.settings import Settings, build_transport, load_settings
from .adapters.tag_source import TagState
from .application.ancestry import MAX_DEPTH, LayerSession, build_ancestry
from .application.cache import DEFAULT_TTL, CacheState, CoalescingCache
from .application.compose import compose_layers
from .application.delta import compute_diff_index, emit_override_document, parent_snapshot
from .application.layers import safe_fetch
from .application.ports import TagSource, Transport
from .application.tags import resolve_tag, sanitize_tag
from .domain.errors import CompositionFailure, TagResolutionError
from .domain.model import ComposedBundle, DeltaDocument, DiffIndex, Entity, ParentSnapshot, RootConfig, TagLayer
from .observability import log_error, log_info, make_event, new_trace_id

ROOT_DOCUMENT = "default.json"


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision."""

    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TagConfigResolver:
    """Resolve effective tag configuration with TTL caching and request coalescing.

    Why
    ----
    Every caller in a process wants the same composed bundle for the same
    tag; the resolver is the single owner of the cache so tests (or
    multi-tenant hosts) can keep independent instances.

    Parameters
    ----------
    transport:
        Reads documents; see :class:`~lib_tag_config.application.ports.Transport`.
    tag_source:
        Supplies the explicit override and receives the resolved tag.
        Defaults to a fresh :class:`~lib_tag_config.adapters.tag_source.TagState`.
    hostname:
        Hostname of the resolution environment, matched against
        ``RootConfig.domains``; empty when unknown.
    ttl:
        Seconds a composed bundle or root config stays cached.
    max_depth:
        Maximum ancestry chain length.
    clock:
        Monotonic time source for the caches.
    timestamp:
        Produces the generation timestamp stamped on override documents.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        tag_source: TagSource | None = None,
        hostname: str = "",
        ttl: float = DEFAULT_TTL,
        max_depth: int = MAX_DEPTH,
        clock: Callable[[], float] = time.monotonic,
        timestamp: Callable[[], str] = utc_timestamp,
    ) -> None:
        self.transport = transport
        self.tag_source: TagSource = tag_source if tag_source is not None else TagState()
        self.hostname = hostname
        self.max_depth = max_depth
        self._timestamp = timestamp
        self._bundles: CoalescingCache[str, ComposedBundle] = CoalescingCache(ttl=ttl, clock=clock, name="bundle")
        self._root: CoalescingCache[None, RootConfig] = CoalescingCache(ttl=ttl, clock=clock, name="root_config")

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: Transport | None = None) -> TagConfigResolver:
        """Build a resolver (and, unless given, its transport) from *settings*."""

        return cls(
            transport if transport is not None else build_transport(settings),
            tag_source=TagState(override=settings.tag, fallback=settings.default_tag),
            hostname=settings.hostname,
            ttl=settings.cache_ttl,
            max_depth=settings.max_depth,
        )

    async def resolve_effective_config(self, force_refresh: bool = False) -> ComposedBundle:
        """Return the composed bundle for the active tag.

        What
        ----
        Loads the root config (cached), resolves the tag from the override,
        hostname mapping, or default, records it on the tag source, and
        returns the cached or freshly composed bundle. ``force_refresh``
        discards the root config and the tag's bundle first.

        Raises
        ------
        TagResolutionError
            When no tag resolves. Nothing is cached in that case.

        Returns
        -------
        ComposedBundle
            The composed state, or an empty bundle with ``failed=True`` when
            composition raised unexpectedly (the failure is logged).
        """

        new_trace_id()
        tag = await self.resolve_tag(force_refresh=force_refresh)
        self.tag_source.set_active_tag(tag)
        return await self.compose_tag(tag, force_refresh=force_refresh)

    async def resolve_tag(self, *, force_refresh: bool = False) -> str:
        """Return the tag the current override, hostname, and root config select."""

        root = await self.root_config(force_refresh=force_refresh)
        return resolve_tag(root, override=self.tag_source.get_tag_override(), hostname=self.hostname)

    async def root_config(self, *, force_refresh: bool = False) -> RootConfig:
        """Return the cached root config, fetching ``default.json`` when stale or forced.

        An unreadable root document yields an empty :class:`RootConfig`, so
        only the explicit override can select a tag until it is readable.
        """

        return await self._root.get(None, self._load_root, force=force_refresh)

    async def compose_tag(self, tag: str, *, force_refresh: bool = False) -> ComposedBundle:
        """Return the composed bundle for an explicit *tag*, sharing the bundle cache."""

        sanitized = _require_tag(tag)
        try:
            return await self._bundles.get(sanitized, lambda: self._compose(sanitized), force=force_refresh)
        except CompositionFailure as failure:
            log_error(
                "composition_failed",
                **make_event(sanitized, None, {"error": repr(failure.cause)}),
            )
            return ComposedBundle.empty(sanitized, failed=True)

    async def ancestry(self, tag: str) -> list[TagLayer]:
        """Fetch the ancestry of *tag* fresh, returning its layers root first."""

        return await build_ancestry(_require_tag(tag), LayerSession(self.transport), max_depth=self.max_depth)

    async def chain(self, tag: str) -> tuple[str, ...]:
        """Return the ancestry chain of *tag*, root ancestor first."""

        return tuple(layer.tag for layer in await self.ancestry(tag))

    async def build_override_document(
        self,
        desired_events: Iterable[Entity],
        desired_tips: Iterable[Entity],
        tag: str | None = None,
    ) -> DeltaDocument:
        """Return the minimal override document reproducing the desired state at *tag*.

        *tag* defaults to the tag :meth:`resolve_tag` selects. The ancestry is
        fetched fresh so the document reflects what is currently published.
        """

        target = await self._target_tag(tag)
        layers = await self.ancestry(target)
        return emit_override_document(layers, desired_events, desired_tips, generated=self._timestamp())

    async def compute_diff_index(
        self,
        effective_events: Iterable[Entity],
        effective_tips: Iterable[Entity],
        tag: str | None = None,
    ) -> DiffIndex:
        """Return per-entity inheritance information for the effective state at *tag*."""

        target = await self._target_tag(tag)
        return compute_diff_index(await self.ancestry(target), effective_events, effective_tips)

    async def fetch_parent_composed(self, tag: str) -> ParentSnapshot | None:
        """Return the parent-composed events and tips of *tag*, or ``None`` for a root tag."""

        return parent_snapshot(await self.ancestry(tag))

    async def fetch_parent_event(self, tag: str, event_id: str) -> Entity | None:
        """Return the inherited version of one event, if the parent chain has it."""

        snapshot = await self.fetch_parent_composed(tag)
        return _find(snapshot.events, event_id) if snapshot is not None else None

    async def fetch_parent_tip(self, tag: str, tip_id: str) -> Entity | None:
        """Return the inherited version of one tip, if the parent chain has it."""

        snapshot = await self.fetch_parent_composed(tag)
        return _find(snapshot.tips, tip_id) if snapshot is not None else None

    def cache_state(self, tag: str) -> CacheState:
        return self._bundles.state(tag)

    def invalidate(self, tag: str) -> None:
        """Drop cached and in-flight state for one tag only."""

        sanitized = sanitize_tag(tag)
        if sanitized is not None:
            self._bundles.discard(sanitized)

    def reset_cache(self) -> None:
        """Forget every cached bundle, every in-flight load, and the root config."""

        self._bundles.clear()
        self._root.clear()
        log_info("cache_reset", tag=None, path=None)

    async def _target_tag(self, tag: str | None) -> str:
        if tag is None:
            return await self.resolve_tag()
        return _require_tag(tag)

    async def _load_root(self) -> RootConfig:
        root = RootConfig.from_payload(await safe_fetch(self.transport, ROOT_DOCUMENT))
        log_info(
            "root_config_loaded",
            **make_event(None, ROOT_DOCUMENT, {"domains": len(root.domains), "default_tag": root.default_tag}),
        )
        return root

    async def _compose(self, tag: str) -> ComposedBundle:
        try:
            root = await self.root_config()
            layers = await build_ancestry(tag, LayerSession(self.transport), max_depth=self.max_depth)
            return compose_layers(layers, root=root)
        except Exception as exc:
            raise CompositionFailure(tag, exc) from exc


def _require_tag(tag: str) -> str:
    sanitized = sanitize_tag(tag)
    if sanitized is None:
        raise TagResolutionError(f"Unusable tag: {tag!r}")
    return sanitized


def _find(entities: Iterable[Entity], entity_id: str) -> Entity | None:
    for entity in entities:
        if entity.get("id") == entity_id:
            return entity
    return None


_DEFAULT_RESOLVER: TagConfigResolver | None = None


def configure(resolver: TagConfigResolver | None) -> None:
    """Install *resolver* as the process default; ``None`` rebuilds it from settings on next use."""

    global _DEFAULT_RESOLVER
    _DEFAULT_RESOLVER = resolver


def get_default_resolver() -> TagConfigResolver:
    """Return the process-default resolver, building it from :func:`load_settings` if needed."""

    global _DEFAULT_RESOLVER
    if _DEFAULT_RESOLVER is None:
        _DEFAULT_RESOLVER = TagConfigResolver.from_settings(load_settings())
    return _DEFAULT_RESOLVER


async def resolve_effective_config(force_refresh: bool = False) -> ComposedBundle:
    """Resolve the active tag's composed bundle through the default resolver."""

    return await get_default_resolver().resolve_effective_config(force_refresh)


def reset_cache() -> None:
    """Clear every cache held by the default resolver (for example after an override change)."""

    if _DEFAULT_RESOLVER is not None:
        _DEFAULT_RESOLVER.reset_cache()


async def build_override_document(
    desired_events: Iterable[Entity],
    desired_tips: Iterable[Entity],
    tag: str | None = None,
) -> DeltaDocument:
    """Build an override document through the default resolver."""

    return await get_default_resolver().build_override_document(desired_events, desired_tips, tag)


__all__ = [
    "ROOT_DOCUMENT",
    "TagConfigResolver",
    "build_override_document",
    "configure",
    "get_default_resolver",
    "reset_cache",
    "resolve_effective_config",
    "utc_timestamp",
]
