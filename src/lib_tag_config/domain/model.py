"""Domain value objects for tag layers and their composed results.

Purpose
-------
Anchor the immutable records that flow between the layer fetcher, the
composer, the cache, and the delta emitter. This module contains no I/O.

Contents
--------
* :data:`Entity` – alias for an id-carrying JSON record (event or tip).
* :class:`RootConfig` – the root ``default.json`` document.
* :class:`UpdatedTimestamps` – per-section staleness markers.
* :class:`TagLayer` – one tag's own, non-inherited contribution.
* :class:`ComposedBundle` – the effective state for a tag.
* :class:`CacheEntry` – a cached value paired with the time it was stored.
* :class:`DeltaDocument` – the minimal override document for one tag.
* :class:`DiffInfo` / :class:`DiffIndex` / :class:`ParentSnapshot` – inspection
  results comparing a tag's effective state with its parent chain.

System Role
-----------
Entities stay plain ``dict`` records because their fields are arbitrary
domain data; the containers holding them are frozen so a fetched layer or a
cached bundle cannot be altered behind the cache's back. Every container
offers ``as_dict`` producing the document key names used on the wire.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

Entity = dict[str, Any]
"""A JSON record with a string ``id``; all other fields are domain data."""

V = TypeVar("V")

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping)) if mapping is not None else _EMPTY


def _text_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None


@dataclass(frozen=True, slots=True)
class RootConfig:
    """Top-level document mapping hostnames to tags.

    Examples
    --------
    >>> root = RootConfig.from_payload({"defaultTag": "base", "domains": {"a.example": {"tag": "eu"}}})
    >>> root.default_tag, root.domain_tag("a.example"), root.domain_tag("b.example")
    ('base', 'eu', None)
    """

    updated: str | None = None
    domains: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: _EMPTY)
    default_tag: str | None = None

    @classmethod
    def from_payload(cls, payload: object) -> RootConfig:
        """Build a root config from a decoded ``default.json`` payload.

        Anything that is not a mapping (including an absent document) yields
        an empty root config; malformed ``domains`` entries are skipped.
        """

        if not isinstance(payload, Mapping):
            return cls()
        raw_domains = payload.get("domains")
        domains: dict[str, Mapping[str, Any]] = {}
        if isinstance(raw_domains, Mapping):
            for host, mapping in raw_domains.items():
                if isinstance(host, str) and isinstance(mapping, Mapping):
                    domains[host] = _freeze(mapping)
        return cls(
            updated=_text_or_none(payload.get("updated")),
            domains=_freeze(domains),
            default_tag=_text_or_none(payload.get("defaultTag")),
        )

    def domain_tag(self, hostname: str) -> str | None:
        """Return the raw tag mapped to *hostname*, if any."""

        if not hostname:
            return None
        mapping = self.domains.get(hostname)
        if mapping is None:
            return None
        return _text_or_none(mapping.get("tag"))


@dataclass(frozen=True, slots=True)
class UpdatedTimestamps:
    """Per-section ``updated`` markers surfaced with a composed bundle."""

    root: str | None = None
    tag_config: str | None = None
    events: str | None = None
    events_archive: str | None = None
    tips: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {
            "root": self.root,
            "tagConfig": self.tag_config,
            "events": self.events,
            "eventsArchive": self.events_archive,
            "tips": self.tips,
        }


@dataclass(frozen=True, slots=True)
class TagLayer:
    """One tag's raw contribution, fetched fresh per resolution cycle.

    ``config`` is ``None`` when the tag has no config document. ``events``
    holds the active events (stamped ``archived=False`` unless marked) and
    ``archived_events`` the archive payload (forced ``archived=True``).
    Tombstoned entries stay in the entity tuples; only their ids are flagged.
    """

    tag: str
    config: Mapping[str, Any] | None = None
    events: tuple[Entity, ...] = ()
    archived_events: tuple[Entity, ...] = ()
    tips: tuple[Entity, ...] = ()
    event_tombstones: frozenset[str] = frozenset()
    tip_tombstones: frozenset[str] = frozenset()
    updated: UpdatedTimestamps = field(default_factory=UpdatedTimestamps)

    @property
    def all_events(self) -> tuple[Entity, ...]:
        """Active events followed by archived events, in document order."""

        return self.events + self.archived_events

    @property
    def declared_parent(self) -> object:
        """Raw ``parent`` value from this layer's config, unsanitised."""

        if self.config is None:
            return None
        return self.config.get("parent")


@dataclass(frozen=True, slots=True)
class ComposedBundle:
    """Resolved, effective state for a tag.

    Examples
    --------
    >>> bundle = ComposedBundle.empty("eu")
    >>> bundle.failed, bundle.as_dict()["events"]
    (False, [])
    """

    tag: str
    tag_config: Mapping[str, Any] | None
    events: tuple[Entity, ...]
    archived_events: tuple[Entity, ...]
    tips: tuple[Entity, ...]
    updated: UpdatedTimestamps = field(default_factory=UpdatedTimestamps)
    chain: tuple[str, ...] = ()
    failed: bool = False

    @classmethod
    def empty(cls, tag: str, *, failed: bool = False) -> ComposedBundle:
        """Return a bundle with no content, optionally flagged as a failure."""

        return cls(tag=tag, tag_config=None, events=(), archived_events=(), tips=(), failed=failed)

    def as_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "tagConfig": dict(self.tag_config) if self.tag_config is not None else None,
            "events": [dict(event) for event in self.events],
            "archivedEvents": [dict(event) for event in self.archived_events],
            "tips": [dict(tip) for tip in self.tips],
            "updated": self.updated.as_dict(),
            "chain": list(self.chain),
            "failed": self.failed,
        }


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[V]):
    """A cached value and the monotonic time at which it was stored."""

    value: V
    timestamp: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        """Return ``True`` while the entry is younger than *ttl* seconds."""

        return now - self.timestamp < ttl


@dataclass(frozen=True, slots=True)
class DeltaDocument:
    """Override document that reproduces a desired state on top of a parent chain.

    Events whose desired state is archived are emitted into the archive
    section so re-fetching stamps them ``archived=True`` again; every other
    event delta and every event tombstone lives in the active section.
    """

    tag: str
    generated: str
    config: Mapping[str, Any]
    events: tuple[Entity, ...] = ()
    events_archive: tuple[Entity, ...] = ()
    tips: tuple[Entity, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "config": dict(self.config),
            "events": {"updated": self.generated, "events": [dict(item) for item in self.events]},
            "eventsArchive": {
                "updated": self.generated,
                "events": [dict(item) for item in self.events_archive],
            },
            "tips": {"updated": self.generated, "tips": [dict(item) for item in self.tips]},
        }

    def files(self) -> dict[str, Any]:
        """Return the per-file payloads keyed by their filename inside the tag folder."""

        sections = self.as_dict()
        return {
            "conf.json": sections["config"],
            "events.json": sections["events"],
            "events_archive.json": sections["eventsArchive"],
            "tips.json": sections["tips"],
        }


@dataclass(frozen=True, slots=True)
class DiffInfo:
    """How one effective entity relates to the parent-composed state."""

    parent_exists: bool
    new_in_tag: bool
    override_keys: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "parentExists": self.parent_exists,
            "newInTag": self.new_in_tag,
            "overrideKeys": list(self.override_keys),
        }


@dataclass(frozen=True, slots=True)
class DiffIndex:
    """Per-id :class:`DiffInfo` for events and tips of one tag."""

    has_parent_chain: bool
    events: Mapping[str, DiffInfo] = field(default_factory=lambda: _EMPTY)
    tips: Mapping[str, DiffInfo] = field(default_factory=lambda: _EMPTY)

    def as_dict(self) -> dict[str, Any]:
        return {
            "hasParentChain": self.has_parent_chain,
            "events": {key: info.as_dict() for key, info in self.events.items()},
            "tips": {key: info.as_dict() for key, info in self.tips.items()},
        }


@dataclass(frozen=True, slots=True)
class ParentSnapshot:
    """Parent-composed events and tips for a tag, labelled with the parent tag."""

    tag: str
    events: tuple[Entity, ...]
    tips: tuple[Entity, ...]
