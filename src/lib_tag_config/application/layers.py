"""Fetch and normalise the documents that make up one tag layer.

Purpose
-------
Turn four independent document reads into a single immutable
:class:`~lib_tag_config.domain.model.TagLayer`, degrading any missing or
broken document to an empty contribution for that section.

Contents
--------
* :func:`fetch_layer` – concurrent fan-out/fan-in over the tag's documents.
* :func:`safe_fetch` – one guarded read; failures become absent payloads.
* :func:`layer_from_payloads` – pure normalisation shared with tests and the
  delta round-trip.
* :func:`normalize_events` / :func:`extract_items` / :func:`collect_tombstones`
  – the individual normalisation steps.

System Role
-----------
Called by the ancestry builder for every tag in a chain. Tombstoned entries
remain in the returned tuples; the composer is the only place that removes
them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Iterable

from ..domain.model import Entity, TagLayer, UpdatedTimestamps
from ..observability import log_debug, log_warning, make_event
from .ports import Transport

CONFIG_DOCUMENT = "conf.json"
LEGACY_CONFIG_DOCUMENT = "config.json"
EVENTS_DOCUMENT = "events.json"
ARCHIVE_DOCUMENT = "events_archive.json"
TIPS_DOCUMENT = "tips.json"


async def fetch_layer(transport: Transport, tag: str) -> TagLayer:
    """Read the config, events, archive, and tips documents for *tag*.

    Why
    ----
    Each tag is served as a folder of independent JSON files that may be
    missing or stale individually; one broken file must not hide the others.

    What
    ----
    Issues the four reads concurrently and waits for all of them. A read that
    yields nothing (or raises despite the transport contract) counts as an
    absent payload. When ``conf.json`` is absent the legacy ``config.json``
    name is tried, so such a layer costs five reads instead of four.

    Parameters
    ----------
    transport:
        Any :class:`~lib_tag_config.application.ports.Transport`.
    tag:
        Already-sanitised tag name.

    Returns
    -------
    TagLayer
        Normalised, immutable layer value.
    """

    config_payload, events_payload, archive_payload, tips_payload = await asyncio.gather(
        _fetch_config(transport, tag),
        safe_fetch(transport, f"{tag}/{EVENTS_DOCUMENT}"),
        safe_fetch(transport, f"{tag}/{ARCHIVE_DOCUMENT}"),
        safe_fetch(transport, f"{tag}/{TIPS_DOCUMENT}"),
    )
    layer = layer_from_payloads(
        tag,
        config=config_payload,
        events=events_payload,
        archive=archive_payload,
        tips=tips_payload,
    )
    log_debug(
        "layer_fetched",
        **make_event(
            tag,
            None,
            {
                "has_config": layer.config is not None,
                "events": len(layer.events),
                "archived_events": len(layer.archived_events),
                "tips": len(layer.tips),
                "tombstones": len(layer.event_tombstones) + len(layer.tip_tombstones),
            },
        ),
    )
    return layer


async def safe_fetch(transport: Transport, path: str) -> Any | None:
    """Await one read, treating a transport that breaks its contract as an absent payload.

    Shared by the layer reads and the root document read so no single
    document can abort a resolution.
    """

    try:
        return await transport.fetch(path)
    except Exception as exc:  # noqa: BLE001 - a broken read degrades to an empty section
        log_warning("document_fetch_failed", tag=None, path=path, error=repr(exc))
        return None


def layer_from_payloads(
    tag: str,
    *,
    config: Any = None,
    events: Any = None,
    archive: Any = None,
    tips: Any = None,
) -> TagLayer:
    """Build a :class:`TagLayer` from already-decoded document payloads.

    Examples
    --------
    >>> layer = layer_from_payloads(
    ...     "eu",
    ...     config={"parent": "base", "updated": "2024-01-01"},
    ...     events=[{"id": "a"}, {"id": "gone", "deleted": True}],
    ...     archive={"updated": "2024-01-02", "events": [{"id": "old"}]},
    ... )
    >>> dict(layer.config), layer.updated.tag_config
    ({'parent': 'base'}, '2024-01-01')
    >>> [e["archived"] for e in layer.all_events]
    [False, False, True]
    >>> sorted(layer.event_tombstones)
    ['gone']
    """

    tag_config, config_updated = _split_config(config)
    active_items, events_updated = extract_items(events, "events")
    archive_items, archive_updated = extract_items(archive, "events")
    tip_items, tips_updated = extract_items(tips, "tips")

    active = normalize_events(active_items, archived=False)
    archived = normalize_events(archive_items, archived=True)
    tip_entities = tuple(dict(item) for item in tip_items if isinstance(item, Mapping))

    return TagLayer(
        tag=tag,
        config=MappingProxyType(tag_config) if tag_config is not None else None,
        events=active,
        archived_events=archived,
        tips=tip_entities,
        event_tombstones=collect_tombstones(active + archived),
        tip_tombstones=collect_tombstones(tip_entities),
        updated=UpdatedTimestamps(
            tag_config=config_updated,
            events=events_updated,
            events_archive=archive_updated,
            tips=tips_updated,
        ),
    )


def normalize_events(items: Iterable[Any], *, archived: bool) -> tuple[Entity, ...]:
    """Stamp the ``archived`` flag on each event record.

    Archive-payload events are forced to ``archived=True``; active events keep
    an explicit flag and default to ``False`` otherwise. Non-mapping
    entries are dropped.

    Examples
    --------
    >>> normalize_events([{"id": "a"}, {"id": "b", "archived": True}, "junk"], archived=False)
    ({'id': 'a', 'archived': False}, {'id': 'b', 'archived': True})
    >>> normalize_events([{"id": "c", "archived": False}], archived=True)
    ({'id': 'c', 'archived': True},)
    """

    normalized: list[Entity] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        event = dict(item)
        if archived:
            event["archived"] = True
        else:
            flag = event.get("archived")
            event["archived"] = False if flag is None else flag
        normalized.append(event)
    return tuple(normalized)


def extract_items(payload: Any, key: str) -> tuple[list[Any], str | None]:
    """Return ``(items, updated)`` from a bare array or a ``{updated, <key>: [...]}`` wrapper.

    A bare array takes its ``updated`` marker from the first element.

    Examples
    --------
    >>> extract_items({"updated": "t1", "tips": [{"id": "x"}]}, "tips")
    ([{'id': 'x'}], 't1')
    >>> extract_items([{"id": "y", "updated": "t2"}], "events")
    ([{'id': 'y', 'updated': 't2'}], 't2')
    >>> extract_items(None, "events")
    ([], None)
    """

    if isinstance(payload, list):
        first = payload[0] if payload else None
        updated = first.get("updated") if isinstance(first, Mapping) else None
        return list(payload), updated if isinstance(updated, str) else None
    if isinstance(payload, Mapping):
        updated = payload.get("updated")
        items = payload.get(key)
        return (list(items) if isinstance(items, list) else []), updated if isinstance(updated, str) else None
    return [], None


def collect_tombstones(entities: Iterable[Mapping[str, Any]]) -> frozenset[str]:
    """Return the non-empty ids of entities marked ``deleted: true``.

    Examples
    --------
    >>> sorted(collect_tombstones([{"id": "a", "deleted": True}, {"id": "", "deleted": True}, {"id": "b", "deleted": 1}]))
    ['a']
    """

    return frozenset(
        entity["id"]
        for entity in entities
        if entity.get("deleted") is True and isinstance(entity.get("id"), str) and entity["id"]
    )


def _split_config(payload: Any) -> tuple[dict[str, Any] | None, str | None]:
    """Separate the ``updated`` marker from a tag config payload."""

    if not isinstance(payload, Mapping):
        return None, None
    config = dict(payload)
    updated = config.pop("updated", None)
    return config, updated if isinstance(updated, str) else None


async def _fetch_config(transport: Transport, tag: str) -> Any | None:
    payload = await safe_fetch(transport, f"{tag}/{CONFIG_DOCUMENT}")
    if payload is None:
        payload = await safe_fetch(transport, f"{tag}/{LEGACY_CONFIG_DOCUMENT}")
    return payload
