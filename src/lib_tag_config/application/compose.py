"""Fold an ordered list of tag layers into one effective state.

Purpose
-------
Apply every layer's entities on top of its ancestors' and honour the
tombstones each layer declares.

Contents
    - ``fold_layers``: id-keyed event and tip accumulators after folding.
    - ``compose_layers``: wraps the fold into a :class:`ComposedBundle`.

System Role
-----------
Invoked by the composition root once the ancestry builder produced the chain,
and by the delta emitter to obtain the parent-composed state.
"""

from __future__ import annotations

from typing import Sequence

from ..domain.model import ComposedBundle, Entity, RootConfig, TagLayer, UpdatedTimestamps
from ..observability import log_debug, make_event
from .merge import deep_merge, id_map_to_array, to_id_map


def fold_layers(layers: Sequence[TagLayer]) -> tuple[dict[str, Entity], dict[str, Entity]]:
    """Return ``(events_by_id, tips_by_id)`` after folding *layers* root to leaf.

    What
    ----
    For each layer in order: deep-merge its events (active then archived) and
    tips onto the accumulators, then drop every id the layer tombstones.
    A layer cannot resurrect an id it tombstones itself; a strictly later
    layer redeclaring the id starts a fresh entity.

    Examples
    --------
    >>> from lib_tag_config.application.layers import layer_from_payloads
    >>> base = layer_from_payloads("base", tips={"tips": [{"id": "t", "title": "A", "body": "x"}]})
    >>> child = layer_from_payloads("eu", tips={"tips": [{"id": "t", "title": "B"}]})
    >>> fold_layers([base, child])[1]["t"]
    {'id': 't', 'title': 'B', 'body': 'x'}
    """

    events: dict[str, Entity] = {}
    tips: dict[str, Entity] = {}
    for layer in layers:
        _apply(events, layer.all_events, layer.event_tombstones)
        _apply(tips, layer.tips, layer.tip_tombstones)
    return events, tips


def compose_layers(layers: Sequence[TagLayer], *, root: RootConfig | None = None) -> ComposedBundle:
    """Compose *layers* (root ancestor first) into the leaf tag's bundle.

    Only the leaf layer's own config is surfaced as ``tag_config``; ancestor
    configs are not merged into it. Section timestamps come from the leaf.

    Raises
    ------
    ValueError
        When *layers* is empty; a chain always contains at least the leaf.
    """

    if not layers:
        raise ValueError("compose_layers requires at least one layer")
    leaf = layers[-1]
    events_by_id, tips_by_id = fold_layers(layers)
    events = tuple(id_map_to_array(events_by_id))
    bundle = ComposedBundle(
        tag=leaf.tag,
        tag_config=leaf.config,
        events=events,
        archived_events=tuple(event for event in events if event.get("archived") is True),
        tips=tuple(id_map_to_array(tips_by_id)),
        updated=UpdatedTimestamps(
            root=root.updated if root is not None else None,
            tag_config=leaf.updated.tag_config,
            events=leaf.updated.events,
            events_archive=leaf.updated.events_archive,
            tips=leaf.updated.tips,
        ),
        chain=tuple(layer.tag for layer in layers),
    )
    log_debug(
        "bundle_composed",
        **make_event(leaf.tag, None, {"events": len(bundle.events), "tips": len(bundle.tips), "layers": len(layers)}),
    )
    return bundle


def _apply(accumulator: dict[str, Entity], entities: Sequence[Entity], tombstones: frozenset[str]) -> None:
    for entity_id, entity in to_id_map(entities).items():
        accumulator[entity_id] = deep_merge(accumulator.get(entity_id), entity)
    for entity_id in tombstones:
        accumulator.pop(entity_id, None)
