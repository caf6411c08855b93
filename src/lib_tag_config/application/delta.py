"""Inverse of composition: express a desired state as a leaf override layer.

Purpose
-------
Given the effective state a caller wants for a tag, compute the smallest
override document that, layered on top of the tag's parent-composed state,
reproduces it. Also answers the inspection questions an editor asks: which
entities are inherited, which fields a tag overrides, what the parent holds.

Contents
    - ``emit_override_document``: deltas plus tombstones for a leaf tag.
    - ``compute_diff_index``: per-id inheritance information.
    - ``parent_snapshot``: the parent-composed events and tips.

System Role
-----------
Pure functions over an already-built ancestry chain; the composition root
fetches the chain and supplies the generation timestamp.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable, Sequence

from ..domain.model import DeltaDocument, DiffIndex, DiffInfo, Entity, ParentSnapshot, TagLayer
from ..observability import log_info, make_event
from .compose import fold_layers
from .merge import clone_json, compute_delta, id_map_to_array, to_id_map


def emit_override_document(
    layers: Sequence[TagLayer],
    desired_events: Iterable[Any],
    desired_tips: Iterable[Any],
    *,
    generated: str,
) -> DeltaDocument:
    """Return the override document for the leaf of *layers*.

    Why
    ----
    Edits made "at" a tag must be persisted without copying inherited data
    into the tag's own files; otherwise later changes to an ancestor would be
    masked.

    What
    ----
    Folds every layer except the leaf into the parent-composed state. Each
    parent id missing from the desired state becomes ``{"id": ..., "deleted":
    true}``; each desired entity that differs from its parent counterpart (or
    has none) becomes ``{"id": ..., **delta}``. Event deltas whose desired
    state is archived go to the archive section. The leaf's own config is kept
    as-is with ``updated`` set to *generated*.

    Parameters
    ----------
    layers:
        Ancestry chain, root first, leaf last.
    desired_events / desired_tips:
        Full effective state the caller wants for the leaf tag. Entries
        without a string ``id`` are ignored.
    generated:
        Timestamp stamped on every section.

    Examples
    --------
    >>> from lib_tag_config.application.layers import layer_from_payloads
    >>> base = layer_from_payloads("base", tips={"tips": [{"id": "a", "t": 1}, {"id": "b", "t": 2}]})
    >>> leaf = layer_from_payloads("eu", config={"parent": "base"})
    >>> doc = emit_override_document([base, leaf], [], [{"id": "a", "t": 5}], generated="now")
    >>> [dict(tip) for tip in doc.tips]
    [{'id': 'b', 'deleted': True}, {'id': 'a', 't': 5}]
    >>> dict(doc.config)
    {'parent': 'base', 'updated': 'now'}
    """

    if not layers:
        raise ValueError("emit_override_document requires at least the leaf layer")
    leaf = layers[-1]
    parent_events, parent_tips = fold_layers(layers[:-1])

    desired_event_map = to_id_map(desired_events)
    active: list[Entity] = _tombstones(parent_events, desired_event_map)
    archived: list[Entity] = []
    for entity_id, desired in desired_event_map.items():
        entry = _delta_entry(entity_id, parent_events.get(entity_id), desired)
        if entry is None:
            continue
        (archived if desired.get("archived") is True else active).append(entry)

    desired_tip_map = to_id_map(desired_tips)
    tips: list[Entity] = _tombstones(parent_tips, desired_tip_map)
    for entity_id, desired in desired_tip_map.items():
        entry = _delta_entry(entity_id, parent_tips.get(entity_id), desired)
        if entry is not None:
            tips.append(entry)

    config = clone_json(leaf.config) if leaf.config is not None else {}
    config["updated"] = generated
    document = DeltaDocument(
        tag=leaf.tag,
        generated=generated,
        config=config,
        events=tuple(active),
        events_archive=tuple(archived),
        tips=tuple(tips),
    )
    log_info(
        "override_document_built",
        **make_event(
            leaf.tag,
            None,
            {"events": len(active), "archived_events": len(archived), "tips": len(tips)},
        ),
    )
    return document


def compute_diff_index(
    layers: Sequence[TagLayer],
    effective_events: Iterable[Any],
    effective_tips: Iterable[Any],
) -> DiffIndex:
    """Describe how each effective entity relates to the parent-composed state.

    ``override_keys`` lists the top-level fields the tag changes on an
    inherited entity; it is empty for entities new in the tag.

    Examples
    --------
    >>> from lib_tag_config.application.layers import layer_from_payloads
    >>> base = layer_from_payloads("base", tips={"tips": [{"id": "a", "t": 1, "u": 1}]})
    >>> leaf = layer_from_payloads("eu", config={"parent": "base"})
    >>> index = compute_diff_index([base, leaf], [], [{"id": "a", "t": 2, "u": 1}, {"id": "n"}])
    >>> index.tips["a"].override_keys, index.tips["n"].new_in_tag
    (('t',), True)
    """

    if len(layers) < 2:
        return DiffIndex(
            has_parent_chain=False,
            events={entity_id: DiffInfo(False, True) for entity_id in to_id_map(effective_events)},
            tips={entity_id: DiffInfo(False, True) for entity_id in to_id_map(effective_tips)},
        )
    parent_events, parent_tips = fold_layers(layers[:-1])
    return DiffIndex(
        has_parent_chain=True,
        events=_diff_infos(parent_events, effective_events),
        tips=_diff_infos(parent_tips, effective_tips),
    )


def parent_snapshot(layers: Sequence[TagLayer]) -> ParentSnapshot | None:
    """Return the parent-composed state of the leaf in *layers*, or ``None`` for a root tag."""

    if len(layers) < 2:
        return None
    events, tips = fold_layers(layers[:-1])
    return ParentSnapshot(
        tag=layers[-2].tag,
        events=tuple(id_map_to_array(events)),
        tips=tuple(id_map_to_array(tips)),
    )


def _tombstones(parent: Mapping[str, Entity], desired: Mapping[str, Entity]) -> list[Entity]:
    return [{"id": entity_id, "deleted": True} for entity_id in parent if entity_id and entity_id not in desired]


def _delta_entry(entity_id: str, base: Entity | None, desired: Entity) -> Entity | None:
    if not entity_id:
        return None
    delta = compute_delta(base, desired)
    if delta is None:
        return None
    delta.pop("id", None)
    return {"id": entity_id, **delta}


def _diff_infos(parent: Mapping[str, Entity], effective: Iterable[Any]) -> dict[str, DiffInfo]:
    infos: dict[str, DiffInfo] = {}
    for entity_id, edited in to_id_map(effective).items():
        base = parent.get(entity_id)
        if base is None:
            infos[entity_id] = DiffInfo(parent_exists=False, new_in_tag=True)
            continue
        delta = compute_delta(base, edited)
        infos[entity_id] = DiffInfo(
            parent_exists=True,
            new_in_tag=False,
            override_keys=tuple(delta) if delta else (),
        )
    return infos
