"""Application-layer entity merge primitives.

Purpose
-------
Merge, compare, and diff JSON entity records independently of where they came
from. Everything here is free of I/O so the composer, the delta emitter, and
the settings loader share one definition of "override wins".

Contents
    - ``deep_merge``: recursive field-level merge; arrays are replaced wholesale.
    - ``deep_equal``: structural equality that keeps ``true`` distinct from ``1``.
    - ``compute_delta``: minimal nested patch turning a base into an edited record.
    - ``to_id_map`` / ``id_map_to_array``: convert between arrays and id-keyed maps.
    - ``clone_json``: detach nested containers so results never alias inputs.

System Role
-----------
Used by :mod:`lib_tag_config.application.compose` (layer folding),
:mod:`lib_tag_config.application.delta` (override documents), and
:mod:`lib_tag_config.adapters.settings` (settings precedence).

Fields absent from an edited record are indistinguishable from fields that
were never set, so ``compute_delta`` cannot express "remove this field". A
JSON ``null`` is an ordinary value and round-trips like any other.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Iterable

from ..domain.model import Entity

_MISSING: Any = object()
_UNCHANGED: Any = object()


def clone_json(value: Any) -> Any:
    """Return a detached copy of a JSON-like value.

    Mappings (including ``mappingproxy``) become ``dict``, tuples and lists
    become ``list``; scalars are returned as-is.

    Examples
    --------
    >>> from types import MappingProxyType
    >>> clone_json(MappingProxyType({"a": ({"b": 1},)}))
    {'a': [{'b': 1}]}
    """

    if isinstance(value, Mapping):
        return {key: clone_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [clone_json(item) for item in value]
    return value


def deep_merge(base: Mapping[str, Any] | None, override: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge *override* onto *base* field by field.

    Why
    ----
    A child layer redeclares only the fields it changes; everything else must
    survive from the ancestors.

    What
    ----
    Nested mappings merge recursively, arrays and scalars from *override*
    replace the base value, and a missing *base* yields a copy of *override*.
    Neither input is mutated.

    Examples
    --------
    >>> deep_merge({"id": "x", "title": "A", "meta": {"a": 1}}, {"meta": {"b": 2}, "days": [1]})
    {'id': 'x', 'title': 'A', 'meta': {'a': 1, 'b': 2}, 'days': [1]}
    >>> deep_merge(None, {"id": "x"})
    {'id': 'x'}
    >>> deep_merge({"tags": [1, 2]}, {"tags": [3]})
    {'tags': [3]}
    """

    if override is None:
        return clone_json(base) if base is not None else {}
    if base is None or not isinstance(base, Mapping) or not isinstance(override, Mapping):
        return clone_json(override)

    merged: dict[str, Any] = clone_json(base)
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(value, Mapping):
            merged[key] = deep_merge(existing if isinstance(existing, Mapping) else {}, value)
        else:
            merged[key] = clone_json(value)
    return merged


def deep_equal(left: Any, right: Any) -> bool:
    """Return ``True`` when two JSON-like values are structurally equal.

    Booleans only equal booleans and ``NaN`` equals ``NaN``; lists and tuples
    compare positionally.

    Examples
    --------
    >>> deep_equal({"a": [1, {"b": None}]}, {"a": [1, {"b": None}]})
    True
    >>> deep_equal(1, True)
    False
    >>> deep_equal(float("nan"), float("nan"))
    True
    """

    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return False
        return all(deep_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, float) and isinstance(right, float) and math.isnan(left) and math.isnan(right):
        return True
    if isinstance(left, (Mapping, list, tuple)) or isinstance(right, (Mapping, list, tuple)):
        return False
    return left == right


def compute_delta(base: Mapping[str, Any] | None, edited: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Return the fields of *edited* that differ from *base*, or ``None``.

    What
    ----
    Nested mappings are diffed recursively so only changed leaves are kept;
    arrays that differ are emitted whole. A missing *base* yields a full copy
    of *edited*. Keys present in *base* but absent from *edited* are not
    represented.

    Examples
    --------
    >>> compute_delta({"id": "x", "title": "A", "meta": {"a": 1, "b": 2}}, {"id": "x", "title": "A", "meta": {"a": 1, "b": 3}})
    {'meta': {'b': 3}}
    >>> compute_delta({"id": "x"}, {"id": "x"}) is None
    True
    >>> compute_delta(None, {"id": "y"})
    {'id': 'y'}
    """

    if edited is None:
        return None
    if base is None:
        return clone_json(edited)
    delta = _delta(base, edited)
    if delta is _UNCHANGED:
        return None
    return delta


def _delta(base: Any, edited: Any) -> Any:
    """Recursive worker for :func:`compute_delta` using private sentinels."""

    if edited is _MISSING:
        return _UNCHANGED
    if base is _MISSING:
        return clone_json(edited)
    if deep_equal(base, edited):
        return _UNCHANGED
    if isinstance(edited, Mapping) and isinstance(base, Mapping):
        changed: dict[str, Any] = {}
        for key, value in edited.items():
            sub = _delta(base.get(key, _MISSING), value)
            if sub is not _UNCHANGED:
                changed[key] = sub
        return changed if changed else _UNCHANGED
    return clone_json(edited)


def to_id_map(entities: Iterable[Any]) -> dict[str, Entity]:
    """Index *entities* by their string ``id``; the last duplicate wins.

    Entries that are not mappings or lack a string ``id`` are skipped.

    Examples
    --------
    >>> to_id_map([{"id": "a", "v": 1}, {"v": 2}, {"id": "a", "v": 3}])
    {'a': {'id': 'a', 'v': 3}}
    """

    indexed: dict[str, Entity] = {}
    for entity in entities:
        if not isinstance(entity, Mapping):
            continue
        entity_id = entity.get("id")
        if not isinstance(entity_id, str):
            continue
        indexed[entity_id] = entity  # type: ignore[assignment]
    return indexed


def id_map_to_array(indexed: Mapping[str, Entity]) -> list[Entity]:
    """Return the values of *indexed* in insertion order."""

    return list(indexed.values())
