"""Shared fixtures describing small tag trees.

Tests describe a tree once as a ``{path: payload}`` mapping and then serve it
through :class:`lib_tag_config.testing.InMemoryTransport`, write it to disk for
:class:`lib_tag_config.FileTransport`, or expose it over ``httpx.MockTransport``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import httpx

ROOT_DOCUMENT = "default.json"


def tag_documents(
    tag: str,
    *,
    parent: str | None = None,
    config: Mapping[str, Any] | None = None,
    events: list[Any] | None = None,
    archive: list[Any] | None = None,
    tips: list[Any] | None = None,
    updated: str = "2024-01-01T00:00:00.000Z",
) -> dict[str, Any]:
    """Return the four documents of one tag folder.

    Every tag gets a ``conf.json`` so a layer always costs exactly four reads.
    """

    conf: dict[str, Any] = {"updated": updated, **dict(config or {})}
    if parent is not None:
        conf["parent"] = parent
    return {
        f"{tag}/conf.json": conf,
        f"{tag}/events.json": {"updated": updated, "events": list(events or [])},
        f"{tag}/events_archive.json": {"updated": updated, "events": list(archive or [])},
        f"{tag}/tips.json": {"updated": updated, "tips": list(tips or [])},
    }


def standard_tree() -> dict[str, Any]:
    """Three-level chain ``base <- eu <- eu-de`` plus a hostname mapping."""

    documents: dict[str, Any] = {
        ROOT_DOCUMENT: {
            "updated": "2024-01-01T00:00:00.000Z",
            "defaultTag": "base",
            "domains": {"shop.example.de": {"tag": "eu-de"}, "shop.example.eu": {"tag": "EU"}},
        }
    }
    documents.update(
        tag_documents(
            "base",
            config={"theme": "light"},
            events=[
                {"id": "launch", "title": "Launch", "meta": {"city": "Berlin", "seats": 10}},
                {"id": "meetup", "title": "Meetup"},
            ],
            archive=[{"id": "retro", "title": "Retro"}],
            tips=[{"id": "t1", "text": "Hydrate"}, {"id": "t2", "text": "Stretch"}],
        )
    )
    documents.update(
        tag_documents(
            "eu",
            parent="base",
            config={"theme": "dark"},
            events=[{"id": "launch", "meta": {"seats": 20}}],
            tips=[{"id": "t2", "deleted": True}],
        )
    )
    documents.update(
        tag_documents(
            "eu-de",
            parent="eu",
            events=[{"id": "oktoberfest", "title": "Oktoberfest"}],
            tips=[{"id": "t3", "text": "Prost"}],
        )
    )
    return documents


def write_tree(root: Path, documents: Mapping[str, Any]) -> Path:
    """Write *documents* below *root* as JSON files and return *root*."""

    for relative, payload in documents.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload), encoding="utf-8")
    return root


@dataclass
class StaticSite:
    """``httpx.MockTransport`` handler serving *documents* below ``/conf/``."""

    documents: Mapping[str, Any]
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/conf/")
        if path not in self.documents:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, json=self.documents[path])

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class ManualClock:
    """Monotonic clock the test advances explicitly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
