"""End-to-end resolution through :class:`TagConfigResolver`.

Each test builds its own resolver, so cache state never leaks between tests.
Every tag in the fixture tree has a ``conf.json``, which makes one layer cost
exactly four transport reads.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

import lib_tag_config
from lib_tag_config import core
from lib_tag_config import (
    CacheState,
    FileTransport,
    RootConfig,
    Settings,
    TagConfigResolver,
    TagResolutionError,
    TagState,
    to_id_map,
    write_override_document,
)
from lib_tag_config.application.merge import clone_json
from lib_tag_config.testing import InMemoryTransport
from tests.support import ManualClock, standard_tree, write_tree

READS_PER_LAYER = 4


def _resolver(transport, **kwargs) -> TagConfigResolver:
    kwargs.setdefault("timestamp", lambda: "2024-05-01T00:00:00.000Z")
    return TagConfigResolver(transport, **kwargs)


def test_hostname_mapping_selects_leaf_and_composes_chain() -> None:
    resolver = _resolver(InMemoryTransport(standard_tree()), hostname="shop.example.de")
    bundle = asyncio.run(resolver.resolve_effective_config())

    assert bundle.tag == "eu-de"
    assert bundle.chain == ("base", "eu", "eu-de")
    assert bundle.failed is False
    assert dict(bundle.tag_config) == {"parent": "eu"}
    events = to_id_map(bundle.events)
    assert events["launch"]["meta"] == {"city": "Berlin", "seats": 20}
    assert events["oktoberfest"]["archived"] is False
    assert [event["id"] for event in bundle.archived_events] == ["retro"]
    assert [tip["id"] for tip in bundle.tips] == ["t1", "t3"]
    assert bundle.updated.root == "2024-01-01T00:00:00.000Z"


def test_override_beats_hostname() -> None:
    resolver = _resolver(
        InMemoryTransport(standard_tree()),
        tag_source=TagState(override="base"),
        hostname="shop.example.de",
    )
    assert asyncio.run(resolver.resolve_effective_config()).tag == "base"


def test_domain_tag_is_sanitised() -> None:
    resolver = _resolver(InMemoryTransport(standard_tree()), hostname="shop.example.eu")
    assert asyncio.run(resolver.resolve_effective_config()).chain == ("base", "eu")


def test_unknown_hostname_uses_default_tag() -> None:
    resolver = _resolver(InMemoryTransport(standard_tree()), hostname="elsewhere.example")
    assert asyncio.run(resolver.resolve_effective_config()).tag == "base"


def test_unresolvable_tag_raises_and_caches_nothing() -> None:
    resolver = _resolver(InMemoryTransport({}))
    with pytest.raises(TagResolutionError):
        asyncio.run(resolver.resolve_effective_config())
    assert resolver.cache_state("default") is CacheState.ABSENT


def test_active_tag_is_published_to_listeners() -> None:
    state = TagState()
    seen: list[str] = []
    state.on_tag_change(seen.append)
    resolver = _resolver(InMemoryTransport(standard_tree()), tag_source=state, hostname="shop.example.de")
    asyncio.run(resolver.resolve_effective_config())
    assert seen == ["eu-de"]
    assert state.active_tag == "eu-de"


def test_concurrent_resolutions_share_one_read_set() -> None:
    transport = InMemoryTransport(standard_tree(), delay=0.001)
    resolver = _resolver(transport, hostname="shop.example.de")

    async def scenario():
        first, second = await asyncio.gather(resolver.resolve_effective_config(), resolver.resolve_effective_config())
        third = await resolver.resolve_effective_config()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first is second is third
    assert transport.count("default.json") == 1
    assert transport.count() == 1 + 3 * READS_PER_LAYER
    assert transport.call_counts()["eu/conf.json"] == 1


def test_force_refresh_refetches_everything() -> None:
    transport = InMemoryTransport(standard_tree())
    resolver = _resolver(transport, hostname="shop.example.de")

    async def scenario():
        before = await resolver.resolve_effective_config()
        transport.documents["eu-de/tips.json"] = {"tips": [{"id": "t4"}]}
        cached = await resolver.resolve_effective_config()
        refreshed = await resolver.resolve_effective_config(force_refresh=True)
        return before, cached, refreshed

    before, cached, refreshed = asyncio.run(scenario())
    assert cached is before
    assert [tip["id"] for tip in refreshed.tips] == ["t1", "t4"]
    assert transport.count("default.json") == 2
    assert transport.count() == 2 * (1 + 3 * READS_PER_LAYER)


def test_ttl_expiry_triggers_refetch() -> None:
    clock = ManualClock()
    transport = InMemoryTransport(standard_tree())
    resolver = _resolver(transport, hostname="shop.example.de", clock=clock, ttl=300)

    async def scenario():
        await resolver.resolve_effective_config()
        clock.advance(299)
        await resolver.resolve_effective_config()
        reads_within_ttl = transport.count()
        clock.advance(1)
        await resolver.resolve_effective_config()
        return reads_within_ttl

    assert asyncio.run(scenario()) == 1 + 3 * READS_PER_LAYER
    assert transport.count() == 2 * (1 + 3 * READS_PER_LAYER)


def test_invalidate_drops_only_one_tag() -> None:
    transport = InMemoryTransport(standard_tree())
    resolver = _resolver(transport)

    async def scenario():
        await resolver.compose_tag("eu")
        await resolver.compose_tag("base")
        resolver.invalidate("EU")
        return resolver.cache_state("eu"), resolver.cache_state("base")

    assert asyncio.run(scenario()) == (CacheState.ABSENT, CacheState.CACHED)


def test_reset_cache_forgets_root_and_bundles() -> None:
    transport = InMemoryTransport(standard_tree())
    resolver = _resolver(transport, hostname="shop.example.de")

    async def scenario():
        await resolver.resolve_effective_config()
        resolver.reset_cache()
        await resolver.resolve_effective_config()

    asyncio.run(scenario())
    assert transport.count("default.json") == 2


def test_composition_failure_yields_flagged_empty_bundle(monkeypatch: pytest.MonkeyPatch) -> None:
    def _explode(layers, *, root):
        raise RuntimeError("compose exploded")

    monkeypatch.setattr(core, "compose_layers", _explode)
    resolver = _resolver(InMemoryTransport(standard_tree()), hostname="shop.example.eu")

    bundle = asyncio.run(resolver.resolve_effective_config())

    assert bundle.failed is True
    assert bundle.tag == "eu"
    assert bundle.events == () and bundle.tips == ()
    assert resolver.cache_state("eu") is CacheState.ABSENT


def test_unreadable_root_document_degrades_to_override_tag() -> None:
    documents = standard_tree()
    documents["default.json"] = RuntimeError("root exploded")
    resolver = _resolver(InMemoryTransport(documents), tag_source=TagState(override="eu"))

    bundle = asyncio.run(resolver.resolve_effective_config())

    assert bundle.failed is False
    assert bundle.chain == ("base", "eu")
    assert asyncio.run(resolver.root_config()) == RootConfig()


def test_unreadable_root_document_without_override_is_unresolvable() -> None:
    documents = standard_tree()
    documents["default.json"] = RuntimeError("root exploded")
    resolver = _resolver(InMemoryTransport(documents), hostname="shop.example.de")

    with pytest.raises(TagResolutionError):
        asyncio.run(resolver.resolve_effective_config())


def test_missing_documents_degrade_to_empty_sections() -> None:
    documents = standard_tree()
    del documents["eu/events.json"]
    documents["eu/tips.json"] = ["not", "entities"]
    resolver = _resolver(InMemoryTransport(documents))
    bundle = asyncio.run(resolver.compose_tag("eu"))
    assert to_id_map(bundle.events)["launch"]["meta"]["seats"] == 10
    assert [tip["id"] for tip in bundle.tips] == ["t1", "t2"]


def test_legacy_config_fallback_adds_one_read_per_layer() -> None:
    documents = standard_tree()
    documents["base/config.json"] = documents.pop("base/conf.json")
    transport = InMemoryTransport(documents)
    resolver = _resolver(transport, tag_source=TagState(override="eu"))

    bundle = asyncio.run(resolver.resolve_effective_config())

    assert bundle.chain == ("base", "eu")
    assert transport.count() == 1 + 2 * READS_PER_LAYER + 1
    assert transport.count("base/config.json") == 1


def test_chain_and_parent_lookups() -> None:
    resolver = _resolver(InMemoryTransport(standard_tree()))

    async def scenario():
        return (
            await resolver.chain("eu-de"),
            await resolver.fetch_parent_event("eu-de", "launch"),
            await resolver.fetch_parent_tip("eu-de", "t2"),
            await resolver.fetch_parent_composed("base"),
            await resolver.fetch_parent_composed("eu-de"),
        )

    chain, launch, tombstoned_tip, root_parent, snapshot = asyncio.run(scenario())
    assert chain == ("base", "eu", "eu-de")
    assert launch["meta"]["seats"] == 20
    assert tombstoned_tip is None
    assert root_parent is None
    assert snapshot.tag == "eu"


def test_unusable_explicit_tag_raises() -> None:
    resolver = _resolver(InMemoryTransport(standard_tree()))
    with pytest.raises(TagResolutionError):
        asyncio.run(resolver.compose_tag("???"))


def test_override_document_round_trips_through_disk(tmp_path: Path) -> None:
    write_tree(tmp_path, standard_tree())
    resolver = _resolver(FileTransport(tmp_path))

    async def edit_and_publish():
        bundle = await resolver.compose_tag("eu")
        events = clone_json(bundle.events)
        tips = clone_json(bundle.tips)
        for event in events:
            if event["id"] == "launch":
                event["title"] = "Grand Launch"
        tips.append({"id": "t5", "text": "Walk"})
        document = await resolver.build_override_document(events, tips, "eu")
        write_override_document(document, tmp_path, force=True)
        republished = await resolver.compose_tag("eu", force_refresh=True)
        return events, tips, document, republished

    events, tips, document, republished = asyncio.run(edit_and_publish())
    assert document.events == ({"id": "launch", "title": "Grand Launch", "meta": {"seats": 20}},)
    assert {"id": "t2", "deleted": True} in document.tips
    assert dict(document.config)["updated"] == "2024-05-01T00:00:00.000Z"
    assert to_id_map(republished.events) == to_id_map(events)
    assert to_id_map(republished.tips) == to_id_map(tips)


def test_diff_index_for_resolved_tag() -> None:
    resolver = _resolver(InMemoryTransport(standard_tree()), hostname="shop.example.de")

    async def scenario():
        bundle = await resolver.resolve_effective_config()
        return await resolver.compute_diff_index(bundle.events, bundle.tips)

    index = asyncio.run(scenario())
    assert index.has_parent_chain is True
    assert index.events["oktoberfest"].new_in_tag is True
    assert index.events["launch"].parent_exists is True
    assert index.tips["t3"].new_in_tag is True


def test_module_level_wrappers_use_configured_resolver() -> None:
    transport = InMemoryTransport(standard_tree())
    lib_tag_config.configure(_resolver(transport, hostname="shop.example.de"))
    try:

        async def scenario():
            bundle = await lib_tag_config.resolve_effective_config()
            lib_tag_config.reset_cache()
            again = await lib_tag_config.resolve_effective_config()
            document = await lib_tag_config.build_override_document(bundle.events, bundle.tips)
            return bundle, again, document

        bundle, again, document = asyncio.run(scenario())
        assert bundle.tag == again.tag == "eu-de"
        assert bundle is not again
        assert document.tag == "eu-de"
        assert document.events == ({"id": "oktoberfest", "title": "Oktoberfest", "archived": False},)
        assert document.tips == ({"id": "t3", "text": "Prost"},)
    finally:
        lib_tag_config.configure(None)


def test_from_settings_builds_file_backed_resolver(tmp_path: Path) -> None:
    write_tree(tmp_path, standard_tree())
    resolver = TagConfigResolver.from_settings(Settings(root_dir=str(tmp_path), tag="eu", cache_ttl=5))
    assert isinstance(resolver.transport, FileTransport)
    assert asyncio.run(resolver.resolve_effective_config()).chain == ("base", "eu")
