"""Writing override documents into a tag folder."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from lib_tag_config.adapters.export import write_override_document
from lib_tag_config.adapters.transport.filesystem import FileTransport
from lib_tag_config.application.layers import fetch_layer
from lib_tag_config.domain.model import DeltaDocument

DOCUMENT = DeltaDocument(
    tag="eu",
    generated="2024-05-01T00:00:00.000Z",
    config={"parent": "base", "updated": "2024-05-01T00:00:00.000Z"},
    events=({"id": "launch", "meta": {"seats": 20}},),
    tips=({"id": "t2", "deleted": True},),
)


def test_writes_four_files(tmp_path: Path) -> None:
    written = write_override_document(DOCUMENT, tmp_path)
    assert sorted(path.name for path in written) == ["conf.json", "events.json", "events_archive.json", "tips.json"]
    payload = json.loads((tmp_path / "eu" / "tips.json").read_text(encoding="utf-8"))
    assert payload == {"updated": "2024-05-01T00:00:00.000Z", "tips": [{"id": "t2", "deleted": True}]}


def test_existing_files_are_kept_without_force(tmp_path: Path) -> None:
    target = tmp_path / "eu" / "conf.json"
    target.parent.mkdir(parents=True)
    target.write_text("{}", encoding="utf-8")
    written = write_override_document(DOCUMENT, tmp_path)
    assert target not in written
    assert target.read_text(encoding="utf-8") == "{}"
    forced = write_override_document(DOCUMENT, tmp_path, force=True)
    assert target in forced
    assert json.loads(target.read_text(encoding="utf-8"))["parent"] == "base"


def test_tag_argument_overrides_folder(tmp_path: Path) -> None:
    write_override_document(DOCUMENT, tmp_path, tag="EU-Preview")
    assert (tmp_path / "eu-preview" / "events.json").is_file()


def test_unusable_tag(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        write_override_document(DOCUMENT, tmp_path, tag="///")


def test_written_folder_is_readable_as_a_layer(tmp_path: Path) -> None:
    write_override_document(DOCUMENT, tmp_path)
    layer = asyncio.run(fetch_layer(FileTransport(tmp_path), "eu"))
    assert layer.declared_parent == "base"
    assert layer.events == ({"id": "launch", "meta": {"seats": 20}, "archived": False},)
    assert layer.tip_tombstones == frozenset({"t2"})
