"""Write override documents into a tag folder on disk.

Purpose
    Persist a :class:`~lib_tag_config.domain.model.DeltaDocument` as the four
    files a tag layer is served from, so the folder can be published as-is.

Contents
    - ``write_override_document``: public API orchestrating write decisions.
    - ``_should_write`` / ``_write_json``: tiny helpers that narrate how files
      are written or skipped.

System Integration
    Writes exactly the filenames :func:`lib_tag_config.application.layers.fetch_layer`
    reads, so ``FileTransport(destination)`` sees the new layer immediately.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..application.tags import sanitize_tag
from ..domain.model import DeltaDocument
from ..observability import log_info


def write_override_document(
    document: DeltaDocument,
    destination: str | Path,
    *,
    tag: str | None = None,
    force: bool = False,
) -> list[Path]:
    """Write *document* under ``destination/<tag>/`` without clobbering existing files.

    Parameters
    ----------
    document:
        Override document produced by the delta emitter.
    destination:
        Root directory holding one folder per tag.
    tag:
        Folder name; defaults to ``document.tag``. Sanitised before use.
    force:
        Overwrite existing files when ``True``.

    Returns
    -------
    list[pathlib.Path]
        Files that were created or overwritten. Existing files skipped because
        ``force`` is ``False`` are omitted.

    Raises
    ------
    ValueError
        If the tag sanitises to nothing.
    """

    folder_name = sanitize_tag(tag if tag is not None else document.tag)
    if folder_name is None:
        raise ValueError(f"Unusable tag for export: {tag or document.tag!r}")
    folder = Path(destination) / folder_name
    written: list[Path] = []
    for filename, payload in document.files().items():
        target = folder / filename
        if not _should_write(target, force):
            continue
        _write_json(target, payload)
        written.append(target)
    log_info("override_document_written", tag=folder_name, path=str(folder), files=len(written))
    return written


def _should_write(target: Path, force: bool) -> bool:
    """Return ``True`` when *target* is absent or *force* allows overwriting it."""

    return force or not target.exists()


def _write_json(path: Path, payload: Any) -> None:
    """Create parent directories and write *payload* as indented JSON."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
