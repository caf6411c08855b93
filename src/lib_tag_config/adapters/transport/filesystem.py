"""Filesystem transport reading tag documents from a local directory tree.

Purpose
-------
Serve ``<root>/<tag>/conf.json`` and friends straight from disk, which is how
operators inspect an export before publishing it and how the CLI works
offline.

Key behaviours
--------------
* Reads happen in a worker thread so the event loop keeps fanning out.
* Missing files, paths escaping *root*, undecodable bytes, and invalid JSON
  become ``None``; missing files are logged at debug level, the rest as
  ``document_fetch_failed`` warnings.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from ...domain.errors import TransportError
from ...observability import log_debug, log_warning


class FileTransport:
    """Fetch JSON documents relative to a root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def fetch(self, path: str) -> Any | None:
        """Return the decoded JSON document at *path*, or ``None`` on any failure."""

        try:
            return await asyncio.to_thread(self._load, path)
        except FileNotFoundError:
            log_debug("document_missing", tag=None, path=path)
            return None
        except TransportError as exc:
            log_warning("document_fetch_failed", tag=None, path=path, error=exc.reason)
            return None
        except OSError as exc:
            log_warning("document_fetch_failed", tag=None, path=path, error=str(exc))
            return None

    def _load(self, path: str) -> Any:
        """Read and decode *path*, raising :class:`TransportError` for unusable content.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> _ = (Path(tmp.name) / "default.json").write_text('{"defaultTag": "base"}', encoding="utf-8")
        >>> FileTransport(tmp.name)._load("default.json")
        {'defaultTag': 'base'}
        >>> tmp.cleanup()
        """

        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(str(target))
        payload = target.read_bytes()
        try:
            return json.loads(payload.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransportError(path, f"invalid JSON: {exc}") from exc

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path.lstrip("/")).resolve()
        if target != root and root not in target.parents:
            raise TransportError(path, "path escapes transport root")
        return target
