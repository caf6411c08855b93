"""Application-layer ports describing external collaborators.

Purpose
-------
Define the structural contracts the resolution pipeline depends on so it can
run against HTTP, the filesystem, or an in-memory fixture without change.

Contents
--------
* :class:`Transport` – reads one JSON document by relative path.
* :class:`TagSource` – supplies the out-of-band tag override and records the
  active tag once resolution picked one.
* :class:`Clock` – monotonic time source used by the cache.

System Role
-----------
These protocols keep the dependency rule intact: adapters implement them, the
application layer only ever sees the abstraction.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """Fetch a JSON document relative to the configuration base location.

    Why
    ----
    The composer only cares whether a document exists and what it decodes to.

    Contract
    --------
    Never raises. Network errors, non-2xx statuses, non-JSON content types,
    parse failures, and timeouts all produce ``None``.
    """

    async def fetch(self, path: str) -> Any | None:
        """Return the decoded JSON at *path* or ``None`` when it is unavailable."""


@runtime_checkable
class TagSource(Protocol):
    """Out-of-band tag selection state."""

    def get_tag_override(self) -> str | None:
        """Return the explicit override tag, if one is set."""

    def set_active_tag(self, tag: str) -> None:
        """Record *tag* as the tag the last resolution settled on."""


class Clock(Protocol):
    """Return monotonically increasing seconds."""

    def __call__(self) -> float: ...
