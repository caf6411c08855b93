"""In-process tag selection state.

Purpose
-------
Implement :class:`lib_tag_config.application.ports.TagSource`: hold the
explicit override (set by an operator, a query parameter, or an environment
variable), remember which tag the last resolution settled on, and tell
listeners when that changes.
"""

from __future__ import annotations

from typing import Callable

from ..application.tags import sanitize_tag
from ..observability import log_error, log_info

TagChangeListener = Callable[[str], None]

DEFAULT_TAG_FALLBACK = "default"


class TagState:
    """Override and active-tag holder with change notification.

    Examples
    --------
    >>> state = TagState(override="Staging!")
    >>> state.get_tag_override()
    'staging'
    >>> seen = []
    >>> unsubscribe = state.on_tag_change(seen.append)
    >>> state.set_active_tag("eu")
    >>> state.set_active_tag("eu")
    >>> state.set_active_tag("???")
    >>> seen, state.active_tag
    (['eu', 'default'], 'default')
    >>> unsubscribe()
    """

    def __init__(
        self,
        *,
        override: str | None = None,
        active_tag: str | None = None,
        fallback: str = DEFAULT_TAG_FALLBACK,
    ) -> None:
        self._override = sanitize_tag(override)
        self._fallback = sanitize_tag(fallback) or DEFAULT_TAG_FALLBACK
        self._active = sanitize_tag(active_tag) or self._override or self._fallback
        self._listeners: list[TagChangeListener] = []

    @property
    def active_tag(self) -> str:
        return self._active

    def get_tag_override(self) -> str | None:
        return self._override

    def set_tag_override(self, tag: str | None) -> None:
        """Replace the explicit override; ``None`` or an unusable value clears it."""

        self._override = sanitize_tag(tag)

    def set_active_tag(self, tag: str) -> None:
        """Record *tag* as active and notify listeners when it changed."""

        sanitized = sanitize_tag(tag) or self._fallback
        if sanitized == self._active:
            return
        self._active = sanitized
        log_info("active_tag_changed", tag=sanitized, path=None)
        for listener in list(self._listeners):
            try:
                listener(sanitized)
            except Exception as exc:  # noqa: BLE001 - one listener must not starve the others
                log_error("tag_listener_failed", tag=sanitized, path=None, error=repr(exc))

    def on_tag_change(self, listener: TagChangeListener) -> Callable[[], None]:
        """Register *listener*; return a callable that unregisters it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
