"""Tag sanitisation and resolution.

Contents
    - ``sanitize_tag``: reduce a raw value to the identifier-safe alphabet.
    - ``resolve_tag``: pick the active tag from override, hostname, or default.
"""

from __future__ import annotations

import re
from typing import Final

from ..domain.errors import TagResolutionError
from ..domain.model import RootConfig
from ..observability import log_debug

_UNSAFE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9_-]")


def sanitize_tag(value: object) -> str | None:
    """Lower-case *value* and strip characters outside ``[a-z0-9_-]``.

    Returns ``None`` for non-strings and for values that sanitise to nothing.

    Examples
    --------
    >>> sanitize_tag("EU-West 2!")
    'eu-west2'
    >>> sanitize_tag("../") is None
    True
    >>> sanitize_tag(42) is None
    True
    """

    if not isinstance(value, str) or not value:
        return None
    sanitized = _UNSAFE.sub("", value.lower())
    return sanitized or None


def resolve_tag(root: RootConfig, *, override: str | None = None, hostname: str = "") -> str:
    """Return the tag a resolution request should use.

    Why
    ----
    Operators pin a tag explicitly while testing, deployments map hostnames to
    tags, and everything else falls back to the root default.

    What
    ----
    Tries, in order: the sanitised *override*, the sanitised tag mapped to
    *hostname* in ``root.domains``, and the sanitised ``root.default_tag``.

    Raises
    ------
    TagResolutionError
        When none of the three sources yields a non-empty tag.

    Examples
    --------
    >>> root = RootConfig.from_payload({"domains": {"example.com": {"tag": "prod"}}, "defaultTag": "base"})
    >>> resolve_tag(root, override="staging", hostname="example.com")
    'staging'
    >>> resolve_tag(root, hostname="example.com")
    'prod'
    >>> resolve_tag(root, hostname="other.org")
    'base'
    """

    for source, candidate in (
        ("override", override),
        ("domain", root.domain_tag(hostname)),
        ("default", root.default_tag),
    ):
        tag = sanitize_tag(candidate)
        if tag:
            log_debug("tag_resolved", tag=tag, path=None, source=source, hostname=hostname)
            return tag
    raise TagResolutionError(f"Unable to resolve configuration tag (hostname={hostname!r})")
