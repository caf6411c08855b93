"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by transports, the resolution
pipeline, and consuming applications. The hierarchy lives in the domain layer
so outer layers may depend on it without creating import cycles.

Contents
--------
* :class:`TagConfigError` – umbrella base class for every library failure.
* :class:`TransportError` – one document could not be read or decoded.
* :class:`TagResolutionError` – no tag could be determined for a request.
* :class:`CompositionFailure` – unexpected failure while fetching or merging.
* :class:`ConfigurationError` – library settings are missing or invalid.
* :class:`InvalidFormat` – a settings file or desired-state input is malformed.

System Role
-----------
Transports raise :class:`TransportError` internally and recover it as an absent
payload; only :class:`TagResolutionError` reaches callers of
:func:`lib_tag_config.core.resolve_effective_config`. Callers catch
:class:`TagConfigError` to handle all library failures uniformly.
"""

from __future__ import annotations


class TagConfigError(Exception):
    """Base type for all exceptions emitted by ``lib_tag_config``."""


class TransportError(TagConfigError):
    """Raised when a single document read fails.

    Why
    ----
    Network errors, non-2xx statuses, unexpected content types, and parse
    failures all mean the same thing to the composer: the section is absent.
    Transports raise this internally so the failure can be logged in one place
    before it is converted into ``None``.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {path}: {reason}")
        self.path = path
        self.reason = reason


class TagResolutionError(TagConfigError):
    """Raised when neither an override, a domain mapping, nor a default tag resolves.

    The caller has no usable configuration scope; nothing is cached.
    """


ConfigResolutionError = TagResolutionError


class CompositionFailure(TagConfigError):
    """Wraps unexpected exceptions raised while composing a bundle.

    Why
    ----
    A broken document must never crash the host application. The composition
    root converts this into an empty bundle flagged ``failed=True`` and logs
    the original exception.
    """

    def __init__(self, tag: str, cause: BaseException) -> None:
        super().__init__(f"Composition failed for tag {tag!r}: {cause}")
        self.tag = tag
        self.cause = cause


class ConfigurationError(TagConfigError):
    """Raised when library settings cannot produce a working resolver."""


class InvalidFormat(TagConfigError):
    """Raised when an input artifact cannot be parsed into the expected shape.

    Typical Sources
    ---------------
    The TOML settings loader and the CLI's desired-state file reader.
    """
