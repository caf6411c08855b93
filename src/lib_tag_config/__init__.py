"""Public package surface for inherited, tag-scoped configuration.

``import lib_tag_config`` gives callers the resolver, the module-level
convenience wrappers backed by a process-default resolver, the transports,
and the value objects they return. The pure merge and delta helpers are
exported too so editors can compute overrides without a resolver.
"""

from __future__ import annotations

from .adapters.export import write_override_document
from .adapters.settings import Settings, build_transport, load_settings
from .adapters.tag_source import TagState
from .adapters.transport.filesystem import FileTransport
from .adapters.transport.http import HttpTransport
from .application.cache import CacheState, CoalescingCache
from .application.merge import compute_delta, deep_equal, deep_merge, id_map_to_array, to_id_map
from .application.tags import resolve_tag, sanitize_tag
from .core import (
    TagConfigResolver,
    build_override_document,
    configure,
    get_default_resolver,
    reset_cache,
    resolve_effective_config,
)
from .domain.errors import (
    CompositionFailure,
    ConfigResolutionError,
    ConfigurationError,
    InvalidFormat,
    TagConfigError,
    TagResolutionError,
    TransportError,
)
from .domain.model import (
    ComposedBundle,
    DeltaDocument,
    DiffIndex,
    DiffInfo,
    ParentSnapshot,
    RootConfig,
    TagLayer,
    UpdatedTimestamps,
)
from .observability import bind_trace_id, get_logger

__all__ = [
    "CacheState",
    "CoalescingCache",
    "ComposedBundle",
    "CompositionFailure",
    "ConfigResolutionError",
    "ConfigurationError",
    "DeltaDocument",
    "DiffIndex",
    "DiffInfo",
    "FileTransport",
    "HttpTransport",
    "InvalidFormat",
    "ParentSnapshot",
    "RootConfig",
    "Settings",
    "TagConfigError",
    "TagConfigResolver",
    "TagLayer",
    "TagResolutionError",
    "TagState",
    "TransportError",
    "UpdatedTimestamps",
    "bind_trace_id",
    "build_override_document",
    "build_transport",
    "compute_delta",
    "configure",
    "deep_equal",
    "deep_merge",
    "get_default_resolver",
    "get_logger",
    "id_map_to_array",
    "load_settings",
    "reset_cache",
    "resolve_effective_config",
    "resolve_tag",
    "sanitize_tag",
    "to_id_map",
    "write_override_document",
]
