"""Library settings assembled from defaults, a TOML file, and the environment.

Purpose
-------
Give the composition root and the CLI one typed :class:`Settings` value no
matter where an operator put the knobs.

Key behaviours
--------------
* Precedence, lowest first: built-in defaults, the TOML settings file, then
  ``LIB_TAG_CONFIG_*`` environment variables. Sources are combined with
  :func:`lib_tag_config.application.merge.deep_merge`.
* Environment keys are lower-cased, ``__`` nests, and scalar values are
  coerced (``true``/``false``, integers, floats, ``null``/``none``).
* A TOML file may keep the keys at top level or under ``[lib_tag_config]``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Final

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

from ..application.ancestry import MAX_DEPTH
from ..application.cache import DEFAULT_TTL
from ..application.merge import deep_merge
from ..application.ports import Transport
from ..domain.errors import ConfigurationError, InvalidFormat
from ..observability import log_debug, log_error
from .tag_source import DEFAULT_TAG_FALLBACK
from .transport.filesystem import FileTransport
from .transport.http import DEFAULT_TIMEOUT, HttpTransport

ENV_PREFIX: Final[str] = "LIB_TAG_CONFIG"
SETTINGS_TABLE: Final[str] = "lib_tag_config"


@dataclass(frozen=True, slots=True)
class Settings:
    """Typed library settings.

    Examples
    --------
    >>> Settings.from_mapping({"cache_ttl": 30, "tag": 7}).tag
    '7'
    """

    base_url: str | None = None
    root_dir: str | None = None
    cache_ttl: float = DEFAULT_TTL
    max_depth: int = MAX_DEPTH
    request_timeout: float = DEFAULT_TIMEOUT
    hostname: str = ""
    tag: str | None = None
    default_tag: str = DEFAULT_TAG_FALLBACK

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """Validate *data* and build settings; unknown keys are ignored."""

        known = {field.name for field in fields(cls)}
        values = {key: value for key, value in data.items() if key in known and value is not None}
        try:
            for key in ("base_url", "root_dir", "hostname", "tag", "default_tag"):
                if key in values:
                    values[key] = str(values[key])
            for key in ("cache_ttl", "request_timeout"):
                if key in values:
                    values[key] = _number(key, values[key])
            if "max_depth" in values:
                values["max_depth"] = int(_number("max_depth", values["max_depth"]))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid setting: {exc}") from exc
        if values.get("max_depth", MAX_DEPTH) < 1:
            raise ConfigurationError("max_depth must be at least 1")
        return cls(**values)


def load_settings(
    *,
    environ: Mapping[str, str] | None = None,
    settings_file: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Return :class:`Settings` from the settings file, environment, and *overrides*.

    *overrides* (typically CLI options) take precedence over everything else;
    ``None`` values in it are ignored.

    Examples
    --------
    >>> load_settings(environ={"LIB_TAG_CONFIG_CACHE_TTL": "60", "LIB_TAG_CONFIG_HOSTNAME": "a.example"}).cache_ttl
    60.0
    """

    merged: dict[str, Any] = {}
    if settings_file is not None:
        merged = deep_merge(merged, load_settings_file(settings_file))
    merged = deep_merge(merged, load_env(ENV_PREFIX, os.environ if environ is None else environ))
    if overrides:
        merged = deep_merge(merged, {key: value for key, value in overrides.items() if value is not None})
    return Settings.from_mapping(merged)


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Parse a TOML settings file, returning the ``[lib_tag_config]`` table when present.

    Raises
    ------
    ConfigurationError
        When the file does not exist.
    InvalidFormat
        When the file is not valid UTF-8 TOML.
    """

    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f"Settings file not found: {file_path}")
    try:
        data = tomllib.loads(file_path.read_bytes().decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        log_error("settings_file_invalid", tag=None, path=str(file_path), error=str(exc))
        raise InvalidFormat(f"Invalid TOML in {file_path}: {exc}") from exc
    table = data.get(SETTINGS_TABLE)
    log_debug("settings_file_loaded", tag=None, path=str(file_path))
    return dict(table) if isinstance(table, Mapping) else data


def load_env(prefix: str, environ: Mapping[str, str]) -> dict[str, Any]:
    """Return variables starting with ``<prefix>_`` as a nested, coerced mapping.

    Examples
    --------
    >>> load_env("DEMO", {"DEMO_MAX_DEPTH": "4", "DEMO_BASE_URL": "https://x", "OTHER": "1"})
    {'max_depth': 4, 'base_url': 'https://x'}
    """

    marker = f"{prefix}_"
    collected: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(marker) or len(key) == len(marker):
            continue
        assign_nested(collected, key[len(marker) :], _coerce(value))
    return collected


def assign_nested(target: dict[str, Any], key: str, value: Any) -> None:
    """Assign ``value`` inside ``target`` using ``__`` as a nesting delimiter.

    Examples
    --------
    >>> data: dict[str, Any] = {}
    >>> assign_nested(data, 'CACHE__TTL', 5)
    >>> data
    {'cache': {'ttl': 5}}
    """

    parts = key.lower().split("__")
    cursor = target
    for part in parts[:-1]:
        child = cursor.setdefault(part, {})
        if not isinstance(child, dict):
            raise ConfigurationError(f"Cannot override scalar with mapping for key {key}")
        cursor = child
    cursor[parts[-1]] = value


def build_transport(settings: Settings) -> Transport:
    """Return the transport *settings* describe: HTTP for ``base_url``, files for ``root_dir``."""

    if settings.base_url:
        return HttpTransport(settings.base_url, timeout=settings.request_timeout)
    if settings.root_dir:
        return FileTransport(settings.root_dir)
    raise ConfigurationError(f"Set {ENV_PREFIX}_BASE_URL or {ENV_PREFIX}_ROOT_DIR to locate tag documents")


def _coerce(value: str) -> Any:
    """Coerce textual environment values to Python primitives where possible.

    Examples
    --------
    >>> _coerce('true'), _coerce('10'), _coerce('3.5'), _coerce('hello')
    (True, 10, 3.5, 'hello')
    """

    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
            return int(value)
        return float(value)
    except ValueError:
        return value


def _number(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)
