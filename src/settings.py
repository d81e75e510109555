"""Effective configuration: cache, strategies and the named resolvers.

Settings files are YAML (or JSON when the name ends in ``.json``)::

    cache_dir: ~/.depresolve/cache
    conflict_manager: latest-revision
    default_resolver: main
    resolvers:
      - name: local
        type: filesystem
        ivy_patterns: ["${settings.dir}/repo/[organisation]/[module]/ivy-[revision].xml"]
        artifact_patterns: ["${settings.dir}/repo/[organisation]/[module]/[artifact]-[revision].[ext]"]
      - name: central
        type: maven
      - name: main
        type: chain
        resolvers: [local, central]

``${settings.dir}`` expands to the directory holding the settings file.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml

from constants import Constants
from cache.artifact_cache import ArtifactCache
from common.errors import InputError
from resolver import (
    BintrayResolver,
    ChainResolver,
    DependencyResolver,
    FileSystemResolver,
    MavenResolver,
    URLResolver,
)

logger = logging.getLogger(__name__)

SETTINGS_DIR_TOKEN = "${settings.dir}"


@dataclass
class Settings:
    """Everything the engine, resolvers and cache read at run time."""

    cache_dir: str = Constants.DEFAULT_CACHE_DIR
    cache_pattern: str = Constants.CACHE_ARTIFACT_PATTERN
    use_origin: bool = False
    request_timeout: float = Constants.REQUEST_TIMEOUT
    download_workers: int = Constants.DOWNLOAD_MAX_WORKERS
    conflict_manager: str = Constants.DEFAULT_CONFLICT_MANAGER
    circular_strategy: str = Constants.DEFAULT_CIRCULAR_STRATEGY
    statuses: List[str] = field(default_factory=lambda: list(Constants.STATUSES))
    default_resolver: Optional[str] = None
    resolvers: Dict[str, DependencyResolver] = field(default_factory=dict)
    _cache: Optional[ArtifactCache] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.conflict_manager not in Constants.CONFLICT_MANAGERS:
            raise InputError(f"unknown conflict manager {self.conflict_manager!r}")
        if self.circular_strategy not in Constants.CIRCULAR_STRATEGIES:
            raise InputError(f"unknown circular dependency strategy {self.circular_strategy!r}")
        if int(self.download_workers) < 1:
            raise InputError("download_workers must be at least 1")
        if not self.statuses:
            raise InputError("statuses must not be empty")

    @property
    def artifact_cache(self) -> ArtifactCache:
        if self._cache is None:
            self._cache = ArtifactCache(os.path.expanduser(self.cache_dir), self.cache_pattern,
                                        self.use_origin)
        return self._cache

    def add_resolver(self, resolver: DependencyResolver, default: bool = False) -> DependencyResolver:
        self.resolvers[resolver.name] = resolver
        if default or self.default_resolver is None:
            self.default_resolver = resolver.name
        return resolver

    def get_resolver(self, name: Optional[str] = None) -> DependencyResolver:
        key = name or self.default_resolver
        if key is None:
            raise InputError("no resolver configured")
        try:
            return self.resolvers[key]
        except KeyError:
            raise InputError(
                f"unknown resolver {key!r}; configured: {', '.join(self.resolvers) or 'none'}"
            ) from None


def _patterns(entry: Mapping[str, Any], key: str) -> List[str]:
    value = entry.get(f"{key}s", entry.get(key, []))
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InputError(f"resolver {entry.get('name')!r}: '{key}s' must be a list of patterns")
    return list(value)


def _filesystem(entry, settings: Settings) -> DependencyResolver:
    return FileSystemResolver(
        entry["name"],
        [os.path.expanduser(p) for p in _patterns(entry, "ivy_pattern")],
        [os.path.expanduser(p) for p in _patterns(entry, "artifact_pattern")],
        m2compatible=bool(entry.get("m2compatible", False)),
        allow_missing_metadata=bool(entry.get("allow_missing_metadata", True)),
    )


def _url(entry, settings: Settings) -> DependencyResolver:
    return URLResolver(
        entry["name"],
        _patterns(entry, "ivy_pattern"),
        _patterns(entry, "artifact_pattern"),
        timeout=float(entry.get("timeout", settings.request_timeout)),
        m2compatible=bool(entry.get("m2compatible", False)),
        allow_missing_metadata=bool(entry.get("allow_missing_metadata", True)),
    )


def _maven(entry, settings: Settings) -> DependencyResolver:
    return MavenResolver(
        entry["name"],
        root=entry.get("root", Constants.MAVEN_CENTRAL_ROOT),
        pattern=entry.get("pattern", Constants.M2_ARTIFACT_PATTERN),
        m2compatible=bool(entry.get("m2compatible", True)),
        timeout=float(entry.get("timeout", settings.request_timeout)),
    )


def _bintray(entry, settings: Settings) -> DependencyResolver:
    return BintrayResolver(
        subject=entry.get("subject"),
        repo=entry.get("repo"),
        name=entry.get("name"),
        timeout=float(entry.get("timeout", settings.request_timeout)),
    )


def _chain(entry, settings: Settings) -> DependencyResolver:
    children = entry.get("resolvers", [])
    if not isinstance(children, list):
        raise InputError(f"chain {entry['name']!r}: 'resolvers' must be a list")
    chain = ChainResolver(entry["name"], continue_on_error=bool(entry.get("continue_on_error", False)))
    for child in children:
        if isinstance(child, str):
            chain.add(settings.get_resolver(child))
        else:
            chain.add(build_resolver(child, settings))
    return chain


RESOLVER_TYPES: Dict[str, Callable[[Mapping[str, Any], Settings], DependencyResolver]] = {
    "filesystem": _filesystem,
    "url": _url,
    "maven": _maven,
    "bintray": _bintray,
    "chain": _chain,
}


def build_resolver(entry: Mapping[str, Any], settings: Settings) -> DependencyResolver:
    """Instantiate one resolver from its settings entry."""
    if not isinstance(entry, Mapping):
        raise InputError(f"resolver entry must be a mapping, got {type(entry).__name__}")
    kind = entry.get("type")
    factory = RESOLVER_TYPES.get(kind)
    if factory is None:
        raise InputError(
            f"unknown resolver type {kind!r}; expected one of {', '.join(sorted(RESOLVER_TYPES))}"
        )
    if kind != "bintray" and not entry.get("name"):
        raise InputError(f"resolver of type {kind!r} needs a name")
    return factory(entry, settings)


def _expand(value: Any, settings_dir: str) -> Any:
    if isinstance(value, str):
        return value.replace(SETTINGS_DIR_TOKEN, settings_dir)
    if isinstance(value, list):
        return [_expand(v, settings_dir) for v in value]
    if isinstance(value, dict):
        return {k: _expand(v, settings_dir) for k, v in value.items()}
    return value


def _read_config(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except OSError as exc:
        raise InputError(f"cannot read settings file {path}: {exc}") from exc
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise InputError(f"malformed settings file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InputError(f"settings file {path} must contain a mapping")
    return data


def default_settings() -> Settings:
    """Settings with Maven Central as the only resolver."""
    settings = Settings(cache_dir=os.environ.get(Constants.ENV_CACHE_DIR, Constants.DEFAULT_CACHE_DIR))
    settings.add_resolver(MavenResolver("central", timeout=settings.request_timeout), default=True)
    return settings


def load_settings(path: Optional[str] = None) -> Settings:
    """Build Settings from a YAML/JSON file; defaults when ``path`` is None.

    Raises:
        InputError: unreadable or malformed file, unknown keys values or resolver types.
    """
    if not path:
        return default_settings()
    settings_dir = os.path.dirname(os.path.abspath(path))
    data = _expand(_read_config(path), settings_dir)
    resolvers = data.pop("resolvers", []) or []
    default_resolver = data.pop("default_resolver", None)
    known = {f for f in Settings.__dataclass_fields__ if not f.startswith("_") and f != "resolvers"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise InputError(f"unknown settings in {path}: {', '.join(unknown)}")
    try:
        settings = Settings(**data)
    except TypeError as exc:
        raise InputError(f"invalid settings in {path}: {exc}") from exc
    env_cache = os.environ.get(Constants.ENV_CACHE_DIR)
    if env_cache:
        settings.cache_dir = env_cache
    if not isinstance(resolvers, list):
        raise InputError(f"'resolvers' in {path} must be a list")
    for entry in resolvers:
        settings.add_resolver(build_resolver(entry, settings))
    if default_resolver:
        settings.get_resolver(default_resolver)
        settings.default_resolver = default_resolver
    logger.debug("Loaded settings from %s: %d resolver(s), default %s", path,
                 len(settings.resolvers), settings.default_resolver)
    return settings
