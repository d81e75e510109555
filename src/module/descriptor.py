"""Immutable in-memory model of module metadata.

A ModuleDescriptor is built once by a parser (or synthesised when a repository
has an artifact but no metadata) and then shared read-only by the engine.
"""
from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from constants import Constants
from common.errors import InputError
from module.ids import ModuleId, ModuleRevisionId

Attributes = Tuple[Tuple[str, str], ...]


def freeze_attributes(values: Optional[Dict[str, str]]) -> Attributes:
    """Turn a dict into a sorted tuple of pairs so it can live in frozen dataclasses."""
    if not values:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in values.items()))


@dataclass(frozen=True)
class Artifact:
    """A downloadable file published by a module revision.

    Identity is (module revision, name, type, ext); publication date, extra
    attributes and configurations do not take part in equality.
    """

    module_revision_id: ModuleRevisionId
    name: str
    type: str
    ext: str
    extra_attributes: Attributes = field(default=(), compare=False)
    publication_date: Optional[datetime] = field(default=None, compare=False)
    confs: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def attributes(self) -> Dict[str, str]:
        return dict(self.extra_attributes)

    @property
    def classifier(self) -> Optional[str]:
        return self.attributes.get("classifier")

    def tokens(self) -> dict:
        values = self.module_revision_id.tokens()
        values.update(self.attributes)
        values.update({"artifact": self.name, "type": self.type, "ext": self.ext})
        return values

    def __str__(self) -> str:
        return f"{self.module_revision_id}!{self.name}.{self.ext}({self.type})"


@dataclass(frozen=True)
class Configuration:
    """Named subset of a module's dependencies and artifacts."""

    name: str
    visibility: str = "public"
    extends: Tuple[str, ...] = ()
    description: str = ""
    transitive: bool = True

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"


@dataclass(frozen=True)
class ArtifactRule:
    """Include or exclude rule matching artifacts by name, type and extension.

    ``matcher`` is ``exact``, ``glob`` or ``regexp``; ``*`` matches anything
    whatever the matcher. An empty ``confs`` tuple applies the rule to every configuration.
    """

    name: str = "*"
    type: str = "*"
    ext: str = "*"
    matcher: str = "exact"
    confs: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.matcher not in ("exact", "glob", "regexp"):
            raise InputError(f"unknown artifact rule matcher: {self.matcher}")
        if self.matcher == "regexp":
            for expr in (self.name, self.type, self.ext):
                if expr == "*":
                    continue
                try:
                    re.compile(expr)
                except re.error as exc:
                    raise InputError(f"malformed artifact rule pattern {expr!r}: {exc}") from exc

    def _match(self, expected: str, actual: str) -> bool:
        if expected == "*":
            return True
        if self.matcher == "exact":
            return expected == actual
        if self.matcher == "glob":
            return fnmatch.fnmatchcase(actual, expected)
        return re.fullmatch(expected, actual) is not None

    def matches(self, artifact: Artifact) -> bool:
        return (self._match(self.name, artifact.name)
                and self._match(self.type, artifact.type)
                and self._match(self.ext, artifact.ext))

    def applies_to(self, master_confs: Iterable[str]) -> bool:
        if not self.confs or "*" in self.confs:
            return True
        return bool(set(self.confs) & set(master_confs))

    @property
    def is_concrete(self) -> bool:
        """True when the rule names exactly one artifact."""
        return self.matcher == "exact" and "*" not in (self.name, self.type, self.ext)


@dataclass(frozen=True)
class DependencyArtifact:
    """Artifact explicitly requested by a dependency declaration."""

    name: str
    type: str = "jar"
    ext: str = "jar"
    confs: Tuple[str, ...] = ()
    extra_attributes: Attributes = ()

    def applies_to(self, master_confs: Iterable[str]) -> bool:
        if not self.confs or "*" in self.confs:
            return True
        return bool(set(self.confs) & set(master_confs))

    def to_artifact(self, mrid: ModuleRevisionId,
                    publication_date: Optional[datetime] = None) -> Artifact:
        return Artifact(mrid, self.name, self.type, self.ext, self.extra_attributes,
                        publication_date)


ConfMapping = Tuple[Tuple[str, Tuple[str, ...]], ...]


def _split(text: str) -> List[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


def parse_conf_mapping(text: Optional[str], default_mapping: Optional[str] = None) -> ConfMapping:
    """Parse ``a,b->c,d;e->f`` into ((master, (dep, ...)), ...).

    A group without ``->`` maps each master configuration to the right-hand side
    of ``default_mapping`` for that configuration when given, else to itself.
    """
    if text is None or not text.strip():
        text = default_mapping or Constants.DEFAULT_CONF_MAPPING
        default_mapping = None
    defaults: Dict[str, Tuple[str, ...]] = {}
    if default_mapping:
        for master, deps in parse_conf_mapping(default_mapping):
            defaults[master] = deps
    entries: List[Tuple[str, Tuple[str, ...]]] = []
    for group in text.split(";"):
        group = group.strip()
        if not group:
            continue
        if "->" in group:
            left, _, right = group.partition("->")
            masters = _split(left)
            deps = tuple(_split(right))
            if not masters or not deps:
                raise InputError(f"malformed configuration mapping: {text!r}")
            for master in masters:
                entries.append((master, deps))
        else:
            for master in _split(group):
                entries.append((master, defaults.get(master, defaults.get("*", (master,)))))
    return tuple(entries)


@dataclass(frozen=True)
class DependencyDescriptor:
    """A dependency declared by ``parent`` on ``dependency_revision_id``.

    The revision of ``dependency_revision_id`` is a constraint and may be dynamic.
    """

    parent: ModuleRevisionId
    dependency_revision_id: ModuleRevisionId
    conf_mapping: ConfMapping = (("*", ("*",)),)
    transitive: bool = True
    force: bool = False
    changing: bool = False
    include_rules: Tuple[ArtifactRule, ...] = ()
    exclude_rules: Tuple[ArtifactRule, ...] = ()
    dependency_artifacts: Tuple[DependencyArtifact, ...] = ()

    @property
    def dependency_id(self) -> ModuleId:
        return self.dependency_revision_id.module_id

    def module_configurations(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(master for master, _ in self.conf_mapping))

    def dependency_configurations(self, master_conf: str) -> Tuple[str, ...]:
        """Raw dependency configuration names activated by ``master_conf``.

        ``@`` is replaced by the master configuration name; fallbacks such as
        ``runtime(default)`` and ``*`` are left for the engine to resolve against
        the dependency's descriptor.
        """
        explicit = {master for master, _ in self.conf_mapping if master not in ("*", "%")}
        result: List[str] = []
        for master, deps in self.conf_mapping:
            if master == master_conf or master == "*" or (master == "%" and master_conf not in explicit):
                for dep in deps:
                    dep = master_conf if dep == "@" else dep
                    if dep not in result:
                        result.append(dep)
        return tuple(result)

    def select_artifacts(self, descriptor: "ModuleDescriptor", master_confs: Iterable[str],
                         dependency_confs: Iterable[str]) -> List[Artifact]:
        """Artifacts of ``descriptor`` this dependency pulls in.

        Published artifacts in ``dependency_confs`` are filtered by include rules
        (when any apply), extended by explicit dependency artifacts and then
        filtered by exclude rules. Zero artifacts is a legal outcome.
        """
        master_confs = list(master_confs)
        dep_confs = set(dependency_confs)
        mrid = descriptor.module_revision_id
        published = [a for a in descriptor.artifacts if dep_confs & set(a.confs)]
        includes = [r for r in self.include_rules if r.applies_to(master_confs)]
        explicit = [da.to_artifact(mrid, descriptor.publication_date)
                    for da in self.dependency_artifacts if da.applies_to(master_confs)]
        if descriptor.default:
            explicit.extend(
                Artifact(mrid, r.name, r.type, r.ext, (), descriptor.publication_date)
                for r in includes if r.is_concrete
            )
        if includes or explicit:
            selected = [a for a in published if any(r.matches(a) for r in includes)]
            selected.extend(explicit)
        else:
            selected = published
        excludes = [r for r in self.exclude_rules if r.applies_to(master_confs)]
        result: List[Artifact] = []
        for artifact in selected:
            if any(r.matches(artifact) for r in excludes):
                continue
            if artifact not in result:
                result.append(artifact)
        return result


@dataclass(frozen=True)
class ExtraInfo:
    """Free-form metadata block attached to a module's info section."""

    name: str
    text: str = ""
    attributes: Attributes = ()


@dataclass(frozen=True)
class ModuleDescriptor:
    """Metadata of one module revision."""

    module_revision_id: ModuleRevisionId
    configurations: Tuple[Configuration, ...] = (Configuration(Constants.DEFAULT_CONF),)
    dependencies: Tuple[DependencyDescriptor, ...] = ()
    artifacts: Tuple[Artifact, ...] = ()
    status: str = Constants.DEFAULT_STATUS
    publication_date: Optional[datetime] = None
    extra_info: Tuple[ExtraInfo, ...] = ()
    default: bool = False

    def __post_init__(self) -> None:
        self._check_configurations()

    @classmethod
    def new_default(cls, mrid: ModuleRevisionId,
                    publication_date: Optional[datetime] = None) -> "ModuleDescriptor":
        """Descriptor for a module found without metadata: one ``<module>.jar`` in ``default``."""
        artifact = Artifact(mrid, mrid.name, "jar", "jar", (), publication_date,
                            (Constants.DEFAULT_CONF,))
        return cls(mrid, artifacts=(artifact,), publication_date=publication_date, default=True)

    @property
    def module_id(self) -> ModuleId:
        return self.module_revision_id.module_id

    def _check_configurations(self) -> None:
        names = {c.name for c in self.configurations}
        for conf in self.configurations:
            for parent in conf.extends:
                if parent not in names and parent != "*":
                    raise InputError(
                        f"{self.module_revision_id}: configuration '{conf.name}' extends "
                        f"unknown configuration '{parent}'"
                    )
        state: Dict[str, int] = {}

        def visit(name: str, path: List[str]) -> None:
            if state.get(name) == 2:
                return
            if state.get(name) == 1:
                cycle = path[path.index(name):] + [name]
                raise InputError(
                    f"{self.module_revision_id}: cyclic configuration extends: {' -> '.join(cycle)}"
                )
            state[name] = 1
            for parent in self._extends_of(name):
                visit(parent, path + [name])
            state[name] = 2

        for conf in self.configurations:
            visit(conf.name, [])

    def _extends_of(self, name: str) -> Tuple[str, ...]:
        conf = self.get_configuration(name)
        if conf is None:
            return ()
        if "*" in conf.extends:
            return tuple(c.name for c in self.configurations if c.name != name and c.is_public)
        return conf.extends

    def get_configuration(self, name: str) -> Optional[Configuration]:
        for conf in self.configurations:
            if conf.name == name:
                return conf
        return None

    def configuration_names(self, public_only: bool = False) -> List[str]:
        return [c.name for c in self.configurations if c.is_public or not public_only]

    def expand_configurations(self, names: Sequence[str]) -> FrozenSet[str]:
        """Close ``names`` over the extends relation; unknown names are dropped."""
        result = set()
        pending = [n for n in names if self.get_configuration(n) is not None]
        while pending:
            name = pending.pop()
            if name in result:
                continue
            result.add(name)
            pending.extend(self._extends_of(name))
        return frozenset(result)
