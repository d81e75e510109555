"""Immutable result values produced by resolvers and the resolve engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from constants import DownloadStatus
from common.context import TraceEntry
from module import Artifact, ExtraInfo, ModuleDescriptor, ModuleRevisionId

if TYPE_CHECKING:  # pragma: no cover
    from resolver.base import DependencyResolver


@dataclass(frozen=True)
class ArtifactDownloadReport:
    """Outcome of materialising one artifact locally."""

    artifact: Artifact
    status: DownloadStatus
    local_file: Optional[str] = None
    size: int = 0
    elapsed_ms: int = 0
    is_local: bool = False
    origin: Optional[str] = None
    message: Optional[str] = None
    unpacked_file: Optional[str] = None

    @property
    def is_failed(self) -> bool:
        return self.status == DownloadStatus.FAILED


@dataclass(frozen=True)
class DownloadReport:
    """Per-artifact reports of one download batch, in request order."""

    artifact_reports: Tuple[ArtifactDownloadReport, ...] = ()

    @property
    def failed(self) -> Tuple[ArtifactDownloadReport, ...]:
        return tuple(r for r in self.artifact_reports if r.is_failed)


@dataclass(frozen=True)
class ResolvedModuleRevision:
    """A concrete module revision found by a resolver for a dependency."""

    id: ModuleRevisionId
    descriptor: ModuleDescriptor
    publication_date: Optional[datetime] = None
    resolver: Optional["DependencyResolver"] = field(default=None, compare=False, repr=False)
    location: Optional[str] = field(default=None, compare=False)

    @property
    def resolver_name(self) -> Optional[str]:
        return getattr(self.resolver, "name", None)


@dataclass(frozen=True)
class UnresolvedDependency:
    """A dependency no resolver could satisfy, with the modules asking for it."""

    requested: ModuleRevisionId
    callers: Tuple[ModuleRevisionId, ...] = ()
    message: str = "not found"

    def __str__(self) -> str:
        return f"unresolved dependency: {self.requested}: {self.message}"


@dataclass(frozen=True)
class EvictedModule:
    """A revision removed by conflict resolution in favour of ``evicted_by``."""

    module_revision_id: ModuleRevisionId
    evicted_by: Tuple[ModuleRevisionId, ...]
    conflict_manager: str


@dataclass(frozen=True)
class ConfigurationResolveReport:
    """Outcome of one requested configuration of the root module."""

    configuration: str
    modules: Tuple[ResolvedModuleRevision, ...] = ()
    evicted: Tuple[EvictedModule, ...] = ()
    unresolved: Tuple[UnresolvedDependency, ...] = ()
    artifact_reports: Tuple[ArtifactDownloadReport, ...] = ()
    sorted_modules: Tuple[ModuleRevisionId, ...] = ()
    callers: Tuple[Tuple[ModuleRevisionId, Tuple[ModuleRevisionId, ...]], ...] = ()

    @property
    def has_error(self) -> bool:
        return bool(self.unresolved) or any(r.is_failed for r in self.artifact_reports)

    @property
    def module_ids(self) -> Tuple[ModuleRevisionId, ...]:
        return tuple(m.id for m in self.modules)

    @property
    def evicted_ids(self) -> Tuple[ModuleRevisionId, ...]:
        return tuple(e.module_revision_id for e in self.evicted)

    @property
    def failed_artifact_reports(self) -> Tuple[ArtifactDownloadReport, ...]:
        return tuple(r for r in self.artifact_reports if r.is_failed)

    def callers_of(self, mrid: ModuleRevisionId) -> Tuple[ModuleRevisionId, ...]:
        return dict(self.callers).get(mrid, ())

    def get_module(self, mrid: ModuleRevisionId) -> Optional[ResolvedModuleRevision]:
        for module in self.modules:
            if module.id == mrid:
                return module
        return None


@dataclass(frozen=True)
class ResolutionResult:
    """Aggregate outcome of one resolve call, keyed by configuration name."""

    resolve_id: str
    module_revision_id: ModuleRevisionId
    configurations: Mapping[str, ConfigurationResolveReport] = field(default_factory=dict)
    cycles: Tuple[Tuple[ModuleRevisionId, ...], ...] = ()
    trace: Tuple[TraceEntry, ...] = ()
    problems: Tuple[str, ...] = ()
    resolve_time_ms: int = 0
    download_time_ms: int = 0
    extra_info: Tuple[ExtraInfo, ...] = ()

    @property
    def has_error(self) -> bool:
        return bool(self.problems) or any(r.has_error for r in self.configurations.values())

    @property
    def configuration_names(self) -> List[str]:
        return list(self.configurations)

    def get_configuration_report(self, conf: str) -> Optional[ConfigurationResolveReport]:
        return self.configurations.get(conf)

    def _reports(self, confs: Optional[Iterable[str]] = None) -> List[ArtifactDownloadReport]:
        names = list(confs) if confs is not None else self.configuration_names
        seen: Dict[Artifact, ArtifactDownloadReport] = {}
        for name in names:
            report = self.configurations.get(name)
            if report is None:
                continue
            for adr in report.artifact_reports:
                seen.setdefault(adr.artifact, adr)
        return list(seen.values())

    @property
    def artifact_reports(self) -> List[ArtifactDownloadReport]:
        return self._reports()

    @property
    def failed_artifact_reports(self) -> List[ArtifactDownloadReport]:
        return [r for r in self._reports() if r.is_failed]

    @property
    def unresolved_dependencies(self) -> List[UnresolvedDependency]:
        seen: Dict[ModuleRevisionId, UnresolvedDependency] = {}
        for report in self.configurations.values():
            for unresolved in report.unresolved:
                seen.setdefault(unresolved.requested, unresolved)
        return list(seen.values())

    def local_files(self, confs: Optional[Iterable[str]] = None) -> List[str]:
        """Local paths of every materialised artifact in ``confs`` (all when None)."""
        return [r.local_file for r in self._reports(confs) if r.local_file and not r.is_failed]

    def trace_messages(self) -> List[str]:
        return [str(e) for e in self.trace]

    def summary(self) -> Dict[str, Any]:
        return {
            "resolve_id": self.resolve_id,
            "module": str(self.module_revision_id),
            "configurations": self.configuration_names,
            "artifacts": len(self.artifact_reports),
            "failed_artifacts": len(self.failed_artifact_reports),
            "unresolved": len(self.unresolved_dependencies),
            "cycles": len(self.cycles),
            "has_error": self.has_error,
        }
