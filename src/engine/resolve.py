"""Resolution engine: dependency graph, conflicts, artifact selection and download.

One ``resolve`` call walks the graph once per requested root configuration.
Resolver lookups are shared between configurations through a lock-guarded
memo, so a module is fetched at most once per call even when configurations
are walked on parallel threads. Each walk builds its own graph; the graphs are
turned into immutable ConfigurationResolveReports at the end.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from constants import DownloadStatus
from common.context import ResolveContext
from common.errors import InputError, ResolutionError
from common.logging_utils import Timer, extra_context
from module import Artifact, DependencyDescriptor, ModuleDescriptor, ModuleRevisionId
from report.models import (
    ArtifactDownloadReport,
    ConfigurationResolveReport,
    EvictedModule,
    ResolutionResult,
    ResolvedModuleRevision,
    UnresolvedDependency,
)
from resolver.base import DependencyResolver, DownloadOptions, ResolveData
from versioning.matcher import VersionMatcher

from .conflict import ConflictManager, get_conflict_manager
from .sort import SortEngine

logger = logging.getLogger(__name__)

ROOT_CONFLICT_MANAGER = "root"


@dataclass
class ResolveOptions:
    """Caller options for one resolve call."""

    confs: Sequence[str] = ("*",)
    transitive: bool = True
    validate: bool = True
    resolve_id: Optional[str] = None
    download: bool = True
    halt_on_failure: bool = False


class _SharedLookups:
    """Resolver answers shared by all configuration walks of one resolve call."""

    def __init__(self, resolver: DependencyResolver, data: ResolveData):
        self.resolver = resolver
        self.data = data
        self._memo: Dict[ModuleRevisionId, Optional[ResolvedModuleRevision]] = {}
        self._locks: Dict[ModuleRevisionId, threading.Lock] = {}
        self._guard = threading.Lock()

    def resolve(self, dd: DependencyDescriptor) -> Optional[ResolvedModuleRevision]:
        key = dd.dependency_revision_id
        with self._guard:
            if key in self._memo:
                return self._memo[key]
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            with self._guard:
                if key in self._memo:
                    return self._memo[key]
            found = self.resolver.get_dependency(dd, self.data)
            with self._guard:
                self._memo[key] = found
            return found


@dataclass
class _Node:
    rmr: ResolvedModuleRevision
    confs: Set[str] = field(default_factory=set)
    callers: List[ModuleRevisionId] = field(default_factory=list)
    deps: List[ModuleRevisionId] = field(default_factory=list)


@dataclass(frozen=True)
class _Edge:
    dd: DependencyDescriptor
    caller_conf: str
    target: ModuleRevisionId
    dep_confs: FrozenSet[str]


@dataclass
class _Graph:
    nodes: Dict[ModuleRevisionId, _Node] = field(default_factory=dict)
    edges: List[_Edge] = field(default_factory=list)
    unresolved: Dict[ModuleRevisionId, List[ModuleRevisionId]] = field(default_factory=dict)
    problems: List[str] = field(default_factory=list)
    forced: Set[ModuleRevisionId] = field(default_factory=set)
    root_evicted: Set[ModuleRevisionId] = field(default_factory=set)

    def node(self, rmr: ResolvedModuleRevision) -> _Node:
        node = self.nodes.get(rmr.id)
        if node is None:
            node = self.nodes[rmr.id] = _Node(rmr)
        return node

    def problem(self, message: str) -> None:
        if message not in self.problems:
            self.problems.append(message)


@dataclass
class _ConfResult:
    conf: str
    graph: _Graph
    evicted: Dict[ModuleRevisionId, Tuple[ResolvedModuleRevision, ...]]
    ordered: Tuple[ModuleRevisionId, ...]
    cycles: Tuple[Tuple[ModuleRevisionId, ...], ...]
    artifacts: Tuple[Artifact, ...]
    owners: Dict[Artifact, ResolvedModuleRevision]


def _split_fallback(name: str) -> Tuple[str, Optional[str]]:
    """``runtime(default)`` -> ("runtime", "default")."""
    if name.endswith(")") and "(" in name:
        primary, _, rest = name.partition("(")
        return primary.strip(), rest[:-1].strip() or None
    return name, None


def _final_winners(start: Sequence[ResolvedModuleRevision],
                   evicted: Dict[ModuleRevisionId, Tuple[ResolvedModuleRevision, ...]]
                   ) -> Tuple[ResolvedModuleRevision, ...]:
    """Follow evictions from ``start`` until revisions that are still kept."""
    winners: List[ResolvedModuleRevision] = []
    pending = deque(start)
    seen: Set[ModuleRevisionId] = set()
    while pending:
        current = pending.popleft()
        if current.id in seen:
            continue
        seen.add(current.id)
        if current.id in evicted:
            pending.extend(evicted[current.id])
        else:
            winners.append(current)
    # every revision on the path was evicted; keep the requested ones
    return tuple(winners) or tuple(start)


class ResolveEngine:
    """Computes the resolution closure of a root module descriptor."""

    def __init__(self, settings, resolver: Optional[DependencyResolver] = None, cache=None,
                 conflict_manager: Optional[ConflictManager] = None,
                 sort_engine: Optional[SortEngine] = None):
        self.settings = settings
        self.resolver = resolver if resolver is not None else settings.get_resolver()
        self.cache = cache if cache is not None else settings.artifact_cache
        self.conflict_manager = conflict_manager or get_conflict_manager(settings.conflict_manager)
        self.sort_engine = sort_engine or SortEngine(settings.circular_strategy)
        self.matcher = VersionMatcher(settings.statuses)

    # -- entry point ----------------------------------------------------

    def resolve(self, descriptor: ModuleDescriptor, options: Optional[ResolveOptions] = None,
                context: Optional[ResolveContext] = None) -> ResolutionResult:
        """Resolve ``descriptor`` for ``options.confs``.

        ``context`` carries the caller's logger sink and search trace; a fresh one
        is created when omitted. A ``resolve_id`` in ``options`` that differs from
        the context's gets a child context with its own trace.

        Raises:
            InputError: unknown configuration or malformed constraint, before any lookup.
            TransportError: a resolver could not reach or parse a source.
            CacheError: the local cache could not be written.
            CycleError: a cycle was found and the circular strategy is ``error``.
            ResolutionError: problems were found and ``halt_on_failure`` is set;
                the partial result is attached.
        """
        options = options or ResolveOptions()
        if context is None:
            context = ResolveContext(settings=self.settings)
            if options.resolve_id:
                context.resolve_id = options.resolve_id
        elif options.resolve_id and options.resolve_id != context.resolve_id:
            context = context.child(options.resolve_id)
        root = ResolvedModuleRevision(descriptor.module_revision_id, descriptor,
                                      descriptor.publication_date)
        confs = self._root_configurations(descriptor, options.confs)
        if options.validate:
            self._validate(descriptor)

        logger.info(
            ":: resolving dependencies :: %s", root.id,
            extra=extra_context(event="resolve_start", component="engine", target=str(root.id),
                                resolve_id=context.resolve_id)
        )
        logger.info("\tconfs: %s", confs)

        with Timer() as resolve_timer:
            lookups = _SharedLookups(self.resolver, ResolveData(context, self.matcher))
            reported_cycles: Set[FrozenSet[ModuleRevisionId]] = set()
            cycle_lock = threading.Lock()

            def walk(conf: str) -> _ConfResult:
                return self._resolve_configuration(root, conf, lookups, options, reported_cycles, cycle_lock)

            if len(confs) > 1:
                workers = max(1, min(len(confs), self.settings.download_workers))
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="resolve") as pool:
                    conf_results = list(pool.map(walk, confs))
            else:
                conf_results = [walk(c) for c in confs]

        with Timer() as download_timer:
            reports = self._download(conf_results, context, options)

        result = self._assemble(root, conf_results, reports, context,
                                resolve_timer.duration_ms(), download_timer.duration_ms())
        self._log_summary(result)
        if options.halt_on_failure and result.has_error:
            problems = self._problem_messages(result)
            raise ResolutionError(
                f"resolve failed for {root.id}: {len(problems)} problem(s)", problems=problems, result=result
            )
        return result

    # -- validation -------------------------------------------------------

    @staticmethod
    def _root_configurations(descriptor: ModuleDescriptor, requested: Sequence[str]) -> List[str]:
        confs: List[str] = []
        for name in requested or ("*",):
            for part in str(name).split(","):
                part = part.strip()
                if not part:
                    continue
                names = descriptor.configuration_names(public_only=True) if part == "*" else [part]
                for conf in names:
                    if descriptor.get_configuration(conf) is None:
                        raise InputError(
                            f"unknown configuration '{conf}' requested for {descriptor.module_revision_id}; "
                            f"available: {', '.join(descriptor.configuration_names())}"
                        )
                    if conf not in confs:
                        confs.append(conf)
        if not confs:
            raise InputError(f"no configuration to resolve for {descriptor.module_revision_id}")
        return confs

    def _validate(self, descriptor: ModuleDescriptor) -> None:
        for dd in descriptor.dependencies:
            try:
                self.matcher.validate(dd.dependency_revision_id.revision)
            except InputError as exc:
                raise InputError(f"{descriptor.module_revision_id}: dependency "
                                 f"{dd.dependency_revision_id}: {exc}") from exc

    # -- graph ------------------------------------------------------------

    def _resolve_configuration(self, root: ResolvedModuleRevision, conf: str, lookups: _SharedLookups,
                               options: ResolveOptions, reported_cycles, cycle_lock) -> _ConfResult:
        evicted: Dict[ModuleRevisionId, Tuple[ResolvedModuleRevision, ...]] = {}
        while True:
            graph = self._build_graph(root, conf, lookups, options, evicted)
            added = {k: v for k, v in self._conflicts(root, graph).items() if k not in evicted}
            if not added:
                break
            evicted.update(added)
        # report final winners; a revision still in the graph is kept, not evicted
        evicted = {mrid: _final_winners(winners, evicted)
                   for mrid, winners in evicted.items() if mrid not in graph.nodes}

        edges = {mrid: node.deps for mrid, node in graph.nodes.items()}
        with cycle_lock:
            sorted_graph = self.sort_engine.sort(list(graph.nodes), edges, reported=reported_cycles)
        owners = self._select_artifacts(root, graph, sorted_graph.ordered)
        return _ConfResult(conf, graph, evicted, sorted_graph.ordered, sorted_graph.cycles,
                           tuple(owners), owners)

    def _build_graph(self, root: ResolvedModuleRevision, conf: str, lookups: _SharedLookups,
                     options: ResolveOptions,
                     evicted: Dict[ModuleRevisionId, Tuple[ResolvedModuleRevision, ...]]) -> _Graph:
        graph = _Graph()
        root_confs = root.descriptor.expand_configurations([conf])
        graph.node(root).confs.update(root_confs)
        queue = deque((root, c) for c in [conf] + sorted(root_confs - {conf}))
        visited: Set[Tuple[ModuleRevisionId, str]] = set()

        while queue:
            rmr, node_conf = queue.popleft()
            if (rmr.id, node_conf) in visited:
                continue
            visited.add((rmr.id, node_conf))
            md = rmr.descriptor
            is_root = rmr.id == root.id
            conf_obj = md.get_configuration(node_conf)
            for dd in md.dependencies:
                raw = dd.dependency_configurations(node_conf)
                if not raw:
                    continue
                if not is_root and options.validate:
                    try:
                        self.matcher.validate(dd.dependency_revision_id.revision)
                    except InputError as exc:
                        graph.problem(f"{rmr.id}: {exc}")
                        graph.unresolved.setdefault(dd.dependency_revision_id, []).append(rmr.id)
                        continue
                found = lookups.resolve(dd)
                if found is None:
                    callers = graph.unresolved.setdefault(dd.dependency_revision_id, [])
                    if rmr.id not in callers:
                        callers.append(rmr.id)
                    continue
                if found.id.module_id == root.id.module_id:
                    if found.id != root.id:
                        graph.root_evicted.add(found.id)
                    found = root
                follow = (options.transitive and dd.transitive
                          and (conf_obj is None or conf_obj.transitive))
                for target in _final_winners((found,), evicted):
                    dep_confs = self._dependency_configurations(target.descriptor, raw, rmr.id,
                                                                node_conf, graph)
                    node = graph.node(target)
                    node.confs.update(dep_confs)
                    if rmr.id not in node.callers:
                        node.callers.append(rmr.id)
                    caller = graph.nodes[rmr.id]
                    if target.id not in caller.deps:
                        caller.deps.append(target.id)
                    graph.edges.append(_Edge(dd, node_conf, target.id, dep_confs))
                    if dd.force and is_root:
                        graph.forced.add(target.id)
                    if target.id == root.id or not follow:
                        continue
                    queue.extend((target, c) for c in sorted(dep_confs))
        return graph

    @staticmethod
    def _dependency_configurations(md: ModuleDescriptor, raw: Sequence[str], caller: ModuleRevisionId,
                                   caller_conf: str, graph: _Graph) -> FrozenSet[str]:
        names: List[str] = []
        for name in raw:
            if name == "*":
                names.extend(md.configuration_names(public_only=True))
                continue
            primary, fallback = _split_fallback(name)
            if md.get_configuration(primary) is not None:
                names.append(primary)
            elif fallback == "*":
                names.extend(md.configuration_names(public_only=True))
            elif fallback and md.get_configuration(fallback) is not None:
                names.append(fallback)
            else:
                graph.problem(f"{md.module_revision_id}: configuration not found: '{primary}'. "
                              f"It was required from {caller} {caller_conf}")
        return md.expand_configurations(names)

    def _conflicts(self, root: ResolvedModuleRevision,
                   graph: _Graph) -> Dict[ModuleRevisionId, Tuple[ResolvedModuleRevision, ...]]:
        by_module: Dict[object, List[ResolvedModuleRevision]] = {}
        for mrid, node in graph.nodes.items():
            if mrid != root.id:
                by_module.setdefault(mrid.module_id, []).append(node.rmr)
        evicted = {}
        for candidates in by_module.values():
            if len(candidates) < 2:
                continue
            outcome = self.conflict_manager.resolve_conflicts(candidates, graph.forced)
            for loser in outcome.evicted:
                evicted[loser.id] = outcome.selected
        return evicted

    # -- artifacts --------------------------------------------------------

    @staticmethod
    def _select_artifacts(root: ResolvedModuleRevision, graph: _Graph,
                          ordered: Sequence[ModuleRevisionId]) -> Dict[Artifact, ResolvedModuleRevision]:
        """Artifacts per surviving module in sorted order, mapped to the module providing them."""
        per_module: Dict[ModuleRevisionId, List[Artifact]] = {}
        for edge in graph.edges:
            if edge.target == root.id:
                continue
            target = graph.nodes[edge.target].rmr
            selected = per_module.setdefault(edge.target, [])
            for artifact in edge.dd.select_artifacts(target.descriptor, [edge.caller_conf], edge.dep_confs):
                if artifact not in selected:
                    selected.append(artifact)
        owners: Dict[Artifact, ResolvedModuleRevision] = {}
        for mrid in ordered:
            for artifact in per_module.get(mrid, ()):
                owners.setdefault(artifact, graph.nodes[mrid].rmr)
        return owners

    def _download(self, conf_results: Sequence[_ConfResult], context: ResolveContext,
                  options: ResolveOptions) -> Dict[Artifact, ArtifactDownloadReport]:
        owners: Dict[Artifact, ResolvedModuleRevision] = {}
        for conf_result in conf_results:
            for artifact, rmr in conf_result.owners.items():
                owners.setdefault(artifact, rmr)
        if not options.download:
            return {a: ArtifactDownloadReport(a, DownloadStatus.NO,
                                              local_file=self.cache.locate(a) if self.cache.is_cached(a) else None,
                                              message="download skipped")
                    for a in owners}

        batches: Dict[int, Tuple[DependencyResolver, List[Artifact]]] = {}
        for artifact, rmr in owners.items():
            resolver = rmr.resolver or self.resolver
            batches.setdefault(id(resolver), (resolver, []))[1].append(artifact)
        reports: Dict[Artifact, ArtifactDownloadReport] = {}
        download_options = DownloadOptions(context, self.cache)
        for resolver, artifacts in batches.values():
            logger.info(":: downloading %d artifact(s) from %s", len(artifacts), resolver.name)
            for report in resolver.download(artifacts, download_options).artifact_reports:
                reports[report.artifact] = report
        return reports

    # -- assembly ---------------------------------------------------------

    def _assemble(self, root: ResolvedModuleRevision, conf_results: Sequence[_ConfResult],
                  reports: Dict[Artifact, ArtifactDownloadReport], context: ResolveContext,
                  resolve_ms: int, download_ms: int) -> ResolutionResult:
        configurations = {}
        cycles: List[Tuple[ModuleRevisionId, ...]] = []
        problems: List[str] = []
        for conf_result in conf_results:
            graph = conf_result.graph
            modules = tuple(graph.nodes[m].rmr for m in conf_result.ordered if m != root.id)
            evicted = [EvictedModule(mrid, tuple(w.id for w in winners), self.conflict_manager.name)
                       for mrid, winners in conf_result.evicted.items()]
            evicted.extend(EvictedModule(mrid, (root.id,), ROOT_CONFLICT_MANAGER)
                           for mrid in sorted(graph.root_evicted, key=str))
            unresolved = tuple(UnresolvedDependency(mrid, tuple(callers))
                               for mrid, callers in graph.unresolved.items())
            configurations[conf_result.conf] = ConfigurationResolveReport(
                configuration=conf_result.conf,
                modules=modules,
                evicted=tuple(evicted),
                unresolved=unresolved,
                artifact_reports=tuple(reports[a] for a in conf_result.artifacts if a in reports),
                sorted_modules=conf_result.ordered,
                callers=tuple((mrid, tuple(node.callers)) for mrid, node in graph.nodes.items()
                              if mrid != root.id),
            )
            cycles.extend(conf_result.cycles)
            for problem in graph.problems:
                if problem not in problems:
                    problems.append(problem)
        return ResolutionResult(
            resolve_id=context.resolve_id,
            module_revision_id=root.id,
            configurations=configurations,
            cycles=tuple(cycles),
            trace=context.trace.entries(),
            problems=tuple(problems),
            resolve_time_ms=resolve_ms,
            download_time_ms=download_ms,
            extra_info=root.descriptor.extra_info,
        )

    @staticmethod
    def _problem_messages(result: ResolutionResult) -> List[str]:
        messages = list(result.problems)
        messages.extend(str(u) for u in result.unresolved_dependencies)
        messages.extend(f"download failed: {r.artifact}: {r.message}" for r in result.failed_artifact_reports)
        return messages

    @staticmethod
    def _log_summary(result: ResolutionResult) -> None:
        for name, report in result.configurations.items():
            logger.info(
                "\t%s: %d module(s), %d artifact(s), %d evicted, %d unresolved",
                name, len(report.modules), len(report.artifact_reports), len(report.evicted),
                len(report.unresolved),
            )
        for message in result.problems:
            logger.warning("\t:: %s", message)
        for unresolved in result.unresolved_dependencies:
            logger.warning("\t:: %s", unresolved)
        logger.info(
            ":: resolution report :: resolve %dms :: artifacts dl %dms", result.resolve_time_ms,
            result.download_time_ms,
            extra=extra_context(event="resolve_end", component="engine",
                                outcome="error" if result.has_error else "success",
                                resolve_id=result.resolve_id, duration_ms=result.resolve_time_ms)
        )
