"""Resolver capability interface shared by all resolver variants."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from constants import Constants
from common.context import ResolveContext
from module import Artifact, DependencyDescriptor, ModuleId
from report.models import ArtifactDownloadReport, DownloadReport, ResolvedModuleRevision
from versioning.matcher import VersionMatcher

logger = logging.getLogger(__name__)


@dataclass
class ResolveData:
    """What a resolver needs to look up module metadata."""

    context: ResolveContext
    matcher: VersionMatcher = field(default_factory=VersionMatcher)


@dataclass
class DownloadOptions:
    """What a resolver needs to download artifacts."""

    context: ResolveContext
    cache: Optional[object] = None

    @property
    def artifact_cache(self):
        return self.cache if self.cache is not None else self.context.settings.artifact_cache

    @property
    def max_workers(self) -> int:
        return getattr(self.context.settings, "download_workers", Constants.DOWNLOAD_MAX_WORKERS)


class DependencyResolver(ABC):
    """Locates module metadata and downloads artifacts.

    ``get_dependency`` returns None when nothing matches; it raises only for
    transport or parse failures. ``download`` never raises for a missing or
    unreachable artifact: it reports FAILED for that artifact and carries on.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def get_dependency(self, dd: DependencyDescriptor,
                       data: ResolveData) -> Optional[ResolvedModuleRevision]:
        ...

    @abstractmethod
    def download(self, artifacts: Sequence[Artifact], options: DownloadOptions) -> DownloadReport:
        ...

    def list_organisations(self, context: ResolveContext) -> List[str]:
        return []

    def list_modules(self, organisation: str, context: ResolveContext) -> List[str]:
        return []

    def list_revisions(self, module_id: ModuleId, context: ResolveContext) -> List[str]:
        return []

    def describe(self) -> str:
        return f"{type(self).__name__}({self.name})"

    def __repr__(self) -> str:
        return self.describe()


def download_batch(artifacts: Sequence[Artifact], options: DownloadOptions,
                   fetch_one: Callable[[Artifact], ArtifactDownloadReport]) -> DownloadReport:
    """Run ``fetch_one`` for every artifact on a worker pool, keeping request order.

    Each artifact succeeds or fails on its own; CacheError from any worker
    propagates once all workers are done.
    """
    unique = list(dict.fromkeys(artifacts))
    if not unique:
        return DownloadReport(())
    workers = max(1, min(options.max_workers, len(unique)))
    if workers == 1:
        return DownloadReport(tuple(fetch_one(a) for a in unique))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="download") as pool:
        futures = [pool.submit(fetch_one, a) for a in unique]
        reports = [f.result() for f in futures]
    return DownloadReport(tuple(reports))


__all__ = [
    "DependencyResolver",
    "DownloadOptions",
    "ResolveData",
    "download_batch",
]
