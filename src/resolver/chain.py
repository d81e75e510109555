"""Ordered chain of resolvers: the first one that finds a module wins."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from common.context import ResolveContext
from common.errors import TransportError
from common.logging_utils import extra_context
from module import Artifact, DependencyDescriptor, ModuleId
from report.models import ArtifactDownloadReport, DownloadReport, ResolvedModuleRevision
from resolver.base import DependencyResolver, DownloadOptions, ResolveData

logger = logging.getLogger(__name__)


class ChainResolver(DependencyResolver):
    """Tries child resolvers in order.

    With ``continue_on_error`` a TransportError from one child is logged and
    the next child is tried; if no child finds the module the first such
    error is raised so it never turns into "not found".
    """

    def __init__(self, name: str, resolvers: Optional[Sequence[DependencyResolver]] = None,
                 continue_on_error: bool = False):
        super().__init__(name)
        self.resolvers: List[DependencyResolver] = list(resolvers or [])
        self.continue_on_error = continue_on_error

    def add(self, resolver: DependencyResolver) -> None:
        self.resolvers.append(resolver)

    def get_dependency(self, dd: DependencyDescriptor,
                       data: ResolveData) -> Optional[ResolvedModuleRevision]:
        errors: List[TransportError] = []
        for child in self.resolvers:
            data.context.logger.debug("%s: checking %s for %s", self.name, child.name,
                                      dd.dependency_revision_id)
            try:
                found = child.get_dependency(dd, data)
            except TransportError as exc:
                if not self.continue_on_error:
                    raise
                logger.warning(
                    "%s: resolver %s failed for %s: %s", self.name, child.name,
                    dd.dependency_revision_id, exc,
                    extra=extra_context(event="anomaly", component="chain", resolver=child.name,
                                        outcome="transport_error", resolve_id=data.context.resolve_id)
                )
                errors.append(exc)
                continue
            if found is not None:
                logger.debug("%s: found %s in %s", self.name, found.id, child.name)
                return found
        if errors:
            raise errors[0]
        return None

    def download(self, artifacts: Sequence[Artifact], options: DownloadOptions) -> DownloadReport:
        """Ask each child for the artifacts the previous children failed to deliver."""
        reports: Dict[Artifact, ArtifactDownloadReport] = {}
        pending = list(dict.fromkeys(artifacts))
        for child in self.resolvers:
            if not pending:
                break
            batch = child.download(pending, options)
            for report in batch.artifact_reports:
                reports[report.artifact] = report
            pending = [r.artifact for r in batch.failed]
        ordered = tuple(reports[a] for a in dict.fromkeys(artifacts) if a in reports)
        return DownloadReport(ordered)

    def list_organisations(self, context: ResolveContext) -> List[str]:
        return sorted({o for r in self.resolvers for o in r.list_organisations(context)})

    def list_modules(self, organisation: str, context: ResolveContext) -> List[str]:
        return sorted({m for r in self.resolvers for m in r.list_modules(organisation, context)})

    def list_revisions(self, module_id: ModuleId, context: ResolveContext) -> List[str]:
        seen: List[str] = []
        for child in self.resolvers:
            for revision in child.list_revisions(module_id, context):
                if revision not in seen:
                    seen.append(revision)
        return seen

    def describe(self) -> str:
        children = ", ".join(r.describe() for r in self.resolvers)
        return f"ChainResolver({self.name}: [{children}])"
