"""Resolvers that locate files through Ivy-style location patterns.

A ``RepositoryResolver`` combines a Repository (filesystem or HTTP) with Ivy
metadata patterns and artifact patterns. In m2compatible mode organisations
are laid out as directories (``org.apache`` -> ``org/apache``), metadata is a
POM next to the artifacts and available revisions come from
``maven-metadata.xml``.
"""
from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Sequence, Tuple

from constants import Constants, DownloadStatus
from common.context import ResolveContext
from common.errors import ParseError, TransportError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from module import Artifact, DependencyDescriptor, ModuleDescriptor, ModuleId, ModuleRevisionId
from parser import parse_descriptor
from report.models import ArtifactDownloadReport, DownloadReport, ResolvedModuleRevision
from resolver.base import DependencyResolver, DownloadOptions, ResolveData, download_batch
from resolver.patterns import m2_organisation, substitute, token_listing
from resolver.repository import FileRepository, Repository, Resource, UrlRepository
from versioning.matcher import RevisionCandidate
from versioning.ordering import sort_revisions

logger = logging.getLogger(__name__)


class RepositoryResolver(DependencyResolver):
    """Pattern-driven resolver over a single Repository."""

    def __init__(self, name: str, repository: Repository,
                 ivy_patterns: Sequence[str] = (), artifact_patterns: Sequence[str] = (),
                 m2compatible: bool = False, allow_missing_metadata: bool = True,
                 use_poms: Optional[bool] = None):
        super().__init__(name)
        self.repository = repository
        self._ivy_patterns = list(ivy_patterns)
        self._artifact_patterns = list(artifact_patterns)
        self.m2compatible = m2compatible
        self.allow_missing_metadata = allow_missing_metadata
        self._use_poms = use_poms

    # -- configuration --------------------------------------------------

    @property
    def use_poms(self) -> bool:
        return self.m2compatible if self._use_poms is None else self._use_poms

    def get_ivy_patterns(self) -> List[str]:
        return list(self._ivy_patterns)

    def get_artifact_patterns(self) -> List[str]:
        return list(self._artifact_patterns)

    def add_ivy_pattern(self, pattern: str) -> None:
        self._ivy_patterns.append(pattern)

    def add_artifact_pattern(self, pattern: str) -> None:
        self._artifact_patterns.append(pattern)

    def _tokens(self, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
        tokens = dict(values)
        if self.m2compatible and tokens.get("organisation"):
            org = m2_organisation(tokens["organisation"])
            tokens["organisation"] = org
            tokens["organization"] = org
        return tokens

    def _metadata_locations(self, mrid: ModuleRevisionId) -> List[str]:
        if self.use_poms:
            tokens = self._tokens(mrid.tokens())
            tokens.update({"artifact": mrid.name, "type": "pom", "ext": "pom"})
            return [substitute(p, tokens) for p in self.get_artifact_patterns()]
        tokens = self._tokens(mrid.tokens())
        tokens.update({"artifact": "ivy", "type": "ivy", "ext": "xml"})
        return [substitute(p, tokens) for p in self.get_ivy_patterns()]

    def artifact_locations(self, artifact: Artifact) -> List[str]:
        tokens = self._tokens(artifact.tokens())
        return [substitute(p, tokens) for p in self.get_artifact_patterns()]

    # -- metadata ---------------------------------------------------------

    def get_dependency(self, dd: DependencyDescriptor,
                       data: ResolveData) -> Optional[ResolvedModuleRevision]:
        context = data.context
        requested = dd.dependency_revision_id
        if data.matcher.is_dynamic(requested.revision):
            return self._find_dynamic(requested, data)
        return self._find_revision(requested, context)

    def _find_revision(self, mrid: ModuleRevisionId,
                       context: ResolveContext) -> Optional[ResolvedModuleRevision]:
        found = self._find_metadata(mrid, context)
        if found is not None:
            descriptor, location = found
            if not self._consistent(mrid, descriptor, location):
                return None
            return ResolvedModuleRevision(mrid, descriptor, descriptor.publication_date, self, location)
        if not self.allow_missing_metadata:
            return None
        main = Artifact(mrid, mrid.name, "jar", "jar")
        resource = self._find_artifact(main, context)
        if resource is None:
            return None
        published = resource.last_modified()
        logger.debug("No metadata for %s, using default descriptor from %s", mrid, resource.location)
        return ResolvedModuleRevision(mrid, ModuleDescriptor.new_default(mrid, published),
                                      published, self, resource.location)

    def _find_metadata(self, mrid: ModuleRevisionId,
                       context: ResolveContext) -> Optional[Tuple[ModuleDescriptor, str]]:
        for location in self._metadata_locations(mrid):
            with context.attempt(location, self.name):
                data = self.repository.read_bytes(location)
            if data is None:
                continue
            fallback = None
            if self.repository.is_local:
                fallback = self.repository.get_resource(location).last_modified()
            return parse_descriptor(data, location, fallback), location
        return None

    def _consistent(self, mrid: ModuleRevisionId, descriptor: ModuleDescriptor, location: str) -> bool:
        found = descriptor.module_revision_id
        if (found.organisation, found.name, found.revision) == (mrid.organisation, mrid.name, mrid.revision):
            return True
        logger.warning(
            "Metadata at %s describes %s, expected %s; ignoring it", location, found, mrid,
            extra=extra_context(event="anomaly", component="resolver", resolver=self.name,
                                outcome="inconsistent_metadata", target=location)
        )
        return False

    def _find_dynamic(self, requested: ModuleRevisionId,
                      data: ResolveData) -> Optional[ResolvedModuleRevision]:
        context = data.context
        matcher = data.matcher
        revisions = self._list_revisions_for(requested, context)
        if is_debug_enabled(logger):
            logger.debug(
                "Listed revisions",
                extra=extra_context(event="list", component="resolver", resolver=self.name,
                                    target=str(requested), count=len(revisions))
            )
        if not matcher.needs_metadata(requested.revision):
            best = matcher.find_best(requested.revision, revisions)
            if best is None:
                return None
            return self._find_revision(requested.with_revision(best), context)

        # status is only known from metadata: walk from the newest revision down
        for revision in sort_revisions(revisions, reverse=True):
            rmr = self._find_revision(requested.with_revision(revision), context)
            if rmr is None:
                continue
            candidate = RevisionCandidate(revision, rmr.publication_date, rmr.descriptor.status)
            if matcher.accept(requested.revision, candidate):
                return rmr
        return None

    # -- listing ----------------------------------------------------------

    def _list_revisions_for(self, mrid: ModuleRevisionId, context: ResolveContext) -> List[str]:
        base = {k: v for k, v in mrid.tokens().items() if k != "revision"}
        if self.m2compatible:
            versions = self._maven_metadata_versions(base, context)
            if versions is not None:
                return versions
        found = self._list_token(self.get_ivy_patterns(), "revision",
                                 dict(base, artifact="ivy", type="ivy", ext="xml"), context)
        for revision in self._list_token(self.get_artifact_patterns(), "revision",
                                         dict(base, artifact=mrid.name, type="jar", ext="jar"), context):
            if revision not in found:
                found.append(revision)
        return found

    def _maven_metadata_versions(self, base: Dict[str, Optional[str]],
                                 context: ResolveContext) -> Optional[List[str]]:
        for pattern in self.get_artifact_patterns():
            listing = token_listing(pattern, "revision", self._tokens(base))
            if listing is None:
                continue
            location = listing[0] + Constants.M2_METADATA_FILE
            with context.attempt(location, self.name):
                raw = self.repository.read_bytes(location)
            if raw is None:
                continue
            try:
                root = ET.fromstring(raw)
            except ET.ParseError as exc:
                raise ParseError(f"malformed {location}: {exc}", location=location) from exc
            versions = [v.text.strip() for v in root.findall("versioning/versions/version")
                        if v.text and v.text.strip()]
            return versions
        return None

    def _list_token(self, patterns: Sequence[str], token: str,
                    tokens: Dict[str, Optional[str]], context: ResolveContext) -> List[str]:
        found: List[str] = []
        for pattern in patterns:
            listing = token_listing(pattern, token, self._tokens(tokens))
            if listing is None:
                continue
            parent, regex = listing
            if "[" in parent:
                # an earlier token is still unknown, so the parent cannot be listed
                continue
            with context.attempt(parent, self.name):
                names = self.repository.list(parent)
            for name in names or []:
                if name.startswith("."):
                    continue
                match = regex.match(name)
                if match and match.group(1) not in found:
                    found.append(match.group(1))
        return found

    def list_organisations(self, context: ResolveContext) -> List[str]:
        orgs = self._list_token(self.get_ivy_patterns() + self.get_artifact_patterns(),
                                "organisation", {}, context)
        return sorted(orgs)

    def list_modules(self, organisation: str, context: ResolveContext) -> List[str]:
        tokens = {"organisation": organisation, "organization": organisation}
        return sorted(self._list_token(self.get_ivy_patterns() + self.get_artifact_patterns(),
                                       "module", tokens, context))

    def list_revisions(self, module_id: ModuleId, context: ResolveContext) -> List[str]:
        mrid = ModuleRevisionId(module_id.organisation, module_id.name, "")
        return sort_revisions(self._list_revisions_for(mrid, context))

    # -- artifacts ------------------------------------------------------

    def _find_artifact(self, artifact: Artifact, context: ResolveContext) -> Optional[Resource]:
        for location in self.artifact_locations(artifact):
            with context.attempt(location, self.name):
                resource = self.repository.get_resource(location)
                exists = resource.exists()
            if exists:
                return resource
        return None

    def download(self, artifacts: Sequence[Artifact], options: DownloadOptions) -> DownloadReport:
        return download_batch(artifacts, options, lambda a: self._download_one(a, options))

    def _download_one(self, artifact: Artifact, options: DownloadOptions) -> ArtifactDownloadReport:
        cache = options.artifact_cache
        context = options.context
        with Timer() as t:
            with cache.lock(artifact):
                try:
                    if cache.use_origin and self.repository.is_local:
                        return self._origin_report(artifact, context, t)
                    if cache.is_cached(artifact):
                        return self._cached_report(artifact, cache, t)
                    resource = self._find_artifact(artifact, context)
                    if resource is None:
                        return self._failed(artifact, "artifact not found", t)
                    path = cache.store(artifact, resource.iter_content())
                except TransportError as exc:
                    logger.warning(
                        "Download of %s failed: %s", artifact, exc,
                        extra=extra_context(event="download", component="resolver", resolver=self.name,
                                            outcome="failed", target=getattr(exc, "location", None),
                                            resolve_id=context.resolve_id)
                    )
                    return self._failed(artifact, str(exc), t)
                unpacked = cache.locate_unpacked(artifact) if cache.needs_unpack(artifact) else None
                logger.info("\t[SUCCESSFUL ] %s (%dms)", artifact, t.duration_ms())
                return ArtifactDownloadReport(
                    artifact, DownloadStatus.SUCCESSFUL, local_file=path, size=os.path.getsize(path),
                    elapsed_ms=t.duration_ms(), origin=resource.location,
                    unpacked_file=unpacked if unpacked and os.path.isdir(unpacked) else None,
                )

    def _origin_report(self, artifact: Artifact, context: ResolveContext, t: Timer) -> ArtifactDownloadReport:
        resource = self._find_artifact(artifact, context)
        if resource is None:
            return self._failed(artifact, "artifact not found", t)
        return ArtifactDownloadReport(
            artifact, DownloadStatus.NO, local_file=os.path.abspath(resource.location),
            size=os.path.getsize(resource.location), elapsed_ms=t.duration_ms(), is_local=True,
            origin=resource.location,
        )

    @staticmethod
    def _cached_report(artifact: Artifact, cache, t: Timer) -> ArtifactDownloadReport:
        path = cache.locate(artifact)
        unpacked = cache.unpack(artifact) if cache.needs_unpack(artifact) else None
        return ArtifactDownloadReport(
            artifact, DownloadStatus.NO, local_file=path, size=os.path.getsize(path),
            elapsed_ms=t.duration_ms(), unpacked_file=unpacked,
        )

    def _failed(self, artifact: Artifact, message: str, t: Timer) -> ArtifactDownloadReport:
        logger.info("\t[FAILED     ] %s: %s (%dms)", artifact, message, t.duration_ms())
        return ArtifactDownloadReport(artifact, DownloadStatus.FAILED, elapsed_ms=t.duration_ms(),
                                      message=f"{self.name}: {message}")

    def describe(self) -> str:
        patterns = ", ".join(self.get_ivy_patterns() + self.get_artifact_patterns())
        return f"{type(self).__name__}({self.name}: {patterns})"


class FileSystemResolver(RepositoryResolver):
    """Resolver over a local directory tree; patterns are filesystem paths."""

    def __init__(self, name: str, ivy_patterns: Sequence[str] = (),
                 artifact_patterns: Sequence[str] = (), **kwargs):
        super().__init__(name, FileRepository(), ivy_patterns, artifact_patterns, **kwargs)


class URLResolver(RepositoryResolver):
    """Resolver over an HTTP server; patterns are URLs."""

    def __init__(self, name: str, ivy_patterns: Sequence[str] = (),
                 artifact_patterns: Sequence[str] = (), timeout: Optional[float] = None, **kwargs):
        super().__init__(name, UrlRepository(timeout), ivy_patterns, artifact_patterns, **kwargs)


class MavenResolver(RepositoryResolver):
    """Maven-2 layout repository addressed by a root URL (Maven Central by default)."""

    def __init__(self, name: str = "maven", root: str = Constants.MAVEN_CENTRAL_ROOT,
                 pattern: str = Constants.M2_ARTIFACT_PATTERN, m2compatible: bool = True,
                 timeout: Optional[float] = None, repository: Optional[Repository] = None, **kwargs):
        super().__init__(name, repository or UrlRepository(timeout), m2compatible=m2compatible, **kwargs)
        self._root = root
        self.pattern = pattern

    @property
    def root(self) -> str:
        return self._root

    @root.setter
    def root(self, value: str) -> None:
        self._root = value

    def get_artifact_patterns(self) -> List[str]:
        root = self.root if self.root.endswith("/") else self.root + "/"
        return [root + self.pattern] + list(self._artifact_patterns)
