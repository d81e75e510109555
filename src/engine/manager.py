"""Facade used by the CLI: resolve, inline resolve, cache path, listing, cache cleanup."""

from __future__ import annotations

import fnmatch
import logging
import os
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Union

from common.context import ResolveContext
from common.errors import InputError, ResolutionError
from module import Configuration, DependencyDescriptor, ModuleDescriptor, ModuleId, ModuleRevisionId
from parser import load_descriptor
from report.models import ResolutionResult
from resolver.base import DependencyResolver
from settings import Settings, load_settings

from .resolve import ResolveEngine, ResolveOptions

logger = logging.getLogger(__name__)

INLINE_CONF = "default"


class DependencyManager:
    """Runs resolutions against one Settings and remembers results by resolve id."""

    def __init__(self, settings: Optional[Settings] = None, resolver: Optional[DependencyResolver] = None,
                 engine: Optional[ResolveEngine] = None):
        self.settings = settings if settings is not None else load_settings()
        self.engine = engine or ResolveEngine(self.settings, resolver=resolver)
        self._results: Dict[str, ResolutionResult] = {}
        self._last_id: Optional[str] = None
        self._lock = threading.Lock()

    # -- resolution -------------------------------------------------------

    def resolve(self, descriptor: Union[str, ModuleDescriptor],
                options: Optional[ResolveOptions] = None) -> ResolutionResult:
        """Resolve a descriptor object or a descriptor file path."""
        if isinstance(descriptor, str):
            descriptor = self._load(descriptor)
        try:
            result = self.engine.resolve(descriptor, options)
        except ResolutionError as exc:
            if exc.result is not None:
                self._remember(exc.result)
            raise
        self._remember(result)
        return result

    def resolve_inline(self, organisation: str, module: str, revision: str,
                       confs: Sequence[str] = ("*",), branch: Optional[str] = None,
                       options: Optional[ResolveOptions] = None) -> ResolutionResult:
        """Resolve one module without a descriptor file.

        A synthetic caller module with a single ``default`` configuration is
        mapped onto ``confs`` of the requested module.
        """
        mrid = ModuleRevisionId.new(organisation, module, revision, branch)
        caller = ModuleRevisionId(organisation, f"{module}-caller", "working")
        dependency_confs = tuple(c.strip() for conf in confs for c in conf.split(",") if c.strip()) or ("*",)
        dd = DependencyDescriptor(caller, mrid, conf_mapping=((INLINE_CONF, dependency_confs),),
                                  transitive=options.transitive if options else True)
        root = ModuleDescriptor(caller, configurations=(Configuration(INLINE_CONF),), dependencies=(dd,))
        options = replace(options, confs=(INLINE_CONF,)) if options else ResolveOptions(confs=(INLINE_CONF,))
        return self.resolve(root, options)

    def _load(self, path: str) -> ModuleDescriptor:
        if not os.path.isfile(path):
            raise InputError(f"module descriptor not found: {path}")
        try:
            return load_descriptor(path)
        except OSError as exc:
            raise InputError(f"cannot read module descriptor {path}: {exc}") from exc

    def _remember(self, result: ResolutionResult) -> None:
        with self._lock:
            self._results[result.resolve_id] = result
            self._last_id = result.resolve_id

    # -- results --------------------------------------------------------

    def get_result(self, resolve_id: Optional[str] = None) -> ResolutionResult:
        with self._lock:
            key = resolve_id or self._last_id
            result = self._results.get(key) if key else None
        if result is None:
            raise InputError(f"no resolution found for resolve id {resolve_id!r}" if resolve_id
                             else "no resolution has been run yet")
        return result

    def cache_path(self, resolve_id: Optional[str] = None,
                   confs: Optional[Sequence[str]] = None) -> List[str]:
        """Local files of the artifacts of a previous resolution, in resolution order."""
        result = self.get_result(resolve_id)
        names = None
        if confs and list(confs) != ["*"]:
            names = [c.strip() for conf in confs for c in conf.split(",") if c.strip()]
            missing = [n for n in names if n not in result.configurations]
            if missing:
                raise InputError(f"configuration(s) {', '.join(missing)} were not resolved in "
                                 f"{result.resolve_id}")
        return result.local_files(names)

    # -- repository browsing --------------------------------------------

    def list_modules(self, organisation: str = "*", module: str = "*", revision: str = "*",
                     resolver: Optional[str] = None) -> List[ModuleRevisionId]:
        """Available module revisions whose parts match the given glob patterns."""
        source = self.settings.get_resolver(resolver)
        context = ResolveContext(settings=self.settings)
        found: List[ModuleRevisionId] = []
        if any(ch in organisation for ch in "*?["):
            orgs = [o for o in source.list_organisations(context) if fnmatch.fnmatchcase(o, organisation)]
        else:
            orgs = [organisation]
        for org in orgs:
            for name in source.list_modules(org, context):
                if not fnmatch.fnmatchcase(name, module):
                    continue
                for rev in source.list_revisions(ModuleId(org, name), context):
                    if fnmatch.fnmatchcase(rev, revision):
                        found.append(ModuleRevisionId(org, name, rev))
        logger.debug("Listed %d module revision(s) matching %s/%s/%s", len(found), organisation, module,
                     revision)
        return found

    def clean_cache(self) -> None:
        self.settings.artifact_cache.clean()
