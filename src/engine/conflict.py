"""Conflict managers: pick the revision(s) of a module kept when several meet."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Collection, Dict, List, Sequence, Tuple, Type

from constants import Constants
from common.errors import ConflictError, InputError
from report.models import ResolvedModuleRevision
from versioning.ordering import revision_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConflictResolution:
    selected: Tuple[ResolvedModuleRevision, ...]
    evicted: Tuple[ResolvedModuleRevision, ...]


class ConflictManager(ABC):
    """Chooses among revisions of one module id reachable in a configuration."""

    name = ""

    def resolve_conflicts(self, candidates: Sequence[ResolvedModuleRevision],
                          forced: Collection = ()) -> ConflictResolution:
        """Split ``candidates`` into selected and evicted.

        Candidates whose id is in ``forced`` beat the others regardless of
        the strategy.
        """
        unique = list({c.id: c for c in candidates}.values())
        if len(unique) <= 1:
            return ConflictResolution(tuple(unique), ())
        pool = [c for c in unique if c.id in forced] or unique
        selected = self._select(pool)
        chosen = {c.id for c in selected}
        evicted = tuple(c for c in unique if c.id not in chosen)
        if evicted:
            logger.debug("%s conflict manager kept %s over %s", self.name,
                         ", ".join(str(c.id) for c in selected), ", ".join(str(c.id) for c in evicted))
        return ConflictResolution(tuple(selected), evicted)

    @abstractmethod
    def _select(self, candidates: List[ResolvedModuleRevision]) -> List[ResolvedModuleRevision]:
        ...


class LatestRevisionConflictManager(ConflictManager):
    name = "latest-revision"

    def _select(self, candidates):
        return [max(candidates, key=lambda c: revision_key(c.id.revision))]


class LatestTimeConflictManager(ConflictManager):
    """Latest publication date wins; undated or equally dated fall back to revision order."""

    name = "latest-time"

    def _select(self, candidates):
        return [max(candidates, key=lambda c: (c.publication_date or datetime.min,
                                               revision_key(c.id.revision)))]


class AllConflictManager(ConflictManager):
    """Keeps every revision."""

    name = "all"

    def _select(self, candidates):
        return list(candidates)


class StrictConflictManager(ConflictManager):
    """Refuses any conflict that a forced dependency does not settle."""

    name = "strict"

    def _select(self, candidates):
        if len(candidates) > 1:
            revisions = ", ".join(str(c.id) for c in candidates)
            raise ConflictError(f"conflicting revisions of {candidates[0].id.module_id}: {revisions}",
                                problems=[f"conflict: {revisions}"])
        return list(candidates)


CONFLICT_MANAGERS: Dict[str, Type[ConflictManager]] = {
    cls.name: cls
    for cls in (LatestTimeConflictManager, LatestRevisionConflictManager,
                AllConflictManager, StrictConflictManager)
}


def get_conflict_manager(name: str = Constants.DEFAULT_CONFLICT_MANAGER) -> ConflictManager:
    try:
        return CONFLICT_MANAGERS[name]()
    except KeyError:
        raise InputError(
            f"unknown conflict manager {name!r}, expected one of {', '.join(Constants.CONFLICT_MANAGERS)}"
        ) from None
