"""Topological ordering of resolved modules with circular dependency handling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, List, Mapping, Optional, Sequence, Set, Tuple

from constants import Constants
from common.errors import CycleError, InputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SortResult:
    ordered: Tuple[Hashable, ...]
    cycles: Tuple[Tuple[Hashable, ...], ...]


class SortEngine:
    """Orders nodes so every dependency comes before the modules depending on it.

    Cycles are reported according to ``circular_strategy``:
    ``warn`` logs one warning per cycle, ``ignore`` logs at DEBUG and
    ``error`` raises CycleError naming the members.
    """

    def __init__(self, circular_strategy: str = Constants.DEFAULT_CIRCULAR_STRATEGY):
        if circular_strategy not in Constants.CIRCULAR_STRATEGIES:
            raise InputError(f"unknown circular dependency strategy {circular_strategy!r}")
        self.circular_strategy = circular_strategy

    def sort(self, nodes: Sequence[Hashable], edges: Mapping[Hashable, Sequence[Hashable]],
             reported: Optional[Set[frozenset]] = None) -> SortResult:
        """Depth-first postorder over ``edges`` restricted to ``nodes``.

        ``reported`` holds the member sets of cycles already reported by an
        earlier call; those are neither reported nor returned again.
        """
        ordered: List[Hashable] = []
        cycles: List[Tuple[Hashable, ...]] = []
        seen_cycles = reported if reported is not None else set()
        done = set()
        allowed = set(nodes)

        for start in nodes:
            if start in done:
                continue
            path: List[Hashable] = [start]
            on_path: Dict[Hashable, int] = {start: 0}
            iters = [iter(edges.get(start, ()))]
            while iters:
                node = path[-1]
                child = next((c for c in iters[-1] if c in allowed), None)
                if child is None:
                    iters.pop()
                    path.pop()
                    del on_path[node]
                    done.add(node)
                    ordered.append(node)
                    continue
                if child in on_path:
                    cycle = tuple(path[on_path[child]:]) + (child,)
                    key = frozenset(cycle)
                    if key not in seen_cycles:
                        seen_cycles.add(key)
                        cycles.append(cycle)
                        self._report(cycle)
                    continue
                if child in done:
                    continue
                on_path[child] = len(path)
                path.append(child)
                iters.append(iter(edges.get(child, ())))
        return SortResult(tuple(ordered), tuple(cycles))

    def _report(self, cycle: Tuple[Hashable, ...]) -> None:
        names = " => ".join(str(m) for m in cycle)
        if self.circular_strategy == "error":
            raise CycleError(cycle)
        if self.circular_strategy == "warn":
            logger.warning("circular dependency found: %s", names)
        else:
            logger.debug("circular dependency found: %s", names)
