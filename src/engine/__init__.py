"""Resolution engine and its strategies."""

from .conflict import ConflictManager, ConflictResolution, get_conflict_manager
from .manager import DependencyManager
from .resolve import ResolveEngine, ResolveOptions
from .sort import SortEngine, SortResult

__all__ = [
    "ConflictManager",
    "ConflictResolution",
    "DependencyManager",
    "ResolveEngine",
    "ResolveOptions",
    "SortEngine",
    "SortResult",
    "get_conflict_manager",
]
