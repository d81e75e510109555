"""Exception taxonomy shared by the resolver, cache and engine layers."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class DepResolveError(Exception):
    """Base class for every error raised by the resolution core."""


class InputError(DepResolveError):
    """Invalid caller input: unknown configuration, malformed constraint, bad settings."""


class CacheError(DepResolveError):
    """Local cache could not be written, read or locked."""


class TransportError(DepResolveError):
    """A resolver could not reach or read a remote source.

    Distinct from "not found", which resolvers report by returning None.
    """

    def __init__(self, message: str, location: Optional[str] = None):
        super().__init__(message)
        self.location = location


class ParseError(TransportError):
    """Metadata was fetched but could not be parsed."""


class CycleError(DepResolveError):
    """The dependency graph still contains a cycle after conflict resolution."""

    def __init__(self, members: Sequence[Any]):
        self.members = list(members)
        names = " -> ".join(str(m) for m in self.members)
        super().__init__(f"circular dependency: {names}")


class ResolutionError(DepResolveError):
    """Resolution finished with problems and the caller asked to halt on failure.

    ``result`` holds the partial ResolutionResult, ``problems`` the messages.
    """

    def __init__(self, message: str, problems: Optional[List[str]] = None, result: Any = None):
        super().__init__(message)
        self.problems = list(problems or [])
        self.result = result


class ConflictError(ResolutionError):
    """Raised by the strict conflict manager when two revisions of a module meet."""
