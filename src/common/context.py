"""Explicit resolution context passed to every engine, resolver and cache call."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

from common.logging_utils import extra_context, safe_url

if TYPE_CHECKING:  # pragma: no cover
    from settings import Settings

TRYING = "trying"
TRIED = "tried"


@dataclass(frozen=True)
class TraceEntry:
    """One attempt by a resolver to read a location."""

    action: str
    location: str
    resolver: str

    def __str__(self) -> str:
        return f"{self.action} {self.location}"


class SearchTrace:
    """Thread-safe, append-only record of every location tried by resolvers.

    The trace is part of the resolution result so diagnostics tools can show the
    full search path after a failure.
    """

    def __init__(self) -> None:
        self._entries: List[TraceEntry] = []
        self._lock = threading.Lock()

    def add(self, action: str, location: str, resolver: str) -> TraceEntry:
        entry = TraceEntry(action=action, location=location, resolver=resolver)
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> Tuple[TraceEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def messages(self) -> List[str]:
        return [str(e) for e in self.entries()]

    def contains(self, message: str) -> bool:
        return any(message in m for m in self.messages())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class ResolveContext:
    """Settings, logger sink, resolve id and search trace of one resolution call."""

    settings: "Settings"
    resolve_id: str = field(default_factory=lambda: f"resolve-{uuid.uuid4().hex[:12]}")
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("depresolve"))
    trace: SearchTrace = field(default_factory=SearchTrace)

    def trying(self, location: str, resolver: str) -> None:
        self.trace.add(TRYING, location, resolver)
        self.logger.debug(
            "\ttrying %s",
            safe_url(location),
            extra=extra_context(event="lookup", component="resolver", action=TRYING,
                                target=safe_url(location), resolver=resolver,
                                resolve_id=self.resolve_id),
        )

    def tried(self, location: str, resolver: str) -> None:
        self.trace.add(TRIED, location, resolver)
        self.logger.debug(
            "\t\ttried %s",
            safe_url(location),
            extra=extra_context(event="lookup", component="resolver", action=TRIED,
                                target=safe_url(location), resolver=resolver,
                                resolve_id=self.resolve_id),
        )

    @contextmanager
    def attempt(self, location: str, resolver: str) -> Iterator[None]:
        """Record ``trying`` now and ``tried`` when the block exits, even on error."""
        self.trying(location, resolver)
        try:
            yield
        finally:
            self.tried(location, resolver)

    def child(self, resolve_id: Optional[str] = None) -> "ResolveContext":
        """Fresh trace sharing settings and logger, e.g. for a new resolve call."""
        return ResolveContext(
            settings=self.settings,
            resolve_id=resolve_id or self.resolve_id,
            logger=self.logger,
        )
