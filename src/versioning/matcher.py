"""Revision constraint matching.

Decides whether a concrete revision satisfies a constraint and picks the best
of several candidates. Purely a function of the constraint, the candidate
revision and the metadata already attached to it; never touches the network.

Supported constraints:
    exact           ``1.2.0``
    latest          ``latest.integration``, ``latest.milestone``, ``latest.release``
    sub-revision    ``1.2.+``, ``1.2+``, ``+``
    ranges          ``[1.0,2.0)``, ``(,2.0]``, ``[1.0,)``, ``]1.0,2.0[``, ``[1.2]``
    range unions    ``[1.0,2.0),[3.0,4.0]``
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, TypeVar, Union

from constants import Constants
from common.errors import InputError
from versioning.ordering import compare_revisions, revision_key

_LATEST_PREFIX = "latest."
_RANGE_CHARS = "[]()"
_SINGLE_RANGE = re.compile(r"^[\[\]\(]\s*([^,\[\]\(\)]*?)\s*(?:,\s*([^,\[\]\(\)]*?)\s*)?[\]\[\)]$")


@dataclass(frozen=True)
class RevisionCandidate:
    """A concrete revision with the metadata known about it."""

    revision: str
    publication_date: Optional[datetime] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class _Range:
    lower: Optional[str]
    upper: Optional[str]
    lower_inclusive: bool
    upper_inclusive: bool

    def contains(self, revision: str) -> bool:
        if self.lower is not None:
            cmp = compare_revisions(revision, self.lower)
            if cmp < 0 or (cmp == 0 and not self.lower_inclusive):
                return False
        if self.upper is not None:
            cmp = compare_revisions(revision, self.upper)
            if cmp > 0 or (cmp == 0 and not self.upper_inclusive):
                return False
        return True


Candidate = TypeVar("Candidate", str, RevisionCandidate)


class VersionMatcher:
    """Matches revisions against revision constraints."""

    def __init__(self, statuses: Optional[List[str]] = None):
        """Initialize with the ordered list of statuses, lowest first."""
        self.statuses = list(statuses or Constants.STATUSES)

    # -- classification -------------------------------------------------

    def is_dynamic(self, constraint: str) -> bool:
        constraint = (constraint or "").strip()
        return (
            constraint.startswith(_LATEST_PREFIX)
            or constraint.endswith("+")
            or self._is_range(constraint)
        )

    def needs_metadata(self, constraint: str) -> bool:
        """True when accepting a revision requires its status."""
        status = self._latest_status(constraint)
        return status is not None and status != self.statuses[0]

    def validate(self, constraint: str) -> None:
        """Raise InputError when ``constraint`` is malformed."""
        constraint = (constraint or "").strip()
        if not constraint:
            raise InputError("empty revision constraint")
        if constraint.startswith(_LATEST_PREFIX):
            status = constraint[len(_LATEST_PREFIX):]
            if status not in self.statuses:
                raise InputError(f"unknown status in revision constraint: {constraint!r}")
            return
        if constraint[0] in "[](" or constraint[-1] in "[])":
            self._parse_ranges(constraint)

    # -- matching -------------------------------------------------------

    def accept(self, constraint: str, revision: Union[str, RevisionCandidate]) -> bool:
        """Return True if ``revision`` satisfies ``constraint``."""
        candidate = revision if isinstance(revision, RevisionCandidate) else RevisionCandidate(revision)
        constraint = (constraint or "").strip()
        rev = candidate.revision
        status = self._latest_status(constraint)
        if status is not None:
            if not self.needs_metadata(constraint):
                return True
            if candidate.status not in self.statuses:
                return False
            return self.statuses.index(candidate.status) >= self.statuses.index(status)
        if constraint.endswith("+"):
            return rev.startswith(constraint[:-1])
        if self._is_range(constraint):
            return any(r.contains(rev) for r in self._parse_ranges(constraint))
        return rev == constraint

    def find_best(self, constraint: str, candidates: Sequence[Candidate]) -> Optional[Candidate]:
        """Best accepted candidate, or None when no candidate is accepted.

        Prefers the latest publication date when accepted candidates carry one,
        then the highest revision.
        """
        accepted = [c for c in candidates if self.accept(constraint, c)]
        if not accepted:
            return None

        def key(c):
            if isinstance(c, RevisionCandidate):
                return (c.publication_date or datetime.min, revision_key(c.revision))
            return (datetime.min, revision_key(c))

        return max(accepted, key=key)

    # -- helpers ---------------------------------------------------------

    def _latest_status(self, constraint: str) -> Optional[str]:
        if constraint.startswith(_LATEST_PREFIX):
            return constraint[len(_LATEST_PREFIX):]
        return None

    @staticmethod
    def _is_range(constraint: str) -> bool:
        return bool(constraint) and constraint[0] in "[](" and constraint[-1] in "[])"

    def _parse_ranges(self, constraint: str) -> Tuple[_Range, ...]:
        """Split a range union and parse each bracketed range."""
        ranges = []
        current = ""
        depth = 0
        for char in constraint.replace(" ", ""):
            if depth == 0 and char == ",":
                continue
            current += char
            if depth == 0 and char in "[](":
                depth = 1
            elif depth == 1 and char in "[])" and len(current) > 1:
                depth = 0
                ranges.append(self._parse_single_range(current, constraint))
                current = ""
        if current or not ranges:
            raise InputError(f"malformed revision range: {constraint!r}")
        return tuple(ranges)

    @staticmethod
    def _parse_single_range(text: str, constraint: str) -> _Range:
        match = _SINGLE_RANGE.match(text)
        if not match:
            raise InputError(f"malformed revision range: {constraint!r}")
        lower, upper = match.group(1), match.group(2)
        if "," not in text:
            # [1.2] pins a single revision
            if not lower or text[0] != "[" or text[-1] != "]":
                raise InputError(f"malformed revision range: {constraint!r}")
            return _Range(lower, lower, True, True)
        lower_inclusive = text[0] == "["
        upper_inclusive = text[-1] == "]"
        rng = _Range(lower or None, upper or None, lower_inclusive, upper_inclusive)
        if rng.lower and rng.upper and compare_revisions(rng.lower, rng.upper) > 0:
            raise InputError(f"empty revision range, lower bound above upper: {constraint!r}")
        if rng.lower is None and rng.upper is None:
            raise InputError(f"revision range without bounds: {constraint!r}")
        return rng
