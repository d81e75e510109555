"""Revision ordering used by dynamic constraints and conflict managers."""

from __future__ import annotations

import functools
import re
from typing import List, Optional

from packaging import version

# Qualifiers with a fixed rank when both revisions carry one at the same position.
SPECIAL_MEANINGS = {"dev": -1, "rc": 1, "final": 2}

_SEPARATORS = re.compile(r"[-._+]")
_DIGIT_ALPHA = re.compile(r"(\d)([a-zA-Z])")
_ALPHA_DIGIT = re.compile(r"([a-zA-Z])(\d)")


def _parse_pep440(rev: str) -> Optional[version.Version]:
    try:
        return version.Version(rev)
    except version.InvalidVersion:
        return None


def _parts(rev: str) -> List[str]:
    text = _SEPARATORS.sub(".", rev)
    text = _DIGIT_ALPHA.sub(r"\1.\2", text)
    text = _ALPHA_DIGIT.sub(r"\1.\2", text)
    return [p for p in text.split(".") if p]


def _compare_parts(rev1: str, rev2: str) -> int:
    parts1, parts2 = _parts(rev1), _parts(rev2)
    for p1, p2 in zip(parts1, parts2):
        if p1 == p2:
            continue
        n1, n2 = p1.isdigit(), p2.isdigit()
        if n1 and n2:
            diff = int(p1) - int(p2)
            if diff:
                return 1 if diff > 0 else -1
            continue
        s1 = SPECIAL_MEANINGS.get(p1.lower())
        s2 = SPECIAL_MEANINGS.get(p2.lower())
        if s1 is not None or s2 is not None:
            r1 = s1 if s1 is not None else (3 if n1 else 0)
            r2 = s2 if s2 is not None else (3 if n2 else 0)
            if r1 != r2:
                return 1 if r1 > r2 else -1
            continue
        if n1 != n2:
            return 1 if n1 else -1
        return 1 if p1 > p2 else -1
    if len(parts1) > len(parts2):
        return 1 if parts1[len(parts2)].isdigit() else -1
    if len(parts2) > len(parts1):
        return -1 if parts2[len(parts1)].isdigit() else 1
    return 0


def compare_revisions(rev1: str, rev2: str) -> int:
    """Compare two revision strings, returning -1, 0 or 1.

    PEP 440 compatible pairs are ordered by ``packaging.version``; anything else
    falls back to a part-wise comparison where numbers compare numerically,
    ``dev < rc < final`` and numbers rank above words. Equal-ranked but distinct
    strings are ordered lexicographically so the order stays total.
    """
    if rev1 == rev2:
        return 0
    v1, v2 = _parse_pep440(rev1), _parse_pep440(rev2)
    if v1 is not None and v2 is not None:
        if v1 != v2:
            return 1 if v1 > v2 else -1
    else:
        result = _compare_parts(rev1, rev2)
        if result:
            return result
    return 1 if rev1 > rev2 else -1


revision_key = functools.cmp_to_key(compare_revisions)


def sort_revisions(revisions, reverse: bool = False) -> List[str]:
    return sorted(revisions, key=revision_key, reverse=reverse)
