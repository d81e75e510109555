"""Module identities: ModuleId and ModuleRevisionId."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from common.errors import InputError

_MRID_PATTERN = re.compile(
    r"^(?P<org>[^#;/]+)[#/](?P<name>[^#;/]+)(?:#(?P<branch>[^#;]+))?[;/](?P<rev>.+)$"
)


@dataclass(frozen=True, order=True)
class ModuleId:
    """Logical module identity (organisation, name), without revision."""

    organisation: str
    name: str

    def __str__(self) -> str:
        return f"{self.organisation}#{self.name}"


@dataclass(frozen=True)
class ModuleRevisionId:
    """Module identity plus revision and optional branch.

    Used as the key for cache paths and conflict tracking. The revision may be a
    constraint (range, ``latest.integration``...) when it comes from a
    dependency declaration.
    """

    organisation: str
    name: str
    revision: str
    branch: Optional[str] = None

    @classmethod
    def new(cls, organisation: str, name: str, revision: str,
            branch: Optional[str] = None) -> "ModuleRevisionId":
        if not organisation or not name:
            raise InputError("organisation and module name are required")
        if revision is None or not str(revision).strip():
            raise InputError(f"missing revision for {organisation}#{name}")
        return cls(organisation, name, str(revision).strip(), branch or None)

    @classmethod
    def parse(cls, text: str) -> "ModuleRevisionId":
        """Parse ``org#name;rev``, ``org#name#branch;rev`` or ``org/name/rev``."""
        match = _MRID_PATTERN.match((text or "").strip())
        if not match:
            raise InputError(f"malformed module revision id: {text!r}")
        return cls.new(match.group("org"), match.group("name"), match.group("rev"),
                       match.group("branch"))

    @property
    def module_id(self) -> ModuleId:
        return ModuleId(self.organisation, self.name)

    def with_revision(self, revision: str) -> "ModuleRevisionId":
        return ModuleRevisionId(self.organisation, self.name, revision, self.branch)

    def tokens(self) -> dict:
        """Values for pattern substitution."""
        return {
            "organisation": self.organisation,
            "organization": self.organisation,
            "module": self.name,
            "revision": self.revision,
            "branch": self.branch,
        }

    def __str__(self) -> str:
        branch = f"#{self.branch}" if self.branch else ""
        return f"{self.organisation}#{self.name}{branch};{self.revision}"
