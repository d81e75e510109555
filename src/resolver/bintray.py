"""Bintray-hosted Maven repositories (JCenter by default)."""

from __future__ import annotations

from typing import Optional

from constants import Constants
from resolver.pattern_resolver import MavenResolver


class BintrayResolver(MavenResolver):
    """Maven resolver whose root and name derive from a Bintray subject and repo.

    Without both ``subject`` and ``repo`` the resolver points at JCenter. An
    explicit ``name`` always wins over the derived one. Root and name are
    recomputed on every access so setting subject/repo later takes effect.
    """

    def __init__(self, subject: Optional[str] = None, repo: Optional[str] = None,
                 name: Optional[str] = None, **kwargs):
        self._subject = subject
        self._repo = repo
        self._explicit_name = None
        super().__init__(name=name, root=Constants.BINTRAY_JCENTER_ROOT, **kwargs)

    @property
    def subject(self) -> Optional[str]:
        return self._subject

    @subject.setter
    def subject(self, value: Optional[str]) -> None:
        self._subject = value

    @property
    def repo(self) -> Optional[str]:
        return self._repo

    @repo.setter
    def repo(self, value: Optional[str]) -> None:
        self._repo = value

    def _has_subject_repo(self) -> bool:
        return bool(self._subject) and bool(self._repo)

    @property
    def root(self) -> str:
        if self._has_subject_repo():
            return f"{Constants.BINTRAY_DL_ROOT}{self._subject}/{self._repo}/"
        return Constants.BINTRAY_JCENTER_ROOT

    @property
    def name(self) -> str:
        if self._explicit_name:
            return self._explicit_name
        if self._has_subject_repo():
            return f"bintray/{self._subject}/{self._repo}"
        return Constants.BINTRAY_JCENTER_NAME

    @name.setter
    def name(self, value: Optional[str]) -> None:
        self._explicit_name = value
