"""Shared fixtures: an on-disk Ivy repository and settings pointing at it."""

import os
from xml.sax.saxutils import quoteattr

import pytest

from parser import parse_ivy_xml
from resolver import FileSystemResolver
from settings import Settings


def _attrs(**values):
    return "".join(f" {k}={quoteattr(str(v))}" for k, v in values.items() if v is not None)


def ivy_xml(org, name, rev, deps=(), confs=None, artifacts=None, publication=None,
            status="release", extra_info=None):
    """Render a small ivy.xml document.

    ``deps`` items are dicts with org/name/rev and optional conf, transitive,
    force; ``confs`` items are names or (name, extends) pairs; ``artifacts``
    items are dicts with name/type/ext/conf. ``extra_info`` is a list of
    (tag, attributes) pairs added inside <info>.
    """
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', '<ivy-module version="2.0">']
    info_attrs = _attrs(organisation=org, module=name, revision=rev, status=status, publication=publication)
    if extra_info:
        lines.append(f"  <info{info_attrs}>")
        for tag, attrs in extra_info:
            lines.append(f"    <{tag}{_attrs(**attrs)}/>")
        lines.append("  </info>")
    else:
        lines.append(f"  <info{info_attrs}/>")
    if confs:
        lines.append("  <configurations>")
        for conf in confs:
            conf_name, extends = (conf, None) if isinstance(conf, str) else conf
            lines.append(f"    <conf{_attrs(name=conf_name, extends=extends)}/>")
        lines.append("  </configurations>")
    if artifacts is not None:
        lines.append("  <publications>")
        for art in artifacts:
            lines.append(f"    <artifact{_attrs(**art)}/>")
        lines.append("  </publications>")
    if deps:
        lines.append("  <dependencies>")
        for dep in deps:
            lines.append(f"    <dependency{_attrs(**dep)}/>")
        lines.append("  </dependencies>")
    lines.append("</ivy-module>")
    return "\n".join(lines)


class RepoBuilder:
    """Writes modules in the ``[organisation]/[module]/[type]s/[artifact]-[revision].[ext]`` layout."""

    IVY_PATTERN = "[organisation]/[module]/ivys/ivy-[revision].xml"
    ARTIFACT_PATTERN = "[organisation]/[module]/[type]s/[artifact]-[revision].[ext]"

    def __init__(self, root):
        self.root = str(root)
        os.makedirs(self.root, exist_ok=True)

    def pattern(self, pattern):
        return os.path.join(self.root, pattern)

    def resolver(self, name="local", **kwargs):
        return FileSystemResolver(name, [self.pattern(self.IVY_PATTERN)],
                                  [self.pattern(self.ARTIFACT_PATTERN)], **kwargs)

    def artifact_path(self, org, name, rev, artifact=None, type_="jar", ext="jar"):
        return os.path.join(self.root, org, name, f"{type_}s", f"{artifact or name}-{rev}.{ext}")

    def publish(self, org, name, rev, deps=(), confs=None, artifacts=None, publication=None,
                status="release", write_files=True, ivy=True):
        if ivy:
            path = os.path.join(self.root, org, name, "ivys", f"ivy-{rev}.xml")
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(ivy_xml(org, name, rev, deps, confs, artifacts, publication, status))
        if write_files:
            for art in artifacts if artifacts is not None else [{"name": name, "type": "jar", "ext": "jar"}]:
                type_ = art.get("type", "jar")
                target = self.artifact_path(org, name, rev, art.get("name", name), type_, art.get("ext", type_))
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with open(target, "wb") as fh:
                    fh.write(f"{org}:{name}:{rev}:{art.get('name', name)}".encode("utf-8"))


def root_descriptor(org="apache", name="root", rev="1.0", deps=(), confs=None, extra_info=None):
    """Parse an in-memory root ivy.xml."""
    return parse_ivy_xml(ivy_xml(org, name, rev, deps, confs, extra_info=extra_info), "root-ivy.xml")


@pytest.fixture
def repo(tmp_path):
    return RepoBuilder(tmp_path / "repo")


@pytest.fixture
def cache_dir(tmp_path):
    return str(tmp_path / "cache")


@pytest.fixture
def settings(repo, cache_dir):
    s = Settings(cache_dir=cache_dir, download_workers=2)
    s.add_resolver(repo.resolver("local"))
    return s
