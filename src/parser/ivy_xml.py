"""Parser for Ivy-style module descriptor files (``ivy.xml``)."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from constants import Constants
from common.errors import InputError, ParseError
from module import (
    Artifact,
    ArtifactRule,
    Configuration,
    DependencyArtifact,
    DependencyDescriptor,
    ExtraInfo,
    ModuleDescriptor,
    ModuleRevisionId,
    freeze_attributes,
    parse_conf_mapping,
)


_IGNORED_INFO_CHILDREN = {"description", "license", "ivyauthor", "repository", "extends"}


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _split_confs(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(c.strip() for c in value.split(",") if c.strip())


def _extra_attributes(elem: ET.Element) -> Dict[str, str]:
    """Namespaced attributes (``e:classifier``) become extra attributes."""
    return {_local(k): v for k, v in elem.attrib.items() if k.startswith("{")}


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("true", "yes", "1")


def parse_publication(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), Constants.PUBLICATION_FORMAT)
    except ValueError:
        return None


def _parse_rule(elem: ET.Element, source: str) -> ArtifactRule:
    try:
        return ArtifactRule(
            name=elem.get("name", "*"),
            type=elem.get("type", "*"),
            ext=elem.get("ext", elem.get("type", "*")),
            matcher=elem.get("matcher", "exact"),
            confs=_split_confs(elem.get("conf")),
        )
    except InputError as exc:
        raise ParseError(f"{source}: {exc}", location=source) from exc


def _parse_dependency(elem: ET.Element, parent: ModuleRevisionId, default_conf: Optional[str],
                      default_mapping: Optional[str], source: str) -> DependencyDescriptor:
    name = elem.get("name")
    rev = elem.get("rev")
    if not name or not rev:
        raise ParseError(f"{source}: dependency without name or rev", location=source)
    org = elem.get("org", parent.organisation)
    dep_mrid = ModuleRevisionId(org, name, rev, elem.get("branch") or None)

    conf_text = elem.get("conf")
    if conf_text is None:
        nested = [(c.get("name"), c.get("mapped")) for c in elem if _local(c.tag) == "conf"]
        if nested:
            conf_text = ";".join(f"{n}->{m}" if m else n for n, m in nested if n)
        else:
            conf_text = default_conf
    try:
        mapping = parse_conf_mapping(conf_text, default_mapping)
    except InputError as exc:
        raise ParseError(f"{source}: {exc}", location=source) from exc

    includes: List[ArtifactRule] = []
    excludes: List[ArtifactRule] = []
    artifacts: List[DependencyArtifact] = []
    for child in elem:
        tag = _local(child.tag)
        if tag == "include":
            includes.append(_parse_rule(child, source))
        elif tag == "exclude":
            excludes.append(_parse_rule(child, source))
        elif tag == "artifact":
            artifacts.append(DependencyArtifact(
                name=child.get("name", name),
                type=child.get("type", "jar"),
                ext=child.get("ext", child.get("type", "jar")),
                confs=_split_confs(child.get("conf")),
                extra_attributes=freeze_attributes(_extra_attributes(child)),
            ))
    return DependencyDescriptor(
        parent=parent,
        dependency_revision_id=dep_mrid,
        conf_mapping=mapping,
        transitive=_bool(elem.get("transitive"), True),
        force=_bool(elem.get("force"), False),
        changing=_bool(elem.get("changing"), False),
        include_rules=tuple(includes),
        exclude_rules=tuple(excludes),
        dependency_artifacts=tuple(artifacts),
    )


def parse_ivy_xml(data: Union[bytes, str], source: str = "<memory>",
                  publication_fallback: Optional[datetime] = None) -> ModuleDescriptor:
    """Parse an Ivy module descriptor.

    Args:
        data: Raw XML.
        source: Location used in error messages.
        publication_fallback: Publication date when the file declares none.

    Raises:
        ParseError: The XML is malformed or lacks mandatory info.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ParseError(f"{source}: invalid descriptor XML: {exc}", location=source) from exc
    if _local(root.tag) != "ivy-module":
        raise ParseError(f"{source}: not an ivy-module descriptor", location=source)

    info = next((c for c in root if _local(c.tag) == "info"), None)
    if info is None or not info.get("organisation") or not info.get("module"):
        raise ParseError(f"{source}: missing info organisation/module", location=source)
    mrid = ModuleRevisionId(info.get("organisation"), info.get("module"),
                            info.get("revision", "working"), info.get("branch") or None)
    publication = parse_publication(info.get("publication")) or publication_fallback
    extra_info = tuple(
        ExtraInfo(_local(child.tag), (child.text or "").strip(),
                  freeze_attributes(dict(child.attrib)))
        for child in info if _local(child.tag) not in _IGNORED_INFO_CHILDREN
    )

    configurations: List[Configuration] = []
    default_mapping: Optional[str] = None
    confs_elem = next((c for c in root if _local(c.tag) == "configurations"), None)
    if confs_elem is not None:
        default_mapping = confs_elem.get("defaultconfmapping")
        for conf in confs_elem:
            if _local(conf.tag) != "conf":
                continue
            configurations.append(Configuration(
                name=conf.get("name"),
                visibility=conf.get("visibility", "public"),
                extends=_split_confs(conf.get("extends")),
                description=conf.get("description", ""),
                transitive=_bool(conf.get("transitive"), True),
            ))
    if not configurations:
        configurations.append(Configuration(Constants.DEFAULT_CONF))
    all_confs = tuple(c.name for c in configurations)

    artifacts: List[Artifact] = []
    pubs = next((c for c in root if _local(c.tag) == "publications"), None)
    if pubs is None:
        artifacts.append(Artifact(mrid, mrid.name, "jar", "jar", (), publication, all_confs))
    else:
        for art in pubs:
            if _local(art.tag) != "artifact":
                continue
            confs = _split_confs(art.get("conf")) or all_confs
            if "*" in confs:
                confs = all_confs
            art_type = art.get("type", "jar")
            artifacts.append(Artifact(
                mrid,
                art.get("name", mrid.name),
                art_type,
                art.get("ext", art_type),
                freeze_attributes(_extra_attributes(art)),
                publication,
                confs,
            ))

    dependencies: List[DependencyDescriptor] = []
    deps_elem = next((c for c in root if _local(c.tag) == "dependencies"), None)
    if deps_elem is not None:
        default_conf = deps_elem.get("defaultconf")
        default_mapping = deps_elem.get("defaultconfmapping", default_mapping)
        for dep in deps_elem:
            if _local(dep.tag) == "dependency":
                dependencies.append(_parse_dependency(dep, mrid, default_conf, default_mapping, source))

    try:
        return ModuleDescriptor(
            module_revision_id=mrid,
            configurations=tuple(configurations),
            dependencies=tuple(dependencies),
            artifacts=tuple(artifacts),
            status=info.get("status", Constants.DEFAULT_STATUS),
            publication_date=publication,
            extra_info=extra_info,
        )
    except InputError as exc:
        raise ParseError(f"{source}: {exc}", location=source) from exc
