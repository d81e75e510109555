"""Maven POM to ModuleDescriptor conversion.

Scopes are mapped onto the standard Maven configurations so Ivy-style and
Maven-style modules can depend on each other.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Dict, List, Optional, Union

from common.errors import InputError, ParseError
from module import (
    Artifact,
    Configuration,
    DependencyArtifact,
    DependencyDescriptor,
    ModuleDescriptor,
    ModuleRevisionId,
    freeze_attributes,
    parse_conf_mapping,
)

MAVEN_CONFIGURATIONS = (
    Configuration("default", extends=("runtime", "master"),
                  description="runtime dependencies and master artifact can be used with this conf"),
    Configuration("master", description="contains only the artifact published by this module itself"),
    Configuration("compile", description="the default scope, used if none is specified"),
    Configuration("provided", description="like compile, but the JDK or a container provides it"),
    Configuration("runtime", extends=("compile",),
                  description="not required for compilation, but for execution"),
    Configuration("test", visibility="private", extends=("runtime",),
                  description="only available for test compilation and execution"),
    Configuration("system", description="like provided, but the jar is provided explicitly"),
    Configuration("sources", description="contains the source artifact of this module, if any"),
    Configuration("javadoc", description="contains the javadoc artifact of this module, if any"),
    Configuration("optional", description="contains all optional dependencies"),
)

SCOPE_MAPPINGS = {
    "compile": "compile->compile(*),master(*);runtime->runtime(*)",
    "provided": "provided->compile(*),provided(*),runtime(*),master(*)",
    "runtime": "runtime->compile(*),runtime(*),master(*)",
    "test": "test->runtime(*),master(*)",
    "system": "system->master(*)",
}
OPTIONAL_MAPPING = "optional->compile(*),provided(*),runtime(*),master(*)"

_JAR_PACKAGINGS = {"jar", "bundle", "maven-plugin", "eclipse-plugin", "ejb"}
_PROPERTY = re.compile(r"\$\{([^}]+)\}")


def _strip_namespaces(root: ET.Element) -> None:
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.rsplit("}", 1)[-1]


def _text(elem: Optional[ET.Element], path: str) -> Optional[str]:
    if elem is None:
        return None
    node = elem.find(path)
    if node is None or node.text is None:
        return None
    return node.text.strip() or None


class _Properties:
    def __init__(self, values: Dict[str, str]):
        self.values = values

    def substitute(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        for _ in range(10):
            replaced = _PROPERTY.sub(lambda m: self.values.get(m.group(1), m.group(0)), value)
            if replaced == value:
                break
            value = replaced
        return value


def parse_pom(data: Union[bytes, str], source: str = "<memory>",
              publication_date: Optional[datetime] = None) -> ModuleDescriptor:
    """Parse a Maven POM into a ModuleDescriptor.

    Raises:
        ParseError: malformed XML or missing coordinates.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ParseError(f"{source}: invalid POM XML: {exc}", location=source) from exc
    _strip_namespaces(root)
    if root.tag != "project":
        raise ParseError(f"{source}: not a Maven POM", location=source)

    parent = root.find("parent")
    group = _text(root, "groupId") or _text(parent, "groupId")
    artifact_id = _text(root, "artifactId")
    version = _text(root, "version") or _text(parent, "version")
    packaging = _text(root, "packaging") or "jar"

    props: Dict[str, str] = {}
    props_elem = root.find("properties")
    if props_elem is not None:
        for prop in props_elem:
            props[prop.tag] = (prop.text or "").strip()
    for key, value in (("groupId", group), ("artifactId", artifact_id), ("version", version)):
        if value:
            props[f"project.{key}"] = value
            props[f"pom.{key}"] = value
    if version:
        props["version"] = version
    if parent is not None:
        for key in ("groupId", "artifactId", "version"):
            value = _text(parent, key)
            if value:
                props[f"project.parent.{key}"] = value
    properties = _Properties(props)

    group = properties.substitute(group)
    version = properties.substitute(version)
    if not group or not artifact_id or not version:
        raise ParseError(f"{source}: POM without groupId/artifactId/version", location=source)
    mrid = ModuleRevisionId(group, artifact_id, version)

    managed: Dict[str, str] = {}
    for dep in root.findall("dependencyManagement/dependencies/dependency"):
        key = f"{properties.substitute(_text(dep, 'groupId'))}:{_text(dep, 'artifactId')}"
        managed_version = properties.substitute(_text(dep, "version"))
        if managed_version:
            managed[key] = managed_version

    dependencies: List[DependencyDescriptor] = []
    for dep in root.findall("dependencies/dependency"):
        dep_group = properties.substitute(_text(dep, "groupId"))
        dep_name = properties.substitute(_text(dep, "artifactId"))
        if not dep_group or not dep_name:
            raise ParseError(f"{source}: dependency without coordinates", location=source)
        dep_version = properties.substitute(_text(dep, "version")) or managed.get(f"{dep_group}:{dep_name}")
        if not dep_version:
            raise ParseError(f"{source}: no version for dependency {dep_group}:{dep_name}",
                             location=source)
        scope = _text(dep, "scope") or "compile"
        optional = (_text(dep, "optional") or "false").lower() == "true"
        mapping_text = OPTIONAL_MAPPING if optional else SCOPE_MAPPINGS.get(scope, SCOPE_MAPPINGS["compile"])
        classifier = _text(dep, "classifier")
        dep_type = _text(dep, "type")
        dep_artifacts = ()
        if classifier or (dep_type and dep_type != "jar"):
            attrs = {"classifier": classifier} if classifier else {}
            ext = "jar" if dep_type in (None, "test-jar") else dep_type
            dep_artifacts = (DependencyArtifact(dep_name, dep_type or "jar", ext,
                                                extra_attributes=freeze_attributes(attrs)),)
        try:
            mapping = parse_conf_mapping(mapping_text)
        except InputError as exc:
            raise ParseError(f"{source}: {exc}", location=source) from exc
        dependencies.append(DependencyDescriptor(
            parent=mrid,
            dependency_revision_id=ModuleRevisionId(dep_group, dep_name, dep_version),
            conf_mapping=mapping,
            dependency_artifacts=dep_artifacts,
        ))

    artifacts = ()
    if packaging != "pom":
        ext = "jar" if packaging in _JAR_PACKAGINGS else packaging
        art_type = "jar" if packaging in _JAR_PACKAGINGS else packaging
        artifacts = (Artifact(mrid, artifact_id, art_type, ext, (), publication_date, ("master",)),)

    status = "integration" if version.endswith("SNAPSHOT") else "release"
    return ModuleDescriptor(
        module_revision_id=mrid,
        configurations=MAVEN_CONFIGURATIONS,
        dependencies=tuple(dependencies),
        artifacts=artifacts,
        status=status,
        publication_date=publication_date,
    )


def is_pom(data: Union[bytes, str]) -> bool:
    head = data[:2048].decode("utf-8", "replace") if isinstance(data, bytes) else data[:2048]
    return "<project" in head


__all__ = ["parse_pom", "is_pom", "MAVEN_CONFIGURATIONS", "SCOPE_MAPPINGS"]
