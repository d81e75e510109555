"""XML rendering of one configuration of a resolution result.

Layout::

    <ivy-report version="1.0">
      <info organisation=".." module=".." revision=".." conf=".." confs=".." date=".." extra-0.x=".."/>
      <dependencies>
        <module organisation=".." name="..">
          <revision name=".." status=".." pubdate=".." resolver=".." evicted="..">
            <evicted-by rev=".."/>
            <caller organisation=".." name=".." callerrev=".."/>
            <artifacts>
              <artifact name=".." type=".." ext=".." status=".." size=".." location=".." is-local=".."/>
            </artifacts>
          </revision>
        </module>
      </dependencies>
    </ivy-report>

Values are attribute-escaped by ElementTree and the document is UTF-8 encoded.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional

from constants import Constants
from common.errors import InputError
from module import ModuleId, ModuleRevisionId
from report.models import ArtifactDownloadReport, ConfigurationResolveReport, ResolutionResult

logger = logging.getLogger(__name__)

REPORT_VERSION = "1.0"


def _local(name: str) -> str:
    return name.rsplit("}", 1)[-1]


def _date(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(Constants.PUBLICATION_FORMAT) if value else None


def _set(elem: ET.Element, **attrs) -> ET.Element:
    for key, value in attrs.items():
        if value is not None:
            elem.set(key.replace("_", "-"), str(value))
    return elem


class XmlReportWriter:
    """Writes a ConfigurationResolveReport as an XML document."""

    def __init__(self, encoding: str = Constants.REPORT_ENCODING):
        self.encoding = encoding

    def to_element(self, result: ResolutionResult, conf: str) -> ET.Element:
        report = result.get_configuration_report(conf)
        if report is None:
            raise InputError(f"configuration {conf!r} is not part of resolution {result.resolve_id}")
        root = ET.Element("ivy-report", version=REPORT_VERSION)
        self._info(root, result, conf)
        dependencies = ET.SubElement(root, "dependencies")
        for module_id, revisions in self._modules(report).items():
            module_elem = _set(ET.SubElement(dependencies, "module"),
                               organisation=module_id.organisation, name=module_id.name)
            for mrid in revisions:
                self._revision(module_elem, report, mrid)
        return root

    def to_bytes(self, result: ResolutionResult, conf: str) -> bytes:
        root = self.to_element(result, conf)
        ET.indent(root)
        return ET.tostring(root, encoding=self.encoding, xml_declaration=True)

    def output(self, result: ResolutionResult, conf: str, stream: BinaryIO) -> None:
        stream.write(self.to_bytes(result, conf))

    def write(self, result: ResolutionResult, conf: str, path: str) -> None:
        with open(path, "wb") as fh:
            self.output(result, conf, fh)
        logger.info("XML report for %s has been written to: %s", conf, path)

    # -- sections ---------------------------------------------------------

    @staticmethod
    def _info(root: ET.Element, result: ResolutionResult, conf: str) -> None:
        mrid = result.module_revision_id
        info = _set(ET.SubElement(root, "info"),
                    organisation=mrid.organisation, module=mrid.name, branch=mrid.branch,
                    revision=mrid.revision, conf=conf, confs=", ".join(result.configuration_names),
                    date=datetime.now().strftime(Constants.PUBLICATION_FORMAT))
        info.set("resolve-id", result.resolve_id)
        for index, extra in enumerate(result.extra_info):
            for key, value in extra.attributes:
                info.set(f"extra-{index}.{_local(key)}", value)
            if extra.text:
                info.set(f"extra-{index}.{extra.name}", extra.text)

    @staticmethod
    def _modules(report: ConfigurationResolveReport) -> Dict[ModuleId, List[ModuleRevisionId]]:
        grouped: Dict[ModuleId, List[ModuleRevisionId]] = {}
        for module in report.modules:
            grouped.setdefault(module.id.module_id, []).append(module.id)
        for evicted in report.evicted:
            grouped.setdefault(evicted.module_revision_id.module_id, []).append(evicted.module_revision_id)
        return grouped

    def _revision(self, parent: ET.Element, report: ConfigurationResolveReport, mrid: ModuleRevisionId) -> None:
        module = report.get_module(mrid)
        evicted = next((e for e in report.evicted if e.module_revision_id == mrid), None)
        elem = _set(ET.SubElement(parent, "revision"), name=mrid.revision, branch=mrid.branch)
        if module is not None:
            md = module.descriptor
            _set(elem, status=md.status, pubdate=_date(module.publication_date),
                 resolver=module.resolver_name, default=str(md.default).lower())
            if mrid in report.sorted_modules:
                elem.set("position", str(report.sorted_modules.index(mrid)))
        if evicted is not None:
            elem.set("evicted", evicted.conflict_manager)
            for winner in evicted.evicted_by:
                _set(ET.SubElement(elem, "evicted-by"), rev=winner.revision)
        for caller in report.callers_of(mrid):
            _set(ET.SubElement(elem, "caller"), organisation=caller.organisation, name=caller.name,
                 callerrev=caller.revision)
        artifacts = ET.SubElement(elem, "artifacts")
        for adr in report.artifact_reports:
            if adr.artifact.module_revision_id == mrid or (
                    module is not None and adr.artifact.module_revision_id == module.descriptor.module_revision_id):
                self._artifact(artifacts, adr)

    @staticmethod
    def _artifact(parent: ET.Element, adr: ArtifactDownloadReport) -> None:
        artifact = adr.artifact
        elem = _set(ET.SubElement(parent, "artifact"), name=artifact.name, type=artifact.type,
                    ext=artifact.ext, status=adr.status.value, details=adr.message, size=adr.size)
        for key, value in artifact.extra_attributes:
            elem.set(f"extra-{key}", value)
        if adr.local_file:
            elem.set("location", adr.local_file)
            elem.set("is-local", str(adr.is_local).lower())
        if adr.origin:
            elem.set("origin-location", adr.origin)
