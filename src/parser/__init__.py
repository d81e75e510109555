"""Module metadata parsers."""

from datetime import datetime
from typing import Optional, Union

from module import ModuleDescriptor

from .ivy_xml import parse_ivy_xml, parse_publication
from .pom import is_pom, parse_pom


def parse_descriptor(data: Union[bytes, str], source: str = "<memory>",
                     publication_date: Optional[datetime] = None) -> ModuleDescriptor:
    """Parse metadata, picking the POM or Ivy parser from the location or content."""
    if source.endswith(".pom") or is_pom(data):
        return parse_pom(data, source, publication_date)
    return parse_ivy_xml(data, source, publication_date)


def load_descriptor(path: str) -> ModuleDescriptor:
    """Read a descriptor file from disk."""
    with open(path, "rb") as fh:
        return parse_descriptor(fh.read(), path)


__all__ = ["parse_descriptor", "load_descriptor", "parse_ivy_xml", "parse_pom", "parse_publication"]
