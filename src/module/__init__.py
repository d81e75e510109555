"""Module metadata model."""

from .ids import ModuleId, ModuleRevisionId
from .descriptor import (
    Artifact,
    ArtifactRule,
    Configuration,
    DependencyArtifact,
    DependencyDescriptor,
    ExtraInfo,
    ModuleDescriptor,
    freeze_attributes,
    parse_conf_mapping,
)

__all__ = [
    "ModuleId",
    "ModuleRevisionId",
    "Artifact",
    "ArtifactRule",
    "Configuration",
    "DependencyArtifact",
    "DependencyDescriptor",
    "ExtraInfo",
    "ModuleDescriptor",
    "freeze_attributes",
    "parse_conf_mapping",
]
