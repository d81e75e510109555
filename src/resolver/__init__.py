"""Resolvers: where module metadata and artifacts come from."""

from .base import DependencyResolver, DownloadOptions, ResolveData
from .bintray import BintrayResolver
from .chain import ChainResolver
from .pattern_resolver import FileSystemResolver, MavenResolver, RepositoryResolver, URLResolver

__all__ = [
    "DependencyResolver",
    "DownloadOptions",
    "ResolveData",
    "BintrayResolver",
    "ChainResolver",
    "FileSystemResolver",
    "MavenResolver",
    "RepositoryResolver",
    "URLResolver",
]
