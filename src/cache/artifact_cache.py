"""Local artifact cache.

Directory structure (default pattern):
    {root}/
        {organisation}/{module}/[{branch}/]{type}s/
            {artifact}-{revision}.{ext}
            {artifact}-{revision}-unpacked/     (packaged artifacts only)
            .{artifact}-{revision}.{ext}.lck    (lock files, kept so waiters share one inode)

Paths are a pure function of the artifact identity so a later run finds the
files of an earlier one. Writes go to a temp file in the target directory and
are renamed into place; readers never observe a partial file.

Thread/process safety:
- one in-flight fetch per artifact identity per process (lock map keyed by path)
- advisory file lock (fcntl on POSIX, msvcrt on Windows) across processes
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
import warnings
import zipfile
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Optional, Union

try:
    import fcntl  # POSIX systems

    HAVE_FCNTL = True
except ImportError:
    HAVE_FCNTL = False

try:
    import msvcrt  # Windows

    HAVE_MSVCRT = True
except ImportError:
    HAVE_MSVCRT = False

from constants import Constants
from common.errors import CacheError
from common.logging_utils import extra_context, is_debug_enabled
from module import Artifact
from resolver.patterns import substitute

logger = logging.getLogger(__name__)

UNPACKABLE = {"zip", "jar"}

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _process_lock(key: str) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.Lock()
        return lock


class _FileLock:
    """Cross-platform exclusive file lock context manager."""

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        self.lock_file = None

    def __enter__(self):
        try:
            os.makedirs(os.path.dirname(self.lock_path), exist_ok=True)
            self.lock_file = open(self.lock_path, "w", encoding="utf-8")  # pylint: disable=consider-using-with
            if HAVE_FCNTL:
                fcntl.flock(self.lock_file.fileno(), fcntl.LOCK_EX)
            elif HAVE_MSVCRT:
                msvcrt.locking(self.lock_file.fileno(), msvcrt.LK_LOCK, 1)
            else:
                warnings.warn("File locking not available on this platform", stacklevel=2)
        except OSError as exc:
            if self.lock_file:
                self.lock_file.close()
            raise CacheError(f"cannot lock {self.lock_path}: {exc}") from exc
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        if self.lock_file:
            if HAVE_FCNTL:
                fcntl.flock(self.lock_file.fileno(), fcntl.LOCK_UN)
            elif HAVE_MSVCRT:
                msvcrt.locking(self.lock_file.fileno(), msvcrt.LK_UNLCK, 1)
            self.lock_file.close()


class ArtifactCache:
    """Content-location-addressed store of downloaded artifacts."""

    def __init__(self, root: str, pattern: str = Constants.CACHE_ARTIFACT_PATTERN,
                 use_origin: bool = False):
        """Initialize the cache.

        Args:
            root: Cache base directory, created on demand.
            pattern: Layout of artifact files below ``root``.
            use_origin: Report local repository files in place instead of copying them.
        """
        self.root = os.path.abspath(root)
        self.pattern = pattern
        self.use_origin = use_origin

    def locate(self, artifact: Artifact) -> str:
        """Canonical cache path of ``artifact``."""
        relative = substitute(self.pattern, artifact.tokens())
        return os.path.join(self.root, *relative.split("/"))

    def locate_unpacked(self, artifact: Artifact) -> str:
        base, _ = os.path.splitext(self.locate(artifact))
        return base + Constants.CACHE_UNPACKED_SUFFIX

    def is_cached(self, artifact: Artifact) -> bool:
        return os.path.isfile(self.locate(artifact))

    @staticmethod
    def needs_unpack(artifact: Artifact) -> bool:
        return artifact.attributes.get("packaging") in UNPACKABLE

    @contextmanager
    def lock(self, artifact: Artifact) -> Iterator[None]:
        """Hold the per-artifact lock; a second caller waits and then sees the cache hit."""
        path = self.locate(artifact)
        directory, name = os.path.split(path)
        with _process_lock(path):
            with _FileLock(os.path.join(directory, f".{name}.lck")):
                yield

    def store(self, artifact: Artifact, source: Union[bytes, Iterable[bytes]]) -> str:
        """Atomically write ``source`` at the artifact's canonical path.

        Errors raised while reading ``source`` propagate unchanged after the
        temp file is removed; local I/O failures raise CacheError.
        """
        path = self.locate(artifact)
        directory = os.path.dirname(path)
        chunks = [source] if isinstance(source, bytes) else source
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".part")
        except OSError as exc:
            raise CacheError(f"cannot write to cache directory {directory}: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as out:
                for chunk in chunks:
                    out.write(chunk)
            os.replace(tmp_path, path)
        except OSError as exc:
            self._discard(tmp_path)
            raise CacheError(f"cannot store {artifact} at {path}: {exc}") from exc
        except BaseException:
            self._discard(tmp_path)
            raise
        if is_debug_enabled(logger):
            logger.debug(
                "Stored artifact",
                extra=extra_context(event="cache_store", component="cache", target=path,
                                    artifact=str(artifact))
            )
        if self.needs_unpack(artifact):
            self.unpack(artifact)
        return path

    def unpack(self, artifact: Artifact) -> Optional[str]:
        """Extract a packaged artifact next to it; returns the directory, None if not an archive."""
        archive = self.locate(artifact)
        target = self.locate_unpacked(artifact)
        if os.path.isdir(target):
            return target
        if not zipfile.is_zipfile(archive):
            logger.warning("Artifact %s is marked as packaged but is not an archive", artifact)
            return None
        tmp_dir = None
        try:
            tmp_dir = tempfile.mkdtemp(dir=os.path.dirname(archive), prefix=".unpack-")
            with zipfile.ZipFile(archive) as zf:
                for member in zf.namelist():
                    dest = os.path.realpath(os.path.join(tmp_dir, member))
                    if not dest.startswith(os.path.realpath(tmp_dir) + os.sep) and dest != os.path.realpath(tmp_dir):
                        raise CacheError(f"refusing to unpack {member!r} outside {target}")
                zf.extractall(tmp_dir)
            os.replace(tmp_dir, target)
            tmp_dir = None
        except (OSError, zipfile.BadZipFile) as exc:
            raise CacheError(f"cannot unpack {archive}: {exc}") from exc
        finally:
            if tmp_dir and os.path.isdir(tmp_dir):
                shutil.rmtree(tmp_dir, ignore_errors=True)
        return target

    def clean(self) -> None:
        """Delete the whole cache tree."""
        logger.info("Cleaning cache %s", self.root)
        try:
            if os.path.isdir(self.root):
                shutil.rmtree(self.root)
        except OSError as exc:
            raise CacheError(f"cannot clean cache {self.root}: {exc}") from exc

    @staticmethod
    def _discard(tmp_path: str) -> None:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
