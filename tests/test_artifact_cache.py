"""Tests for the local artifact cache."""

import io
import os
import threading
import zipfile

import pytest

from cache.artifact_cache import ArtifactCache
from common.errors import CacheError, TransportError
from module import Artifact, ModuleRevisionId, freeze_attributes


def _artifact(name="mod1", rev="1.0", branch=None, ext="jar", extra=None):
    mrid = ModuleRevisionId("org1", name, rev, branch)
    return Artifact(mrid, name, ext, ext, freeze_attributes(extra))


def _zip_bytes(files):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture
def cache(tmp_path):
    return ArtifactCache(str(tmp_path / "cache"))


class TestLocate:
    def test_path_is_pure_function_of_identity(self, cache, tmp_path):
        path = cache.locate(_artifact())
        assert path == os.path.join(str(tmp_path / "cache"), "org1", "mod1", "jars", "mod1-1.0.jar")
        assert ArtifactCache(str(tmp_path / "cache")).locate(_artifact()) == path

    def test_branch_adds_directory(self, cache):
        path = cache.locate(_artifact(branch="trunk"))
        assert os.path.join("mod1", "trunk", "jars") in path

    def test_custom_pattern(self, tmp_path):
        cache = ArtifactCache(str(tmp_path), pattern="[module]/[artifact].[ext]")
        assert cache.locate(_artifact()) == os.path.join(str(tmp_path), "mod1", "mod1.jar")


class TestStore:
    def test_store_bytes(self, cache):
        artifact = _artifact()
        path = cache.store(artifact, b"content")
        assert cache.is_cached(artifact)
        with open(path, "rb") as fh:
            assert fh.read() == b"content"

    def test_store_chunks(self, cache):
        path = cache.store(_artifact(), iter([b"a", b"b", b"c"]))
        with open(path, "rb") as fh:
            assert fh.read() == b"abc"

    def test_interrupted_source_leaves_nothing(self, cache):
        artifact = _artifact()

        def chunks():
            yield b"partial"
            raise TransportError("connection reset")

        with pytest.raises(TransportError):
            cache.store(artifact, chunks())
        assert not cache.is_cached(artifact)
        assert os.listdir(os.path.dirname(cache.locate(artifact))) == []

    def test_unwritable_root_raises_cache_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        cache = ArtifactCache(str(blocker))
        with pytest.raises(CacheError):
            cache.store(_artifact(), b"x")


class TestUnpack:
    def test_packaged_artifact_is_extracted(self, cache):
        artifact = _artifact(ext="zip", extra={"packaging": "zip"})
        cache.store(artifact, _zip_bytes({"lib/a.txt": "A"}))
        target = cache.locate_unpacked(artifact)
        with open(os.path.join(target, "lib", "a.txt"), encoding="utf-8") as fh:
            assert fh.read() == "A"

    def test_plain_artifact_is_not_extracted(self, cache):
        artifact = _artifact(ext="zip")
        cache.store(artifact, _zip_bytes({"a.txt": "A"}))
        assert not os.path.exists(cache.locate_unpacked(artifact))

    def test_non_archive_is_left_alone(self, cache):
        artifact = _artifact(ext="zip", extra={"packaging": "zip"})
        cache.store(artifact, b"not a zip")
        assert cache.unpack(artifact) is None

    def test_entries_outside_target_are_refused(self, cache):
        artifact = _artifact(ext="zip", extra={"packaging": "zip"})
        with pytest.raises(CacheError):
            cache.store(artifact, _zip_bytes({"../evil.txt": "x"}))


class TestLockAndClean:
    def test_lock_serialises_same_artifact(self, cache):
        artifact = _artifact()
        inside = []
        overlap = []

        def worker():
            with cache.lock(artifact):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(True)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert not overlap

    def test_clean_removes_everything(self, cache):
        cache.store(_artifact(), b"x")
        cache.clean()
        assert not os.path.exists(cache.root)

    def test_clean_on_missing_root(self, tmp_path):
        ArtifactCache(str(tmp_path / "nothing")).clean()
