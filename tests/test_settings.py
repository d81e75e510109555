"""Tests for settings loading."""

import json
import os

import pytest

from common.errors import InputError
from constants import Constants
from resolver import BintrayResolver, ChainResolver, FileSystemResolver, MavenResolver
from settings import Settings, build_resolver, default_settings, load_settings

YAML_SETTINGS = """
cache_dir: ${settings.dir}/cache
conflict_manager: latest-revision
circular_strategy: error
download_workers: 2
default_resolver: main
resolvers:
  - name: local
    type: filesystem
    ivy_patterns:
      - ${settings.dir}/repo/[organisation]/[module]/ivy-[revision].xml
    artifact_patterns:
      - ${settings.dir}/repo/[organisation]/[module]/[artifact]-[revision].[ext]
  - name: jcenter
    type: bintray
  - name: main
    type: chain
    continue_on_error: true
    resolvers:
      - local
      - name: central
        type: maven
        root: https://mirror.example.org/maven2/
"""


class TestLoadSettings:
    def test_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv(Constants.ENV_CACHE_DIR, raising=False)
        path = tmp_path / "settings.yaml"
        path.write_text(YAML_SETTINGS, encoding="utf-8")

        settings = load_settings(str(path))

        assert settings.cache_dir == f"{tmp_path}/cache"
        assert settings.conflict_manager == "latest-revision"
        assert settings.circular_strategy == "error"
        assert settings.download_workers == 2
        main = settings.get_resolver()
        assert isinstance(main, ChainResolver)
        assert main.continue_on_error
        assert main.resolvers[0] is settings.get_resolver("local")
        assert isinstance(main.resolvers[1], MavenResolver)
        assert main.resolvers[1].root == "https://mirror.example.org/maven2/"
        local = settings.get_resolver("local")
        assert local.get_ivy_patterns() == [f"{tmp_path}/repo/[organisation]/[module]/ivy-[revision].xml"]
        assert settings.get_resolver("jcenter").name == "jcenter"

    def test_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({
            "use_origin": True,
            "resolvers": [{"type": "bintray", "subject": "jfrog", "repo": "jars"}],
        }), encoding="utf-8")

        settings = load_settings(str(path))

        assert settings.use_origin
        resolver = settings.get_resolver()
        assert isinstance(resolver, BintrayResolver)
        assert resolver.name == "bintray/jfrog/jars"

    def test_env_overrides_cache_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv(Constants.ENV_CACHE_DIR, str(tmp_path / "env-cache"))
        path = tmp_path / "settings.yaml"
        path.write_text("cache_dir: /somewhere/else\n", encoding="utf-8")
        assert load_settings(str(path)).cache_dir == str(tmp_path / "env-cache")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.resolvers == {}
        with pytest.raises(InputError):
            settings.get_resolver()

    @pytest.mark.parametrize("content", [
        "resolvers:\n  - name: x\n    type: gopher\n",
        "colour: blue\n",
        "conflict_manager: newest\n",
        "circular_strategy: panic\n",
        "download_workers: 0\n",
        "- just\n- a list\n",
        "key: [unclosed\n",
        "resolvers:\n  - name: c\n    type: chain\n    resolvers: [missing]\n",
        "default_resolver: nobody\n",
    ])
    def test_invalid(self, tmp_path, content):
        path = tmp_path / "settings.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(InputError):
            load_settings(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError):
            load_settings(str(tmp_path / "nope.yaml"))


class TestDefaults:
    def test_default_settings_use_maven_central(self, monkeypatch):
        monkeypatch.delenv(Constants.ENV_CACHE_DIR, raising=False)
        settings = default_settings()
        resolver = settings.get_resolver()
        assert resolver.name == "central"
        assert resolver.root == Constants.MAVEN_CENTRAL_ROOT
        assert settings.cache_dir == Constants.DEFAULT_CACHE_DIR
        assert settings.conflict_manager == "latest-time"
        assert settings.circular_strategy == "warn"

    def test_no_path_gives_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv(Constants.ENV_CACHE_DIR, str(tmp_path))
        assert load_settings().cache_dir == str(tmp_path)

    def test_artifact_cache_is_shared(self, tmp_path):
        settings = Settings(cache_dir=str(tmp_path), use_origin=True)
        assert settings.artifact_cache is settings.artifact_cache
        assert settings.artifact_cache.use_origin
        assert settings.artifact_cache.root == os.path.abspath(str(tmp_path))

    def test_first_resolver_becomes_default(self, tmp_path):
        settings = Settings(cache_dir=str(tmp_path))
        first = settings.add_resolver(FileSystemResolver("a"))
        settings.add_resolver(FileSystemResolver("b"))
        assert settings.get_resolver() is first
        settings.add_resolver(FileSystemResolver("c"), default=True)
        assert settings.get_resolver().name == "c"

    def test_build_resolver_requires_name(self):
        with pytest.raises(InputError):
            build_resolver({"type": "filesystem"}, Settings())
