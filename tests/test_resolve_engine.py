"""End-to-end resolution over an on-disk repository."""

import logging
from unittest.mock import MagicMock

import pytest

from conftest import root_descriptor
from common.context import ResolveContext
from common.errors import CycleError, InputError, ResolutionError
from constants import DownloadStatus
from engine import ResolveEngine, ResolveOptions
from module import Artifact, ModuleRevisionId
from resolver import DependencyResolver
from settings import Settings


def dep(org, name, rev, **kwargs):
    return dict(org=org, name=name, rev=rev, **kwargs)


def mrid(org, name, rev):
    return ModuleRevisionId(org, name, rev)


def resolve(settings, root, **options):
    return ResolveEngine(settings).resolve(root, ResolveOptions(**options))


class TestBasicResolution:
    def test_single_dependency_lands_in_cache(self, repo, settings):
        repo.publish("org1", "mod1.2", "2.0")
        root = root_descriptor(deps=[dep("org1", "mod1.2", "2.0")])

        result = resolve(settings, root, confs=["default"])

        report = result.get_configuration_report("default")
        assert len(report.artifact_reports) == 1
        adr = report.artifact_reports[0]
        assert adr.status == DownloadStatus.SUCCESSFUL
        expected = Artifact(mrid("org1", "mod1.2", "2.0"), "mod1.2", "jar", "jar")
        assert adr.local_file == settings.artifact_cache.locate(expected)
        assert not result.has_error

    def test_conf_mapping_to_nothing_yields_no_artifacts(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0", conf="compile->default")],
                               confs=["compile", "empty"])

        result = resolve(settings, root, confs=["empty"])

        report = result.get_configuration_report("empty")
        assert report.artifact_reports == ()
        assert report.modules == ()
        assert not result.has_error

    def test_second_resolve_finds_cached_files(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])
        resolve(settings, root)
        again = resolve(settings, root)
        assert [r.status for r in again.artifact_reports] == [DownloadStatus.NO]

    def test_resolve_id_and_extra_info(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")],
                               extra_info=[("build", {"number": "7"})])
        result = resolve(settings, root, resolve_id="my-build")
        assert result.resolve_id == "my-build"
        assert result.extra_info[0].name == "build"

    def test_download_disabled(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])
        result = resolve(settings, root, download=False)
        adr = result.artifact_reports[0]
        assert adr.status == DownloadStatus.NO
        assert adr.message == "download skipped"
        assert not settings.artifact_cache.is_cached(adr.artifact)


class TestCallerContext:
    def test_trace_recorded_on_supplied_context(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        context = ResolveContext(settings=settings, resolve_id="ctx-1")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        result = ResolveEngine(settings).resolve(root, ResolveOptions(), context=context)

        assert result.resolve_id == "ctx-1"
        assert len(context.trace) > 0
        assert result.trace == context.trace.entries()

    def test_other_resolve_id_gets_child_context(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        logger = logging.getLogger("depresolve.test")
        context = ResolveContext(settings=settings, resolve_id="outer", logger=logger)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        result = ResolveEngine(settings).resolve(root, ResolveOptions(resolve_id="inner"), context=context)

        assert result.resolve_id == "inner"
        assert result.trace
        assert len(context.trace) == 0

    def test_child_shares_settings_and_logger(self, settings):
        logger = logging.getLogger("depresolve.test")
        parent = ResolveContext(settings=settings, resolve_id="outer", logger=logger)
        parent.trying("/somewhere", "local")

        child = parent.child("inner")

        assert child.settings is settings
        assert child.logger is logger
        assert child.resolve_id == "inner"
        assert len(child.trace) == 0
        assert parent.child().resolve_id == "outer"


class TestTransitiveResolution:
    def test_transitive_modules_sorted_dependencies_first(self, repo, settings):
        repo.publish("org1", "mod1", "1.0", deps=[dep("org2", "mod2", "1.0")])
        repo.publish("org2", "mod2", "1.0", deps=[dep("org3", "mod3", "1.0")])
        repo.publish("org3", "mod3", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        report = resolve(settings, root).get_configuration_report("default")

        assert report.module_ids == (mrid("org3", "mod3", "1.0"), mrid("org2", "mod2", "1.0"),
                                     mrid("org1", "mod1", "1.0"))
        assert report.callers_of(mrid("org2", "mod2", "1.0")) == (mrid("org1", "mod1", "1.0"),)
        assert len(report.artifact_reports) == 3

    def test_non_transitive_option(self, repo, settings):
        repo.publish("org1", "mod1", "1.0", deps=[dep("org2", "mod2", "1.0")])
        repo.publish("org2", "mod2", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        report = resolve(settings, root, transitive=False).get_configuration_report("default")

        assert report.module_ids == (mrid("org1", "mod1", "1.0"),)

    def test_non_transitive_dependency(self, repo, settings):
        repo.publish("org1", "mod1", "1.0", deps=[dep("org2", "mod2", "1.0")])
        repo.publish("org2", "mod2", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0", transitive="false")])

        report = resolve(settings, root).get_configuration_report("default")

        assert report.module_ids == (mrid("org1", "mod1", "1.0"),)

    def test_dynamic_revision(self, repo, settings):
        for rev in ("1.0", "1.2", "2.0"):
            repo.publish("org1", "mod1", rev)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.+")])
        report = resolve(settings, root).get_configuration_report("default")
        assert report.module_ids == (mrid("org1", "mod1", "1.2"),)

    def test_configurations_walked_separately(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        repo.publish("org2", "mod2", "1.0")
        root = root_descriptor(
            deps=[dep("org1", "mod1", "1.0", conf="compile->default"),
                  dep("org2", "mod2", "1.0", conf="runtime->default")],
            confs=["compile", ("runtime", "compile")],
        )

        result = resolve(settings, root)

        assert result.configuration_names == ["compile", "runtime"]
        assert result.get_configuration_report("compile").module_ids == (mrid("org1", "mod1", "1.0"),)
        assert set(result.get_configuration_report("runtime").module_ids) == {
            mrid("org1", "mod1", "1.0"), mrid("org2", "mod2", "1.0")}
        ivy = repo.pattern("org1/mod1/ivys/ivy-1.0.xml")
        assert result.trace_messages().count(f"trying {ivy}") == 1


class TestConflicts:
    def _publish(self, repo):
        repo.publish("org1", "mod1", "1.0", publication="20200101000000")
        repo.publish("org1", "mod1", "2.0", publication="20210101000000")
        repo.publish("org2", "mod2", "1.0", deps=[dep("org1", "mod1", "2.0")])

    def test_latest_time_evicts_older(self, repo, settings):
        self._publish(repo)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0"), dep("org2", "mod2", "1.0")])

        report = resolve(settings, root).get_configuration_report("default")

        assert mrid("org1", "mod1", "2.0") in report.module_ids
        assert mrid("org1", "mod1", "1.0") not in report.module_ids
        evicted = report.evicted[0]
        assert evicted.module_revision_id == mrid("org1", "mod1", "1.0")
        assert evicted.evicted_by == (mrid("org1", "mod1", "2.0"),)
        assert evicted.conflict_manager == "latest-time"
        names = {(a.artifact.module_revision_id.revision, a.artifact.name) for a in report.artifact_reports}
        assert ("1.0", "mod1") not in names

    def test_forced_dependency_wins(self, repo, settings):
        self._publish(repo)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0", force="true"), dep("org2", "mod2", "1.0")])

        report = resolve(settings, root).get_configuration_report("default")

        assert mrid("org1", "mod1", "1.0") in report.module_ids
        assert report.evicted_ids == (mrid("org1", "mod1", "2.0"),)

    def test_winner_evicted_in_a_later_round(self, repo, settings):
        # c 2.0 beats c 1.0 first; only then does c 2.0 runtime pull in c 3.0
        c_confs = ["default", "runtime"]
        repo.publish("org", "c", "1.0", confs=c_confs, publication="20200101000000")
        repo.publish("org", "c", "2.0", confs=c_confs, publication="20210101000000",
                     deps=[dep("org", "e", "1.0", conf="runtime->default")])
        repo.publish("org", "c", "3.0", confs=c_confs, publication="20220101000000")
        repo.publish("org", "e", "1.0", deps=[dep("org", "c", "3.0")])
        repo.publish("org", "a", "1.0", deps=[dep("org", "c", "1.0", conf="default->runtime")])
        repo.publish("org", "b", "1.0", deps=[dep("org", "c", "2.0", conf="default->default")])
        root = root_descriptor(deps=[dep("org", "a", "1.0"), dep("org", "b", "1.0")])

        report = resolve(settings, root).get_configuration_report("default")

        c_kept = [m for m in report.module_ids if m.name == "c"]
        assert c_kept == [mrid("org", "c", "3.0")]
        assert set(report.evicted_ids) == {mrid("org", "c", "1.0"), mrid("org", "c", "2.0")}
        assert not set(report.evicted_ids) & set(report.module_ids)
        assert {e.evicted_by for e in report.evicted} == {(mrid("org", "c", "3.0"),)}
        c_revisions = {a.artifact.module_revision_id.revision for a in report.artifact_reports
                       if a.artifact.module_revision_id.name == "c"}
        assert c_revisions == {"3.0"}

    def test_all_keeps_both(self, repo, settings):
        self._publish(repo)
        settings.conflict_manager = "all"
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0"), dep("org2", "mod2", "1.0")])
        report = resolve(settings, root).get_configuration_report("default")
        assert {mrid("org1", "mod1", "1.0"), mrid("org1", "mod1", "2.0")} <= set(report.module_ids)
        assert report.evicted == ()


class TestCycles:
    def _publish_cycle(self, repo):
        repo.publish("org1", "mod1", "1.0", deps=[dep("org2", "mod2", "1.0")])
        repo.publish("org2", "mod2", "1.0", deps=[dep("org1", "mod1", "1.0")])

    def test_cycle_reported_once(self, repo, settings):
        self._publish_cycle(repo)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        result = resolve(settings, root)

        assert len(result.cycles) == 1
        assert set(result.cycles[0]) == {mrid("org1", "mod1", "1.0"), mrid("org2", "mod2", "1.0")}
        assert len(result.get_configuration_report("default").modules) == 2

    def test_error_strategy_raises(self, repo, cache_dir):
        self._publish_cycle(repo)
        settings = Settings(cache_dir=cache_dir, circular_strategy="error")
        settings.add_resolver(repo.resolver())
        with pytest.raises(CycleError):
            resolve(settings, root_descriptor(deps=[dep("org1", "mod1", "1.0")]))


class TestFailures:
    def test_unresolved_dependency_halts(self, repo, settings):
        root = root_descriptor(deps=[dep("org1", "ghost", "1.0")])
        with pytest.raises(ResolutionError) as info:
            resolve(settings, root, halt_on_failure=True)
        assert info.value.result is not None
        assert any("ghost" in p for p in info.value.problems)

    def test_unresolved_dependency_does_not_halt_by_default(self, settings):
        root = root_descriptor(deps=[dep("org1", "ghost", "1.0")])

        result = ResolveEngine(settings).resolve(root, ResolveOptions())

        assert [u.requested for u in result.unresolved_dependencies] == [mrid("org1", "ghost", "1.0")]
        assert result.has_error

    def test_unresolved_dependency_recorded_without_halt(self, repo, settings):
        repo.publish("org1", "mod1", "1.0", deps=[dep("org1", "ghost", "1.0")])
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        result = resolve(settings, root, halt_on_failure=False)

        unresolved = result.unresolved_dependencies
        assert [u.requested for u in unresolved] == [mrid("org1", "ghost", "1.0")]
        assert unresolved[0].callers == (mrid("org1", "mod1", "1.0"),)
        assert result.has_error
        assert result.get_configuration_report("default").module_ids == (mrid("org1", "mod1", "1.0"),)

    def test_missing_artifact_file_is_failed_download(self, repo, settings):
        repo.publish("org1", "mod1", "1.0", write_files=False)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        result = resolve(settings, root, halt_on_failure=False)

        assert [r.artifact.name for r in result.failed_artifact_reports] == ["mod1"]

    def test_unknown_configuration_rejected_before_lookup(self, settings):
        resolver = MagicMock(spec=DependencyResolver)
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])
        with pytest.raises(InputError):
            ResolveEngine(settings, resolver=resolver).resolve(root, ResolveOptions(confs=["nope"]))
        resolver.get_dependency.assert_not_called()

    def test_malformed_root_constraint_rejected(self, settings):
        root = root_descriptor(deps=[dep("org1", "mod1", "[2.0,1.0]")])
        with pytest.raises(InputError):
            resolve(settings, root)

    def test_malformed_transitive_constraint_is_a_problem(self, repo, settings):
        repo.publish("org1", "mod1", "1.0", deps=[dep("org2", "mod2", "latest.nightly")])
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0")])

        result = resolve(settings, root, halt_on_failure=False)

        assert any("latest.nightly" in p for p in result.problems)

    def test_missing_dependency_configuration(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0", conf="default->nope")])

        result = resolve(settings, root, halt_on_failure=False)

        assert any("configuration not found: 'nope'" in p for p in result.problems)
        assert result.has_error

    def test_fallback_configuration(self, repo, settings):
        repo.publish("org1", "mod1", "1.0")
        root = root_descriptor(deps=[dep("org1", "mod1", "1.0", conf="default->nope(default)")])
        result = resolve(settings, root)
        assert not result.problems
        assert len(result.artifact_reports) == 1
