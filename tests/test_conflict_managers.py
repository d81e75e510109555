"""Tests for conflict managers."""

from datetime import datetime

import pytest

from common.errors import ConflictError, InputError
from engine import get_conflict_manager
from module import ModuleDescriptor, ModuleRevisionId
from report.models import ResolvedModuleRevision


def _rmr(rev, published=None):
    mrid = ModuleRevisionId("org1", "mod1", rev)
    return ResolvedModuleRevision(mrid, ModuleDescriptor(mrid), published)


class TestLatestRevision:
    def test_highest_revision_wins(self):
        outcome = get_conflict_manager("latest-revision").resolve_conflicts([_rmr("1.9"), _rmr("1.10")])
        assert [c.id.revision for c in outcome.selected] == ["1.10"]
        assert [c.id.revision for c in outcome.evicted] == ["1.9"]


class TestLatestTime:
    def test_latest_publication_wins(self):
        old = _rmr("2.0", datetime(2020, 1, 1))
        new = _rmr("1.0", datetime(2021, 1, 1))
        outcome = get_conflict_manager("latest-time").resolve_conflicts([old, new])
        assert outcome.selected == (new,)
        assert outcome.evicted == (old,)

    def test_undated_falls_back_to_revision(self):
        outcome = get_conflict_manager().resolve_conflicts([_rmr("1.0"), _rmr("1.1")])
        assert outcome.selected[0].id.revision == "1.1"

    def test_forced_revision_beats_strategy(self):
        forced = _rmr("1.0", datetime(2019, 1, 1))
        newer = _rmr("2.0", datetime(2021, 1, 1))
        outcome = get_conflict_manager("latest-time").resolve_conflicts([forced, newer], forced={forced.id})
        assert outcome.selected == (forced,)


class TestAllAndStrict:
    def test_all_keeps_everything(self):
        outcome = get_conflict_manager("all").resolve_conflicts([_rmr("1.0"), _rmr("2.0")])
        assert len(outcome.selected) == 2
        assert outcome.evicted == ()

    def test_strict_raises(self):
        with pytest.raises(ConflictError) as info:
            get_conflict_manager("strict").resolve_conflicts([_rmr("1.0"), _rmr("2.0")])
        assert info.value.problems

    def test_strict_accepts_forced(self):
        forced = _rmr("1.0")
        outcome = get_conflict_manager("strict").resolve_conflicts([forced, _rmr("2.0")], forced={forced.id})
        assert outcome.selected == (forced,)


class TestConflictManagerLookup:
    def test_duplicates_are_not_a_conflict(self):
        outcome = get_conflict_manager("strict").resolve_conflicts([_rmr("1.0"), _rmr("1.0")])
        assert len(outcome.selected) == 1

    def test_unknown_name(self):
        with pytest.raises(InputError):
            get_conflict_manager("newest")
