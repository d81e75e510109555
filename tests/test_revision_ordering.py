"""Tests for revision ordering."""

import pytest

from versioning.ordering import compare_revisions, sort_revisions


class TestCompareRevisions:
    @pytest.mark.parametrize("lower,higher", [
        ("1.0", "1.1"),
        ("1.9", "1.10"),
        ("1.0-rc1", "1.0"),
        ("1.0-dev", "1.0-rc1"),
        ("1.0", "1.0.1"),
        ("1.0-alpha", "1.0-1"),
        ("1.0-SNAPSHOT", "1.0.1"),
        ("1.0-rc-1", "1.0-final"),
    ])
    def test_orders(self, lower, higher):
        assert compare_revisions(lower, higher) == -1
        assert compare_revisions(higher, lower) == 1

    def test_identical_revisions_are_equal(self):
        assert compare_revisions("2.3.1", "2.3.1") == 0

    def test_distinct_strings_are_never_equal(self):
        """Ordering stays total for equal-ranked strings."""
        assert compare_revisions("1.0", "1.0.0") != 0
        assert compare_revisions("1.0", "1.0.0") == -compare_revisions("1.0.0", "1.0")


class TestSortRevisions:
    def test_sorts_ascending(self):
        assert sort_revisions(["1.10", "1.2", "1.0-rc1", "1.0"]) == ["1.0-rc1", "1.0", "1.2", "1.10"]

    def test_sorts_descending(self):
        assert sort_revisions(["1", "3", "2"], reverse=True) == ["3", "2", "1"]
