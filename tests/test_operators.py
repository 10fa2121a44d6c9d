"""
Unit tests for the Pipe operators.

Tests cover:
- Record-wise steps: flat_map, map, filter, project, discard, rename, tap
- Unique and Limit
- GroupBy / GroupAll aggregation and SortWithTake
- BroadcastJoin
"""

import random

import pytest

from tuplepipe.config import JobConfig
from tuplepipe.dsl import Context, Count, Field, Pipe, Sum
from tuplepipe.exceptions import InvalidArgument, JoinMemoryPrecondition, SchemaMismatch


def rows(pipe, ctx=None):
    return [r.values for r in pipe.run(ctx).unwrap()]


# =============================================================================
# Record-wise Steps
# =============================================================================

class TestRecordSteps:
    """Test steps that look at one record at a time."""

    def test_flat_map_appends_fields(self):
        pipe = Pipe.from_records(["id", "text"], [(1, "a b"), (2, "c")])
        out = pipe.flat_map("text", "word", str.split)
        assert out.schema.names == ("id", "text", "word")
        assert rows(out) == [(1, "a b", "a"), (1, "a b", "b"), (2, "c", "c")]

    def test_flat_map_zero_results_drop_record(self):
        pipe = Pipe.from_records(["text"], [("keep",), ("",)])
        assert rows(pipe.flat_map("text", "word", str.split)) == [("keep", "keep")]

    def test_flat_map_multiple_output_fields(self):
        pipe = Pipe.from_records(["n"], [(2,)])
        out = pipe.flat_map("n", ["i", Field("sq", "int")], lambda n: [(i, i * i) for i in range(n)])
        assert rows(out) == [(2, 0, 0), (2, 1, 1)]

    def test_flat_map_arity_mismatch_is_err(self):
        pipe = Pipe.from_records(["n"], [(2,)]).flat_map("n", ["a", "b"], lambda n: [(n,)])
        result = pipe.run()
        assert result.is_err()
        assert result.error.step == "flat_map"
        assert isinstance(result.error.cause, SchemaMismatch)

    def test_flat_map_output_clash_fails_at_construction(self):
        with pytest.raises(SchemaMismatch):
            Pipe.from_records(["a"], [(1,)]).flat_map("a", "a", lambda a: [a])

    def test_map(self, people):
        out = people.map("age", Field("decade", "int"), lambda age: age // 10)
        assert [r["decade"] for r in out.run().unwrap()] == [3, 2, 4, 2, 3]

    def test_filter(self, people):
        out = people.filter("city", lambda city: city == "rome")
        assert [r["name"] for r in out.run().unwrap()] == ["bob", "eve"]
        assert out.schema == people.schema

    def test_filter_unknown_field_fails_at_construction(self, people):
        with pytest.raises(SchemaMismatch) as exc_info:
            people.filter("salary", lambda s: s > 0)
        assert exc_info.value.operator == "filter"

    def test_project_and_discard(self, people):
        assert people.project("age", "name").schema.names == ("age", "name")
        assert people.project(["age", "name"]).schema.names == ("age", "name")
        assert rows(people.discard("city").limit(1)) == [("ann", 31)]

    def test_project_unknown_field(self, people):
        with pytest.raises(SchemaMismatch):
            people.project("salary")

    def test_rename(self, people):
        out = people.rename(city="town")
        assert out.schema.names == ("name", "town", "age")
        assert out.run().unwrap()[0]["town"] == "paris"

    def test_tap_sees_every_record(self, people):
        seen = []
        assert len(people.tap(seen.append).run().unwrap()) == 5
        assert [r["name"] for r in seen] == ["ann", "bob", "cid", "dan", "eve"]

    def test_building_performs_no_work(self):
        calls = []
        pipe = Pipe.from_records(["a"], [(1,)]).map("a", "b", lambda a: calls.append(a) or a)
        assert calls == []
        pipe.run()
        assert calls == [1]


# =============================================================================
# Unique / Limit
# =============================================================================

class TestUniqueLimit:
    """Test deduplication and truncation."""

    def test_unique_first_occurrence_wins(self, people):
        out = people.unique("city")
        assert rows(out.project("city", "name")) == [("paris", "ann"), ("rome", "bob"), ("oslo", "dan")]
        assert out.schema == people.schema

    def test_unique_is_idempotent(self, people):
        once = rows(people.unique("age"))
        assert rows(people.unique("age").unique("age")) == once

    def test_unique_multiple_fields(self):
        pipe = Pipe.from_records(["a", "b"], [(1, 1), (1, 2), (1, 1), (2, 1)])
        assert rows(pipe.unique("a", "b")) == [(1, 1), (1, 2), (2, 1)]

    @pytest.mark.parametrize("n,expected", [(0, 0), (3, 3), (5, 5), (9, 5)])
    def test_limit_is_min_of_n_and_length(self, people, n, expected):
        out = rows(people.limit(n))
        assert len(out) == expected
        assert out == rows(people)[:expected]

    def test_negative_limit_rejected(self, people):
        with pytest.raises(InvalidArgument):
            people.limit(-1)


# =============================================================================
# GroupBy / SortWithTake
# =============================================================================

class TestGrouping:
    """Test group_by/group_all aggregation and sort_with_take."""

    def test_group_by_count_first_seen_order(self, people):
        out = people.group_by("city").count("n")
        assert out.schema.names == ("city", "n")
        assert rows(out) == [("paris", 2), ("rome", 2), ("oslo", 1)]

    def test_group_by_sum_and_count(self, people):
        out = people.group_by("city").aggregate(Count(), Sum("age", "total"))
        assert rows(out) == [("paris", 2, 71), ("rome", 2, 60), ("oslo", 1, 25)]

    def test_group_all_count(self, people):
        assert rows(people.group_all().count()) == [(5,)]

    def test_group_all_count_on_empty_input(self):
        assert rows(Pipe.from_records(["a"], []).group_all().count()) == [(0,)]

    def test_group_by_unknown_key(self, people):
        with pytest.raises(SchemaMismatch):
            people.group_by("country")

    def test_aggregate_needs_aggregators(self, people):
        with pytest.raises(InvalidArgument):
            people.group_by("city").aggregate()

    def test_sort_with_take_per_group(self, people):
        out = people.group_by("city").sort_with_take(("age", "name"), 1)
        assert out.schema.names == ("city", "age", "name")
        assert rows(out) == [("paris", 31, "ann"), ("rome", 25, "bob"), ("oslo", 25, "dan")]

    def test_sort_with_take_descending_with_key(self, people):
        out = people.group_all().sort_with_take(("name", "age"), 2, key=lambda t: t[1], descending=True)
        assert rows(out) == [("cid", 40), ("eve", 35)]

    def test_sort_with_take_ties_keep_input_order(self):
        pipe = Pipe.from_records(["w", "c"], [("x", 1), ("y", 2), ("z", 1), ("q", 2)])
        out = pipe.group_all().sort_with_take(("w", "c"), 3, key=lambda t: t[1], descending=True)
        assert rows(out) == [("y", 2), ("q", 2), ("x", 1)]

    def test_sort_with_take_matches_sort_then_truncate(self):
        rng = random.Random(7)
        data = [(i, rng.randint(0, 5)) for i in range(60)]
        pipe = Pipe.from_records(["i", "v"], data)
        for n in (1, 5, 60, 100):
            expected = sorted(data, key=lambda t: t[1])[:n]
            assert rows(pipe.group_all().sort_with_take(("i", "v"), n, key=lambda t: t[1])) == expected

    def test_sort_with_take_comparator(self, people):
        by_age_then_name_desc = lambda a, b: (a[0] > b[0]) - (a[0] < b[0]) or (b[1] > a[1]) - (b[1] < a[1])
        out = people.group_all().sort_with_take(("age", "name"), 2, comparator=by_age_then_name_desc)
        assert rows(out) == [(25, "dan"), (25, "bob")]

    def test_sort_with_take_without_count_keeps_all(self, people):
        out = people.group_all().sort_with_take("age")
        assert [r["age"] for r in out.run().unwrap()] == [25, 25, 31, 35, 40]

    def test_sort_with_take_empty_input(self):
        assert rows(Pipe.from_records(["a"], []).group_all().sort_with_take("a", 3)) == []

    @pytest.mark.parametrize("n", [0, -2])
    def test_sort_with_take_rejects_non_positive_count(self, people, n):
        with pytest.raises(InvalidArgument):
            people.group_all().sort_with_take("age", n)


# =============================================================================
# BroadcastJoin
# =============================================================================

class TestBroadcastJoin:
    """Test the in-memory inner join."""

    @pytest.fixture
    def abbrevs(self):
        return Pipe.from_records(["abbrev", "name"], [("Gen", "Genesis"), ("Exo", "Exodus")])

    def test_join_expands_and_drops_unmatched(self, abbrevs):
        left = Pipe.from_records(["book", "verse"], [("Gen", 1), ("Xyz", 2), ("Exo", 3)])
        out = left.broadcast_join("book", abbrevs, "abbrev")
        assert out.schema.names == ("book", "verse", "abbrev", "name")
        assert rows(out) == [("Gen", 1, "Gen", "Genesis"), ("Exo", 3, "Exo", "Exodus")]

    def test_left_wins_on_name_collision(self):
        left = Pipe.from_records(["k", "v"], [(1, "left")])
        right = Pipe.from_records(["k", "v", "w"], [(1, "right", "extra")])
        assert rows(left.broadcast_join("k", right)) == [(1, "left", "extra")]

    def test_duplicate_right_keys_last_write_wins(self):
        left = Pipe.from_records(["k"], [(1,)])
        right = Pipe.from_records(["id", "v"], [(1, "first"), (1, "second")])
        assert rows(left.broadcast_join("k", right, "id")) == [(1, 1, "second")]

    def test_right_side_over_limit_fails(self, abbrevs):
        left = Pipe.from_records(["book"], [("Gen",)])
        ctx = Context(config=JobConfig(broadcast_max_rows=1))
        result = left.broadcast_join("book", abbrevs, "abbrev").run(ctx)
        assert result.is_err()
        assert isinstance(result.error.cause, JoinMemoryPrecondition)
        assert result.error.step == "broadcast_join"

    def test_key_length_mismatch(self, abbrevs):
        left = Pipe.from_records(["book", "verse"], [])
        with pytest.raises(InvalidArgument):
            left.broadcast_join(["book", "verse"], abbrevs, "abbrev")

    def test_unknown_right_key(self, abbrevs):
        left = Pipe.from_records(["book"], [])
        with pytest.raises(SchemaMismatch):
            left.broadcast_join("book", abbrevs, "code")
