"""
Unit tests for SparseMatrix.
"""

import math

import pytest

from tuplepipe.dsl import Pipe
from tuplepipe.exceptions import DivisionByZero, DuplicateKey, InvalidArgument
from tuplepipe.matrix import DEFAULT_ROW_KEY, SparseMatrix


@pytest.fixture
def counts():
    return SparseMatrix({
        (1, "a"): 2, (1, "b"): 1,
        (2, "a"): 1, (2, "c"): 3,
    })


class TestSparseMatrix:
    """Test construction and the TF-IDF operations."""

    def test_zero_entries_are_not_stored(self):
        m = SparseMatrix({(1, "a"): 0, (1, "b"): 2})
        assert len(m) == 1
        assert (1, "a") not in m
        assert m.get(1, "a") == 0

    def test_from_records(self):
        pipe = Pipe.from_records(["doc", "word", "n"], [(1, "a", 2), (2, "a", 1)])
        m = SparseMatrix.from_pipe(pipe, "doc", "word", "n")
        assert m.row(1) == {"a": 2}
        assert m.rows() == [1, 2]

    def test_from_records_duplicate_key(self):
        records = Pipe.from_records(["r", "c", "v"], [(1, "a", 1), (1, "a", 2)]).run().unwrap()
        with pytest.raises(DuplicateKey) as exc_info:
            SparseMatrix.from_records(records, "r", "c", "v")
        assert exc_info.value.key == (1, "a")

    def test_sum_rows(self, counts):
        df = counts.sum_rows()
        assert df.row(DEFAULT_ROW_KEY) == {"a": 3, "b": 1, "c": 3}
        assert df.rows() == [DEFAULT_ROW_KEY]

    def test_l1_normalize_sums_to_one(self, counts):
        normalized = counts.sum_rows().l1_normalize()
        row = normalized.row(DEFAULT_ROW_KEY)
        assert sum(abs(v) for v in row.values()) == pytest.approx(1.0)
        assert row["b"] == pytest.approx(1 / 7)

    def test_l1_normalize_uses_absolute_values(self):
        row = SparseMatrix({(1, "x"): -1, (1, "y"): 3}).l1_normalize(1).row(1)
        assert row == {"x": pytest.approx(-0.25), "y": pytest.approx(0.75)}

    def test_l1_normalize_empty_row(self, counts):
        with pytest.raises(DivisionByZero):
            counts.l1_normalize(99)

    def test_row_l1_normalize(self, counts):
        normalized = counts.row_l1_normalize()
        assert normalized.row(1) == {"a": pytest.approx(2 / 3), "b": pytest.approx(1 / 3)}
        assert normalized.row(2) == {"a": pytest.approx(0.25), "c": pytest.approx(0.75)}

    def test_map_values_drops_zeros(self, counts):
        mapped = counts.map_values(lambda v: v - 1)
        assert len(mapped) == 2
        assert mapped.get(2, "c") == 2

    def test_hadamard_is_commutative_over_intersection(self, counts):
        other = SparseMatrix({(1, "a"): 5, (2, "c"): 2, (3, "z"): 9})
        product = counts.hadamard(other)
        assert product == other.hadamard(counts)
        assert dict(product.items()) == {(1, "a"): 10, (2, "c"): 6}

    def test_broadcast_row(self, counts):
        vector = SparseMatrix({(DEFAULT_ROW_KEY, "a"): 0.5, (DEFAULT_ROW_KEY, "c"): 2.0})
        aligned = counts.broadcast_row(vector)
        assert dict(aligned.items()) == {(1, "a"): 0.5, (2, "a"): 0.5, (2, "c"): 2.0}

    def test_top_row_elems_ties_by_column(self):
        m = SparseMatrix({(1, "b"): 2, (1, "a"): 2, (1, "c"): 5, (2, "z"): 1})
        top = m.top_row_elems(2)
        assert top.row(1) == {"c": 5, "a": 2}
        assert top.row(2) == {"z": 1}

    def test_top_row_elems_rejects_non_positive(self, counts):
        with pytest.raises(InvalidArgument):
            counts.top_row_elems(0)

    def test_ranked_entries_and_records(self, counts):
        assert counts.ranked_entries() == [(1, "a", 2), (1, "b", 1), (2, "c", 3), (2, "a", 1)]
        records = counts.to_records("doc", "word", "score")
        assert records[0].to_dict() == {"doc": 1, "word": "a", "score": 2}

    def test_to_pipe(self, counts):
        pipe = counts.to_pipe()
        assert pipe.schema.names == ("row", "col", "value")
        assert len(pipe.run().unwrap()) == 4

    def test_idf_formula(self, counts):
        idf = counts.sum_rows().l1_normalize().map_values(lambda x: math.log2(1 / x))
        assert idf.get(DEFAULT_ROW_KEY, "b") == pytest.approx(math.log2(7))
        assert idf.get(DEFAULT_ROW_KEY, "a") == pytest.approx(math.log2(7 / 3))
