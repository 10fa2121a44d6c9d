"""
SparseMatrix - keyed (row, col) -> value map for the TF-IDF ranking.

Only the operations the TF-IDF scoring needs are provided: column sums,
L1 normalization, value mapping, Hadamard product, row broadcasting and
per-row top-N extraction. Every operation returns a new matrix.

Absent entries are implicit zeros; a zero is never stored, so the absence
of an entry always means "no contribution".
"""

from __future__ import annotations

import heapq
from typing import (
    TYPE_CHECKING, Any, Callable, Dict, Hashable, Iterable, Iterator, List,
    Mapping, Optional, Tuple, Union
)

import numpy as np

from .exceptions import DivisionByZero, DuplicateKey, InvalidArgument
from .logging_config import configure_logger_for_debug_trace
from .dsl.schema import Field, Record, Schema

if TYPE_CHECKING:
    from .dsl.core import Context, Pipe

logger = configure_logger_for_debug_trace(__name__)

# Row key of the single-row vectors built by sum_rows
DEFAULT_ROW_KEY = 1

Key = Tuple[Hashable, Hashable]


class SparseMatrix:
    """
    Immutable sparse matrix keyed by (row, col).

    Row and column keys are opaque comparable values (a document id and a
    word for TF-IDF); comparability is needed only for the ordered outputs.

    ::: This is-in-layer Domain-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Union[Mapping[Key, float], Iterable[Tuple[Key, float]]] = ()):
        self._entries: Dict[Key, float] = {k: v for k, v in dict(entries).items() if v != 0}

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[Record], row_field: str, col_field: str,
                     value_field: str) -> "SparseMatrix":
        """
        Build a matrix from records carrying (row, col, value) triples.

        Raises:
            DuplicateKey: If two records carry the same (row, col) pair
        """
        entries: Dict[Key, float] = {}
        for record in records:
            row, col, value = record.values_of((row_field, col_field, value_field))
            if (row, col) in entries:
                raise DuplicateKey(f"Duplicate matrix entry ({row!r}, {col!r})",
                                   operator="matrix", key=(row, col))
            entries[(row, col)] = value
        logger.debug(f"Built matrix from {len(entries)} records")
        return cls(entries)

    @classmethod
    def from_pipe(cls, pipe: "Pipe", row_field: str, col_field: str, value_field: str,
                  ctx: Optional["Context"] = None) -> "SparseMatrix":
        """Evaluate a pipe and build a matrix from its records; evaluation errors are raised."""
        return cls.from_records(pipe.run(ctx).unwrap(), row_field, col_field, value_field)

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def get(self, row: Hashable, col: Hashable, default: float = 0) -> float:
        return self._entries.get((row, col), default)

    def row(self, row: Hashable) -> Dict[Hashable, float]:
        """Entries of one row as col -> value."""
        return {c: v for (r, c), v in self._entries.items() if r == row}

    def rows(self) -> List[Hashable]:
        """Distinct row keys, ascending."""
        return sorted({r for r, _ in self._entries})

    def items(self) -> Iterator[Tuple[Key, float]]:
        return iter(self._entries.items())

    def _by_row(self) -> Dict[Hashable, Dict[Hashable, float]]:
        grouped: Dict[Hashable, Dict[Hashable, float]] = {}
        for (r, c), v in self._entries.items():
            grouped.setdefault(r, {})[c] = v
        return grouped

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def sum_rows(self, row_key: Hashable = DEFAULT_ROW_KEY) -> "SparseMatrix":
        """Single-row matrix of column sums, every entry under row_key."""
        sums: Dict[Key, float] = {}
        for (_, c), v in self._entries.items():
            sums[(row_key, c)] = sums.get((row_key, c), 0) + v
        return SparseMatrix(sums)

    def l1_normalize(self, row_key: Hashable = DEFAULT_ROW_KEY) -> "SparseMatrix":
        """
        The given row divided by the sum of its absolute values.

        Raises:
            DivisionByZero: If the row has no entries
        """
        row = self.row(row_key)
        values = np.fromiter(row.values(), dtype=np.float64, count=len(row))
        norm = float(np.abs(values).sum())
        if norm == 0:
            raise DivisionByZero(f"Cannot L1-normalize row {row_key!r}: absolute sum is zero",
                                 operator="l1_normalize", key=row_key)
        return SparseMatrix({(row_key, c): v for c, v in zip(row, (values / norm).tolist())})

    def row_l1_normalize(self) -> "SparseMatrix":
        """Every row divided by its own absolute sum."""
        entries: Dict[Key, float] = {}
        for r in self._by_row():
            entries.update(self.l1_normalize(r)._entries)
        return SparseMatrix(entries)

    def map_values(self, fn: Callable[[float], float]) -> "SparseMatrix":
        """Apply fn to every stored value; entries mapped to zero are dropped."""
        return SparseMatrix({k: fn(v) for k, v in self._entries.items()})

    def hadamard(self, other: "SparseMatrix") -> "SparseMatrix":
        """Element-wise product; only keys present in both matrices survive."""
        smaller, larger = sorted((self, other), key=len)
        return SparseMatrix({
            k: self._entries[k] * other._entries[k]
            for k in smaller._entries if k in larger._entries
        })

    def broadcast_row(self, vector: "SparseMatrix", row_key: Hashable = DEFAULT_ROW_KEY) -> "SparseMatrix":
        """
        Matrix with this matrix's keys, each holding vector[row_key, col].

        Keys whose column has no value in the vector row are absent.
        """
        values = vector.row(row_key)
        return SparseMatrix({(r, c): values[c] for (r, c) in self._entries if c in values})

    def top_row_elems(self, n: int) -> "SparseMatrix":
        """Per row, the n largest entries; ties broken by column ascending."""
        if not isinstance(n, int) or n <= 0:
            raise InvalidArgument(f"top_row_elems needs a positive count, got {n!r}",
                                  operator="top_row_elems", key=n)
        entries: Dict[Key, float] = {}
        for r, cols in self._by_row().items():
            for c, v in heapq.nsmallest(n, cols.items(), key=lambda cv: (-cv[1], cv[0])):
                entries[(r, c)] = v
        return SparseMatrix(entries)

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def ranked_entries(self) -> List[Tuple[Any, Any, float]]:
        """(row, col, value) triples: rows ascending, then value descending, then col ascending."""
        return [
            (r, c, v)
            for r, cols in sorted(self._by_row().items(), key=lambda rc: rc[0])
            for c, v in sorted(cols.items(), key=lambda cv: (-cv[1], cv[0]))
        ]

    def to_records(self, row_field: str = "row", col_field: str = "col",
                   value_field: str = "value") -> List[Record]:
        schema = Schema([Field(row_field), Field(col_field), Field(value_field, "float")])
        return [Record(schema, entry) for entry in self.ranked_entries()]

    def to_pipe(self, row_field: str = "row", col_field: str = "col",
                value_field: str = "value") -> "Pipe":
        """In-memory pipe over the ranked entries, e.g. for writing through a sink."""
        from .dsl.core import Pipe

        schema = Schema([Field(row_field), Field(col_field), Field(value_field, "float")])
        return Pipe.from_records(schema, self.ranked_entries())

    # -------------------------------------------------------------------------
    # Dunder Methods
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"SparseMatrix({len(self._entries)} entries, {len(self._by_row())} rows)"
