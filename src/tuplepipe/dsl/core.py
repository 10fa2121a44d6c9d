"""
tuplepipe Core - Pipe graph and Steps

This module provides the core abstractions of the dataflow engine:

- Context: per-run settings handed to every step
- Step: one operator (kind + parameters); validates field references
  against its input schemas when the graph is built, and transforms
  materialized input records into output records when the graph runs
- Pipe: an immutable node of the transformation DAG; building a Pipe
  performs no computation
- GroupBuilder: the group_by/group_all stage that ends in an aggregation
  or a sort_with_take

Example:
    words = (
        Pipe.from_source(TextLineSource("input.txt"))
        .flat_map("line", "word", tokenize)
        .group_by("word").count("count")
        .group_all().sort_with_take(("word", "count"), 10,
                                    key=lambda t: t[1], descending=True)
    )
    result = words.run()  # Result[List[Record], PipelineError]
"""

from __future__ import annotations

import functools
import heapq
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any, Callable, ClassVar, Dict, Iterable, List, Mapping, Optional,
    Sequence, Tuple, Union
)

from ..config import JobConfig
from ..exceptions import InvalidArgument, JoinMemoryPrecondition, SchemaMismatch, TuplePipeError
from ..logging_config import configure_logger_for_debug_trace
from .aggregators import Aggregator, Count, Sum
from .catpy import PipelineResult, pipeline_err, pipeline_ok
from .io import MemorySource, RecordSink, RecordSource
from .schema import Field, FieldSpec, Record, Schema, as_field, as_names

logger = configure_logger_for_debug_trace(__name__)

Fields = Union[FieldSpec, Sequence[FieldSpec]]


def _field_args(fields: Sequence[Any]) -> Tuple[str, ...]:
    """Accept project("a", "b") as well as project(["a", "b"])."""
    if len(fields) == 1 and not isinstance(fields[0], (str, Field)):
        return as_names(fields[0])
    return as_names(fields)


def group_records(records: Iterable[Record], keys: Sequence[str]) -> Dict[Tuple[Any, ...], List[Record]]:
    """Partition records by key tuple; groups and their members keep first-seen order."""
    groups: Dict[Tuple[Any, ...], List[Record]] = {}
    for record in records:
        groups.setdefault(record.values_of(keys), []).append(record)
    return groups


# =============================================================================
# Pipeline Context
# =============================================================================

@dataclass
class Context:
    """Execution context for one pipeline run."""
    config: JobConfig = field(default_factory=JobConfig)
    name: str = "default"


# =============================================================================
# Step - one operator of the graph
# =============================================================================

class Step(ABC):
    """
    A step in a pipe graph: Sequence[List[Record]] -> Result[List[Record], PipelineError]

    Subclasses implement output_schema (called once, when the Pipe is built)
    and apply (called once per run with the parents' materialized records).

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    name: ClassVar[str] = "step"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        """Validate field references and return the declared output schema."""
        return inputs[0]

    @abstractmethod
    def apply(self, inputs: Sequence[List[Record]], schema: Schema, ctx: Context) -> List[Record]:
        """Transform the materialized inputs; raise TuplePipeError on failure."""

    def execute(self, inputs: Sequence[List[Record]], schema: Schema, ctx: Context) -> PipelineResult[List[Record]]:
        try:
            return pipeline_ok(self.apply(inputs, schema, ctx))
        except TuplePipeError as e:
            return pipeline_err(self.name, str(e), e)
        except Exception as e:
            return pipeline_err(self.name, f"{self.name} failed: {e}", e)

    def describe(self) -> str:
        return self.name


@dataclass(frozen=True)
class SourceStep(Step):
    """Reads every record of a source."""
    source: RecordSource
    name: ClassVar[str] = "source"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        return self.source.schema

    def apply(self, inputs, schema, ctx):
        return list(self.source.read())

    def describe(self) -> str:
        return self.source.describe()


class _FunctionStep(Step):
    """Shared plumbing for steps that append fields computed by a callable."""
    input_fields: Tuple[str, ...]
    output_fields: Tuple[Field, ...]

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        inputs[0].require(self.input_fields, self.name)
        return inputs[0].extend(self.output_fields, self.name)

    def _shape(self, result: Any) -> Tuple[Any, ...]:
        width = len(self.output_fields)
        if width == 1:
            return (result,)
        if not isinstance(result, (tuple, list)) or len(result) != width:
            raise SchemaMismatch(
                f"{self.name} produced {result!r}; expected {width} values for "
                f"{[f.name for f in self.output_fields]}",
                operator=self.name, key=result,
            )
        return tuple(result)


@dataclass(frozen=True)
class FlatMapStep(_FunctionStep):
    """Zero or more output records per input record.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    input_fields: Tuple[str, ...]
    output_fields: Tuple[Field, ...]
    fn: Callable[..., Optional[Iterable[Any]]]
    name: ClassVar[str] = "flat_map"

    def apply(self, inputs, schema, ctx):
        out = []
        for record in inputs[0]:
            results = self.fn(*record.values_of(self.input_fields))
            if results is None:
                continue
            for result in results:
                out.append(record.extend(schema, self._shape(result)))
        return out


@dataclass(frozen=True)
class MapStep(_FunctionStep):
    """Exactly one output record per input record."""
    input_fields: Tuple[str, ...]
    output_fields: Tuple[Field, ...]
    fn: Callable[..., Any]
    name: ClassVar[str] = "map"

    def apply(self, inputs, schema, ctx):
        return [
            record.extend(schema, self._shape(self.fn(*record.values_of(self.input_fields))))
            for record in inputs[0]
        ]


@dataclass(frozen=True)
class FilterStep(Step):
    """Keep records whose named field values satisfy the predicate.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    fields: Tuple[str, ...]
    predicate: Callable[..., bool]
    name: ClassVar[str] = "filter"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        inputs[0].require(self.fields, self.name)
        return inputs[0]

    def apply(self, inputs, schema, ctx):
        return [r for r in inputs[0] if self.predicate(*r.values_of(self.fields))]


@dataclass(frozen=True)
class ProjectStep(Step):
    """Keep only the named fields, in the given order."""
    fields: Tuple[str, ...]
    name: ClassVar[str] = "project"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        return inputs[0].project(self.fields, self.name)

    def apply(self, inputs, schema, ctx):
        return [r.project(schema) for r in inputs[0]]


@dataclass(frozen=True)
class DiscardStep(Step):
    """Remove the named fields, keeping the rest in original order."""
    fields: Tuple[str, ...]
    name: ClassVar[str] = "discard"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        return inputs[0].discard(self.fields, self.name)

    def apply(self, inputs, schema, ctx):
        return [r.project(schema) for r in inputs[0]]


@dataclass(frozen=True)
class RenameStep(Step):
    """Rename fields in place."""
    renames: Tuple[Tuple[str, str], ...]
    name: ClassVar[str] = "rename"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        return inputs[0].rename(dict(self.renames), self.name)

    def apply(self, inputs, schema, ctx):
        return [Record(schema, r.values) for r in inputs[0]]


@dataclass(frozen=True)
class UniqueStep(Step):
    """One record per distinct combination of the named fields, first occurrence wins.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    fields: Tuple[str, ...]
    name: ClassVar[str] = "unique"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        inputs[0].require(self.fields, self.name)
        return inputs[0]

    def apply(self, inputs, schema, ctx):
        seen = set()
        result = []
        for record in inputs[0]:
            key = record.values_of(self.fields)
            if key not in seen:
                seen.add(key)
                result.append(record)
        return result


@dataclass(frozen=True)
class LimitStep(Step):
    """First N records in arrival order."""
    count: int
    name: ClassVar[str] = "limit"

    def __post_init__(self):
        if not isinstance(self.count, int) or self.count < 0:
            raise InvalidArgument(f"limit must be a non-negative integer, got {self.count!r}",
                                  operator=self.name, key=self.count)

    def apply(self, inputs, schema, ctx):
        return inputs[0][:self.count]


@dataclass(frozen=True)
class GroupByStep(Step):
    """Reduce each group to one record: key fields plus aggregator results.

    An empty key means one implicit group holding every record; that group
    exists even when the input is empty, so whole-pipe totals are always
    emitted.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    keys: Tuple[str, ...]
    aggregators: Tuple[Aggregator, ...]
    name: ClassVar[str] = "group_by"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        schema = inputs[0]
        for aggregator in self.aggregators:
            schema.require(aggregator.input_fields, self.name)
        out = schema.project(self.keys, self.name)
        for aggregator in self.aggregators:
            out = out.extend(aggregator.output_fields, self.name)
        return out

    def apply(self, inputs, schema, ctx):
        groups = group_records(inputs[0], self.keys)
        if not self.keys and not groups:
            groups = {(): []}
        result = []
        for key, members in groups.items():
            values = list(key)
            for aggregator in self.aggregators:
                values.extend(aggregator.aggregate(members))
            result.append(Record(schema, values))
        return result

    def describe(self) -> str:
        return f"group_by({', '.join(self.keys) or '*'})"


@dataclass(frozen=True)
class SortWithTakeStep(Step):
    """Within each group, sort the projected tuples and keep the first N.

    Ties keep input order. A bounded heap is used when N is given;
    heapq.nsmallest/nlargest return exactly sorted(...)[:N].

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    keys: Tuple[str, ...]
    fields: Tuple[str, ...]
    count: Optional[int] = None
    sort_key: Optional[Callable[[Tuple[Any, ...]], Any]] = None
    descending: bool = False
    comparator: Optional[Callable[[Tuple[Any, ...], Tuple[Any, ...]], int]] = None
    name: ClassVar[str] = "sort_with_take"

    def __post_init__(self):
        if self.count is not None and (not isinstance(self.count, int) or self.count <= 0):
            raise InvalidArgument(f"sort_with_take needs a positive count, got {self.count!r}",
                                  operator=self.name, key=self.count)
        if self.sort_key is not None and self.comparator is not None:
            raise InvalidArgument("sort_with_take takes either key or comparator, not both",
                                  operator=self.name)

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        inputs[0].require(self.keys + self.fields, self.name)
        return inputs[0].project(self.keys + self.fields, self.name)

    def _take(self, tuples: List[Tuple[Any, ...]]) -> List[Tuple[Any, ...]]:
        key = self.sort_key
        if self.comparator is not None:
            key = functools.cmp_to_key(self.comparator)
        if self.count is None:
            return sorted(tuples, key=key, reverse=self.descending)
        select = heapq.nlargest if self.descending else heapq.nsmallest
        return select(self.count, tuples, key=key)

    def apply(self, inputs, schema, ctx):
        result = []
        for key, members in group_records(inputs[0], self.keys).items():
            for taken in self._take([m.values_of(self.fields) for m in members]):
                result.append(Record(schema, key + taken))
        return result


@dataclass(frozen=True)
class BroadcastJoinStep(Step):
    """Inner join against a right side held entirely in memory.

    Both parents are materialized before the step runs; the right records
    are loaded into a dict (last write wins on duplicate keys) and the left
    records are scanned once. Left fields win on name collisions.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    left_keys: Tuple[str, ...]
    right_keys: Tuple[str, ...]
    name: ClassVar[str] = "broadcast_join"

    def __post_init__(self):
        if not self.left_keys or len(self.left_keys) != len(self.right_keys):
            raise InvalidArgument(
                f"join keys must be non-empty and of equal length: {self.left_keys} vs {self.right_keys}",
                operator=self.name,
            )

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        left, right = inputs
        left.require(self.left_keys, self.name)
        right.require(self.right_keys, self.name)
        return left.merge(right)

    def apply(self, inputs, schema, ctx):
        left, right = inputs
        max_rows = ctx.config.broadcast_max_rows
        if len(right) > max_rows:
            raise JoinMemoryPrecondition(
                f"right side has {len(right)} records; broadcast_max_rows is {max_rows}",
                operator=self.name, key=len(right),
            )
        if not left or not right:
            return []

        lookup: Dict[Tuple[Any, ...], Record] = {}
        for record in right:
            key = record.values_of(self.right_keys)
            if key in lookup:
                logger.debug(f"broadcast_join: duplicate right key {key!r}, keeping the last record")
            lookup[key] = record

        left_names = set(left[0].schema.names)
        right_only = [n for n in right[0].schema.names if n not in left_names]
        result = []
        for record in left:
            match = lookup.get(record.values_of(self.left_keys))
            if match is not None:
                result.append(record.extend(schema, match.values_of(right_only)))
        return result


@dataclass(frozen=True)
class MatrixStep(Step):
    """Build a SparseMatrix from (row, col, value) records, transform it, emit its entries.

    Entries come out row by row, rows ascending, each row ranked by value
    descending then column ascending.
    """
    row_field: str
    col_field: str
    value_field: str
    transform: Callable[[Any], Any]
    out_field: str
    name: ClassVar[str] = "matrix"

    def output_schema(self, inputs: Sequence[Schema]) -> Schema:
        schema = inputs[0]
        schema.require((self.row_field, self.col_field, self.value_field), self.name)
        return Schema([schema.field(self.row_field), schema.field(self.col_field),
                       Field(self.out_field, "float")])

    def apply(self, inputs, schema, ctx):
        from ..matrix import SparseMatrix

        matrix = SparseMatrix.from_records(inputs[0], self.row_field, self.col_field, self.value_field)
        result = self.transform(matrix)
        return [Record(schema, entry) for entry in result.ranked_entries()]


@dataclass(frozen=True)
class TapStep(Step):
    """Call a side-effect function on every record and pass the records through."""
    fn: Callable[[Record], Any]
    name: ClassVar[str] = "tap"

    def apply(self, inputs, schema, ctx):
        for record in inputs[0]:
            self.fn(record)
        return list(inputs[0])


# =============================================================================
# Pipe - node of the transformation DAG
# =============================================================================

@dataclass(frozen=True, eq=False)
class Pipe:
    """
    An immutable, lazily composed node of a transformation graph.

    A Pipe owns its step and read-only references to its parent Pipes; one
    Pipe may feed several downstream operators, and the evaluator computes
    it once per run. Field references are checked when the Pipe is built.

    Example:
        verses = Pipe.from_source(DelimitedSource(path, ("book", "chapter", "verse", "text")))
        per_book = verses.group_by("book").count("count")
        result = per_book.run()

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a pipe.
    ::: This is stateless.
    """
    step: Step
    parents: Tuple["Pipe", ...] = ()
    schema: Schema = field(default_factory=Schema)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_source(cls, source: RecordSource) -> "Pipe":
        """Create a pipe reading a record source."""
        return cls(SourceStep(source), (), source.schema)

    @classmethod
    def from_records(cls, schema: Union[Schema, Sequence[FieldSpec]],
                     rows: Iterable[Union[Sequence, Mapping]]) -> "Pipe":
        """Create a pipe over in-memory rows."""
        return cls.from_source(MemorySource(schema, rows))

    def _then(self, step: Step, *others: "Pipe") -> "Pipe":
        parents = (self,) + others
        schema = step.output_schema([p.schema for p in parents])
        return Pipe(step, parents, schema)

    # -------------------------------------------------------------------------
    # Transformation Methods
    # -------------------------------------------------------------------------

    def flat_map(self, input_fields: Fields, output_fields: Fields,
                 fn: Callable[..., Optional[Iterable[Any]]]) -> "Pipe":
        """Append output_fields from each result of fn(*input values); no result drops the record."""
        outputs = tuple(as_field(f) for f in ([output_fields] if isinstance(output_fields, (str, Field))
                                              else output_fields))
        return self._then(FlatMapStep(as_names(input_fields), outputs, fn))

    def map(self, input_fields: Fields, output_fields: Fields, fn: Callable[..., Any]) -> "Pipe":
        """Append output_fields computed by fn(*input values)."""
        outputs = tuple(as_field(f) for f in ([output_fields] if isinstance(output_fields, (str, Field))
                                              else output_fields))
        return self._then(MapStep(as_names(input_fields), outputs, fn))

    def filter(self, fields: Fields, predicate: Callable[..., bool]) -> "Pipe":
        """Keep records for which predicate(*field values) is true."""
        return self._then(FilterStep(as_names(fields), predicate))

    def project(self, *fields: Any) -> "Pipe":
        """Keep only the named fields."""
        return self._then(ProjectStep(_field_args(fields)))

    def discard(self, *fields: Any) -> "Pipe":
        """Remove the named fields."""
        return self._then(DiscardStep(_field_args(fields)))

    def rename(self, renames: Optional[Mapping[str, str]] = None, **kwargs: str) -> "Pipe":
        """Rename fields: rename({"old": "new"}) or rename(old="new")."""
        pairs = {**(renames or {}), **kwargs}
        return self._then(RenameStep(tuple(pairs.items())))

    def unique(self, *fields: Any) -> "Pipe":
        """One record per distinct value combination of the named fields."""
        return self._then(UniqueStep(_field_args(fields)))

    def limit(self, count: int) -> "Pipe":
        """First count records."""
        return self._then(LimitStep(count))

    def group_by(self, *keys: Any) -> "GroupBuilder":
        """Start a grouping on the named key fields."""
        return GroupBuilder(self, _field_args(keys))

    def group_all(self) -> "GroupBuilder":
        """Start a grouping with one implicit group holding every record."""
        return GroupBuilder(self, ())

    def broadcast_join(self, left_keys: Fields, right: "Pipe",
                       right_keys: Optional[Fields] = None) -> "Pipe":
        """Inner join with a small right pipe that is held in memory."""
        left = as_names(left_keys)
        return self._then(BroadcastJoinStep(left, as_names(right_keys) if right_keys else left), right)

    def matrix(self, row_field: str, col_field: str, value_field: str,
               transform: Callable[[Any], Any], out_field: Optional[str] = None) -> "Pipe":
        """Run a SparseMatrix transformation over (row, col, value) records."""
        return self._then(MatrixStep(row_field, col_field, value_field, transform, out_field or value_field))

    def tap(self, fn: Callable[[Record], Any]) -> "Pipe":
        """Execute a side effect per record and pass records through unchanged."""
        return self._then(TapStep(fn))

    def debug(self, label: str = "debug") -> "Pipe":
        """Log every record passing through at DEBUG level."""
        return self.tap(lambda record: logger.debug(f"[{label}] {record!r}"))

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run(self, ctx: Optional[Context] = None) -> PipelineResult[List[Record]]:
        """Evaluate this pipe and return its records."""
        from .evaluator import Evaluator
        return Evaluator(ctx).evaluate(self)

    def write(self, sink: RecordSink, ctx: Optional[Context] = None) -> PipelineResult[int]:
        """Evaluate this pipe and write its records; nothing is written on failure."""
        from .evaluator import Evaluator
        return Evaluator(ctx).write({"output": (self, sink)}).fmap(lambda counts: counts["output"])

    def __repr__(self) -> str:
        return f"Pipe({self.step.describe()}, schema={self.schema!r})"


class GroupBuilder:
    """
    A pending grouping of a pipe; finished by an aggregation or a sort_with_take.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a builder.
    """

    def __init__(self, pipe: Pipe, keys: Tuple[str, ...]):
        pipe.schema.require(keys, "group_by")
        self._pipe = pipe
        self._keys = keys

    def aggregate(self, *aggregators: Aggregator) -> Pipe:
        """One record per group: keys plus every aggregator's results."""
        if not aggregators:
            raise InvalidArgument("aggregate needs at least one aggregator", operator="group_by")
        return self._pipe._then(GroupByStep(self._keys, tuple(aggregators)))

    def count(self, field_name: str = "count") -> Pipe:
        """Number of records per group."""
        return self.aggregate(Count(field_name))

    def sum(self, field_name: str, out: Optional[str] = None) -> Pipe:
        """Sum of a field per group."""
        return self.aggregate(Sum(field_name, out))

    def sort_with_take(self, fields: Fields, count: Optional[int] = None, *,
                       key: Optional[Callable[[Tuple[Any, ...]], Any]] = None,
                       descending: bool = False,
                       comparator: Optional[Callable[[Tuple[Any, ...], Tuple[Any, ...]], int]] = None) -> Pipe:
        """
        Sort each group's projected tuples and keep the first count (all if None).

        Args:
            fields: Fields projected into the sorted tuples
            count: How many tuples to keep per group; must be positive
            key: Sort key over a projected tuple
            descending: Reverse the order (ties still keep input order)
            comparator: cmp-style function over two tuples, instead of key
        """
        return self._pipe._then(SortWithTakeStep(
            self._keys, as_names(fields), count, key, descending, comparator
        ))
