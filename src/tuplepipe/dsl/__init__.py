"""
tuplepipe DSL - lazy, typed record pipelines

A fluent Python DSL for composing record transformations into an
immutable DAG that is evaluated once per run.

Building blocks:
- Schema / Record: named, optionally typed fields and immutable tuples
- Pipe: a node of the graph (flat_map, map, filter, project, discard,
  rename, unique, limit, group_by/group_all, broadcast_join, matrix, tap)
- Evaluator: runs the graph in dependency order, each node once

Error Handling:
- Steps return Result[List[Record], PipelineError] (Ok/Err)
- The first failing step short-circuits the run

Example:
    counts = (
        Pipe.from_source(TextLineSource("input.txt"))
        .flat_map("line", "word", lambda line: line.split())
        .group_by("word").count("count")
    )
    counts.write(DelimitedSink("out.tsv"))
"""

# Result plumbing
from .catpy import (
    Monad,
    Result, Ok, Err,
    PipelineError, PipelineResult,
    pipeline_ok, pipeline_err,
)

# Tuple model
from .schema import Field, Record, Schema, as_field, as_names

# Aggregators
from .aggregators import Aggregator, Count, Sum

# Sources and sinks
from .io import (
    RecordSource, MemorySource, DelimitedSource, TextLineSource,
    RecordSink, MemorySink, DelimitedSink,
)

# Core pipe types
from .core import Context, GroupBuilder, Pipe, Step

# Evaluation
from .evaluator import Evaluator

__all__ = [
    # Result plumbing
    "Monad", "Result", "Ok", "Err",
    "PipelineError", "PipelineResult", "pipeline_ok", "pipeline_err",
    # Tuple model
    "Field", "Record", "Schema", "as_field", "as_names",
    # Aggregators
    "Aggregator", "Count", "Sum",
    # Sources and sinks
    "RecordSource", "MemorySource", "DelimitedSource", "TextLineSource",
    "RecordSink", "MemorySink", "DelimitedSink",
    # Core
    "Context", "GroupBuilder", "Pipe", "Step",
    # Evaluation
    "Evaluator",
]
