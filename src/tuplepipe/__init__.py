"""
tuplepipe - a lazily composed, tuple-oriented dataflow engine

Relational-style record operators (flat_map, filter, project, group_by,
sort_with_take, unique, limit, broadcast_join) evaluated in memory, plus
a sparse-matrix layer used for TF-IDF ranking.
"""

__version__ = "0.1.0"

from .config import ConfigLoader, JobConfig, load_config
from .dsl import (
    Context, Evaluator, Field, GroupBuilder, Pipe, Record, Schema,
    DelimitedSink, DelimitedSource, MemorySink, MemorySource, TextLineSource,
    Count, Sum,
)
from .exceptions import (
    TuplePipeError, SchemaMismatch, InvalidArgument, DivisionByZero,
    JoinMemoryPrecondition, DuplicateKey, SourceNotFound,
)
from .matrix import SparseMatrix

__all__ = [
    "__version__",
    # Configuration
    "ConfigLoader", "JobConfig", "load_config",
    # DSL
    "Context", "Evaluator", "Field", "GroupBuilder", "Pipe", "Record", "Schema",
    "DelimitedSink", "DelimitedSource", "MemorySink", "MemorySource", "TextLineSource",
    "Count", "Sum",
    # Matrix
    "SparseMatrix",
    # Errors
    "TuplePipeError", "SchemaMismatch", "InvalidArgument", "DivisionByZero",
    "JoinMemoryPrecondition", "DuplicateKey", "SourceNotFound",
]
