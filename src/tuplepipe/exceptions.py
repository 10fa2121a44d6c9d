"""
tuplepipe Exception Hierarchy

Contains all exception classes raised by the dataflow core, the sparse
matrix layer and the record sources/sinks.
"""

from typing import Any, Optional


class TuplePipeError(Exception):
    """
    Base exception for all tuplepipe operations.

    Carries the name of the operator that failed and, where one exists,
    the offending key or value.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, message: str, *, operator: Optional[str] = None, key: Any = None):
        super().__init__(message)
        self.operator = operator
        self.key = key


class SchemaMismatch(TuplePipeError):
    """
    Raised when a record or field reference does not agree with a schema.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class InvalidArgument(TuplePipeError):
    """
    Raised for invalid operator parameters (negative limit, non-positive
    take count, malformed n-gram pattern, bad configuration values).

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class DivisionByZero(TuplePipeError):
    """
    Raised when normalizing a matrix row whose absolute sum is zero.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class JoinMemoryPrecondition(TuplePipeError):
    """
    Raised when the right side of a broadcast join is larger than the
    configured in-memory limit.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class DuplicateKey(TuplePipeError):
    """
    Raised when a sparse matrix is built from records carrying the same
    (row, column) pair twice.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class SourceNotFound(TuplePipeError):
    """
    Raised when a record source location cannot be read.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


__all__ = [
    "TuplePipeError",
    "SchemaMismatch",
    "InvalidArgument",
    "DivisionByZero",
    "JoinMemoryPrecondition",
    "DuplicateKey",
    "SourceNotFound",
]
