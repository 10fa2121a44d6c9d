"""
catpy.py - Result plumbing for pipeline evaluation.

This module provides the small set of category-theory-inspired types the
evaluator threads through every step:
- Core typeclass: Monad (with the Functor map derived from bind/pure)
- Concrete instance: Result (Ok/Err)
- PipelineError and the pipeline_ok/pipeline_err helpers
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")

# ---------------------------------------------------------------------------
# Core typeclass
# ---------------------------------------------------------------------------

class Monad(ABC, Generic[T]):
    """
    A structure that supports sequencing (bind) and lifting (pure).

    Laws (for all x and functions f: a -> m b, g: b -> m c):
      1) Left identity:  pure(x).bind(f) == f(x)
      2) Right identity: m.bind(pure)    == m
      3) Associativity:  m.bind(f).bind(g) == m.bind(lambda x: f(x).bind(g))

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    @classmethod
    @abstractmethod
    def pure(cls, x: U) -> "Monad[U]":
        """Lift a value into the monadic context."""
        raise NotImplementedError

    @abstractmethod
    def bind(self, f: Callable[[T], "Monad[U]"]) -> "Monad[U]":
        """Chain a function that returns a wrapped value (aka flatMap)."""
        raise NotImplementedError

    def fmap(self, f: Callable[[T], U]) -> "Monad[U]":
        return self.bind(lambda a: self.__class__.pure(f(a)))

    # Convenience alias
    def map(self, f: Callable[[T], U]) -> "Monad[U]":
        return self.fmap(f)

    def __rshift__(self, f: Callable[[T], "Monad[U]"]) -> "Monad[U]":
        """Syntactic sugar: m >> f == m.bind(f)"""
        return self.bind(f)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class Result(Monad[T], Generic[T, E]):
    """
    Tagged union for success or failure with an error value.
    - Ok(value)
    - Err(error)

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """

    @classmethod
    def pure(cls, x: U) -> "Result[U, E]":
        return Ok(x)

    def is_ok(self) -> bool:
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        return isinstance(self, Err)

    def unwrap(self) -> T:
        """
        Get the value, or raise if Err.

        When the error wraps an exception, that exception is re-raised so
        callers see the original SchemaMismatch, InvalidArgument, etc.
        """
        if isinstance(self, Ok):
            return self.value
        cause = getattr(self.error, "cause", None)
        if isinstance(cause, BaseException):
            raise cause
        raise ValueError(f"Cannot unwrap Err: {self}")

    def unwrap_or(self, default: T) -> T:
        """Get the value or return default if Err."""
        if isinstance(self, Ok):
            return self.value
        return default

    def map_err(self, f: Callable[[E], E]) -> "Result[T, E]":
        """Map a function over the error value."""
        if isinstance(self, Err):
            return Err(f(self.error))
        return self


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Represents a successful result.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """
    value: T

    def bind(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return f(self.value)

    def fmap(self, f: Callable[[T], U]) -> Result[U, E]:
        return Ok(f(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Result[Any, E]):
    """Represents a failed result with error information.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """
    error: E

    def bind(self, f: Callable[[Any], Result[U, E]]) -> Result[U, E]:
        return self

    def fmap(self, f: Callable[[Any], U]) -> Result[U, E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# ---------------------------------------------------------------------------
# Pipeline Error Type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineError:
    """Error that stopped a pipeline run.

    `step` names the failing operator (or "sink:<output>" for a write);
    `cause` is the exception raised there, if any.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    step: str
    message: str
    cause: Optional[Exception] = None

    @property
    def key(self) -> Any:
        """Offending key or value carried by a TuplePipeError cause, else None."""
        return getattr(self.cause, "key", None)

    def __str__(self) -> str:
        text = f"[{self.step}] {self.message}"
        if self.cause is not None and str(self.cause) != self.message:
            text = f"{text}: {self.cause}"
        if self.key is not None:
            text = f"{text} (key={self.key!r})"
        return text


# Type alias for pipeline results
PipelineResult = Result[T, PipelineError]


def pipeline_ok(value: T) -> PipelineResult[T]:
    """Create a successful pipeline result."""
    return Ok(value)


def pipeline_err(step: str, message: str, cause: Optional[Exception] = None) -> PipelineResult[Any]:
    """Create a failed pipeline result."""
    return Err(PipelineError(step, message, cause))
