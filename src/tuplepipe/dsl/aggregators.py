"""
Group aggregators.

An Aggregator reduces the records of one group to exactly one tuple of
result values. Aggregators must not depend on arrival order beyond the
first-seen order the grouping step supplies.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from .schema import Field, Record


class Aggregator(ABC):
    """
    Reduces the records of a group to one tuple of values.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a aggregator.
    ::: This is stateless.
    """

    @property
    def input_fields(self) -> Tuple[str, ...]:
        """Fields the aggregator reads; checked against the schema at construction."""
        return ()

    @property
    @abstractmethod
    def output_fields(self) -> Tuple[Field, ...]:
        """Fields the aggregator appends to the group key."""

    @abstractmethod
    def aggregate(self, records: Sequence[Record]) -> Tuple[Any, ...]:
        """Reduce the group's records to one value per output field."""


@dataclass(frozen=True)
class Count(Aggregator):
    """Number of records in the group."""
    field: str = "count"

    @property
    def output_fields(self) -> Tuple[Field, ...]:
        return (Field(self.field, "int"),)

    def aggregate(self, records: Sequence[Record]) -> Tuple[Any, ...]:
        return (len(records),)


@dataclass(frozen=True)
class Sum(Aggregator):
    """Sum of a numeric field over the group (0 for an empty group)."""
    field: str
    out: Optional[str] = None

    @property
    def input_fields(self) -> Tuple[str, ...]:
        return (self.field,)

    @property
    def output_fields(self) -> Tuple[Field, ...]:
        return (Field(self.out or self.field),)

    def aggregate(self, records: Sequence[Record]) -> Tuple[Any, ...]:
        return (sum(r[self.field] for r in records),)
