"""
Schema and Record - the typed tuple model underlying every operator.

A Schema is an ordered, immutable sequence of uniquely named Fields.
A Record is an immutable ordered mapping from field name to value, bound
to exactly one Schema. Operators never mutate a Record; they build new ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

from ..exceptions import InvalidArgument, SchemaMismatch

# Semantic field types; None means "dynamic" (taken from the values)
FIELD_TYPES = ("string", "int", "float")

FieldSpec = Union["Field", str]


@dataclass(frozen=True)
class Field:
    """A named field with an optional semantic type.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    name: str
    type: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise InvalidArgument("Field name must not be empty", operator="schema")
        if self.type is not None and self.type not in FIELD_TYPES:
            raise InvalidArgument(
                f"Unknown field type {self.type!r} for {self.name!r}; expected one of {FIELD_TYPES}",
                operator="schema", key=self.name,
            )


def as_field(spec: FieldSpec) -> Field:
    """Coerce a field name or Field into a Field."""
    if isinstance(spec, Field):
        return spec
    return Field(spec)


def as_names(spec: Union[FieldSpec, Iterable[FieldSpec]]) -> Tuple[str, ...]:
    """Normalize a single field or a sequence of fields into a tuple of names."""
    if isinstance(spec, (str, Field)):
        spec = [spec]
    return tuple(as_field(f).name for f in spec)


class Schema:
    """
    Ordered sequence of uniquely named fields.

    Order matters for positional readers and writers (delimited text) but
    not for operator semantics, which always address fields by name.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """

    __slots__ = ("_fields", "_index")

    def __init__(self, fields: Iterable[FieldSpec] = ()):
        self._fields: Tuple[Field, ...] = tuple(as_field(f) for f in fields)
        self._index: Dict[str, int] = {}
        for position, f in enumerate(self._fields):
            if f.name in self._index:
                raise SchemaMismatch(f"Duplicate field name {f.name!r} in schema",
                                     operator="schema", key=f.name)
            self._index[f.name] = position

    @property
    def fields(self) -> Tuple[Field, ...]:
        return self._fields

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self._fields)

    def index_of(self, name: str) -> int:
        """Position of a field; KeyError if absent."""
        return self._index[name]

    def field(self, name: str) -> Field:
        return self._fields[self._index[name]]

    def require(self, names: Iterable[str], operator: str) -> None:
        """Fail fast if any of the named fields is absent."""
        missing = [n for n in names if n not in self._index]
        if missing:
            raise SchemaMismatch(
                f"{operator}: field(s) {missing} not in schema {list(self.names)}",
                operator=operator, key=tuple(missing),
            )

    def project(self, names: Sequence[str], operator: str = "project") -> "Schema":
        """Keep only the named fields, in the given order."""
        self.require(names, operator)
        return Schema(self.field(n) for n in names)

    def discard(self, names: Sequence[str], operator: str = "discard") -> "Schema":
        """Remove the named fields, keeping the rest in original order."""
        self.require(names, operator)
        dropped = set(names)
        return Schema(f for f in self._fields if f.name not in dropped)

    def extend(self, fields: Iterable[FieldSpec], operator: str = "extend") -> "Schema":
        """Append new fields; a name clash is a schema error."""
        extra = [as_field(f) for f in fields]
        clashes = [f.name for f in extra if f.name in self._index]
        if clashes:
            raise SchemaMismatch(
                f"{operator}: output field(s) {clashes} already in schema {list(self.names)}",
                operator=operator, key=tuple(clashes),
            )
        return Schema(self._fields + tuple(extra))

    def merge(self, other: "Schema") -> "Schema":
        """Fields of self followed by fields of other not already present (self wins)."""
        return Schema(self._fields + tuple(f for f in other.fields if f.name not in self._index))

    def rename(self, renames: Mapping, operator: str = "rename") -> "Schema":
        self.require(renames.keys(), operator)
        return Schema(Field(renames.get(f.name, f.name), f.type) for f in self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return self._fields == other._fields

    def __hash__(self) -> int:
        return hash(self._fields)

    def __repr__(self) -> str:
        parts = [f.name if f.type is None else f"{f.name}:{f.type}" for f in self._fields]
        return f"Schema({', '.join(parts)})"


class Record(Mapping):
    """
    Immutable ordered mapping from field name to value.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """

    __slots__ = ("_schema", "_values")

    def __init__(self, schema: Schema, values: Iterable[Any]):
        values = tuple(values)
        if len(values) != len(schema):
            raise SchemaMismatch(
                f"Record has {len(values)} value(s) but schema {list(schema.names)} "
                f"declares {len(schema)}",
                operator="record", key=values,
            )
        self._schema = schema
        self._values = values

    @classmethod
    def from_mapping(cls, schema: Schema, mapping: Mapping) -> "Record":
        """Build a record by looking up every schema field in a mapping."""
        missing = [n for n in schema.names if n not in mapping]
        if missing:
            raise SchemaMismatch(f"Record is missing field(s) {missing}",
                                 operator="record", key=tuple(missing))
        return cls(schema, (mapping[n] for n in schema.names))

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def values(self) -> Tuple[Any, ...]:
        return self._values

    def values_of(self, names: Sequence[str]) -> Tuple[Any, ...]:
        """Values of the named fields as a tuple, in the given order."""
        index = self._schema.index_of
        return tuple(self._values[index(n)] for n in names)

    def extend(self, schema: Schema, extra: Iterable[Any]) -> "Record":
        """New record under a wider schema: these values followed by extra."""
        return Record(schema, self._values + tuple(extra))

    def project(self, schema: Schema) -> "Record":
        return Record(schema, self.values_of(schema.names))

    def to_dict(self) -> Dict[str, Any]:
        return dict(zip(self._schema.names, self._values))

    def __getitem__(self, name: str) -> Any:
        return self._values[self._schema.index_of(name)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._schema.names)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self._schema.names == other._schema.names and self._values == other._values
        return super().__eq__(other)

    def __hash__(self) -> int:
        return hash((self._schema.names, self._values))

    def __repr__(self) -> str:
        body = ", ".join(f"{n}={v!r}" for n, v in zip(self._schema.names, self._values))
        return f"Record({body})"
