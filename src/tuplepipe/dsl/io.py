"""
Record Sources and Sinks

Sources produce a finite sequence of Records conforming to a declared
Schema; sinks persist a finite sequence of Records in the order given.

Key features:
- Delimited text read with pyarrow.csv and written from pyarrow columns
  (no header, no quoting)
- Typed columns taken from the schema's field types; an empty or "NA"
  value in a typed column is a schema mismatch, never a null
- Sinks stage to a temporary file and replace the target on commit, so a
  failed run never leaves partial output behind
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.csv as pacsv

from ..exceptions import InvalidArgument, SchemaMismatch, SourceNotFound
from ..logging_config import configure_logger_for_debug_trace
from .schema import Field, Record, Schema

logger = configure_logger_for_debug_trace(__name__)

# Semantic field type -> Arrow type
ARROW_TYPES = {
    "string": pa.string(),
    "int": pa.int64(),
    "float": pa.float64(),
}


# =============================================================================
# Sources
# =============================================================================

class RecordSource(ABC):
    """Base class for record sources.

    A source is iterated exactly once per pipeline execution; the evaluator
    memoizes what it yields.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a source.
    ::: This is a data-source.
    """

    @property
    @abstractmethod
    def schema(self) -> Schema:
        """Schema every produced record conforms to."""

    @abstractmethod
    def read(self) -> Iterator[Record]:
        """Lazily produce the source's records."""

    def describe(self) -> str:
        return type(self).__name__


class MemorySource(RecordSource):
    """In-memory rows given as tuples or mappings.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a source.
    ::: This is stateless.
    """

    def __init__(self, schema: Union[Schema, Sequence], rows: Iterable[Union[Sequence, Mapping]]):
        self._schema = schema if isinstance(schema, Schema) else Schema(schema)
        self._rows = list(rows)

    @property
    def schema(self) -> Schema:
        return self._schema

    def read(self) -> Iterator[Record]:
        for row in self._rows:
            if isinstance(row, Record):
                yield row.project(self._schema)
            elif isinstance(row, Mapping):
                yield Record.from_mapping(self._schema, row)
            else:
                yield Record(self._schema, row)

    def describe(self) -> str:
        return f"MemorySource({len(self._rows)} rows)"


class DelimitedSource(RecordSource):
    """Delimited text file read with pyarrow.csv.

    Lines carry no header and no quoting; fields are split on the delimiter
    and converted to the schema's field types (dynamic fields stay strings).

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a source.
    ::: This is a data-source.
    """

    def __init__(self, location: Union[str, Path], schema: Union[Schema, Sequence], delimiter: str = "\t"):
        self.location = Path(location)
        self._schema = schema if isinstance(schema, Schema) else Schema(schema)
        self.delimiter = delimiter

    @property
    def schema(self) -> Schema:
        return self._schema

    def read(self) -> Iterator[Record]:
        if not self.location.is_file():
            raise SourceNotFound(f"Cannot read {self.location}", operator="source", key=str(self.location))
        if self.location.stat().st_size == 0:
            return

        names = list(self._schema.names)
        column_types = {f.name: ARROW_TYPES.get(f.type, pa.string()) for f in self._schema}
        try:
            table = pacsv.read_csv(
                str(self.location),
                read_options=pacsv.ReadOptions(column_names=names),
                parse_options=pacsv.ParseOptions(delimiter=self.delimiter, quote_char=False),
                convert_options=pacsv.ConvertOptions(
                    column_types=column_types, null_values=[], strings_can_be_null=False,
                ),
            )
        except pa.ArrowInvalid as e:
            raise SchemaMismatch(
                f"{self.location} does not match schema {names}: {e}",
                operator="source", key=str(self.location),
            ) from e

        logger.debug(f"Read {table.num_rows} rows from {self.location}")
        for row in table.to_pylist():
            yield Record(self._schema, (row[n] for n in names))

    def describe(self) -> str:
        return f"DelimitedSource({self.location})"


class TextLineSource(RecordSource):
    """One record per line: (offset, line), offset being the byte position of the line.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a source.
    ::: This is a data-source.
    """

    SCHEMA = Schema([Field("offset", "int"), Field("line", "string")])

    def __init__(self, location: Union[str, Path], encoding: str = "utf-8"):
        self.location = Path(location)
        self.encoding = encoding

    @property
    def schema(self) -> Schema:
        return self.SCHEMA

    def read(self) -> Iterator[Record]:
        try:
            handle = open(self.location, "rb")
        except OSError as e:
            raise SourceNotFound(f"Cannot read {self.location}: {e}",
                                 operator="source", key=str(self.location)) from e
        with handle:
            offset = 0
            for raw in handle:
                line = raw.decode(self.encoding).rstrip("\r\n")
                yield Record(self.SCHEMA, (offset, line))
                offset += len(raw)

    def describe(self) -> str:
        return f"TextLineSource({self.location})"



# =============================================================================
# Sinks
# =============================================================================

@dataclass
class StagedWrite:
    """A validated, buffered write that becomes visible only on commit().

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    count: int
    on_commit: Callable[[], None]
    on_discard: Callable[[], None] = lambda: None

    def commit(self) -> int:
        self.on_commit()
        return self.count

    def discard(self) -> None:
        self.on_discard()


class RecordSink(ABC):
    """Base class for record sinks.

    Writing is two-phase: stage() validates and buffers the records, and
    the returned StagedWrite publishes them on commit(). The evaluator
    stages every output before committing any of them.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a sink.
    """

    @abstractmethod
    def write(self, records: Iterable[Record], schema: Schema) -> int:
        """Persist every record (in order) and return how many were written."""

    def stage(self, records: Iterable[Record], schema: Schema) -> StagedWrite:
        records = list(records)
        return StagedWrite(len(records), lambda: self.write(records, schema))


@dataclass
class MemorySink(RecordSink):
    """Collects written records in order.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a sink.
    """
    records: List[Record] = field(default_factory=list)
    schema: Optional[Schema] = None

    def write(self, records: Iterable[Record], schema: Schema) -> int:
        self.schema = schema
        self.records = [r.project(schema) for r in records]
        return len(self.records)

    def rows(self) -> List[tuple]:
        return [r.values for r in self.records]


class DelimitedSink(RecordSink):
    """Delimited text file; overwrites existing content.

    Values are converted column by column with pyarrow and written without
    a header and without quoting, so whatever DelimitedSource reads back is
    exactly what was written. A value containing the delimiter or a line
    break cannot be written that way and is rejected.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a sink.
    """

    def __init__(self, location: Union[str, Path], delimiter: str = "\t"):
        self.location = Path(location)
        self.delimiter = delimiter

    def _to_table(self, records: List[Record], schema: Schema) -> pa.Table:
        arrays = []
        for f in schema:
            values = [r[f.name] for r in records]
            arrow_type = ARROW_TYPES.get(f.type)
            if arrow_type is None and not values:
                arrow_type = pa.string()
            try:
                arrays.append(pa.array(values, type=arrow_type))
            except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
                raise SchemaMismatch(f"Values of field {f.name!r} do not fit one column type: {e}",
                                     operator="sink", key=f.name) from e
        return pa.Table.from_arrays(arrays, names=list(schema.names))

    def _format_lines(self, table: pa.Table) -> List[str]:
        forbidden = (self.delimiter, "\n", "\r")
        columns = []
        for name, column in zip(table.column_names, table.columns):
            values = pc.cast(column, pa.string()).to_pylist()
            for value in values:
                if value is not None and any(c in value for c in forbidden):
                    raise InvalidArgument(
                        f"Cannot write {value!r} of field {name!r} to {self.location}: "
                        f"it contains the delimiter or a line break",
                        operator="sink", key=value,
                    )
            columns.append(["" if v is None else v for v in values])
        return [self.delimiter.join(row) for row in zip(*columns)]

    def stage(self, records: Iterable[Record], schema: Schema) -> StagedWrite:
        """Write the records to a temporary file next to the target."""
        records = list(records)
        lines = self._format_lines(self._to_table(records, schema))

        self.location.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.location.with_name(f".{self.location.name}.tmp")
        written = False
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="\n") as handle:
                handle.writelines(f"{line}\n" for line in lines)
            written = True
        finally:
            if not written:
                tmp_path.unlink(missing_ok=True)

        def commit() -> None:
            os.replace(tmp_path, self.location)
            logger.debug(f"Wrote {len(records)} records to {self.location}")

        return StagedWrite(len(records), commit, lambda: tmp_path.unlink(missing_ok=True))

    def write(self, records: Iterable[Record], schema: Schema) -> int:
        staged = self.stage(records, schema)
        try:
            return staged.commit()
        finally:
            staged.discard()
