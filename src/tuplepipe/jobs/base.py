"""
Job base class.

A Job builds a set of named output Pipes from its configured sources and
writes each to a sink. Sources and sinks default to files named by the
JobConfig; callers (and tests) may substitute any RecordSource/RecordSink
by name.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, ClassVar, Dict, Mapping, Optional, Tuple

from ..config import JobConfig, load_config
from ..dsl.catpy import PipelineResult, pipeline_err
from ..dsl.core import Context, Pipe
from ..dsl.evaluator import Evaluator
from ..dsl.io import DelimitedSink, DelimitedSource, RecordSink, RecordSource, TextLineSource
from ..dsl.schema import Field, Schema
from ..exceptions import InvalidArgument, TuplePipeError
from ..logging_config import configure_logger_for_debug_trace

logger = configure_logger_for_debug_trace(__name__)

# (book, chapter, verse, text) records of a scripture corpus
VERSES_SCHEMA = Schema([Field("book", "string"), Field("chapter", "int"),
                        Field("verse", "int"), Field("text", "string")])


class Job(ABC):
    """
    Base class for the reference jobs.

    Subclasses set `name` and `outputs` and implement build(). A job with a
    single output writes to config.output; a job with several writes
    config.output/<name> for each.

    ::: This is-in-layer Service-Layer.
    ::: This is a job.
    ::: This is stateless.
    """

    name: ClassVar[str] = "job"
    outputs: ClassVar[Tuple[str, ...]] = ("output",)

    def __init__(self, config: Optional[JobConfig] = None,
                 sources: Optional[Mapping[str, RecordSource]] = None,
                 sinks: Optional[Mapping[str, RecordSink]] = None):
        self.config = config if config is not None else load_config()
        self._sources = dict(sources or {})
        self._sinks = dict(sinks or {})

    # -------------------------------------------------------------------------
    # Sources and sinks
    # -------------------------------------------------------------------------

    def require(self, key: str) -> str:
        """A config value the job cannot run without."""
        value = getattr(self.config, key)
        if not value:
            raise InvalidArgument(f"{self.name} needs '{key}' to be configured", operator=self.name, key=key)
        return value

    def source(self, name: str, default: Callable[[], RecordSource]) -> RecordSource:
        """The substituted source of this name, else the default one."""
        if name in self._sources:
            return self._sources[name]
        return default()

    def lines(self) -> Pipe:
        """(offset, line) records of the input file."""
        return Pipe.from_source(self.source("input", lambda: TextLineSource(self.require("input"))))

    def verses(self) -> Pipe:
        """(book, chapter, verse, text) records of the input file."""
        return Pipe.from_source(self.source(
            "input", lambda: DelimitedSource(self.require("input"), VERSES_SCHEMA, self.config.delimiter)
        ))

    def sink(self, name: str) -> RecordSink:
        if name in self._sinks:
            return self._sinks[name]
        output = Path(self.require("output"))
        location = output if len(self.outputs) == 1 else output / name
        return DelimitedSink(location, self.config.delimiter)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @abstractmethod
    def build(self) -> Dict[str, Pipe]:
        """Named output pipes, one per entry of `outputs`."""

    def run(self, ctx: Optional[Context] = None) -> PipelineResult[Dict[str, int]]:
        """
        Build and evaluate the job, then write every output.

        Returns:
            Ok(records written per output), or Err naming the failing step;
            nothing is written when any output fails.
        """
        ctx = ctx or Context(config=self.config, name=self.name)
        try:
            pipes = self.build()
            outputs = {name: (pipe, self.sink(name)) for name, pipe in pipes.items()}
        except TuplePipeError as e:
            logger.error(f"[{self.name}] cannot build job: {e}")
            return pipeline_err(self.name, str(e), e)

        result = Evaluator(ctx).write(outputs)
        if result.is_ok():
            logger.info(f"[{self.name}] wrote {result.value}")
        return result
