"""Replace book abbreviations with full book names through a broadcast join."""

from typing import Dict

from ..dsl.core import Pipe
from ..dsl.io import DelimitedSource
from ..dsl.schema import Schema
from .base import Job

ABBREVS_SCHEMA = Schema(["abbrev", "name"])


def expand_abbreviations(verses: Pipe, abbrevs: Pipe) -> Pipe:
    """(name, chapter, verse, text) records; verses with an unknown abbreviation are dropped."""
    return (
        verses
        .broadcast_join("book", abbrevs, "abbrev")
        .project("name", "chapter", "verse", "text")
    )


class JoinsJob(Job):
    """
    Joins verses with the (abbrev, name) table at config.lookup.

    ::: This is-in-layer Service-Layer.
    ::: This is a job.
    """

    name = "joins"

    def build(self) -> Dict[str, Pipe]:
        abbrevs = Pipe.from_source(self.source(
            "lookup", lambda: DelimitedSource(self.require("lookup"), ABBREVS_SCHEMA, self.config.delimiter)
        ))
        return {"output": expand_abbreviations(self.verses(), abbrevs)}
