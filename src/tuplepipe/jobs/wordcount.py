"""Word count: every word of the input with its frequency, most frequent first."""

from typing import Dict

from ..dsl.core import Pipe
from .base import Job
from .text import tokenize


def word_counts(lines: Pipe, text_field: str = "line") -> Pipe:
    """(word, count) records sorted by count descending; equal counts keep first-seen order."""
    return (
        lines
        .flat_map(text_field, "word", tokenize)
        .group_by("word").count("count")
        .group_all().sort_with_take(("word", "count"), key=lambda wc: wc[1], descending=True)
    )


class WordCountJob(Job):
    """
    Counts words of a text file.

    ::: This is-in-layer Service-Layer.
    ::: This is a job.
    """

    name = "wordcount"

    def build(self) -> Dict[str, Pipe]:
        return {"output": word_counts(self.lines())}
