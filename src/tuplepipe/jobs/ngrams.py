"""N-gram search: the most frequent phrases matching a wildcard pattern."""

from typing import Dict

from ..dsl.core import Pipe
from .base import Job
from .text import ngram_regex, ngrams


def ngram_counts(lines: Pipe, pattern: str, count: int, text_field: str = "line") -> Pipe:
    """
    Top `count` (ngram, count) records for a pattern like "% love %".

    Lines without a match contribute nothing; equal counts keep first-seen
    order.
    """
    regex = ngram_regex(pattern)
    return (
        lines
        .flat_map(text_field, "ngram", lambda line: ngrams(line, regex))
        .group_by("ngram").count("count")
        .group_all().sort_with_take(("ngram", "count"), count, key=lambda nc: nc[1], descending=True)
    )


class NGramsJob(Job):
    """
    Finds the most frequent n-grams matching config.ngram_pattern.

    ::: This is-in-layer Service-Layer.
    ::: This is a job.
    """

    name = "ngrams"

    def build(self) -> Dict[str, Pipe]:
        pattern = self.require("ngram_pattern")
        return {"output": ngram_counts(self.lines(), pattern, self.config.ngram_count)}
