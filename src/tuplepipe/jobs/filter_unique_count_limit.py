"""
Filter, unique, count and limit over one verse source.

The four outputs share the same source pipe; the evaluator reads it once.
"""

from typing import Dict

from ..dsl.core import Pipe
from .base import Job

EXCLUDED_WORD = "miracle"


class FilterUniqueCountLimitJob(Job):
    """
    Writes four outputs under config.output:

    - filtered: verses whose text does not mention "miracle"
    - unique: each book once, in first-seen order
    - count: total number of verses
    - limit: the first config.limit verses

    ::: This is-in-layer Service-Layer.
    ::: This is a job.
    """

    name = "filter_unique_count_limit"
    outputs = ("filtered", "unique", "count", "limit")

    def build(self) -> Dict[str, Pipe]:
        verses = self.verses()
        return {
            "filtered": verses.filter("text", lambda text: EXCLUDED_WORD not in text.lower()),
            "unique": verses.project("book").unique("book"),
            "count": verses.group_all().count("count"),
            "limit": verses.limit(self.config.limit),
        }
