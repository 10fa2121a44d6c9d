"""
Reference jobs built on the tuplepipe DSL.

Each job reads its inputs from the locations in a JobConfig (or from
substituted sources), builds named output pipes and writes them through
sinks in one evaluation.
"""

from .base import Job, VERSES_SCHEMA
from .filter_unique_count_limit import FilterUniqueCountLimitJob
from .joins import ABBREVS_SCHEMA, JoinsJob, expand_abbreviations
from .ngrams import NGramsJob, ngram_counts
from .text import ngram_regex, ngrams, tokenize
from .tfidf import TfIdfJob, tfidf_pipe, tfidf_scores
from .wordcount import WordCountJob, word_counts

__all__ = [
    "Job", "VERSES_SCHEMA", "ABBREVS_SCHEMA",
    "WordCountJob", "NGramsJob", "FilterUniqueCountLimitJob", "JoinsJob", "TfIdfJob",
    "word_counts", "ngram_counts", "expand_abbreviations", "tfidf_pipe", "tfidf_scores",
    "tokenize", "ngram_regex", "ngrams",
]
