"""
TF-IDF ranking of the words of each document.

    tf(doc, word)  = occurrences of word in doc
    df             = column sums of tf, L1-normalized
    idf(word)      = log2(1 / df[word])
    tfidf          = tf * idf, top N words per document

The L1 normalization and base-2 logarithm are kept as they are; results
are compared against reference outputs built with this exact formula.
"""

import math
from typing import Dict, Mapping, Optional

from ..dsl.core import Pipe
from ..dsl.schema import Field
from ..logging_config import configure_logger_for_debug_trace
from ..matrix import DEFAULT_ROW_KEY, SparseMatrix
from .base import Job
from .text import tokenize

logger = configure_logger_for_debug_trace(__name__)


def tfidf_scores(tf: SparseMatrix, top_n: int) -> SparseMatrix:
    """Top top_n TF-IDF scores per row of a (doc, word) -> count matrix."""
    if not len(tf):
        return tf
    df = tf.sum_rows(DEFAULT_ROW_KEY)
    idf = df.l1_normalize(DEFAULT_ROW_KEY).map_values(lambda x: math.log2(1 / x))
    logger.debug(f"idf computed for {len(idf)} words")
    return tf.hadamard(tf.broadcast_row(idf, DEFAULT_ROW_KEY)).top_row_elems(top_n)


def tfidf_pipe(documents: Pipe, doc_field: str, text_field: str, top_n: int = 100,
               out_field: str = "tfidf") -> Pipe:
    """(doc, word, tfidf) records: documents ascending, scores descending."""
    return (
        documents
        .flat_map(text_field, Field("word", "string"), tokenize)
        .project(doc_field, "word")
        .group_by(doc_field, "word").count("count")
        .matrix(doc_field, "word", "count", lambda tf: tfidf_scores(tf, top_n), out_field)
    )


class TfIdfJob(Job):
    """
    Ranks the words of each book of a verse corpus by TF-IDF.

    With doc_ids, only the listed books are scored and each is identified
    by its integer id; otherwise the book name is the document.

    ::: This is-in-layer Service-Layer.
    ::: This is a job.
    """

    name = "tfidf"

    def __init__(self, *args, doc_ids: Optional[Mapping[str, int]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.doc_ids = dict(doc_ids) if doc_ids is not None else None

    def build(self) -> Dict[str, Pipe]:
        verses = self.verses()
        if self.doc_ids is None:
            documents, doc_field = verses, "book"
        else:
            doc_ids = self.doc_ids
            documents = verses.flat_map(
                "book", Field("doc", "int"), lambda book: [doc_ids[book]] if book in doc_ids else []
            )
            doc_field = "doc"
        return {"output": tfidf_pipe(documents, doc_field, "text", self.config.top_n)}
