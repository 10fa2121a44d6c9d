"""
End-to-end tests for the reference jobs.

Jobs run against in-memory sources and sinks, plus one file-backed run
per output layout.
"""

import math

import pytest

from tuplepipe.config import JobConfig
from tuplepipe.dsl import MemorySink, MemorySource, Pipe, TextLineSource
from tuplepipe.exceptions import InvalidArgument
from tuplepipe.jobs import (
    ABBREVS_SCHEMA, VERSES_SCHEMA,
    FilterUniqueCountLimitJob, JoinsJob, NGramsJob, TfIdfJob, WordCountJob,
    ngram_regex, ngrams, tfidf_pipe, tokenize,
)


def line_source(*lines):
    return MemorySource(TextLineSource.SCHEMA, list(enumerate(lines)))


# =============================================================================
# Text Helpers
# =============================================================================

class TestText:
    """Test tokenization and n-gram matching."""

    def test_tokenize(self):
        assert tokenize("In the Beginning, God's   word!") == ["in", "the", "beginning", "god", "s", "word"]
        assert tokenize("  ...  ") == []

    @pytest.mark.parametrize("pattern,line,expected", [
        ("love % %", "i love you and me", ["love you and"]),
        ("love % %", "i love cats", ["love cats"]),
        ("% love %", "We LOVE him, and he loves us", ["we love him"]),
        ("% love", "love is patient", []),
        ("the %", "the lord and the people", ["the lord", "the people"]),
    ])
    def test_ngrams(self, pattern, line, expected):
        assert ngrams(line, ngram_regex(pattern)) == expected

    @pytest.mark.parametrize("pattern", ["", "   ", "% %"])
    def test_malformed_pattern(self, pattern):
        with pytest.raises(InvalidArgument):
            ngram_regex(pattern)


# =============================================================================
# Jobs
# =============================================================================

class TestJobs:
    """Test the reference jobs end to end."""

    def test_ngrams_scenario(self, config):
        sink = MemorySink()
        job = NGramsJob(
            config.with_overrides(ngram_pattern="love % %", ngram_count=2),
            sources={"input": line_source("i love you and me", "i love cats")},
            sinks={"output": sink},
        )
        assert job.run().unwrap() == {"output": 2}
        assert sink.rows() == [("love you and", 1), ("love cats", 1)]

    def test_ngrams_without_pattern_is_err(self, config):
        job = NGramsJob(config, sources={"input": line_source("x")}, sinks={"output": MemorySink()})
        result = job.run()
        assert result.is_err()
        assert result.error.step == "ngrams"
        assert isinstance(result.error.cause, InvalidArgument)

    def test_wordcount_scenario(self, config):
        sink = MemorySink()
        job = WordCountJob(config, sources={"input": line_source("a b a", "b c")}, sinks={"output": sink})
        job.run().unwrap()
        assert sink.rows() == [("a", 2), ("b", 2), ("c", 1)]
        assert sink.schema.names == ("word", "count")

    def test_filter_unique_count_limit_scenario(self, config, verse_rows):
        sinks = {name: MemorySink() for name in FilterUniqueCountLimitJob.outputs}
        job = FilterUniqueCountLimitJob(
            config.with_overrides(limit=2),
            sources={"input": MemorySource(VERSES_SCHEMA, verse_rows)},
            sinks=sinks,
        )
        written = job.run().unwrap()
        assert written == {"filtered": 3, "unique": 4, "count": 1, "limit": 2}
        assert all("miracle" not in r["text"].lower() for r in sinks["filtered"].records)
        assert sinks["count"].rows() == [(5,)]
        assert sinks["unique"].rows() == [("Gen",), ("Exo",), ("Xyz",), ("Joh",)]
        assert sinks["limit"].rows() == [tuple(row) for row in verse_rows[:2]]

    def test_unique_books(self):
        rows = [("A", 1, 1, "x"), ("A", 1, 2, "y"), ("B", 1, 1, "z")]
        books = Pipe.from_records(VERSES_SCHEMA, rows).project("book").unique("book")
        assert [r["book"] for r in books.run().unwrap()] == ["A", "B"]

    def test_joins_scenario(self, config, verse_rows):
        sink = MemorySink()
        job = JoinsJob(
            config,
            sources={
                "input": MemorySource(VERSES_SCHEMA, verse_rows),
                "lookup": MemorySource(ABBREVS_SCHEMA, [("Gen", "Genesis"), ("Exo", "Exodus"), ("Joh", "John")]),
            },
            sinks={"output": sink},
        )
        job.run().unwrap()
        assert sink.schema.names == ("name", "chapter", "verse", "text")
        assert [r[0] for r in sink.rows()] == ["Genesis", "Genesis", "Exodus", "John"]

    def test_tfidf_scores(self, config):
        rows = [("A", 1, 1, "cat dog"), ("B", 1, 1, "cat cat"), ("B", 1, 2, "bird")]
        sink = MemorySink()
        job = TfIdfJob(config, sources={"input": MemorySource(VERSES_SCHEMA, rows)},
                       sinks={"output": sink}, doc_ids={"A": 1, "B": 2})
        job.run().unwrap()
        assert sink.schema.names == ("doc", "word", "tfidf")
        expected = [
            (1, "dog", math.log2(5)),
            (1, "cat", math.log2(5 / 3)),
            (2, "bird", math.log2(5)),
            (2, "cat", 2 * math.log2(5 / 3)),
        ]
        actual = sink.rows()
        assert [(d, w) for d, w, _ in actual] == [(d, w) for d, w, _ in expected]
        assert [s for _, _, s in actual] == pytest.approx([s for _, _, s in expected])

    def test_tfidf_top_n_and_unlisted_books(self, config):
        rows = [("A", 1, 1, "cat dog"), ("B", 1, 1, "cat cat bird"), ("C", 1, 1, "ignored words")]
        sink = MemorySink()
        job = TfIdfJob(config.with_overrides(top_n=1), sources={"input": MemorySource(VERSES_SCHEMA, rows)},
                       sinks={"output": sink}, doc_ids={"A": 1, "B": 2})
        job.run().unwrap()
        assert [(d, w) for d, w, _ in sink.rows()] == [(1, "dog"), (2, "bird")]

    def test_tfidf_by_book_name(self):
        docs = Pipe.from_records(["book", "text"], [("Gen", "light light dark"), ("Exo", "dark sea")])
        records = tfidf_pipe(docs, "book", "text", top_n=100).run().unwrap()
        assert [r["book"] for r in records] == ["Exo", "Exo", "Gen", "Gen"]
        assert records[0]["word"] == "sea"

    def test_tfidf_empty_corpus(self):
        docs = Pipe.from_records(["book", "text"], [])
        assert tfidf_pipe(docs, "book", "text").run().unwrap() == []

    # -------------------------------------------------------------------------
    # File-backed runs
    # -------------------------------------------------------------------------

    def test_wordcount_files(self, tmp_path):
        source = tmp_path / "input.txt"
        source.write_text("a b a\nb c\n", encoding="utf-8")
        output = tmp_path / "counts.tsv"
        written = WordCountJob(JobConfig(input=str(source), output=str(output))).run().unwrap()
        assert written == {"output": 3}
        assert output.read_text(encoding="utf-8") == "a\t2\nb\t2\nc\t1\n"

    def test_filter_unique_count_limit_files(self, tmp_path, verse_rows):
        source = tmp_path / "kjv.txt"
        source.write_text("".join("|".join(map(str, row)) + "\n" for row in verse_rows), encoding="utf-8")
        output = tmp_path / "out"
        config = JobConfig(input=str(source), output=str(output), delimiter="|", limit=1)
        FilterUniqueCountLimitJob(config).run().unwrap()
        assert (output / "count").read_text(encoding="utf-8") == "5\n"
        assert (output / "unique").read_text(encoding="utf-8") == "Gen\nExo\nXyz\nJoh\n"
        assert (output / "limit").read_text(encoding="utf-8").startswith("Gen|1|1|In the beginning")
        assert len((output / "filtered").read_text(encoding="utf-8").splitlines()) == 3

    def test_joins_files_keep_embedded_quotes(self, tmp_path):
        verses = tmp_path / "kjv.tsv"
        verses.write_text('Gen\t1\t3\tAnd God said, "Let there be light"\n', encoding="utf-8")
        lookup = tmp_path / "abbrevs.tsv"
        lookup.write_text("Gen\tGenesis\n", encoding="utf-8")
        output = tmp_path / "joined.tsv"
        config = JobConfig(input=str(verses), lookup=str(lookup), output=str(output))
        assert JoinsJob(config).run().unwrap() == {"output": 1}
        assert output.read_text(encoding="utf-8") == 'Genesis\t1\t3\tAnd God said, "Let there be light"\n'

    def test_missing_input_writes_nothing(self, tmp_path):
        output = tmp_path / "counts.tsv"
        result = WordCountJob(JobConfig(input=str(tmp_path / "nope.txt"), output=str(output))).run()
        assert result.is_err()
        assert not output.exists()

    def test_missing_output_location(self):
        result = WordCountJob(JobConfig(), sources={"input": line_source("a")}).run()
        assert result.is_err()
        assert isinstance(result.error.cause, InvalidArgument)
