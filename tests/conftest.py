"""
Shared pytest fixtures for tuplepipe tests.

This module provides the small record sets and configs used across the
test modules.
"""

import pytest

from tuplepipe.config import ConfigLoader, JobConfig
from tuplepipe.dsl import Context, Field, Pipe, Schema


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep TUPLEPIPE_* variables of the host out of every test."""
    for env_var in list(ConfigLoader.CONFIG_KEY_TO_ENV.values()) + ["TUPLEPIPE_PROJECT_ROOT"]:
        monkeypatch.delenv(env_var, raising=False)
    yield


@pytest.fixture
def verse_schema():
    return Schema([Field("book", "string"), Field("chapter", "int"),
                   Field("verse", "int"), Field("text", "string")])


@pytest.fixture
def verse_rows():
    """Five verses, two of which mention a miracle."""
    return [
        ("Gen", 1, 1, "In the beginning God created the heaven and the earth."),
        ("Gen", 1, 2, "And the earth was without form, and void."),
        ("Exo", 7, 9, "Shew a miracle for you."),
        ("Xyz", 1, 1, "Text of an unknown book."),
        ("Joh", 2, 11, "This beginning of miracles did Jesus in Cana of Galilee."),
    ]


@pytest.fixture
def verses(verse_schema, verse_rows):
    return Pipe.from_records(verse_schema, verse_rows)


@pytest.fixture
def people():
    """Sample records for operator tests."""
    return Pipe.from_records(
        ["name", "city", "age"],
        [
            ("ann", "paris", 31),
            ("bob", "rome", 25),
            ("cid", "paris", 40),
            ("dan", "oslo", 25),
            ("eve", "rome", 35),
        ],
    )


@pytest.fixture
def config(tmp_path):
    return JobConfig(output=str(tmp_path / "out"))


@pytest.fixture
def ctx(config):
    return Context(config=config, name="test")
