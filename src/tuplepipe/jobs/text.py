"""
Text helpers shared by the reference jobs: word tokenization and n-gram
pattern matching.
"""

import re
from typing import List, Pattern

from ..exceptions import InvalidArgument

WILDCARD = "%"

_NON_WORD = re.compile(r"\W+")


def tokenize(text: str) -> List[str]:
    """Lower-case words of a text, split on runs of non-word characters."""
    return [token for token in _NON_WORD.split(text.lower()) if token]


def _tail(wildcards: int) -> str:
    # Each trailing wildcard takes the next word, or stops at the end of the line.
    if wildcards == 0:
        return ""
    return rf"(?:\s+\w+{_tail(wildcards - 1)}|\s*$)"


def ngram_regex(pattern: str) -> Pattern[str]:
    """
    Compile an n-gram pattern such as "% love %" into a regex.

    Each "%" matches one word; other tokens match themselves,
    case-insensitively. Wildcards after the last literal word may be cut
    short by the end of the line, so "love % %" matches "love cats" at the
    end of "i love cats".

    Raises:
        InvalidArgument: If the pattern is empty or has no literal word
    """
    tokens = pattern.lower().split()
    literal_positions = [i for i, token in enumerate(tokens) if token != WILDCARD]
    if not literal_positions:
        raise InvalidArgument(f"N-gram pattern {pattern!r} needs at least one literal word",
                              operator="ngrams", key=pattern)

    last = literal_positions[-1]
    body = r"\s+".join(r"\w+" if token == WILDCARD else re.escape(token) for token in tokens[:last + 1])
    return re.compile(rf"\b{body}\b{_tail(len(tokens) - last - 1)}")


def ngrams(line: str, regex: Pattern[str]) -> List[str]:
    """Every non-overlapping match of the regex in the lower-cased line, whitespace-normalized."""
    return [" ".join(match.group(0).split()) for match in regex.finditer(line.lower())]
