"""
Text normalization for the embedding model.
"""

import re
from typing import List

from ..core.config import MIN_TOKEN_LENGTH

# Common English function words filtered before weighting
STOP_WORDS = frozenset([
    "the", "be", "to", "of", "and", "a", "in", "that", "have", "i",
    "it", "for", "not", "on", "with", "he", "as", "you", "do", "at",
    "this", "but", "his", "by", "from", "they", "we", "say", "her", "she",
    "or", "an", "will", "my", "one", "all", "would", "there", "their",
    "what", "so", "up", "out", "if", "about", "who", "get", "which", "go",
    "me", "when", "make", "can", "like", "time", "no", "just", "him", "know",
    "take", "people", "into", "year", "your", "good", "some", "could", "them",
    "see", "other", "than", "then", "now", "look", "only", "come", "its", "over",
    "think", "also", "back", "after", "use", "two", "how", "our", "work",
    "first", "well", "way", "even", "new", "want", "because", "any", "these",
    "give", "day", "most", "us",
])

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_DIGITS = re.compile(r"\d+")


def tokenize(text: str) -> List[str]:
    """
    Split text into normalized tokens.

    Lowercases, turns punctuation into separators, then drops short tokens,
    pure numbers and stop words. Empty or all-punctuation input gives [].
    """
    if not text:
        return []

    cleaned = _NON_ALNUM.sub(" ", text.lower())
    return [
        word for word in _WHITESPACE.split(cleaned)
        if len(word) >= MIN_TOKEN_LENGTH
        and not _DIGITS.fullmatch(word)
        and word not in STOP_WORDS
    ]
