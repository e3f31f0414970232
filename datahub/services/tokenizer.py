"""Tokenizer shared by indexing and querying."""

import re

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
        "by", "from", "up", "about", "into", "through", "during", "before", "after",
        "above", "below", "is", "are", "was", "were", "be", "been", "being", "have", "has",
        "had", "do", "does", "did", "will", "would", "should", "could", "can", "may",
        "might", "must", "shall",
    }
)  # fmt: skip

MIN_TOKEN_LENGTH = 3

# Anything that is not a word character, whitespace or hyphen becomes a space
_PUNCTUATION_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"\s+")


def tokenize(text: str | None) -> list[str]:
    """Lower-case, strip punctuation, split, and drop short or stop words.

    Tokens are returned in order of appearance, duplicates included.
    """
    if not text or not isinstance(text, str):
        return []
    cleaned = _PUNCTUATION_RE.sub(" ", text.lower())
    return [
        word
        for word in _WHITESPACE_RE.split(cleaned)
        if len(word) >= MIN_TOKEN_LENGTH and word not in STOP_WORDS
    ]


def unique_tokens(text: str | None) -> list[str]:
    """Tokenize and drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(tokenize(text)))
