"""
Tolerant search matching: accent-, case- and whitespace-insensitive.

normalize("  Café  Müller ") -> "cafe muller"
"""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_WORD_SPLIT_RE = re.compile(r"[\s\-._]+")

_PUNCTUATION_MAP = str.maketrans({
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
})


def strip_diacritics(text: str) -> str:
    """Drop combining marks after NFKD decomposition ("é" -> "e", "ñ" -> "n")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str | None) -> str:
    """Lowercase, strip accents, collapse whitespace and unify quotes/dashes."""
    if not text:
        return ""
    out = strip_diacritics(text.lower())
    out = _WHITESPACE_RE.sub(" ", out).strip()
    return out.translate(_PUNCTUATION_MAP)


def contains_normalized(text: str | None, query: str | None) -> bool:
    return normalize(query) in normalize(text)


def starts_with_normalized(text: str | None, query: str | None) -> bool:
    return normalize(text).startswith(normalize(query))


def split_into_words(text: str | None) -> list[str]:
    """Split on whitespace, dashes, dots and underscores after normalizing."""
    return [w for w in _WORD_SPLIT_RE.split(normalize(text)) if w]


def matches_any_word_prefix(text: str | None, query: str | None) -> bool:
    """True if every query word is a prefix of some word in text."""
    words = split_into_words(text)
    wanted = split_into_words(query)
    if not wanted:
        return True
    return all(any(w.startswith(q) for w in words) for q in wanted)
