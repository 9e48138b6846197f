"""Text helpers for word segmentation and normalization."""

from __future__ import annotations

import unicodedata
from typing import List

import regex

# Unicode default word boundaries (UAX #29) keep "don't" and "3.14" together.
_WORD_BREAK_RE = regex.compile(r"\b", flags=regex.WORD | regex.V1)
_WORD_CHAR_RE = regex.compile(r"\w")


def split_words(text: str) -> List[str]:
    """Split text into Unicode words, dropping whitespace and punctuation segments."""
    return [segment for segment in _WORD_BREAK_RE.split(text) if _WORD_CHAR_RE.search(segment)]


def normalize_letters(text: str) -> str:
    """Compose to NFC and lowercase, the form letter frequencies are counted in."""
    return unicodedata.normalize("NFC", text).lower()


def alpha_ratio(text: str) -> float:
    """Ratio of alphabetic characters to all characters; 0.0 for empty text."""
    if not text:
        return 0.0
    return sum(1 for char in text if char.isalpha()) / len(text)


def type_token_ratio(words: List[str]) -> float:
    """Unique lower-cased words over total words; 0.0 without words."""
    if not words:
        return 0.0
    return len({word.lower() for word in words}) / len(words)


def average_word_length(words: List[str]) -> float:
    if not words:
        return 0.0
    return sum(len(word) for word in words) / len(words)
