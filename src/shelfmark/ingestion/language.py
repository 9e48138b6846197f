"""Language detection and letter-frequency scoring.

Language detection uses lingua restricted to the languages the corpus
contains. The letter-frequency score is the Euclidean distance between a
document's empirical letter distribution and a published reference
distribution of the detected language; documents in languages without a
reference table get no score.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

import numpy as np
from lingua import Language, LanguageDetector, LanguageDetectorBuilder

from shelfmark.utils.text import normalize_letters

LOGGER = logging.getLogger(__name__)

# ISO 639-2/B codes written to the catalog.
LANGUAGE_CODES: Dict[Language, str] = {
    Language.GERMAN: "ger",
    Language.ENGLISH: "eng",
}


@dataclass(frozen=True)
class LetterTable:
    alphabet: str
    reference: Tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.alphabet) != len(self.reference):
            raise ValueError("alphabet and reference vector differ in length")

    @property
    def vector(self) -> np.ndarray:
        return np.asarray(self.reference, dtype="float64")


LETTER_TABLES: Dict[str, LetterTable] = {
    "ger": LetterTable(
        alphabet="abcdefghijklmnopqrstuvwxyzßäöü",
        reference=(
            0.06006, 0.02148, 0.02690, 0.04718, 0.16006, 0.01832, 0.03064,
            0.04249, 0.07752, 0.00297, 0.01536, 0.03787, 0.02798, 0.09660,
            0.02684, 0.01049, 0.00028, 0.07737, 0.06343, 0.06369, 0.03820,
            0.00918, 0.01427, 0.00051, 0.00107, 0.01237, 0.00170, 0.00548,
            0.00269, 0.00683,
        ),
    ),
    "eng": LetterTable(
        alphabet="abcdefghijklmnopqrstuvwxyz",
        reference=(
            0.08167, 0.01492, 0.02782, 0.04253, 0.12702, 0.02228, 0.02015,
            0.06094, 0.06966, 0.00253, 0.01772, 0.04025, 0.02406, 0.06749,
            0.07507, 0.01929, 0.00950, 0.05987, 0.06327, 0.09056, 0.02758,
            0.00978, 0.02360, 0.00250, 0.01974, 0.00074,
        ),
    ),
}


@lru_cache(maxsize=1)
def language_detector() -> LanguageDetector:
    """Return the process-wide detector, built on first use."""
    LOGGER.debug("Building language detector for %s", ", ".join(LANGUAGE_CODES.values()))
    return LanguageDetectorBuilder.from_languages(*LANGUAGE_CODES).build()


def detect_language(text: str) -> Optional[Tuple[str, float]]:
    """Return the most likely language code and its confidence, if any."""
    if not any(char.isalpha() for char in text):
        return None
    values = language_detector().compute_language_confidence_values(text)
    if not values:
        return None
    best = values[0]
    if best.value <= 0.0:
        return None
    return LANGUAGE_CODES[best.language], float(best.value)


def letter_frequencies(text: str, alphabet: str) -> Counter:
    """Count the letters of ``alphabet`` in normalized ``text``."""
    allowed = set(alphabet)
    return Counter(char for char in normalize_letters(text) if char in allowed)


def letter_frequency_score(text: str, lang_code: Optional[str]) -> Optional[float]:
    """Distance between the text's letter distribution and the reference table."""
    table = LETTER_TABLES.get(lang_code) if lang_code else None
    if table is None:
        return None

    counts = letter_frequencies(text, table.alphabet)
    total = sum(counts.values())
    if total > 0:
        observed = np.array([counts[char] / total for char in table.alphabet], dtype="float64")
    else:
        observed = np.zeros(len(table.alphabet), dtype="float64")

    return float(np.linalg.norm(observed - table.vector))
