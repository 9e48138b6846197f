"""Document loading and feature extraction.

A :class:`Document` reads a file once and derives its identity, physical
metadata and content metrics lazily; every derived value is memoized, so the
language (which feeds the letter-frequency score) is detected only once.
"""

from __future__ import annotations

import hashlib
import logging
from functools import cached_property
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from shelfmark.errors import ProbeError
from shelfmark.ingestion.language import detect_language, letter_frequency_score
from shelfmark.models import DocumentKind, DocumentMetrics, PhysicalState
from shelfmark.utils.files import compute_sha256, relpath
from shelfmark.utils.text import (
    alpha_ratio,
    average_word_length,
    split_words,
    type_token_ratio,
)

LOGGER = logging.getLogger(__name__)


def kind_from_path(path: str) -> DocumentKind:
    """Return the first path component naming a document kind."""
    for part in PurePosixPath(path).parts[:-1]:
        try:
            return DocumentKind.parse(part)
        except ValueError:
            continue
    return DocumentKind.OTHER


class Document:
    """One document of the corpus, loaded fully into memory."""

    def __init__(self, path: Path, relative_path: str, content: bytes, mtime: int) -> None:
        self.path = Path(path)
        self.relative_path = relative_path
        self.content = content
        self.mtime = mtime

    @classmethod
    def from_path(cls, path: Path, base_dir: Path) -> "Document":
        path = Path(path)
        try:
            stat = path.stat()
            content = path.read_bytes()
        except OSError as exc:
            raise ProbeError(path, exc) from exc
        return cls(path, relpath(path, base_dir), content, int(stat.st_mtime))

    @property
    def identity(self) -> str:
        return self.path.stem

    @property
    def size(self) -> int:
        return len(self.content)

    @cached_property
    def text(self) -> str:
        try:
            return self.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProbeError(self.path, exc) from exc

    @cached_property
    def hash(self) -> str:
        return hashlib.sha256(self.content).hexdigest()

    def hash_prefix(self, length: int) -> str:
        return self.hash[:length]

    @cached_property
    def kind(self) -> DocumentKind:
        return kind_from_path(self.relative_path)

    @cached_property
    def words(self) -> List[str]:
        return split_words(self.text)

    @property
    def strlen(self) -> int:
        return len(self.text)

    @cached_property
    def language(self) -> Optional[Tuple[str, float]]:
        return detect_language(self.text)

    @cached_property
    def lfreq(self) -> Optional[float]:
        lang_code = self.language[0] if self.language else None
        return letter_frequency_score(self.text, lang_code)

    @property
    def alpha(self) -> float:
        return alpha_ratio(self.text)

    @property
    def ttr(self) -> float:
        return type_token_ratio(self.words)

    @property
    def avg_word_len(self) -> float:
        return average_word_length(self.words)

    def metrics(self, hash_length: int) -> DocumentMetrics:
        lang_code, lang_score = self.language if self.language else (None, None)
        return DocumentMetrics(
            path=self.relative_path,
            identity=self.identity,
            kind=self.kind,
            lang_code=lang_code,
            lang_score=lang_score,
            lfreq=self.lfreq,
            alpha=self.alpha,
            words=len(self.words),
            avg_word_len=self.avg_word_len,
            ttr=self.ttr,
            size=self.size,
            strlen=self.strlen,
            mtime=self.mtime,
            hash=self.hash_prefix(hash_length),
        )


def probe_document(path: Path, base_dir: Path, hash_length: int) -> DocumentMetrics:
    """Load ``path`` and compute all of its metrics."""
    LOGGER.debug("Probing %s", path)
    return Document.from_path(path, base_dir).metrics(hash_length)


def probe_physical(path: Path) -> PhysicalState:
    """Reduced probe: full hash, mtime and size only."""
    path = Path(path)
    try:
        stat = path.stat()
        digest = compute_sha256(path)
    except OSError as exc:
        raise ProbeError(path, exc) from exc
    return PhysicalState(hash=digest, mtime=int(stat.st_mtime), size=stat.st_size)
