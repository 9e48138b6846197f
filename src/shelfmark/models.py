"""Core shelfmark data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class DocumentKind(str, Enum):
    """Coarse document category."""

    ARTICLE = "article"
    BLURB = "blurb"
    BOOK = "book"
    CHAPTER = "chapter"
    ISSUE = "issue"
    OTHER = "other"
    TITLE = "title"
    TOC = "toc"
    WP = "wp"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "DocumentKind":
        """Parse a kind name, accepting the legacy aliases ``iht`` and ``ft``."""
        name = _KIND_ALIASES.get(value, value)
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"invalid document kind '{value}'") from None


_KIND_ALIASES = {"iht": "blurb", "ft": "other"}


@dataclass(slots=True, frozen=True)
class PhysicalState:
    """Hash, modification time and size of a file on disk."""

    hash: str
    mtime: int
    size: int


@dataclass(slots=True)
class DocumentMetrics:
    """Everything a probe extracts from one document."""

    path: str
    identity: str
    kind: DocumentKind
    lang_code: Optional[str]
    lang_score: Optional[float]
    lfreq: Optional[float]
    alpha: float
    words: int
    avg_word_len: float
    ttr: float
    size: int
    strlen: int
    mtime: int
    hash: str


@dataclass(slots=True)
class CatalogEntry:
    """One row of the catalog."""

    source: str
    identity: str
    kind: str
    path: str
    alpha: float
    words: int
    avg_word_len: float
    ttr: float
    size: int
    strlen: int
    mtime: int
    hash: str
    subject: Optional[str] = None
    lang_code: Optional[str] = None
    lang_score: Optional[float] = None
    lfreq: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
