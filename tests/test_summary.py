"""Tests for the catalog summary."""

from __future__ import annotations

from shelfmark.index.summary import SummaryRow, summarize
from shelfmark.models import CatalogEntry


def _entry(path: str, kind: str, hash: str, size: int = 10, source: str = "dnb") -> CatalogEntry:
    return CatalogEntry(
        source=source, identity=path, kind=kind, path=path, alpha=1.0, words=1,
        avg_word_len=1.0, ttr=1.0, size=size, strlen=size, mtime=0, hash=hash,
    )


class TestSummarize:
    """Test grouping by source and kind."""

    def test_groups(self) -> None:
        entries = [
            _entry("data/book/1.txt", "book", "aa", size=10),
            _entry("data/book/2.txt", "book", "aa", size=10),
            _entry("data/book/3.txt", "book", "bb", size=5),
            _entry("data/toc/4.txt", "toc", "cc", size=7),
            _entry("data/5.txt", "other", "dd", size=1, source="alt"),
        ]

        rows = summarize(entries)

        assert rows == [
            SummaryRow("alt", "other", docs=1, size=1, unique=1),
            SummaryRow("dnb", "book", docs=3, size=25, unique=2),
            SummaryRow("dnb", "toc", docs=1, size=7, unique=1),
        ]
        assert rows[1].duplicates == 1

    def test_empty(self) -> None:
        assert summarize([]) == []
