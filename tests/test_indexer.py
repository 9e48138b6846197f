"""Tests for IndexBuilder."""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import pytest

from shelfmark.bibliographic.overlay import ClassificationOverlay
from shelfmark.bibliographic.pica import Record
from shelfmark.config import Refinement, Shelf
from shelfmark.errors import ProbeError
from shelfmark.index.indexer import IndexBuilder, IndexStats, find_documents
from shelfmark.models import CatalogEntry, DocumentKind
from shelfmark.parallel import WorkerPool

from conftest import make_record


class TestIndexStats:
    """Test IndexStats tracking."""

    def test_init_defaults(self) -> None:
        stats = IndexStats()
        assert stats.documents == 0
        assert stats.refined == 0
        assert stats.with_subject == 0

    def test_increment(self) -> None:
        """Refinements and subjects are counted separately."""
        stats = IndexStats()
        entry = CatalogEntry(
            source="s", identity="1", kind="toc", path="data/1.txt", alpha=1.0, words=1,
            avg_word_len=1.0, ttr=1.0, size=1, strlen=1, mtime=0, hash="ab", subject="830",
        )

        stats.increment(entry, refined=True)
        stats.increment(entry, refined=False)

        assert stats.documents == 2
        assert stats.refined == 1
        assert stats.with_subject == 2


class TestFindDocuments:
    """Test document discovery."""

    def test_sorted_matches(self, shelf: Shelf) -> None:
        """Only files matching the pattern below data/ are found."""
        (shelf.data_dir / "notes.md").write_text("skip me")
        (shelf.root / "outside.txt").write_text("skip me")

        paths = find_documents(shelf)

        assert [p.name for p in paths] == ["a.txt", "b.txt"]

    def test_custom_pattern(self, shelf: Shelf) -> None:
        """The configured pattern selects documents."""
        (shelf.data_dir / "notes.md").write_text("keep me")
        shelf.config.index.pattern = "*.md"

        assert [p.name for p in find_documents(shelf)] == ["notes.md"]


class TestIndexBuilder:
    """Test the indexing pipeline."""

    def test_build(self, shelf: Shelf, pool: WorkerPool) -> None:
        """Every document yields one row, sorted by path."""
        entries = IndexBuilder(shelf, pool).build()

        assert [entry.path for entry in entries] == ["data/a.txt", "data/b.txt"]
        first = entries[0]
        assert first.source == "test"
        assert first.identity == "a"
        assert first.kind == "other"
        assert first.words == 3
        assert first.size == 13
        assert len(first.hash) == 8
        assert entries[0].hash == entries[1].hash
        assert first.subject is None

    def test_hash_length(self, shelf: Shelf, pool: WorkerPool) -> None:
        """The stored prefix follows the configured length."""
        shelf.config.index.hash_length = 20

        entries = IndexBuilder(shelf, pool).build()

        assert all(len(entry.hash) == 20 for entry in entries)

    def test_kind_from_directory(self, shelf: Shelf, pool: WorkerPool) -> None:
        """The first kind directory below the shelf names the kind."""
        (shelf.data_dir / "article").mkdir()
        (shelf.data_dir / "article" / "c.txt").write_text("hello")

        entries = IndexBuilder(shelf, pool).build()

        assert {entry.path: entry.kind for entry in entries}["data/article/c.txt"] == "article"

    def test_progress(self, shelf: Shelf, pool: WorkerPool) -> None:
        """Progress is reported from zero up to the total."""
        calls: List[Tuple[int, int]] = []

        IndexBuilder(shelf, pool).build(progress=lambda done, total: calls.append((done, total)))

        assert calls[0] == (0, 2)
        assert calls[-1] == (2, 2)
        assert len(calls) == 3

    def test_empty_shelf(self, tmp_path: Path, pool: WorkerPool) -> None:
        """A shelf without documents produces an empty catalog."""
        shelf = Shelf.create(tmp_path / "empty")

        assert IndexBuilder(shelf, pool).build() == []

    def test_idempotent(self, shelf: Shelf, pool: WorkerPool) -> None:
        """Indexing an unchanged shelf twice gives the same rows."""
        first = IndexBuilder(shelf, pool).build()
        second = IndexBuilder(shelf, pool).build()

        assert first == second

    def test_probe_failure_aborts(self, shelf: Shelf, pool: WorkerPool) -> None:
        """Any unreadable document aborts the whole build."""
        (shelf.data_dir / "broken.txt").write_bytes(b"\xff\xfe\xfa")

        with pytest.raises(ProbeError, match="broken.txt"):
            IndexBuilder(shelf, pool).build()

    def test_overlay(self, shelf: Shelf, pool: WorkerPool) -> None:
        """Refined kinds and subjects come from the overlay."""
        (shelf.data_dir / "book").mkdir()
        (shelf.data_dir / "book" / "123.txt").write_text("Inhaltsverzeichnis")
        shelf.config.refinements.append(Refinement(DocumentKind.BOOK, DocumentKind.TOC, "002@.0 =^ 'Aa'"))
        record = Record.parse(
            make_record(
                ("003@", [("0", "123")]),
                ("002@", [("0", "Aau")]),
                ("045E", [("e", "830"), ("E", "i"), ("H", "dnb")]),
            )
        )
        overlay = ClassificationOverlay.from_config(shelf.config).load([record])

        builder = IndexBuilder(shelf, pool, overlay=overlay)
        entries = {entry.path: entry for entry in builder.build()}

        assert entries["data/book/123.txt"].kind == "toc"
        assert entries["data/book/123.txt"].subject == "830"
        assert entries["data/a.txt"].kind == "other"
        assert builder.stats.documents == 3
        assert builder.stats.refined == 1
        assert builder.stats.with_subject == 1

    def test_process_pool(self, shelf: Shelf) -> None:
        """Probing works across process boundaries."""
        with WorkerPool(2, kind="process") as pool:
            entries = IndexBuilder(shelf, pool).build()

        assert [entry.identity for entry in entries] == ["a", "b"]
