"""Document indexing pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

from shelfmark.bibliographic.overlay import ClassificationOverlay
from shelfmark.config import Shelf
from shelfmark.ingestion.probe import probe_document
from shelfmark.models import CatalogEntry, DocumentMetrics
from shelfmark.parallel import WorkerPool
from shelfmark.utils.files import scan_documents

LOGGER = logging.getLogger(__name__)


def find_documents(shelf: Shelf) -> list[Path]:
    """Find all documents of the shelf, sorted by path."""
    return sorted(scan_documents(shelf.data_dir, shelf.config.index.pattern))


@dataclass(slots=True)
class IndexStats:
    documents: int = 0
    refined: int = 0
    with_subject: int = 0

    def increment(self, entry: CatalogEntry, refined: bool) -> None:
        self.documents += 1
        if refined:
            self.refined += 1
        if entry.subject is not None:
            self.with_subject += 1


class IndexBuilder:
    """Coordinates discovery, parallel probing and catalog row assembly."""

    def __init__(
        self,
        shelf: Shelf,
        pool: WorkerPool,
        *,
        overlay: Optional[ClassificationOverlay] = None,
    ) -> None:
        self.shelf = shelf
        self.pool = pool
        self.overlay = overlay
        self.stats = IndexStats()

    def build(
        self, progress: Optional[Callable[[int, int], None]] = None
    ) -> List[CatalogEntry]:
        """Probe every document and return the catalog rows sorted by path.

        Any probe failure aborts the whole build; no partial catalog is
        produced.
        """
        paths = find_documents(self.shelf)
        if progress is not None:
            progress(0, len(paths))
        if not paths:
            LOGGER.warning("No documents found in %s", self.shelf.data_dir)
            return []

        LOGGER.info("Indexing %d documents with %d workers", len(paths), self.pool.jobs)
        probe = partial(
            probe_document,
            base_dir=self.shelf.root,
            hash_length=self.shelf.config.index.hash_length,
        )

        self.stats = IndexStats()
        entries = []
        for metrics in self.pool.map_unordered(probe, paths):
            entries.append(self._assemble(metrics))
            if progress is not None:
                progress(len(entries), len(paths))

        entries.sort(key=lambda entry: entry.path)
        return entries

    def _assemble(self, metrics: DocumentMetrics) -> CatalogEntry:
        kind = metrics.kind
        subject = None
        if self.overlay is not None:
            kind = self.overlay.resolve_kind(metrics.identity, metrics.kind)
            subject = self.overlay.subject(metrics.identity)

        entry = CatalogEntry(
            source=self.shelf.name,
            identity=metrics.identity,
            kind=kind.value,
            subject=subject,
            path=metrics.path,
            lang_code=metrics.lang_code,
            lang_score=metrics.lang_score,
            lfreq=metrics.lfreq,
            alpha=metrics.alpha,
            words=metrics.words,
            avg_word_len=metrics.avg_word_len,
            ttr=metrics.ttr,
            size=metrics.size,
            strlen=metrics.strlen,
            mtime=metrics.mtime,
            hash=metrics.hash,
        )
        self.stats.increment(entry, refined=kind is not metrics.kind)
        return entry
