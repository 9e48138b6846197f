"""Reconciliation of the catalog against the documents on disk.

``status`` reports every difference, ``verify`` stops at the first one and
``clean`` removes untracked documents and catalog rows of missing ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from shelfmark.config import Shelf
from shelfmark.errors import VerificationError
from shelfmark.index.storage import CatalogStore
from shelfmark.ingestion.probe import probe_physical
from shelfmark.models import CatalogEntry
from shelfmark.parallel import WorkerPool
from shelfmark.utils.files import relpath, scan_documents

LOGGER = logging.getLogger(__name__)


class VerifyMode(IntEnum):
    """Strictness levels; every level includes the checks of the lower ones."""

    PERMISSIVE = 1
    STRICT = 2
    PEDANTIC = 3

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> "VerifyMode":
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"invalid verify mode '{value}'") from None


@dataclass(slots=True)
class PathDiff:
    tracked: set[str] = field(default_factory=set)
    missing: set[str] = field(default_factory=set)
    untracked: set[str] = field(default_factory=set)


def diff_paths(catalog_paths: Iterable[str], scanned_paths: Iterable[str]) -> PathDiff:
    """Partition catalog and scanned paths into tracked, missing and untracked."""
    remaining = set(scanned_paths)
    diff = PathDiff()
    for path in catalog_paths:
        if path in remaining:
            remaining.discard(path)
            diff.tracked.add(path)
        elif path not in diff.tracked:
            diff.missing.add(path)
    diff.untracked = remaining
    return diff


def scan_shelf(shelf: Shelf) -> set[str]:
    """Scan the data tree and return shelf-relative paths."""
    found = scan_documents(shelf.data_dir, shelf.config.index.pattern)
    return {relpath(path, shelf.root) for path in found}


@dataclass(slots=True, frozen=True)
class Check:
    """Outcome of comparing one catalog entry with the file on disk."""

    path: str
    found: bool
    hash_ok: bool = False
    mtime_ok: bool = False
    size_ok: bool = False
    expected_hash: str = ""
    actual_hash: str = ""

    def failure(self, mode: VerifyMode) -> Optional[str]:
        """Name of the first check failing under ``mode``, if any."""
        if not self.found:
            return "missing"
        if not self.hash_ok:
            return "hash"
        if mode >= VerifyMode.STRICT and not self.mtime_ok:
            return "mtime"
        if mode >= VerifyMode.PEDANTIC and not self.size_ok:
            return "size"
        return None

    @property
    def consistent(self) -> bool:
        return self.failure(VerifyMode.PEDANTIC) is None


def check_entry(entry: CatalogEntry, base_dir: Path) -> Check:
    """Re-probe hash, mtime and size of ``entry`` and compare them."""
    path = Path(base_dir) / entry.path
    if not path.is_file():
        return Check(path=entry.path, found=False, expected_hash=entry.hash)

    state = probe_physical(path)
    return Check(
        path=entry.path,
        found=True,
        hash_ok=state.hash.startswith(entry.hash),
        mtime_ok=state.mtime == entry.mtime,
        size_ok=state.size == entry.size,
        expected_hash=entry.hash,
        actual_hash=state.hash,
    )


@dataclass(slots=True)
class StatusReport:
    changed: List[Check] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    tracked: int = 0

    @property
    def consistent(self) -> bool:
        return not (self.changed or self.missing or self.untracked)


def status(shelf: Shelf, entries: Sequence[CatalogEntry], pool: WorkerPool) -> StatusReport:
    """Report changed, missing and untracked documents without failing."""
    diff = diff_paths((entry.path for entry in entries), scan_shelf(shelf))
    tracked = [entry for entry in entries if entry.path in diff.tracked]

    report = StatusReport(
        missing=sorted(diff.missing),
        untracked=sorted(diff.untracked),
        tracked=len(tracked),
    )
    checker = partial(check_entry, base_dir=shelf.root)
    for check in pool.map_unordered(checker, tracked):
        if not check.consistent:
            report.changed.append(check)
    report.changed.sort(key=lambda check: check.path)

    LOGGER.debug(
        "Status: %d tracked, %d changed, %d missing, %d untracked",
        report.tracked,
        len(report.changed),
        len(report.missing),
        len(report.untracked),
    )
    return report


def verify(
    shelf: Shelf,
    entries: Sequence[CatalogEntry],
    pool: WorkerPool,
    mode: VerifyMode = VerifyMode.STRICT,
) -> int:
    """Check every catalog entry, raising on the first inconsistency.

    Returns:
        Number of verified entries.
    """
    checker = partial(check_entry, base_dir=shelf.root)
    verified = 0
    for check in pool.map_unordered(checker, entries):
        reason = check.failure(mode)
        if reason is not None:
            detail = ""
            if reason == "hash":
                detail = f"expected '{check.actual_hash}' to start with '{check.expected_hash}'"
            raise VerificationError(reason, check.path, detail)
        verified += 1
    LOGGER.info("Verified %d documents (mode = %s)", verified, mode)
    return verified


@dataclass(slots=True)
class CleanReport:
    removed: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


def clean(
    shelf: Shelf,
    store: CatalogStore,
    entries: Sequence[CatalogEntry],
    *,
    confirm: Callable[[str], bool],
    force: bool = False,
) -> CleanReport:
    """Delete untracked documents and drop catalog rows of missing documents.

    Each step asks ``confirm`` first unless ``force`` is set.
    """
    diff = diff_paths((entry.path for entry in entries), scan_shelf(shelf))
    report = CleanReport()

    untracked = sorted(diff.untracked)
    if untracked and (force or confirm(f"Delete {len(untracked)} untracked document(s)?")):
        for path in untracked:
            (shelf.root / path).unlink()
            LOGGER.debug("Removed untracked document %s", path)
            report.removed.append(path)

    missing = sorted(diff.missing)
    if missing and (
        force or confirm(f"Drop {len(missing)} catalog row(s) of missing document(s)?")
    ):
        kept = [entry for entry in entries if entry.path not in diff.missing]
        store.write(kept)
        report.dropped = missing

    return report
