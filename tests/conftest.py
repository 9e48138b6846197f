"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from shelfmark.config import Shelf
from shelfmark.parallel import WorkerPool


def make_record(*fields: tuple) -> str:
    """Build a normalized PICA+ line from ``(header, [(code, value), ...])`` pairs."""
    parts = []
    for header, subfields in fields:
        parts.append(header + " " + "".join(f"\x1f{code}{value}" for code, value in subfields) + "\x1e")
    return "".join(parts)


@pytest.fixture
def shelf(tmp_path: Path) -> Shelf:
    """A shelf with two identical documents below ``data/``."""
    shelf = Shelf.create(tmp_path / "corpus", "test")
    (shelf.data_dir / "a.txt").write_text("the quick fox", encoding="utf-8")
    (shelf.data_dir / "b.txt").write_text("the quick fox", encoding="utf-8")
    return shelf


@pytest.fixture
def pool() -> Iterator[WorkerPool]:
    with WorkerPool(2, kind="thread") as pool:
        yield pool
