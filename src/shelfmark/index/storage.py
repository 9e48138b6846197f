"""Columnar catalog persistence."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import BinaryIO, List, Sequence

import pyarrow as pa
import pyarrow.csv as pacsv
import pyarrow.parquet as pq

from shelfmark.errors import CatalogError
from shelfmark.models import CatalogEntry

LOGGER = logging.getLogger(__name__)

CATALOG_SCHEMA = pa.schema(
    [
        pa.field("source", pa.string(), nullable=False),
        pa.field("identity", pa.string(), nullable=False),
        pa.field("kind", pa.string(), nullable=False),
        pa.field("subject", pa.string()),
        pa.field("path", pa.string(), nullable=False),
        pa.field("lang_code", pa.string()),
        pa.field("lang_score", pa.float64()),
        pa.field("lfreq", pa.float64()),
        pa.field("alpha", pa.float64(), nullable=False),
        pa.field("words", pa.uint64(), nullable=False),
        pa.field("avg_word_len", pa.float32(), nullable=False),
        pa.field("ttr", pa.float64(), nullable=False),
        pa.field("size", pa.uint64(), nullable=False),
        pa.field("strlen", pa.uint64(), nullable=False),
        pa.field("mtime", pa.uint64(), nullable=False),
        pa.field("hash", pa.string(), nullable=False),
    ]
)


def entries_to_table(entries: Sequence[CatalogEntry]) -> pa.Table:
    paths = [entry.path for entry in entries]
    if len(set(paths)) != len(paths):
        raise CatalogError("catalog paths must be unique")
    records = [entry.to_dict() for entry in entries]
    return pa.Table.from_pylist(records, schema=CATALOG_SCHEMA)


def table_to_entries(table: pa.Table) -> List[CatalogEntry]:
    missing = [name for name in CATALOG_SCHEMA.names if name not in table.column_names]
    if missing:
        raise CatalogError(f"catalog lacks column(s): {', '.join(missing)}")
    table = table.select(CATALOG_SCHEMA.names)
    return [CatalogEntry(**row) for row in table.to_pylist()]


def write_csv(entries: Sequence[CatalogEntry], sink: BinaryIO) -> None:
    """Render the catalog as comma-separated text with a header line."""
    pacsv.write_csv(entries_to_table(entries), sink)


class CatalogStore:
    """The catalog file, replaced as a whole on every write."""

    def __init__(
        self,
        path: Path,
        *,
        compression: str = "zstd",
        compression_level: int = 5,
    ) -> None:
        self.path = Path(path)
        self.compression = compression
        self.compression_level = compression_level

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> List[CatalogEntry]:
        if not self.exists():
            raise CatalogError(f"catalog not found: {self.path} (run 'shelfmark index' first)")
        try:
            table = pq.read_table(self.path)
        except (OSError, pa.ArrowException) as exc:
            raise CatalogError(f"unable to read catalog {str(self.path)!r}: {exc}") from exc
        return table_to_entries(table)

    def write(self, entries: Sequence[CatalogEntry]) -> int:
        """Atomically replace the catalog: temp → fsync → rename.

        Returns:
            File size in bytes.
        """
        table = entries_to_table(entries)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp.{uuid.uuid4().hex}")
        try:
            pq.write_table(
                table,
                str(tmp_path),
                compression=self.compression,
                compression_level=self.compression_level,
            )
            with open(tmp_path, "rb") as handle:
                os.fsync(handle.fileno())
            tmp_path.replace(self.path)
        except (OSError, pa.ArrowException) as exc:
            tmp_path.unlink(missing_ok=True)
            raise CatalogError(f"unable to write catalog {str(self.path)!r}: {exc}") from exc
        LOGGER.info("Wrote %d catalog entries to %s", len(entries), self.path)
        return self.path.stat().st_size
