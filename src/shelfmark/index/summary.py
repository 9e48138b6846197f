"""Aggregate view of the catalog per source and kind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from shelfmark.index.storage import entries_to_table
from shelfmark.models import CatalogEntry


@dataclass(slots=True)
class SummaryRow:
    source: str
    kind: str
    docs: int
    size: int
    unique: int

    @property
    def duplicates(self) -> int:
        return self.docs - self.unique


def summarize(entries: Sequence[CatalogEntry]) -> List[SummaryRow]:
    if not entries:
        return []
    table = entries_to_table(entries)
    grouped = table.group_by(["source", "kind"]).aggregate(
        [("identity", "count"), ("size", "sum"), ("hash", "count_distinct")]
    )
    rows = [
        SummaryRow(
            source=row["source"],
            kind=row["kind"],
            docs=int(row["identity_count"]),
            size=int(row["size_sum"]),
            unique=int(row["hash_count_distinct"]),
        )
        for row in grouped.to_pylist()
    ]
    rows.sort(key=lambda row: (row.source, row.kind))
    return rows
