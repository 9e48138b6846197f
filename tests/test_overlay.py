"""Tests for the classification overlay."""

from __future__ import annotations

import pytest

from shelfmark.bibliographic.overlay import SUBJECT_CODES, ClassificationOverlay
from shelfmark.bibliographic.pica import Record
from shelfmark.config import ShelfConfig
from shelfmark.errors import ExpressionError
from shelfmark.models import DocumentKind

from conftest import make_record


def _config(**kinds) -> ShelfConfig:
    return ShelfConfig.from_dict(
        {
            "kinds": {
                kind: {"refinements": [{"target": target, "filter": expr} for target, expr in rules]}
                for kind, rules in kinds.items()
            }
        }
    )


def _record(ppn: str, *fields: tuple) -> Record:
    return Record.parse(make_record(("003@", [("0", ppn)]), *fields))


class TestClassificationOverlay:
    """Test building and querying the overlay."""

    def test_first_matching_rule_wins(self) -> None:
        """Rules of a kind are tried in declaration order."""
        overlay = ClassificationOverlay.from_config(
            _config(book=[("toc", "002@.0 =^ 'A'"), ("blurb", "002@.0 == 'Aa'")])
        )
        overlay.load([_record("1", ("002@", [("0", "Aa")]))])

        assert overlay.resolve_kind("1", DocumentKind.BOOK) is DocumentKind.TOC

    def test_refinement_is_keyed_by_source_kind(self) -> None:
        """A refinement only applies to documents of its source kind."""
        overlay = ClassificationOverlay.from_config(_config(book=[("toc", "003@?")]))
        overlay.load([_record("1")])

        assert overlay.resolve_kind("1", DocumentKind.BOOK) is DocumentKind.TOC
        assert overlay.resolve_kind("1", DocumentKind.ARTICLE) is DocumentKind.ARTICLE
        assert overlay.resolve_kind("2", DocumentKind.BOOK) is DocumentKind.BOOK

    def test_rules_of_several_kinds(self) -> None:
        """Each record contributes at most one refinement."""
        overlay = ClassificationOverlay.from_config(
            _config(book=[("toc", "003@?")], article=[("chapter", "003@?")])
        )
        overlay.load([_record("1")])

        assert overlay.resolve_kind("1", DocumentKind.BOOK) is DocumentKind.TOC
        assert overlay.resolve_kind("1", DocumentKind.ARTICLE) is DocumentKind.ARTICLE

    def test_subject_path_priority(self) -> None:
        """The first path yielding an allowed code wins."""
        overlay = ClassificationOverlay()
        overlay.load(
            [
                _record(
                    "1",
                    ("045E", [("e", "B"), ("E", "a")]),
                    ("045E", [("e", "830"), ("E", "i"), ("H", "dnb")]),
                )
            ]
        )

        assert overlay.subject("1") == "830"

    def test_subject_not_allowed(self) -> None:
        """Codes outside the allow-list are ignored."""
        overlay = ClassificationOverlay()
        overlay.load(
            [
                _record(
                    "1",
                    ("045E", [("e", "831"), ("E", "i"), ("H", "dnb")]),
                    ("045E", [("e", "S"), ("E", "a")]),
                )
            ]
        )

        assert "831" not in SUBJECT_CODES
        assert overlay.subject("1") == "S"

    def test_unqualified_subject(self) -> None:
        """Subjects without source qualifiers are accepted."""
        overlay = ClassificationOverlay()
        overlay.load([_record("1", ("045E", [("e", "300")]))])

        assert overlay.subject("1") == "300"

    def test_no_subject(self) -> None:
        """Records without subject fields contribute nothing."""
        overlay = ClassificationOverlay()
        overlay.load([_record("1")])

        assert overlay.subject("1") is None
        assert overlay.subjects == {}

    def test_records_without_identity_are_ignored(self) -> None:
        """Only records with a PPN are counted."""
        overlay = ClassificationOverlay.from_config(_config(book=[("toc", "002@?")]))
        overlay.load([Record.parse(make_record(("002@", [("0", "Aa")])))])

        assert overlay.records == 0
        assert overlay.kinds == {}

    def test_invalid_filter(self) -> None:
        """Invalid filters name the kind they belong to."""
        with pytest.raises(ExpressionError, match="kind 'book'"):
            ClassificationOverlay.from_config(_config(book=[("toc", "002@.0 ==")]))
