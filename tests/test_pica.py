"""Tests for PICA+ records and expressions."""

from __future__ import annotations

import gzip
from pathlib import Path

import pytest

from shelfmark.bibliographic.pica import PicaPath, PicaReader, Record, RecordMatcher
from shelfmark.errors import DataError, ExpressionError

from conftest import make_record


BOOK = make_record(
    ("003@", [("0", "118540238")]),
    ("002@", [("0", "Aau")]),
    ("045E", [("e", "830"), ("E", "i"), ("H", "dnb")]),
    ("045E", [("e", "B"), ("E", "m"), ("H", "aepsg")]),
    ("047A/03", [("r", "DE-101")]),
)


@pytest.fixture
def record() -> Record:
    return Record.parse(BOOK)


class TestRecord:
    """Test record parsing."""

    def test_parse_fields(self, record: Record) -> None:
        """Should split fields, occurrences and subfields."""
        assert [field.tag for field in record.fields] == ["003@", "002@", "045E", "045E", "047A"]
        assert record.fields[4].occurrence == "03"
        assert record.fields[2].values("e") == ["830"]

    def test_identity(self, record: Record) -> None:
        """The PPN is read from 003@ $0."""
        assert record.identity() == "118540238"

    def test_identity_missing(self) -> None:
        """Records without 003@ have no identity."""
        assert Record.parse(make_record(("002@", [("0", "Aa")]))).identity() is None

    @pytest.mark.parametrize(
        "line",
        [
            "003@ \x1f0123",
            "03@ \x1f0123\x1e",
            "003@\x1f0123\x1e",
            "003@ \x1f\x1e",
        ],
    )
    def test_invalid_record(self, line: str) -> None:
        """Malformed lines are data errors."""
        with pytest.raises(DataError):
            Record.parse(line)


class TestRecordMatcher:
    """Test matcher expressions."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("003@?", True),
            ("041A?", False),
            ("002@.0 == 'Aau'", True),
            ("002@.0 != 'Aau'", False),
            ("002@.0 =^ 'Aa'", True),
            ("002@.0 =$ 'u'", True),
            ("002@.0 =? 'au'", True),
            ("002@.0 =~ '^A[a-z]+$'", True),
            ("002@.0 in ['Aa', 'Aau']", True),
            ("002@.0 not in ['Aa', 'Aau']", False),
            ("!041A?", True),
            ("002@.0 =^ 'Ab' || 003@?", True),
            ("002@.0 =^ 'Aa' && !045E?", False),
            ("045E{ e == '830' && H == 'dnb' }", True),
            ("045E{ e == '830' && H == 'aepsg' }", False),
            ("045E{ e == 'B' || (E == 'i' && H in ['dnb', 'dnb-pa']) }", True),
            ("045E{ !E? }", False),
            ("047A/03.r == 'DE-101'", True),
            ("047A/01.r == 'DE-101'", False),
            ("(002@.0 == 'Ab' || 002@.0 == 'Aau') && 003@.0 == '118540238'", True),
        ],
    )
    def test_is_match(self, record: Record, expression: str, expected: bool) -> None:
        """Should evaluate expressions against the record."""
        matcher = RecordMatcher.parse(expression)

        assert matcher.is_match(record) is expected
        assert record.matches(matcher) is expected

    def test_escaped_quote(self) -> None:
        """Quotes inside strings can be escaped."""
        record = Record.parse(make_record(("021A", [("a", "Don't panic")])))

        assert RecordMatcher.parse(r"021A.a == 'Don\'t panic'").is_match(record)

    @pytest.mark.parametrize(
        "expression",
        ["", "   ", "002@", "002@.0 ==", "002@.0 == 'a' &&", "002@.ab == 'x'", "045E{ e == 'x'", "002@.0 =~ '('", "#"],
    )
    def test_invalid_expression(self, expression: str) -> None:
        """Should reject malformed expressions."""
        with pytest.raises(ExpressionError):
            RecordMatcher.parse(expression)


class TestPicaPath:
    """Test path expressions."""

    def test_simple_path(self, record: Record) -> None:
        """Should return all values of the subfield."""
        assert PicaPath.parse("045E.e").values(record) == ["830", "B"]

    def test_conditional_path(self, record: Record) -> None:
        """Only fields satisfying the condition contribute values."""
        path = PicaPath.parse("045E{ e | E == 'm' && H in ['aepsg', 'emasg'] }")

        assert record.extract(path) == ["B"]

    def test_no_match(self, record: Record) -> None:
        """Unknown fields yield nothing."""
        assert PicaPath.parse("041A.9").values(record) == []

    def test_invalid_path(self) -> None:
        """Should reject malformed paths."""
        with pytest.raises(ExpressionError):
            PicaPath.parse("045E{ e == 'x' }")


class TestPicaReader:
    """Test reading dumps."""

    def test_read_plain(self, tmp_path: Path) -> None:
        """Should yield one record per line."""
        dump = tmp_path / "dump.dat"
        dump.write_text(BOOK + "\n\n" + make_record(("003@", [("0", "2")])) + "\n", encoding="utf-8")

        identities = [record.identity() for record in PicaReader(dump)]

        assert identities == ["118540238", "2"]

    def test_read_gzip(self, tmp_path: Path) -> None:
        """Compressed dumps are detected by suffix."""
        dump = tmp_path / "dump.dat.gz"
        with gzip.open(dump, "wt", encoding="utf-8") as handle:
            handle.write(BOOK + "\n")

        assert [record.identity() for record in PicaReader(dump)] == ["118540238"]

    def test_strict_reader_fails(self, tmp_path: Path) -> None:
        """Invalid records abort a strict read with the line number."""
        dump = tmp_path / "dump.dat"
        dump.write_text(BOOK + "\ngarbage\n", encoding="utf-8")

        with pytest.raises(DataError, match=":2:"):
            list(PicaReader(dump))

    def test_lenient_reader_skips(self, tmp_path: Path) -> None:
        """Lenient reads skip and count invalid records."""
        dump = tmp_path / "dump.dat"
        dump.write_bytes(b"garbage\n" + BOOK.encode("utf-8") + b"\n\xff\xfe\n")

        reader = PicaReader(dump, lenient=True)
        records = list(reader)

        assert len(records) == 1
        assert reader.skipped == 2

    def test_missing_dump(self, tmp_path: Path) -> None:
        """Unreadable dumps are data errors."""
        with pytest.raises(DataError, match="unable to open"):
            list(PicaReader(tmp_path / "missing.dat"))

    def test_not_gzip(self, tmp_path: Path) -> None:
        """A plain file with a .gz suffix is a data error."""
        dump = tmp_path / "dump.dat.gz"
        dump.write_text(BOOK + "\n", encoding="utf-8")

        with pytest.raises(DataError, match="unable to read"):
            list(PicaReader(dump, lenient=True))

    def test_truncated_gzip(self, tmp_path: Path) -> None:
        """A gzip stream cut short is a data error."""
        dump = tmp_path / "dump.dat.gz"
        dump.write_bytes(gzip.compress((BOOK + "\n").encode("utf-8") * 50)[:-20])

        with pytest.raises(DataError, match="unable to read"):
            list(PicaReader(dump, lenient=True))
