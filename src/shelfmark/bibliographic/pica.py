"""PICA+ records, record matchers and path expressions.

Records are read from normalized PICA+ dumps: one record per line, every
field terminated by ``0x1e``, every subfield introduced by ``0x1f`` followed
by a one-character code. A field header is the tag, an optional occurrence
(``/01``) and a single space.

Matcher expressions select whole records::

    002@.0 =^ 'Aa' && !045E?
    045E{ e == '300' || (E == 'i' && H in ['dnb', 'dnb-pa']) }

Path expressions extract subfield values::

    003@.0
    045E{ e | E == 'i' && H == 'dnb' }
"""

from __future__ import annotations

import gzip
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, List, Optional, Sequence, Tuple

from shelfmark.errors import DataError, ExpressionError

LOGGER = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1e"
SUBFIELD_SEPARATOR = "\x1f"

_TAG = r"[012][0-9]{2}[A-Z@]"
_HEADER_RE = re.compile(rf"^({_TAG})(?:/([0-9]{{2,3}}))? $")
_CODE_RE = re.compile(r"[A-Za-z0-9]")


@dataclass(slots=True, frozen=True)
class Subfield:
    code: str
    value: str


@dataclass(slots=True, frozen=True)
class Field:
    tag: str
    occurrence: Optional[str]
    subfields: Tuple[Subfield, ...]

    def values(self, code: str) -> List[str]:
        return [subfield.value for subfield in self.subfields if subfield.code == code]


class Record:
    """A parsed PICA+ record."""

    def __init__(self, fields: Sequence[Field]) -> None:
        self.fields = list(fields)

    def __repr__(self) -> str:
        return f"Record(identity={self.identity()!r}, fields={len(self.fields)})"

    @classmethod
    def parse(cls, line: str) -> "Record":
        line = line.rstrip("\n")
        if not line.endswith(FIELD_SEPARATOR):
            raise DataError("record must end with a field separator")

        fields = []
        for chunk in line[:-1].split(FIELD_SEPARATOR):
            header, sep, rest = chunk.partition(SUBFIELD_SEPARATOR)
            match = _HEADER_RE.match(header)
            if match is None or not sep:
                raise DataError(f"invalid field {chunk[:16]!r}")
            subfields = []
            for item in rest.split(SUBFIELD_SEPARATOR):
                if not item or not _CODE_RE.fullmatch(item[0]):
                    raise DataError(f"invalid subfield in field {match.group(1)}")
                subfields.append(Subfield(item[0], item[1:]))
            fields.append(Field(match.group(1), match.group(2), tuple(subfields)))
        return cls(fields)

    def identity(self) -> Optional[str]:
        """Return the PPN (``003@ $0``) of the record."""
        for field in self.fields:
            if field.tag == "003@":
                values = field.values("0")
                if values:
                    return values[0]
        return None

    def matches(self, matcher: "RecordMatcher") -> bool:
        return matcher.is_match(self)

    def extract(self, path: "PicaPath") -> List[str]:
        return path.values(self)


class PicaReader:
    """Sequential reader over a (optionally gzip compressed) PICA+ dump."""

    def __init__(self, path: Path, *, lenient: bool = False) -> None:
        self.path = Path(path)
        self.lenient = lenient
        self.skipped = 0

    def _open(self) -> IO[bytes]:
        if self.path.suffix == ".gz":
            return gzip.open(self.path, "rb")
        return self.path.open("rb")

    def _lines(self, handle: IO[bytes]) -> Iterator[Tuple[int, bytes]]:
        # gzip reports corrupt or truncated streams only while reading
        try:
            yield from enumerate(handle, start=1)
        except (OSError, EOFError) as exc:
            raise DataError(f"unable to read {str(self.path)!r}: {exc}") from exc

    def __iter__(self) -> Iterator[Record]:
        try:
            handle = self._open()
        except OSError as exc:
            raise DataError(f"unable to open {str(self.path)!r}: {exc}") from exc

        with handle:
            for lineno, raw in self._lines(handle):
                if not raw.strip(b"\r\n"):
                    continue
                try:
                    yield Record.parse(raw.decode("utf-8").rstrip("\r\n"))
                except (DataError, UnicodeDecodeError) as exc:
                    if not self.lenient:
                        raise DataError(f"{self.path}:{lineno}: {exc}") from exc
                    self.skipped += 1
                    LOGGER.debug("Skipping invalid record %s:%d: %s", self.path, lineno, exc)


# Expressions ---------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<tag>""" + _TAG + r""")(?![A-Za-z0-9@])
  | (?P<occ>/[0-9]{2,3})
  | (?P<op>==|!=|=\^|=\$|=~|=\?|&&|\|\|)
  | (?P<punct>[.{}|()\[\],?!])
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<word>[A-Za-z0-9]+)
    """,
    re.VERBOSE,
)

_COMPARISONS = {"==", "!=", "=^", "=$", "=~", "=?"}


@dataclass(slots=True)
class _Token:
    kind: str
    text: str


def _tokenize(expression: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise ExpressionError(expression, f"unexpected character at {pos}")
        kind = match.lastgroup or ""
        text = match.group()
        pos = match.end()
        if kind == "ws":
            continue
        if kind == "string":
            text = re.sub(r"\\(.)", r"\1", text[1:-1])
        elif kind == "word" and text not in ("in", "not"):
            if len(text) != 1:
                raise ExpressionError(expression, f"invalid subfield code '{text}'")
            kind = "code"
        elif kind == "word":
            kind = "keyword"
        tokens.append(_Token(kind, text))
    return tokens


class SubfieldCondition:
    """Predicate over the subfields of one field."""

    def is_match(self, field: Field) -> bool:
        raise NotImplementedError


@dataclass(slots=True)
class SubfieldExists(SubfieldCondition):
    code: str

    def is_match(self, field: Field) -> bool:
        return any(subfield.code == self.code for subfield in field.subfields)


@dataclass(slots=True)
class SubfieldComparison(SubfieldCondition):
    code: str
    op: str
    value: str
    pattern: Optional[re.Pattern] = None

    def _compare(self, value: str) -> bool:
        if self.op == "==":
            return value == self.value
        if self.op == "!=":
            return value != self.value
        if self.op == "=^":
            return value.startswith(self.value)
        if self.op == "=$":
            return value.endswith(self.value)
        if self.op == "=?":
            return self.value in value
        return self.pattern is not None and self.pattern.search(value) is not None

    def is_match(self, field: Field) -> bool:
        return any(self._compare(value) for value in field.values(self.code))


@dataclass(slots=True)
class SubfieldIn(SubfieldCondition):
    code: str
    choices: Tuple[str, ...]
    negated: bool = False

    def is_match(self, field: Field) -> bool:
        return any((value in self.choices) != self.negated for value in field.values(self.code))


@dataclass(slots=True)
class SubfieldNot(SubfieldCondition):
    inner: SubfieldCondition

    def is_match(self, field: Field) -> bool:
        return not self.inner.is_match(field)


@dataclass(slots=True)
class SubfieldAll(SubfieldCondition):
    items: Tuple[SubfieldCondition, ...]

    def is_match(self, field: Field) -> bool:
        return all(item.is_match(field) for item in self.items)


@dataclass(slots=True)
class SubfieldAny(SubfieldCondition):
    items: Tuple[SubfieldCondition, ...]

    def is_match(self, field: Field) -> bool:
        return any(item.is_match(field) for item in self.items)


class Condition:
    """Predicate over a whole record."""

    def is_match(self, record: Record) -> bool:
        raise NotImplementedError


@dataclass(slots=True)
class FieldCondition(Condition):
    tag: str
    occurrence: Optional[str]
    condition: Optional[SubfieldCondition]

    def selects(self, field: Field) -> bool:
        if field.tag != self.tag:
            return False
        return self.occurrence is None or field.occurrence == self.occurrence

    def is_match(self, record: Record) -> bool:
        return any(
            self.selects(field) and (self.condition is None or self.condition.is_match(field))
            for field in record.fields
        )


@dataclass(slots=True)
class NotCondition(Condition):
    inner: Condition

    def is_match(self, record: Record) -> bool:
        return not self.inner.is_match(record)


@dataclass(slots=True)
class AllCondition(Condition):
    items: Tuple[Condition, ...]

    def is_match(self, record: Record) -> bool:
        return all(item.is_match(record) for item in self.items)


@dataclass(slots=True)
class AnyCondition(Condition):
    items: Tuple[Condition, ...]

    def is_match(self, record: Record) -> bool:
        return any(item.is_match(record) for item in self.items)


class _Parser:
    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0

    def error(self, reason: str) -> ExpressionError:
        return ExpressionError(self.expression, reason)

    def peek(self) -> Optional[_Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def accept(self, text: str) -> bool:
        token = self.peek()
        if token is not None and token.text == text and token.kind != "string":
            self.pos += 1
            return True
        return False

    def expect(self, text: str) -> None:
        if not self.accept(text):
            raise self.error(f"expected '{text}'")

    def take(self, kind: str) -> str:
        token = self.peek()
        if token is None or token.kind != kind:
            found = token.text if token is not None else "end of input"
            raise self.error(f"expected {kind}, found '{found}'")
        self.pos += 1
        return token.text

    def finish(self) -> None:
        token = self.peek()
        if token is not None:
            raise self.error(f"unexpected '{token.text}'")

    # record level

    def record_or(self) -> Condition:
        items = [self.record_and()]
        while self.accept("||"):
            items.append(self.record_and())
        return items[0] if len(items) == 1 else AnyCondition(tuple(items))

    def record_and(self) -> Condition:
        items = [self.record_not()]
        while self.accept("&&"):
            items.append(self.record_not())
        return items[0] if len(items) == 1 else AllCondition(tuple(items))

    def record_not(self) -> Condition:
        if self.accept("!"):
            return NotCondition(self.record_not())
        if self.accept("("):
            inner = self.record_or()
            self.expect(")")
            return inner
        return self.field_condition()

    def field_head(self) -> Tuple[str, Optional[str]]:
        tag = self.take("tag")
        token = self.peek()
        occurrence = None
        if token is not None and token.kind == "occ":
            self.pos += 1
            occurrence = token.text[1:]
        return tag, occurrence

    def field_condition(self) -> FieldCondition:
        tag, occurrence = self.field_head()
        if self.accept("?"):
            return FieldCondition(tag, occurrence, None)
        if self.accept("."):
            return FieldCondition(tag, occurrence, self.subfield_test())
        if self.accept("{"):
            condition = self.subfield_or()
            self.expect("}")
            return FieldCondition(tag, occurrence, condition)
        raise self.error(f"incomplete field matcher for '{tag}'")

    # subfield level

    def subfield_or(self) -> SubfieldCondition:
        items = [self.subfield_and()]
        while self.accept("||"):
            items.append(self.subfield_and())
        return items[0] if len(items) == 1 else SubfieldAny(tuple(items))

    def subfield_and(self) -> SubfieldCondition:
        items = [self.subfield_not()]
        while self.accept("&&"):
            items.append(self.subfield_not())
        return items[0] if len(items) == 1 else SubfieldAll(tuple(items))

    def subfield_not(self) -> SubfieldCondition:
        if self.accept("!"):
            return SubfieldNot(self.subfield_not())
        if self.accept("("):
            inner = self.subfield_or()
            self.expect(")")
            return inner
        return self.subfield_test()

    def subfield_test(self) -> SubfieldCondition:
        code = self.take("code")
        if self.accept("?"):
            return SubfieldExists(code)
        if self.accept("in"):
            return SubfieldIn(code, self.string_list())
        if self.accept("not"):
            self.expect("in")
            return SubfieldIn(code, self.string_list(), negated=True)

        token = self.peek()
        if token is None or token.kind != "op" or token.text not in _COMPARISONS:
            raise self.error(f"expected comparison after subfield '{code}'")
        self.pos += 1
        value = self.take("string")
        pattern = None
        if token.text == "=~":
            try:
                pattern = re.compile(value)
            except re.error as exc:
                raise self.error(f"invalid regex '{value}': {exc}") from exc
        return SubfieldComparison(code, token.text, value, pattern)

    def string_list(self) -> Tuple[str, ...]:
        self.expect("[")
        values = [self.take("string")]
        while self.accept(","):
            values.append(self.take("string"))
        self.expect("]")
        return tuple(values)


class RecordMatcher:
    """Compiled matcher expression."""

    def __init__(self, expression: str, condition: Condition) -> None:
        self.expression = expression
        self.condition = condition

    def __repr__(self) -> str:
        return f"RecordMatcher({self.expression!r})"

    @classmethod
    def parse(cls, expression: str) -> "RecordMatcher":
        parser = _Parser(expression)
        if parser.peek() is None:
            raise parser.error("expression is empty")
        condition = parser.record_or()
        parser.finish()
        return cls(expression, condition)

    def is_match(self, record: Record) -> bool:
        return self.condition.is_match(record)


class PicaPath:
    """Compiled path expression selecting subfield values."""

    def __init__(self, expression: str, selector: FieldCondition, code: str) -> None:
        self.expression = expression
        self.selector = selector
        self.code = code

    def __repr__(self) -> str:
        return f"PicaPath({self.expression!r})"

    @classmethod
    def parse(cls, expression: str) -> "PicaPath":
        parser = _Parser(expression)
        tag, occurrence = parser.field_head()
        condition: Optional[SubfieldCondition] = None
        if parser.accept("."):
            code = parser.take("code")
        else:
            parser.expect("{")
            code = parser.take("code")
            if parser.accept("|"):
                condition = parser.subfield_or()
            parser.expect("}")
        parser.finish()
        return cls(expression, FieldCondition(tag, occurrence, condition), code)

    def values(self, record: Record) -> List[str]:
        result: List[str] = []
        for field in record.fields:
            if not self.selector.selects(field):
                continue
            if self.selector.condition is not None and not self.selector.condition.is_match(field):
                continue
            result.extend(field.values(self.code))
        return result


