"""Kind and subject overrides derived from bibliographic records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from shelfmark.bibliographic.pica import PicaPath, RecordMatcher
from shelfmark.config import Refinement, ShelfConfig
from shelfmark.errors import ExpressionError
from shelfmark.models import DocumentKind

LOGGER = logging.getLogger(__name__)

SUBJECT_PATHS: Tuple[str, ...] = (
    "045E{ e | E == 'i' && H == 'dnb' }",
    "045E{ e | E == 'i' && H == 'dnb-pa' }",
    "045E{ e | !E? && !H? }",
    "045E{ e | E == 'm' && H in ['aepsg', 'emasg'] }",
    "045E{ e | E == 'a' }",
)

# DDC subject groups accepted as subject codes.
SUBJECT_CODES = frozenset(
    [
        "000", "004", "010", "020", "030", "050", "060", "070", "080", "090",
        "100", "130", "150", "200", "220", "230", "290", "300", "310", "320",
        "330", "333.7", "340", "350", "355", "360", "370", "380", "390", "400",
        "420", "430", "439", "440", "450", "460", "470", "480", "490", "491.8",
        "500", "510", "520", "530", "540", "550", "560", "570", "580", "590",
        "600", "610", "620", "621.3", "624", "630", "640", "650", "660", "670",
        "690", "700", "710", "720", "730", "740", "741.5", "750", "760", "770",
        "780", "790", "791", "792", "793", "796", "800", "810", "820", "830",
        "839", "840", "850", "860", "870", "880", "890", "891.8", "900", "910",
        "914.3", "920", "930", "940", "943", "950", "960", "970", "980", "990",
        "B", "K", "S",
    ]
)


class BibliographicRecord(Protocol):
    def identity(self) -> Optional[str]: ...

    def matches(self, matcher: RecordMatcher) -> bool: ...

    def extract(self, path: PicaPath) -> List[str]: ...


@dataclass(slots=True)
class Rule:
    source: DocumentKind
    target: DocumentKind
    matcher: RecordMatcher

    @classmethod
    def compile(cls, refinement: Refinement) -> "Rule":
        return cls(refinement.source, refinement.target, RecordMatcher.parse(refinement.filter))


@dataclass(slots=True)
class ClassificationOverlay:
    """Identity-keyed kind refinements and subject codes.

    Built sequentially from a record stream before any document is probed,
    read-only afterwards.
    """

    rules: List[Rule] = field(default_factory=list)
    subject_paths: Sequence[PicaPath] = field(
        default_factory=lambda: [PicaPath.parse(path) for path in SUBJECT_PATHS]
    )
    allowed_subjects: frozenset = SUBJECT_CODES
    kinds: Dict[Tuple[str, DocumentKind], DocumentKind] = field(default_factory=dict)
    subjects: Dict[str, str] = field(default_factory=dict)
    records: int = 0

    @classmethod
    def from_config(cls, config: ShelfConfig) -> "ClassificationOverlay":
        rules = []
        for refinement in config.refinements:
            try:
                rules.append(Rule.compile(refinement))
            except ExpressionError as exc:
                raise ExpressionError(
                    refinement.filter, f"invalid record matcher for kind '{refinement.source}': {exc.reason}"
                ) from exc
        LOGGER.debug("Compiled %d kind refinement rule(s)", len(rules))
        return cls(rules=rules)

    def process_record(self, record: BibliographicRecord) -> None:
        identity = record.identity()
        if not identity:
            return
        self.records += 1

        for rule in self.rules:
            if record.matches(rule.matcher):
                self.kinds[(identity, rule.source)] = rule.target
                break

        for path in self.subject_paths:
            subject = next(
                (value for value in record.extract(path) if value in self.allowed_subjects),
                None,
            )
            if subject is not None:
                self.subjects[identity] = subject
                break

    def load(self, records: Iterable[BibliographicRecord]) -> "ClassificationOverlay":
        for record in records:
            self.process_record(record)
        LOGGER.info(
            "Collected %d kind refinement(s) and %d subject code(s) from %d record(s)",
            len(self.kinds),
            len(self.subjects),
            self.records,
        )
        return self

    def resolve_kind(self, identity: str, kind: DocumentKind) -> DocumentKind:
        return self.kinds.get((identity, kind), kind)

    def subject(self, identity: str) -> Optional[str]:
        return self.subjects.get(identity)
