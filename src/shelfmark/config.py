"""Shelf discovery and configuration."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from shelfmark.errors import ConfigError
from shelfmark.models import DocumentKind

LOGGER = logging.getLogger(__name__)

CONFIG_NAME = "shelfmark.toml"
CATALOG_NAME = "index.parquet"
DATA_DIR = "data"

DEFAULT_PATTERN = "**/*.txt"
DEFAULT_HASH_LENGTH = 8


@dataclass(slots=True)
class Metadata:
    name: str = ""
    version: str = "0.1.0"
    description: str | None = None


@dataclass(slots=True)
class Runtime:
    # None or 0 selects all available hardware threads.
    num_jobs: int | None = None


@dataclass(slots=True)
class IndexOptions:
    pattern: str = DEFAULT_PATTERN
    hash_length: int = DEFAULT_HASH_LENGTH


@dataclass(slots=True)
class Refinement:
    """Rewrite ``source`` kind to ``target`` when ``filter`` matches a record."""

    source: DocumentKind
    target: DocumentKind
    filter: str


@dataclass(slots=True)
class ShelfConfig:
    metadata: Metadata = field(default_factory=Metadata)
    runtime: Runtime = field(default_factory=Runtime)
    index: IndexOptions = field(default_factory=IndexOptions)
    refinements: List[Refinement] = field(default_factory=list)

    @classmethod
    def from_path(cls, path: Path) -> "ShelfConfig":
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"unable to read config {str(path)!r}: {exc}") from exc
        try:
            data = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid config {str(path)!r}: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShelfConfig":
        metadata = _table(data, "metadata")
        runtime = _table(data, "runtime")
        index = _table(data, "index")

        config = cls(
            metadata=Metadata(
                name=_typed(metadata, "name", str, ""),
                version=_typed(metadata, "version", str, "0.1.0"),
                description=_typed(metadata, "description", str, None),
            ),
            runtime=Runtime(num_jobs=_typed(runtime, "num_jobs", int, None)),
            index=IndexOptions(
                pattern=_typed(index, "pattern", str, DEFAULT_PATTERN),
                hash_length=_typed(index, "hash_length", int, DEFAULT_HASH_LENGTH),
            ),
            refinements=_refinements(_table(data, "kinds")),
        )

        if config.runtime.num_jobs is not None and config.runtime.num_jobs < 0:
            raise ConfigError("runtime.num_jobs must not be negative")
        if not 1 <= config.index.hash_length <= 64:
            raise ConfigError("index.hash_length must be between 1 and 64")
        return config

    def save(self, path: Path) -> None:
        lines = ["[metadata]", f"name = {_quote(self.metadata.name)}"]
        lines.append(f"version = {_quote(self.metadata.version)}")
        if self.metadata.description:
            lines.append(f"description = {_quote(self.metadata.description)}")

        if self.runtime.num_jobs is not None:
            lines += ["", "[runtime]", f"num_jobs = {self.runtime.num_jobs}"]

        lines += [
            "",
            "[index]",
            f"pattern = {_quote(self.index.pattern)}",
            f"hash_length = {self.index.hash_length}",
        ]

        grouped: Dict[DocumentKind, List[Refinement]] = {}
        for refinement in self.refinements:
            grouped.setdefault(refinement.source, []).append(refinement)
        for kind, refinements in grouped.items():
            lines += ["", f"[kinds.{kind.value}]", "refinements = ["]
            for refinement in refinements:
                lines.append(
                    f"    {{ target = {_quote(refinement.target.value)}, "
                    f"filter = {_quote(refinement.filter)} }},"
                )
            lines.append("]")

        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")


def _table(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a table")
    return value


def _typed(table: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = table.get(key, default)
    if value is None or value is default:
        return value
    # bool is a subclass of int; reject it for integer options
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigError(f"'{key}' must be of type {kind.__name__}")
    return value


def _refinements(kinds: Dict[str, Any]) -> List[Refinement]:
    result: List[Refinement] = []
    for name, spec in kinds.items():
        source = _kind(name)
        if not isinstance(spec, dict):
            raise ConfigError(f"'kinds.{name}' must be a table")
        entries = spec.get("refinements", [])
        if not isinstance(entries, list):
            raise ConfigError(f"'kinds.{name}.refinements' must be an array")
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("filter"), str):
                raise ConfigError(f"refinement of '{name}' requires a 'filter' string")
            result.append(
                Refinement(
                    source=source,
                    target=_kind(str(entry.get("target", ""))),
                    filter=entry["filter"],
                )
            )
    return result


def _kind(name: str) -> DocumentKind:
    try:
        return DocumentKind.parse(name)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(slots=True)
class Shelf:
    """A corpus root holding the config, the data tree and the catalog."""

    root: Path
    config: ShelfConfig

    @classmethod
    def discover(cls, start: Path | None = None) -> "Shelf":
        """Walk up from ``start`` until a directory with a config is found."""
        current = Path(start if start is not None else Path.cwd()).resolve()
        for candidate in (current, *current.parents):
            config_path = candidate / CONFIG_NAME
            if config_path.is_file():
                LOGGER.debug("Found shelf at %s", candidate)
                return cls(candidate, ShelfConfig.from_path(config_path))
        raise ConfigError("not a shelf (or any parent directory)")

    @classmethod
    def create(cls, root: Path, name: str | None = None) -> "Shelf":
        root = Path(root).resolve()
        config_path = root / CONFIG_NAME
        if config_path.exists():
            raise ConfigError(f"shelf already exists: {root}")
        root.mkdir(parents=True, exist_ok=True)
        (root / DATA_DIR).mkdir(exist_ok=True)
        config = ShelfConfig(metadata=Metadata(name=name or root.name))
        config.save(config_path)
        return cls(root, config)

    @property
    def name(self) -> str:
        return self.config.metadata.name

    @property
    def data_dir(self) -> Path:
        return self.root / DATA_DIR

    @property
    def catalog_path(self) -> Path:
        return self.root / CATALOG_NAME

    @property
    def num_jobs(self) -> int:
        jobs = self.config.runtime.num_jobs
        return jobs if jobs else (os.cpu_count() or 1)
