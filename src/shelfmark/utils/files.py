"""Utility helpers for working with files."""

from __future__ import annotations

import glob
import hashlib
import os
from pathlib import Path, PurePosixPath

from shelfmark.errors import ConfigError


def validate_pattern(pattern: str) -> str:
    """Reject glob filters that cannot select files below the corpus root."""
    if not pattern or not pattern.strip():
        raise ConfigError("invalid glob pattern: pattern is empty")
    posix = PurePosixPath(pattern.replace(os.sep, "/"))
    if posix.is_absolute() or Path(pattern).is_absolute():
        raise ConfigError(f"invalid glob pattern '{pattern}': must be relative")
    if ".." in posix.parts:
        raise ConfigError(f"invalid glob pattern '{pattern}': must not leave the corpus")
    return pattern


def scan_documents(root: Path, pattern: str) -> set[Path]:
    """Return all regular files below ``root`` matching ``pattern``.

    Unreadable directories are skipped silently. The result is a set; callers
    that need a stable order sort it themselves.
    """
    validate_pattern(pattern)
    root = Path(root)
    if not root.is_dir():
        return set()

    found: set[Path] = set()
    for name in glob.iglob(pattern, root_dir=root, recursive=True):
        path = root / name
        try:
            if path.is_file():
                found.add(path)
        except OSError:
            continue
    return found


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def relpath(path: Path, base: Path) -> str:
    """Return ``path`` relative to ``base`` using forward slashes."""
    return Path(path).relative_to(base).as_posix()
