"""Exception hierarchy shared by the library and the command line."""

from __future__ import annotations

from pathlib import Path


class ShelfmarkError(Exception):
    """Base class for every error reported to the user."""


class ConfigError(ShelfmarkError):
    """Invalid configuration, glob pattern or corpus layout."""


class ExpressionError(ConfigError):
    """A record matcher or path expression could not be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"invalid expression '{expression}': {reason}")
        self.expression = expression
        self.reason = reason


class DataError(ShelfmarkError):
    """Malformed input data such as a broken bibliographic record."""


class CatalogError(ShelfmarkError):
    """The catalog could not be read or written."""


class ProbeError(ShelfmarkError):
    """A single document could not be loaded or decoded."""

    def __init__(self, path: Path, cause: Exception) -> None:
        super().__init__(f"unable to read document {str(path)!r}: {cause}")
        self.path = Path(path)
        self.cause = cause

    def __reduce__(self):
        return (type(self), (self.path, self.cause))


class VerificationError(ShelfmarkError):
    """First inconsistency found by ``verify``."""

    def __init__(self, reason: str, path: str, detail: str = "") -> None:
        message = f"verification failed: {reason} mismatch (path = {path!r})"
        if reason == "missing":
            message = f"verification failed: document not found (path = {path!r})"
        if detail:
            message = f"{message}; {detail}"
        super().__init__(message)
        self.reason = reason
        self.path = path
        self.detail = detail

    def __reduce__(self):
        return (type(self), (self.reason, self.path, self.detail))
