"""Error taxonomy shared by the patch recorder, parser and applier."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

__all__ = [
    "ApplyConflict",
    "ConfigError",
    "EncodingError",
    "InvalidInputKind",
    "PatchError",
    "PatchFormatError",
    "SeriesError",
]


class PatchError(RuntimeError):
    """Base class for failures raised while recording or applying patches."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class InvalidInputKind(PatchError):
    """Raised when a snapshot is missing, not a mapping, or has unsafe paths."""


class EncodingError(PatchError):
    """Raised when file content cannot be treated as text."""


class PatchFormatError(PatchError):
    """Raised when patch text cannot be parsed."""


class ConfigError(PatchError):
    """Raised when the YAML configuration is unreadable or invalid."""


class SeriesError(PatchError):
    """Raised when a series file is inconsistent with the patches directory."""


class ApplyConflict(PatchError):
    """Raised when a hunk does not match the content it is applied to."""

    def __init__(
        self,
        message: str,
        *,
        path: str,
        hunk_index: int | None = None,
        expected: Sequence[str] = (),
        actual: Sequence[str] = (),
        details: Mapping[str, Any] | None = None,
    ) -> None:
        payload = dict(details or {})
        payload.setdefault("path", path)
        payload.setdefault("hunk_index", hunk_index)
        super().__init__(message, details=payload)
        self.path = path
        self.hunk_index = hunk_index
        self.expected: tuple[str, ...] = tuple(expected)
        self.actual: tuple[str, ...] = tuple(actual)

    def describe(self) -> str:
        """Render a multi-line report suitable for an operator."""
        location = self.path if self.hunk_index is None else f"{self.path} (hunk #{self.hunk_index})"
        lines = [f"{location}: {self}"]
        if self.expected:
            lines.append("expected:")
            lines.extend(f"  |{line}" for line in self.expected)
        if self.actual:
            lines.append("found:")
            lines.extend(f"  |{line}" for line in self.actual)
        return "\n".join(lines)
