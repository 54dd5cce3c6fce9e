"""Load, validate and persist file-content snapshots."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Any, Iterable, Mapping

from .errors import EncodingError, InvalidInputKind

__all__ = [
    "DEFAULT_EXCLUDES",
    "decode_entry",
    "index_snapshot",
    "is_excluded",
    "load_snapshot",
    "normalise_path",
    "normalise_snapshot",
    "write_snapshot",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_EXCLUDES: tuple[str, ...] = (".git", "__pycache__", "*.pyc", "*.o", "*.so")


def normalise_path(raw: Any) -> str:
    """Return ``raw`` as a POSIX path relative to the snapshot root."""
    if not isinstance(raw, str):
        raise InvalidInputKind(
            f"Snapshot keys must be strings, got {type(raw).__name__}.",
            details={"path": repr(raw)},
        )
    if not raw:
        raise InvalidInputKind("Snapshot paths must not be empty.", details={"path": raw})
    path = PurePosixPath(raw)
    if path.is_absolute():
        raise InvalidInputKind(f"Absolute paths are not permitted in snapshots: {raw}", details={"path": raw})
    parts = [part for part in path.parts if part != "."]
    if any(part == ".." for part in parts):
        raise InvalidInputKind(f"Path escaping detected in snapshot: {raw}", details={"path": raw})
    if not parts:
        raise InvalidInputKind("Snapshot paths must not be empty.", details={"path": raw})
    if parts[0] == ".git":
        raise InvalidInputKind("Snapshots may not contain the .git directory.", details={"path": raw})
    return "/".join(parts)


def decode_entry(path: str, content: Any) -> str:
    """Return ``content`` as text, raising ``EncodingError`` for binary data."""
    if isinstance(content, str):
        if "\x00" in content:
            raise EncodingError(f"Binary content is not supported: {path}", details={"path": path})
        return content
    if isinstance(content, (bytes, bytearray, memoryview)):
        data = bytes(content)
        if b"\x00" in data:
            raise EncodingError(f"Binary content is not supported: {path}", details={"path": path})
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as error:
            raise EncodingError(
                f"Content of {path} is not valid UTF-8 text: {error.reason} at byte {error.start}",
                details={"path": path, "offset": error.start},
            ) from error
    raise InvalidInputKind(
        f"Snapshot content for {path} must be str or bytes, got {type(content).__name__}.",
        details={"path": path},
    )


def index_snapshot(snapshot: Any, *, label: str = "snapshot") -> dict[str, Any]:
    """Validate the shape of ``snapshot`` and key it by normalised path.

    ``None`` or anything that is not a mapping raises ``InvalidInputKind``.
    Content is returned untouched; see ``decode_entry``.
    """
    if snapshot is None:
        raise InvalidInputKind(f"The {label} snapshot is missing.", details={"snapshot": label})
    if not isinstance(snapshot, Mapping):
        raise InvalidInputKind(
            f"The {label} snapshot must be a mapping of path to content, got {type(snapshot).__name__}.",
            details={"snapshot": label},
        )
    entries: dict[str, Any] = {}
    for raw_path in sorted(snapshot, key=str):
        path = normalise_path(raw_path)
        if path in entries:
            raise InvalidInputKind(
                f"Duplicate path in {label} snapshot after normalisation: {path}",
                details={"path": path, "snapshot": label},
            )
        content = snapshot[raw_path]
        if not isinstance(content, (str, bytes, bytearray, memoryview)):
            raise InvalidInputKind(
                f"Snapshot content for {path} must be str or bytes, got {type(content).__name__}.",
                details={"path": path, "snapshot": label},
            )
        entries[path] = content
    return entries


def normalise_snapshot(snapshot: Any, *, label: str = "snapshot") -> dict[str, str]:
    """Validate ``snapshot`` and return a text mapping keyed by normalised path.

    Byte content is decoded as strict UTF-8; NUL bytes mark a file as binary
    and raise ``EncodingError``.
    """
    return {path: decode_entry(path, content) for path, content in index_snapshot(snapshot, label=label).items()}


def is_excluded(relative: str, patterns: Iterable[str]) -> bool:
    """Return True when any component or the full path matches a pattern."""
    parts = relative.split("/")
    for pattern in patterns:
        if fnmatch.fnmatch(relative, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def load_snapshot(root: Path | str, *, exclude: Iterable[str] = DEFAULT_EXCLUDES) -> dict[str, bytes]:
    """Read every regular file beneath ``root`` into a ``path -> bytes`` mapping."""
    root_path = Path(root)
    if not root_path.is_dir():
        raise InvalidInputKind(f"Snapshot directory not found: {root_path}", details={"root": str(root_path)})
    patterns = tuple(exclude)
    files: dict[str, bytes] = {}
    skipped = 0
    for current, dirnames, filenames in os.walk(root_path):
        current_path = Path(current)
        rel_dir = current_path.relative_to(root_path).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"
        kept_dirs = []
        for name in sorted(dirnames):
            if name == ".git" or is_excluded(prefix + name, patterns):
                skipped += 1
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs
        for name in sorted(filenames):
            relative = prefix + name
            file_path = current_path / name
            if is_excluded(relative, patterns):
                skipped += 1
                continue
            if file_path.is_symlink() or not file_path.is_file():
                skipped += 1
                continue
            files[relative] = file_path.read_bytes()
    LOGGER.debug("Loaded %d file(s) from %s (%d skipped)", len(files), root_path, skipped)
    return dict(sorted(files.items()))


def write_snapshot(
    root: Path | str,
    files: Mapping[str, str | bytes],
    *,
    removed: Iterable[str] = (),
) -> list[Path]:
    """Write ``files`` beneath ``root`` and delete ``removed`` paths.

    Text is written as UTF-8 with newlines untranslated. Returns the paths
    that were written or deleted, sorted.
    """
    root_path = Path(root).resolve()
    touched: list[Path] = []
    for raw_path, content in sorted(files.items()):
        target = root_path / normalise_path(raw_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            with target.open("w", encoding="utf-8", newline="") as handle:
                handle.write(content)
        else:
            target.write_bytes(bytes(content))
        touched.append(target)
    for raw_path in sorted(set(removed)):
        target = root_path / normalise_path(raw_path)
        if target.exists():
            target.unlink()
            touched.append(target)
    return sorted(touched)
