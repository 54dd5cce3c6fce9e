"""Apply recorded patches to in-memory snapshots or a directory tree."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Sequence, Tuple

from .errors import ApplyConflict
from .recorder import Hunk, PatchArtifact, PatchRecord, split_lines
from .snapshot import decode_entry, index_snapshot, normalise_path, write_snapshot
from .telemetry import emit_event

__all__ = [
    "apply_artifact",
    "apply_records",
    "apply_to_directory",
    "check_artifact",
]

LOGGER = logging.getLogger(__name__)


def _visible(lines: Iterable[str]) -> list[str]:
    return [line[:-1] if line.endswith("\n") else line for line in lines]


def _apply_hunks(path: str, lines: list[str], hunks: Sequence[Hunk]) -> list[str]:
    """Apply ``hunks`` to ``lines``; hunk positions refer to the original file."""
    output: list[str] = []
    cursor = 0
    for hunk_index, hunk in enumerate(hunks, start=1):
        start = hunk.old_start - 1 if hunk.old_count else hunk.old_start
        expected = hunk.old_lines
        if start < cursor:
            raise ApplyConflict(
                f"hunk #{hunk_index} overlaps the previous hunk",
                path=path,
                hunk_index=hunk_index,
            )
        actual = lines[start : start + len(expected)]
        if actual != expected:
            raise ApplyConflict(
                f"hunk #{hunk_index} does not match at line {start + 1}",
                path=path,
                hunk_index=hunk_index,
                expected=_visible(expected),
                actual=_visible(actual),
            )
        output.extend(lines[cursor:start])
        output.extend(hunk.new_lines)
        cursor = start + len(expected)
    output.extend(lines[cursor:])
    return output


def _apply_record(files: dict[str, Any], record: PatchRecord) -> None:
    path = normalise_path(record.path)
    if record.change_type == "add":
        if path in files:
            raise ApplyConflict("file to be created already exists", path=path)
        original: list[str] = []
    else:
        if path not in files:
            raise ApplyConflict(f"file to be {'deleted' if record.change_type == 'delete' else 'patched'} not found", path=path)
        original = split_lines(decode_entry(path, files[path]))

    patched = _apply_hunks(path, original, record.hunks)

    if record.change_type == "delete":
        if patched:
            raise ApplyConflict(
                "file to be deleted has content the patch does not remove",
                path=path,
                actual=_visible(patched[:3]),
            )
        del files[path]
        return
    files[path] = "".join(patched)


def apply_records(snapshot: Any, records: Sequence[PatchRecord]) -> dict[str, Any]:
    """Return a new snapshot with ``records`` applied in order.

    Only files named by a record are decoded; every other entry is carried
    over unchanged, so unrelated binary files do not prevent application.
    Patched files come back as text.
    """
    files = index_snapshot(snapshot, label="target")
    for record in records:
        _apply_record(files, record)
    return dict(sorted(files.items()))


def apply_artifact(snapshot: Any, artifact: PatchArtifact, *, name: str | None = None) -> dict[str, Any]:
    """Apply every record of ``artifact`` to ``snapshot``."""
    try:
        result = apply_records(snapshot, artifact.records)
    except ApplyConflict as error:
        if name:
            error.details.setdefault("patch", name)
        emit_event("patch_apply_failed", patch=name, details=error.details)
        raise
    emit_event("patch_applied", patch=name, paths=artifact.paths)
    return result


def check_artifact(snapshot: Any, artifact: PatchArtifact) -> Tuple[str, ...]:
    """Dry-run ``artifact`` against ``snapshot`` and return the touched paths."""
    apply_records(snapshot, artifact.records)
    return tuple(sorted({normalise_path(path) for path in artifact.paths}))


def apply_to_directory(
    root: Path | str,
    artifacts: Sequence[Tuple[str, PatchArtifact]],
    *,
    check: bool = False,
) -> Tuple[str, ...]:
    """Apply named artifacts, in order, to the files under ``root``.

    Every patch is applied in memory first; nothing is written unless the
    whole sequence applies. Returns the touched paths.
    """
    root_path = Path(root)
    paths = sorted({normalise_path(path) for _, artifact in artifacts for path in artifact.paths})
    files: dict[str, Any] = {}
    for path in paths:
        candidate = root_path / path
        if candidate.is_file():
            files[path] = candidate.read_bytes()

    for name, artifact in artifacts:
        files = apply_artifact(files, artifact, name=name)

    if check:
        LOGGER.debug("Dry run: %d patch(es) apply cleanly to %s", len(artifacts), root_path)
        return tuple(paths)

    written = {path: files[path] for path in paths if path in files}
    removed = [path for path in paths if path not in files]
    write_snapshot(root_path, written, removed=removed)
    LOGGER.debug("Applied %d patch(es) to %s", len(artifacts), root_path)
    return tuple(paths)
