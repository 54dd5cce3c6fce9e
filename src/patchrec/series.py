"""Ordered patch series stored as a ``series`` file beside the patches.

The series file lists patch file names in application order, one per line,
optionally followed by a ``-pN`` strip level as quilt writes it. Blank lines
and ``#`` comments are ignored.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from .applier import apply_artifact
from .errors import ApplyConflict, SeriesError
from .parser import DEFAULT_STRIP, load_patch
from .recorder import PatchArtifact
from .snapshot import index_snapshot
from .telemetry import emit_event
from .utils.slug import slugify

__all__ = [
    "DEFAULT_SERIES_NAME",
    "SeriesEntry",
    "SeriesReport",
    "append_to_series",
    "apply_series",
    "check_series",
    "next_patch_name",
    "read_series",
    "read_series_entries",
    "write_series",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SERIES_NAME = "series"
_NUMBERED_PATCH = re.compile(r"^(?P<number>\d{4})-.+\.patch$")
_STRIP_OPTION = re.compile(r"^-p(?P<level>\d+)$")


def read_series_entries(
    patches_dir: Path | str,
    series_name: str = DEFAULT_SERIES_NAME,
) -> List[Tuple[str, int]]:
    """Return ``(name, strip)`` for every patch in the series file, in order.

    A missing series file is an empty series. Duplicate entries, entries
    without a matching patch file, and options other than ``-pN`` raise
    ``SeriesError``.
    """
    directory = Path(patches_dir)
    series_path = directory / series_name
    if not series_path.exists():
        return []
    entries: list[Tuple[str, int]] = []
    seen: set[str] = set()
    with series_path.open("r", encoding="utf-8") as handle:
        for line_number, raw in enumerate(handle, start=1):
            entry = raw.split("#", 1)[0].strip()
            if not entry:
                continue
            name, *options = entry.split()
            strip = DEFAULT_STRIP
            for option in options:
                match = _STRIP_OPTION.match(option)
                if not match:
                    raise SeriesError(
                        f"{series_path.name}:{line_number}: unsupported option {option!r} for {name}",
                        details={"patch": name, "line": line_number},
                    )
                strip = int(match.group("level"))
            if name in seen:
                raise SeriesError(
                    f"{series_path.name}:{line_number}: patch listed twice: {name}",
                    details={"patch": name, "line": line_number},
                )
            if not (directory / name).is_file():
                raise SeriesError(
                    f"{series_path.name}:{line_number}: patch file not found: {name}",
                    details={"patch": name, "line": line_number},
                )
            seen.add(name)
            entries.append((name, strip))
    return entries


def read_series(patches_dir: Path | str, series_name: str = DEFAULT_SERIES_NAME) -> List[str]:
    """Return the patch names listed in the series file, in order."""
    return [name for name, _ in read_series_entries(patches_dir, series_name)]


def write_series(
    patches_dir: Path | str,
    names: Iterable[str],
    series_name: str = DEFAULT_SERIES_NAME,
) -> Path:
    """Overwrite the series file with ``names``."""
    directory = Path(patches_dir)
    directory.mkdir(parents=True, exist_ok=True)
    series_path = directory / series_name
    body = "".join(f"{name}\n" for name in names)
    series_path.write_text(body, encoding="utf-8")
    return series_path


def append_to_series(
    patches_dir: Path | str,
    name: str,
    series_name: str = DEFAULT_SERIES_NAME,
) -> Path:
    """Append ``name`` to the series unless it is already listed.

    Existing lines, comments and strip options are left as they are.
    """
    directory = Path(patches_dir)
    series_path = directory / series_name
    if name in read_series(directory, series_name):
        return series_path
    if not series_path.exists():
        return write_series(directory, [name], series_name)
    existing = series_path.read_text(encoding="utf-8")
    prefix = "" if not existing or existing.endswith("\n") else "\n"
    with series_path.open("a", encoding="utf-8") as handle:
        handle.write(f"{prefix}{name}\n")
    return series_path


def next_patch_name(patches_dir: Path | str, title: str | None) -> str:
    """Return ``NNNN-<slug>.patch`` numbered one past the highest existing patch."""
    directory = Path(patches_dir)
    highest = 0
    if directory.is_dir():
        for candidate in directory.iterdir():
            match = _NUMBERED_PATCH.match(candidate.name)
            if match:
                highest = max(highest, int(match.group("number")))
    return f"{highest + 1:04d}-{slugify(title)}.patch"


@dataclass(slots=True)
class SeriesEntry:
    """One patch of a series and the paths it touches."""

    name: str
    artifact: PatchArtifact
    strip: int = DEFAULT_STRIP

    @property
    def paths(self) -> Tuple[str, ...]:
        return self.artifact.paths


@dataclass(slots=True)
class SeriesReport:
    """Outcome of walking a series against a baseline snapshot."""

    entries: List[SeriesEntry] = field(default_factory=list)
    files: Dict[str, Any] = field(default_factory=dict)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(entry.name for entry in self.entries)

    @property
    def overlaps(self) -> Dict[str, Tuple[str, ...]]:
        """Map each path touched by more than one patch to those patches."""
        touched: dict[str, list[str]] = {}
        for entry in self.entries:
            for path in entry.paths:
                touched.setdefault(path, []).append(entry.name)
        return {path: tuple(names) for path, names in sorted(touched.items()) if len(names) > 1}

    def to_dict(self) -> dict[str, Any]:
        return {
            "patches": [{"name": entry.name, "paths": list(entry.paths)} for entry in self.entries],
            "overlaps": {path: list(names) for path, names in self.overlaps.items()},
        }


def check_series(
    baseline: Any,
    patches_dir: Path | str,
    series_name: str = DEFAULT_SERIES_NAME,
) -> SeriesReport:
    """Apply every patch of the series, in order, to ``baseline`` in memory.

    The first patch that does not apply raises ``ApplyConflict`` with the
    patch name in ``details["patch"]``; later patches are not attempted.
    """
    directory = Path(patches_dir)
    files = index_snapshot(baseline, label="baseline")
    report = SeriesReport()
    for name, strip in read_series_entries(directory, series_name):
        artifact = load_patch(directory / name, strip=strip)
        try:
            files = apply_artifact(files, artifact, name=name)
        except ApplyConflict:
            LOGGER.debug("Series stopped at %s", name)
            raise
        report.entries.append(SeriesEntry(name=name, artifact=artifact, strip=strip))
    report.files = files
    emit_event("series_checked", **report.to_dict())
    return report


def apply_series(
    baseline: Any,
    patches_dir: Path | str,
    series_name: str = DEFAULT_SERIES_NAME,
) -> Dict[str, Any]:
    """Return the snapshot produced by applying the whole series to ``baseline``."""
    return check_series(baseline, patches_dir, series_name).files
