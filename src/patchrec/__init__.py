"""Record edits to unpacked sources as unified-diff patches and replay them."""

from .applier import apply_artifact, apply_records, apply_to_directory, check_artifact
from .errors import ApplyConflict, ConfigError, EncodingError, InvalidInputKind, PatchError, PatchFormatError, SeriesError
from .parser import load_patch, parse_patch
from .recorder import Hunk, HunkLine, PatchArtifact, PatchRecord, build_artifact, record_patch, render_artifact
from .series import SeriesReport, apply_series, check_series, read_series, read_series_entries
from .snapshot import load_snapshot, normalise_snapshot, write_snapshot

__all__ = [
    "ApplyConflict",
    "ConfigError",
    "EncodingError",
    "Hunk",
    "HunkLine",
    "InvalidInputKind",
    "PatchArtifact",
    "PatchError",
    "PatchFormatError",
    "PatchRecord",
    "SeriesError",
    "SeriesReport",
    "apply_artifact",
    "apply_records",
    "apply_series",
    "apply_to_directory",
    "build_artifact",
    "check_artifact",
    "check_series",
    "load_patch",
    "load_snapshot",
    "normalise_snapshot",
    "parse_patch",
    "read_series",
    "read_series_entries",
    "record_patch",
    "render_artifact",
    "write_snapshot",
]
