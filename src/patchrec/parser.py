"""Parse unified diff text back into patch records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import PatchFormatError
from .recorder import DEV_NULL, NO_NEWLINE_MARKER, ChangeType, Hunk, HunkLine, PatchArtifact, PatchRecord

__all__ = ["DEFAULT_STRIP", "load_patch", "parse_patch"]

DEFAULT_STRIP = 1

_DIFF_HEADER = re.compile(r"^diff --git (?P<old>a/.+) (?P<new>b/.+)$")
_BARE_DIFF_HEADER = re.compile(r"^diff --git (?P<old>\S+) (?P<new>\S+)$")
_HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)
_EXTENDED_HEADERS = ("index ", "old mode ", "new mode ", "similarity index ", "dissimilarity index ")
_SIGNATURE_SEPARATOR = "--"
_MAIL_HEADER = re.compile(r"^[A-Za-z][A-Za-z0-9-]*: ")
_SUBJECT_PREFIX = re.compile(r"^\[PATCH[^\]]*\]\s*")
_MAIL_START = ("From ", "From: ", "Subject: ")
_METADATA_SEPARATOR = "---"


@dataclass
class _FileSection:
    """Mutable accumulator for one file while parsing."""

    path: str | None = None
    change_type: ChangeType = "modify"
    hunks: List[Hunk] = field(default_factory=list)

    def finish(self) -> PatchRecord:
        if not self.path:
            raise PatchFormatError("Diff section is missing a file path.")
        return PatchRecord(path=self.path, change_type=self.change_type, hunks=tuple(self.hunks))


def _default_count(value: str | None) -> int:
    """Return the number of lines represented in a hunk header."""
    return int(value) if value is not None else 1


def _strip_components(path: str, strip: int) -> str:
    """Drop ``strip`` leading directories from ``path``, like ``patch -pN``."""
    if strip == 0:
        return path
    parts = path.split("/")
    if len(parts) <= strip:
        raise PatchFormatError(
            f"Cannot strip {strip} leading component(s) from {path}",
            details={"path": path},
        )
    return "/".join(parts[strip:])


def _label_path(label: str, strip: int) -> str | None:
    """Translate a ``---``/``+++`` operand into a repository-relative path."""
    operand = label.split("\t", 1)[0]
    if operand == DEV_NULL:
        return None
    return _strip_components(operand, strip) or None


def _is_section_start(lines: List[str], index: int) -> bool:
    line = lines[index]
    if line.startswith("diff --git "):
        return True
    return line.startswith("--- ") and index + 1 < len(lines) and lines[index + 1].startswith("+++ ")


def _first_diff_line(lines: List[str]) -> int:
    """Return the index of the first real file section after a mail header.

    A ``diff --git`` line always wins; plain sections only count once a hunk
    header follows their ``---``/``+++`` pair.
    """
    for index, line in enumerate(lines):
        if line.startswith("diff --git "):
            return index
    for index, line in enumerate(lines):
        if line.startswith("@@ ") and index >= 2 and _is_section_start(lines, index - 2):
            return index - 2
    return len(lines)


def _locate_diff(lines: List[str]) -> Tuple[int, int]:
    """Return ``(metadata_end, diff_start)`` for the lines of a patch.

    With mail headers the metadata runs up to the last ``---`` separator
    before the first file section, so messages may contain ``---`` rules and
    header look-alikes.
    """
    search_from = 0
    if lines and lines[0].startswith(_MAIL_START):
        limit = _first_diff_line(lines)
        separators = [index for index in range(limit) if lines[index] == _METADATA_SEPARATOR]
        if separators:
            search_from = separators[-1] + 1
    start = search_from
    while start < len(lines) and not _is_section_start(lines, start):
        start += 1
    separators = [index for index in range(start) if lines[index] == _METADATA_SEPARATOR]
    return (separators[-1] if separators else start), start


def _parse_metadata(lines: List[str]) -> Tuple[Optional[str], Optional[str]]:
    """Extract author and message from the block preceding the first diff.

    Understands the mail-style headers written by ``render_artifact`` and by
    ``git format-patch``. The ``[PATCH]`` subject prefix is only removed from
    mbox output, which starts with a ``From <commit>`` line.
    """
    mbox = bool(lines) and lines[0].startswith("From ")
    author: str | None = None
    subject: str | None = None
    body: list[str] = []
    in_headers = True
    for line in lines:
        if in_headers:
            if line.startswith("From: "):
                author = line[len("From: "):].strip() or None
                continue
            if line.startswith("Subject: "):
                subject = line[len("Subject: "):]
                if mbox:
                    subject = _SUBJECT_PREFIX.sub("", subject)
                subject = subject.strip() or None
                continue
            if line.startswith("From ") or _MAIL_HEADER.match(line):
                continue
            in_headers = False
            if not line.strip():
                continue
        body.append(line)
    body_text = "\n".join(body).strip("\n")
    if subject and body_text:
        message: str | None = f"{subject}\n\n{body_text}"
    else:
        message = subject or body_text or None
    return author, message


class _PatchParser:
    """Single-pass parser over the lines of a patch."""

    def __init__(self, text: str, strip: int) -> None:
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        self.lines = lines
        self.strip = strip
        self.index = 0
        self.records: list[PatchRecord] = []

    def parse(self) -> PatchArtifact:
        metadata_end, start = _locate_diff(self.lines)
        author, message = _parse_metadata(self.lines[:metadata_end])
        self.index = start
        while self.index < len(self.lines):
            line = self.lines[self.index]
            if line.rstrip() == _SIGNATURE_SEPARATOR:
                break
            if _is_section_start(self.lines, self.index):
                self.records.append(self._parse_section())
                continue
            if line.startswith(("+", "-", " ")) and self.records:
                record = self.records[-1]
                raise PatchFormatError(
                    f"Unexpected diff content after hunk #{len(record.hunks)} of {record.path}: {line!r}",
                    details={"path": record.path, "hunk_index": len(record.hunks)},
                )
            self.index += 1
        return PatchArtifact(records=tuple(self.records), author=author, message=message)

    def _parse_section(self) -> PatchRecord:
        section = _FileSection()
        line = self.lines[self.index]
        match = _DIFF_HEADER.match(line) or _BARE_DIFF_HEADER.match(line)
        if match:
            section.path = _strip_components(match.group("new"), self.strip)
            self.index += 1
        elif line.startswith("diff --git "):
            raise PatchFormatError(f"Malformed diff header: {line}")

        while self.index < len(self.lines):
            line = self.lines[self.index]
            if line.startswith("diff --git ") or (section.hunks and _is_section_start(self.lines, self.index)):
                break
            if line.startswith("new file mode"):
                section.change_type = "add"
            elif line.startswith("deleted file mode"):
                section.change_type = "delete"
            elif line.startswith(_EXTENDED_HEADERS):
                pass
            elif line.startswith("Binary files ") or line == "GIT binary patch":
                raise PatchFormatError(
                    f"Binary patches are not supported: {section.path or line}",
                    details={"path": section.path},
                )
            elif line.startswith("--- "):
                old_path = _label_path(line[4:], self.strip)
                if old_path is None:
                    section.change_type = "add"
                elif section.path is None:
                    section.path = old_path
            elif line.startswith("+++ "):
                new_path = _label_path(line[4:], self.strip)
                if new_path is None:
                    section.change_type = "delete"
                else:
                    section.path = new_path
            elif line.startswith("@@ "):
                section.hunks.append(self._parse_hunk(section))
                continue
            else:
                break
            self.index += 1
        return section.finish()

    def _parse_hunk(self, section: _FileSection) -> Hunk:
        header = self.lines[self.index]
        hunk_index = len(section.hunks) + 1
        location = section.path or "<unknown>"
        match = _HUNK_HEADER.match(header)
        if not match:
            raise PatchFormatError(
                f"Malformed hunk header in {location}: {header}",
                details={"path": section.path, "hunk_index": hunk_index},
            )
        expected_removed = _default_count(match.group("old_count"))
        expected_added = _default_count(match.group("new_count"))
        seen_removed = 0
        seen_added = 0
        body: list[HunkLine] = []
        self.index += 1

        while self.index < len(self.lines) and (seen_removed < expected_removed or seen_added < expected_added):
            candidate = self.lines[self.index]
            if candidate.startswith("\\"):
                self._mark_no_newline(body)
                self.index += 1
                continue
            prefix = candidate[:1]
            if prefix == "+":
                seen_added += 1
            elif prefix == "-":
                seen_removed += 1
            elif prefix == " " or candidate == "":
                seen_added += 1
                seen_removed += 1
                prefix = " "
            else:
                break
            body.append(HunkLine(prefix, candidate[1:]))  # type: ignore[arg-type]
            self.index += 1

        if self.index < len(self.lines) and self.lines[self.index].startswith("\\"):
            self._mark_no_newline(body)
            self.index += 1

        if seen_removed != expected_removed or seen_added != expected_added:
            raise PatchFormatError(
                "Patch hunk line count mismatch for "
                f"{location} hunk #{hunk_index}: expected -{expected_removed}/+{expected_added} "
                f"but saw -{seen_removed}/+{seen_added}.",
                details={"path": section.path, "hunk_index": hunk_index},
            )
        return Hunk(
            old_start=int(match.group("old_start")),
            old_count=expected_removed,
            new_start=int(match.group("new_start")),
            new_count=expected_added,
            lines=tuple(body),
        )

    def _mark_no_newline(self, body: list[HunkLine]) -> None:
        marker = self.lines[self.index]
        if not body or marker.rstrip("\r") != NO_NEWLINE_MARKER:
            raise PatchFormatError(f"Unexpected marker line: {marker}")
        last = body[-1]
        body[-1] = HunkLine(last.kind, last.text, False)


def parse_patch(text: str, *, strip: int = DEFAULT_STRIP) -> PatchArtifact:
    """Parse unified diff ``text`` (with optional metadata block) into an artifact.

    ``strip`` leading path components are removed from file names, as with
    ``patch -p``; the default drops git's ``a/`` and ``b/`` prefixes.
    """
    if isinstance(strip, bool) or not isinstance(strip, int) or strip < 0:
        raise ValueError(f"strip must be a non-negative integer, got {strip!r}")
    return _PatchParser(text or "", strip).parse()


def load_patch(path: Path | str, *, strip: int = DEFAULT_STRIP) -> PatchArtifact:
    """Read and parse a patch file from disk."""
    patch_path = Path(path)
    with patch_path.open("r", encoding="utf-8", newline="") as handle:
        text = handle.read()
    try:
        return parse_patch(text, strip=strip)
    except PatchFormatError as error:
        error.details.setdefault("patch", patch_path.name)
        raise
