"""Record line-based unified diffs between two file-content snapshots."""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import Any, Iterator, Literal, Sequence, Tuple

from .errors import InvalidInputKind
from .snapshot import normalise_snapshot
from .telemetry import emit_event

__all__ = [
    "DEFAULT_CONTEXT",
    "NO_NEWLINE_MARKER",
    "Hunk",
    "HunkLine",
    "PatchArtifact",
    "PatchRecord",
    "build_artifact",
    "record_patch",
    "render_artifact",
    "split_lines",
]

DEFAULT_CONTEXT = 3
NO_NEWLINE_MARKER = "\\ No newline at end of file"
DEV_NULL = "/dev/null"

ChangeType = Literal["add", "modify", "delete"]


def split_lines(text: str) -> list[str]:
    """Split ``text`` on LF only, keeping terminators so ``"".join`` restores it."""
    if not text:
        return []
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


@dataclass(frozen=True, slots=True)
class HunkLine:
    """Single context, removed or added line within a hunk."""

    kind: Literal[" ", "-", "+"]
    text: str
    newline: bool = True

    @classmethod
    def from_raw(cls, kind: Literal[" ", "-", "+"], raw: str) -> "HunkLine":
        if raw.endswith("\n"):
            return cls(kind, raw[:-1], True)
        return cls(kind, raw, False)

    @property
    def raw(self) -> str:
        """Return the file content this line stands for."""
        return self.text + "\n" if self.newline else self.text

    def render(self) -> str:
        rendered = f"{self.kind}{self.text}\n"
        if not self.newline:
            rendered += NO_NEWLINE_MARKER + "\n"
        return rendered


def _format_range(start: int, count: int) -> str:
    if count == 1:
        return str(start)
    return f"{start},{count}"


@dataclass(frozen=True, slots=True)
class Hunk:
    """Contiguous block of changes with its surrounding context.

    ``old_start`` and ``new_start`` hold the values exactly as they appear in
    the ``@@`` header: 1-based, or the line *before* the change when the
    corresponding count is zero.
    """

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: Tuple[HunkLine, ...] = ()

    @property
    def added(self) -> Tuple[HunkLine, ...]:
        return tuple(line for line in self.lines if line.kind == "+")

    @property
    def removed(self) -> Tuple[HunkLine, ...]:
        return tuple(line for line in self.lines if line.kind == "-")

    @property
    def old_lines(self) -> list[str]:
        """Content the hunk expects to find in the original file."""
        return [line.raw for line in self.lines if line.kind != "+"]

    @property
    def new_lines(self) -> list[str]:
        """Content the hunk leaves behind in the modified file."""
        return [line.raw for line in self.lines if line.kind != "-"]

    def header(self) -> str:
        return (
            f"@@ -{_format_range(self.old_start, self.old_count)} "
            f"+{_format_range(self.new_start, self.new_count)} @@"
        )

    def render(self) -> str:
        return self.header() + "\n" + "".join(line.render() for line in self.lines)


@dataclass(frozen=True, slots=True)
class PatchRecord:
    """All hunks affecting one file."""

    path: str
    change_type: ChangeType
    hunks: Tuple[Hunk, ...] = ()

    @property
    def added_count(self) -> int:
        return sum(len(hunk.added) for hunk in self.hunks)

    @property
    def removed_count(self) -> int:
        return sum(len(hunk.removed) for hunk in self.hunks)

    def render(self) -> str:
        old_label = DEV_NULL if self.change_type == "add" else f"a/{self.path}"
        new_label = DEV_NULL if self.change_type == "delete" else f"b/{self.path}"
        lines = [f"diff --git a/{self.path} b/{self.path}"]
        if self.change_type == "add":
            lines.append("new file mode 100644")
        elif self.change_type == "delete":
            lines.append("deleted file mode 100644")
        if self.hunks:
            lines.append(f"--- {old_label}")
            lines.append(f"+++ {new_label}")
        header = "\n".join(lines) + "\n"
        return header + "".join(hunk.render() for hunk in self.hunks)


@dataclass(frozen=True, slots=True)
class PatchArtifact:
    """Persistable patch: per-file records plus optional author and message."""

    records: Tuple[PatchRecord, ...] = ()
    author: str | None = None
    message: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def paths(self) -> Tuple[str, ...]:
        return tuple(record.path for record in self.records)

    @property
    def subject(self) -> str | None:
        if not self.message:
            return None
        return self.message.splitlines()[0]

    def render(self) -> str:
        return render_artifact(self)


def _iter_hunks(old_lines: Sequence[str], new_lines: Sequence[str], context: int) -> Iterator[Hunk]:
    if not old_lines and not new_lines:
        return
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for group in matcher.get_grouped_opcodes(context):
        i1, i2 = group[0][1], group[-1][2]
        j1, j2 = group[0][3], group[-1][4]
        lines: list[HunkLine] = []
        for tag, a1, a2, b1, b2 in group:
            if tag == "equal":
                lines.extend(HunkLine.from_raw(" ", raw) for raw in old_lines[a1:a2])
                continue
            if tag in {"replace", "delete"}:
                lines.extend(HunkLine.from_raw("-", raw) for raw in old_lines[a1:a2])
            if tag in {"replace", "insert"}:
                lines.extend(HunkLine.from_raw("+", raw) for raw in new_lines[b1:b2])
        old_count = i2 - i1
        new_count = j2 - j1
        yield Hunk(
            old_start=i1 + 1 if old_count else i1,
            old_count=old_count,
            new_start=j1 + 1 if new_count else j1,
            new_count=new_count,
            lines=tuple(lines),
        )


def record_patch(baseline: Any, modified: Any, *, context: int = DEFAULT_CONTEXT) -> Tuple[PatchRecord, ...]:
    """Return one ``PatchRecord`` per file that differs between the snapshots.

    Paths are processed in lexicographic order so the output depends only on
    the snapshot contents. Files present only in ``modified`` are recorded as
    additions, files present only in ``baseline`` as deletions.
    """
    if isinstance(context, bool) or not isinstance(context, int) or context < 0:
        raise ValueError(f"context must be a non-negative integer, got {context!r}")
    old_files = normalise_snapshot(baseline, label="baseline")
    new_files = normalise_snapshot(modified, label="modified")

    records: list[PatchRecord] = []
    for path in sorted(set(old_files) | set(new_files)):
        old_text = old_files.get(path)
        new_text = new_files.get(path)
        if old_text == new_text:
            continue
        if old_text is None:
            change_type: ChangeType = "add"
        elif new_text is None:
            change_type = "delete"
        else:
            change_type = "modify"
        hunks = tuple(_iter_hunks(split_lines(old_text or ""), split_lines(new_text or ""), context))
        records.append(PatchRecord(path=path, change_type=change_type, hunks=hunks))
    return tuple(records)


def build_artifact(
    baseline: Any,
    modified: Any,
    *,
    message: str | None = None,
    author: str | None = None,
    context: int = DEFAULT_CONTEXT,
) -> PatchArtifact:
    """Diff two snapshots and wrap the records with optional metadata."""
    records = record_patch(baseline, modified, context=context)
    cleaned_message = message.strip() if message else None
    if cleaned_message:
        _check_message(cleaned_message)
    cleaned_author = author.strip() if author else None
    artifact = PatchArtifact(
        records=records,
        author=cleaned_author or None,
        message=cleaned_message or None,
    )
    emit_event(
        "patch_recorded",
        paths=artifact.paths,
        added=sum(record.added_count for record in records),
        removed=sum(record.removed_count for record in records),
        context=context,
    )
    return artifact


def _check_message(message: str) -> None:
    """Refuse body lines that would start a file section when read back."""
    for line in message.splitlines()[1:]:
        if line.startswith("diff --git "):
            raise InvalidInputKind(
                f"Patch message line would be read as a diff header: {line!r}",
                details={"line": line},
            )


def _render_metadata(artifact: PatchArtifact) -> str:
    if not artifact.author and not artifact.message:
        return ""
    if artifact.message:
        _check_message(artifact.message)
    lines: list[str] = []
    if artifact.author:
        lines.append(f"From: {artifact.author}")
    if artifact.message:
        subject, *body = artifact.message.splitlines()
        lines.append(f"Subject: {subject}")
        body_text = "\n".join(body).strip("\n")
        if body_text:
            lines.append("")
            lines.extend(body_text.splitlines())
    lines.append("---")
    return "\n".join(lines) + "\n"


def render_artifact(artifact: PatchArtifact) -> str:
    """Render ``artifact`` as unified diff text with an optional metadata block."""
    return _render_metadata(artifact) + "".join(record.render() for record in artifact.records)
