"""CLI commands for recording, applying and checking source patches."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from .applier import apply_to_directory
from .config import DEFAULT_CONFIG_NAME, PatchrecConfig, load_config
from .errors import ApplyConflict, PatchError
from .parser import DEFAULT_STRIP, load_patch
from .recorder import PatchArtifact, build_artifact
from .series import append_to_series, check_series, next_patch_name
from .snapshot import load_snapshot, write_snapshot

APP_HELP = "Record edits to unpacked sources as patches and replay them."
DEFAULT_TITLE = "local-changes"

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_cli_config(config: str) -> Tuple[PatchrecConfig, Path]:
    """Load the config file and return it with the folder paths resolve against."""
    config_path = Path(config)
    explicit = config != DEFAULT_CONFIG_NAME
    try:
        config_data = load_config(config_path, required=explicit)
    except PatchError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    return config_data, config_path.parent


def _fail(error: PatchError) -> typer.Exit:
    message = error.describe() if isinstance(error, ApplyConflict) else str(error)
    patch_name = error.details.get("patch")
    if patch_name:
        message = f"{patch_name}: {message}"
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _summarise(artifact: PatchArtifact) -> str:
    added = sum(record.added_count for record in artifact.records)
    removed = sum(record.removed_count for record in artifact.records)
    return f"{len(artifact.records)} file(s), +{added}/-{removed}"


@app.command()
def record(
    baseline: Path = typer.Argument(..., help="Directory holding the unmodified sources."),
    modified: Path = typer.Argument(..., help="Directory holding the edited sources."),
    name: Optional[str] = typer.Option(
        None,
        "--name",
        "-n",
        help="Title used to name the patch file (defaults to the message subject).",
    ),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Description stored in the patch header."),
    author: Optional[str] = typer.Option(None, "--author", help="Author stored in the patch header."),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the patch to this file ('-' for stdout) instead of the patches directory.",
    ),
    series: bool = typer.Option(True, "--series/--no-series", help="Append the new patch to the series file."),
    exclude: List[str] = typer.Option(None, "--exclude", "-x", help="Glob of paths to skip (repeatable)."),
    context: Optional[int] = typer.Option(None, "--context", "-U", min=0, help="Lines of context per hunk."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the patchrec configuration file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics and telemetry to stderr."),
) -> None:
    """Diff BASELINE against MODIFIED and save the result as a patch."""
    _configure_logging(verbose)
    config_data, base_dir = _load_cli_config(config)
    patterns = [*config_data.exclude, *(exclude or [])]

    try:
        artifact = build_artifact(
            load_snapshot(baseline, exclude=patterns),
            load_snapshot(modified, exclude=patterns),
            message=message,
            author=author or config_data.author,
            context=config_data.context_lines if context is None else context,
        )
    except PatchError as error:
        raise _fail(error) from error

    if artifact.is_empty:
        typer.echo("No changes detected.")
        return

    text = artifact.render()
    if output == "-":
        typer.echo(text, nl=False)
        return
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8", newline="")
        typer.echo(f"Recorded {output_path.as_posix()} ({_summarise(artifact)})")
        return

    patches_dir = config_data.patches_path(base_dir)
    patches_dir.mkdir(parents=True, exist_ok=True)
    filename = next_patch_name(patches_dir, name or artifact.subject or DEFAULT_TITLE)
    (patches_dir / filename).write_text(text, encoding="utf-8", newline="")
    if series:
        append_to_series(patches_dir, filename, config_data.series_file)
    typer.echo(f"Recorded {filename} ({_summarise(artifact)})")


@app.command()
def apply(
    patches: List[Path] = typer.Argument(..., help="Patch files, applied in the order given."),
    target: Path = typer.Option(Path("."), "--target", "-t", help="Directory the patches are applied to."),
    check: bool = typer.Option(False, "--check", help="Only verify that the patches apply cleanly."),
    strip: int = typer.Option(
        DEFAULT_STRIP,
        "--strip",
        "-p",
        min=0,
        help="Leading path components to drop from file names, as with patch -p.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics and telemetry to stderr."),
) -> None:
    """Apply PATCHES to the target directory; nothing is written on conflict."""
    _configure_logging(verbose)
    if not target.is_dir():
        raise typer.BadParameter(f"Target directory not found: {target}", param_hint="--target")

    try:
        artifacts = [(patch.name, load_patch(patch, strip=strip)) for patch in patches]
        touched = apply_to_directory(target, artifacts, check=check)
    except OSError as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error
    except PatchError as error:
        raise _fail(error) from error

    if check:
        typer.echo(f"{len(artifacts)} patch(es) apply cleanly ({len(touched)} file(s)).")
    else:
        typer.echo(f"Applied {len(artifacts)} patch(es) touching {len(touched)} file(s).")


@app.command("series")
def series_command(
    baseline: Path = typer.Argument(..., help="Directory holding the unmodified sources."),
    apply_to: Optional[Path] = typer.Option(
        None,
        "--apply-to",
        help="Write the fully patched tree into this directory.",
    ),
    exclude: List[str] = typer.Option(None, "--exclude", "-x", help="Glob of paths to skip (repeatable)."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the patchrec configuration file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics and telemetry to stderr."),
) -> None:
    """Check that every patch in the series applies, in order, to BASELINE."""
    _configure_logging(verbose)
    config_data, base_dir = _load_cli_config(config)
    patches_dir = config_data.patches_path(base_dir)
    patterns = [*config_data.exclude, *(exclude or [])]

    try:
        snapshot = load_snapshot(baseline, exclude=patterns)
        report = check_series(snapshot, patches_dir, config_data.series_file)
    except PatchError as error:
        raise _fail(error) from error

    if not report.entries:
        typer.echo("Series is empty.")
        return

    for entry in report.entries:
        typer.echo(f"- {entry.name}: {', '.join(entry.paths) or '(no files)'}")
    overlaps = report.overlaps
    if overlaps:
        typer.echo("Paths touched by more than one patch:")
        for path, names in overlaps.items():
            typer.echo(f"  {path}: {', '.join(names)}")
    typer.echo(f"All {len(report.entries)} patch(es) apply cleanly.")

    if apply_to is not None:
        removed = sorted(set(snapshot) - set(report.files))
        write_snapshot(apply_to, report.files, removed=removed)
        typer.echo(f"Wrote patched tree to {apply_to.as_posix()}")


@app.command()
def show(
    patch: Path = typer.Argument(..., help="Patch file to describe."),
) -> None:
    """Print the header and per-file statistics of PATCH."""
    try:
        artifact = load_patch(patch)
    except PatchError as error:
        raise _fail(error) from error

    if artifact.author:
        typer.echo(f"Author: {artifact.author}")
    if artifact.message:
        typer.echo(f"Subject: {artifact.subject}")
    for record_entry in artifact.records:
        typer.echo(
            f"{record_entry.change_type:<6} {record_entry.path} "
            f"(+{record_entry.added_count}/-{record_entry.removed_count}, {len(record_entry.hunks)} hunk(s))"
        )
    typer.echo(f"Total: {_summarise(artifact)}")


if __name__ == "__main__":
    app()
