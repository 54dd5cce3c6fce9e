from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from patchrec.applier import apply_records
from patchrec.errors import InvalidInputKind, PatchFormatError
from patchrec.parser import load_patch, parse_patch
from patchrec.recorder import PatchArtifact, build_artifact


def test_parse_recovers_records_and_metadata() -> None:
    artifact = build_artifact(
        {"src/main.c": "int a;\nint b;\n", "README": "old\n"},
        {"src/main.c": "int a;\nlong b;\n", "NEWS": "1.0.1\n"},
        message="Fix type of b\n\nNeeded on 64-bit targets.",
        author="Jane Doe <jane@example.com>",
    )

    parsed = parse_patch(artifact.render())

    assert parsed == artifact
    assert parsed.render() == artifact.render()


def test_parse_git_format_patch_output() -> None:
    text = textwrap.dedent(
        """\
        From 1234abcd5678 Mon Sep 17 00:00:00 2001
        From: Jane Doe <jane@example.com>
        Date: Tue, 1 Oct 2024 10:00:00 +0200
        Subject: [PATCH] Fix build with newer compiler

        Cast explicitly to silence -Werror.
        ---
         src/x.c | 2 +-
         1 file changed, 1 insertion(+), 1 deletion(-)

        diff --git a/src/x.c b/src/x.c
        index 1111111..2222222 100644
        --- a/src/x.c
        +++ b/src/x.c
        @@ -1,3 +1,3 @@
         int a;
        -int b;
        +long b;
         int c;
        --
        2.40.0
        """
    )

    artifact = parse_patch(text)

    assert artifact.author == "Jane Doe <jane@example.com>"
    assert artifact.message == "Fix build with newer compiler\n\nCast explicitly to silence -Werror."
    (record,) = artifact.records
    assert record.path == "src/x.c"
    assert record.change_type == "modify"
    assert [line.text for line in record.hunks[0].added] == ["long b;"]


def test_parse_plain_diff_with_timestamps() -> None:
    text = (
        "--- a/lib/io.c\t2024-01-01 00:00:00.000000000 +0000\n"
        "+++ b/lib/io.c\t2024-01-02 00:00:00.000000000 +0000\n"
        "@@ -2,2 +2,3 @@\n"
        " read();\n"
        " write();\n"
        "+flush();\n"
        "--- /dev/null\n"
        "+++ b/lib/new.c\n"
        "@@ -0,0 +1 @@\n"
        "+int x;\n"
    )

    artifact = parse_patch(text)

    assert artifact.author is None
    assert artifact.message is None
    assert [(record.path, record.change_type) for record in artifact.records] == [
        ("lib/io.c", "modify"),
        ("lib/new.c", "add"),
    ]
    assert artifact.records[0].hunks[0].old_start == 2


def test_removed_line_that_looks_like_a_header_stays_in_hunk() -> None:
    artifact = build_artifact({"notes.md": "-- sig\n--- rule\nkeep\n"}, {"notes.md": "keep\n"})

    parsed = parse_patch(artifact.render())

    assert [line.text for line in parsed.records[0].hunks[0].removed] == ["-- sig", "--- rule"]


def test_line_count_mismatch_is_reported_with_location() -> None:
    text = "diff --git a/a.txt b/a.txt\n--- a/a.txt\n+++ b/a.txt\n@@ -1,3 +1,3 @@\n a\n-b\n+c\n"

    with pytest.raises(PatchFormatError) as excinfo:
        parse_patch(text)

    assert "a.txt hunk #1" in str(excinfo.value)
    assert excinfo.value.details == {"path": "a.txt", "hunk_index": 1}


def test_excess_hunk_lines_are_rejected() -> None:
    text = "--- a/a.txt\n+++ b/a.txt\n@@ -1 +1 @@\n-a\n+b\n+c\n"

    with pytest.raises(PatchFormatError):
        parse_patch(text)


def test_malformed_hunk_header() -> None:
    with pytest.raises(PatchFormatError):
        parse_patch("--- a/a.txt\n+++ b/a.txt\n@@ -x +1 @@\n-a\n+b\n")


def test_binary_patches_are_rejected() -> None:
    text = "diff --git a/logo.png b/logo.png\nindex 1..2 100644\nBinary files a/logo.png and b/logo.png differ\n"

    with pytest.raises(PatchFormatError, match="Binary"):
        parse_patch(text)


def test_empty_text_parses_to_empty_artifact() -> None:
    artifact = parse_patch("")

    assert artifact.is_empty
    assert artifact.message is None


def test_load_patch_keeps_carriage_returns(tmp_path: Path) -> None:
    artifact = build_artifact({"w.bat": "echo a\r\n"}, {"w.bat": "echo b\r\n"})
    patch_path = tmp_path / "0001-fix.patch"
    patch_path.write_bytes(artifact.render().encode("utf-8"))

    loaded = load_patch(patch_path)

    assert loaded == artifact
    assert loaded.records[0].hunks[0].added[0].text == "echo b\r"


def test_load_patch_names_the_file_on_error(tmp_path: Path) -> None:
    patch_path = tmp_path / "0002-broken.patch"
    patch_path.write_text("--- a/a\n+++ b/a\n@@ -1,2 +1 @@\n-a\n", encoding="utf-8")

    with pytest.raises(PatchFormatError) as excinfo:
        load_patch(patch_path)

    assert excinfo.value.details["patch"] == "0002-broken.patch"


def test_message_with_diff_header_lookalikes_round_trips() -> None:
    artifact = build_artifact(
        {"a.txt": "1\n"},
        {"a.txt": "2\n"},
        message="Fix build\n\n--- old behaviour\n+++ new behaviour",
    )

    parsed = parse_patch(artifact.render())

    assert parsed == artifact


def test_message_with_horizontal_rule_keeps_its_body() -> None:
    message = "Fix build\n\nBefore:\n---\nafter the rule"
    artifact = build_artifact({"a.txt": "1\n"}, {"a.txt": "2\n"}, message=message, author="Jane <jane@example.com>")

    parsed = parse_patch(artifact.render())

    assert parsed.message == message
    assert parsed.records == artifact.records


def test_metadata_only_patch_keeps_header_lookalikes() -> None:
    artifact = PatchArtifact(message="Notes\n\n--- before\n+++ after")

    parsed = parse_patch(artifact.render())

    assert parsed.is_empty
    assert parsed.message == artifact.message


def test_message_with_git_diff_line_is_refused() -> None:
    with pytest.raises(InvalidInputKind):
        build_artifact({"a.txt": "1\n"}, {"a.txt": "2\n"}, message="Fix\n\ndiff --git a/x b/x")


def test_patch_prefix_is_kept_outside_mbox_output() -> None:
    artifact = build_artifact({"a.txt": "1\n"}, {"a.txt": "2\n"}, message="[PATCH] keep the brackets")

    assert parse_patch(artifact.render()).message == "[PATCH] keep the brackets"


def test_strip_level_applies_to_recursive_diff_output() -> None:
    text = (
        "diff -ru demo-1.0.orig/src/main.c demo-1.0/src/main.c\n"
        "--- demo-1.0.orig/src/main.c\t2024-01-01 00:00:00.000000000 +0000\n"
        "+++ demo-1.0/src/main.c\t2024-01-02 00:00:00.000000000 +0000\n"
        "@@ -1 +1 @@\n"
        "-a\n"
        "+b\n"
        "Only in demo-1.0/src: main.o\n"
    )

    artifact = parse_patch(text)

    assert artifact.paths == ("src/main.c",)
    assert apply_records({"src/main.c": "a\n"}, artifact.records) == {"src/main.c": "b\n"}


def test_strip_zero_keeps_full_paths() -> None:
    artifact = build_artifact({"src/a.c": "1\n"}, {"src/a.c": "2\n"})

    assert parse_patch(artifact.render(), strip=0).paths == ("b/src/a.c",)
    assert parse_patch("--- src/a.c\n+++ src/a.c\n@@ -1 +1 @@\n-1\n+2\n", strip=0).paths == ("src/a.c",)


def test_strip_deeper_than_path_is_a_format_error() -> None:
    with pytest.raises(PatchFormatError, match="strip"):
        parse_patch("--- a.txt\n+++ a.txt\n@@ -1 +1 @@\n-1\n+2\n", strip=1)

    with pytest.raises(ValueError):
        parse_patch("", strip=-1)


def test_file_name_with_trailing_space_round_trips() -> None:
    artifact = build_artifact({"notes ": "a\n"}, {"notes ": "b\n"})

    parsed = parse_patch(artifact.render())

    assert parsed.paths == ("notes ",)
    assert apply_records({"notes ": "a\n", "notes": "x\n"}, parsed.records) == {"notes": "x\n", "notes ": "b\n"}
