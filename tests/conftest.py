from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def write_tree(root: Path, files: Mapping[str, str | bytes]) -> Path:
    """Materialise ``files`` beneath ``root`` and return ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_bytes(content.encode("utf-8"))
    return root


@dataclass(slots=True)
class SourceTrees:
    """Pristine and edited copies of an unpacked source archive."""

    baseline: Path
    modified: Path
    workspace: Path


@pytest.fixture()
def source_trees(tmp_path: Path) -> SourceTrees:
    """Create a baseline tree and an edited copy that fixes the build."""

    baseline_files = {
        "configure.ac": "AC_INIT([demo], [1.0])\nAC_PROG_CC\nAC_OUTPUT\n",
        "src/main.c": "#include <stdio.h>\n\nint main(void) {\n    puts(\"demo\");\n    return 0;\n}\n",
        "src/util.h": "#ifndef UTIL_H\n#define UTIL_H\nint helper(void);\n#endif\n",
    }
    modified_files = dict(baseline_files)
    modified_files["src/main.c"] = (
        "#include <stdio.h>\n#include \"util.h\"\n\nint main(void) {\n    puts(\"demo\");\n    return helper();\n}\n"
    )
    modified_files["src/util.c"] = "#include \"util.h\"\n\nint helper(void) { return 0; }\n"

    workspace = tmp_path / "work"
    workspace.mkdir()
    return SourceTrees(
        baseline=write_tree(tmp_path / "demo-1.0.orig", baseline_files),
        modified=write_tree(tmp_path / "demo-1.0", modified_files),
        workspace=workspace,
    )
