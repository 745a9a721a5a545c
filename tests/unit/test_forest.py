# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for syntax forest loading."""

import ast
from pathlib import Path

from exprcapture.forest import call_location, load_forest, module_name_for, visible_imports
from exprcapture.model import ParsedFile


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _parsed(path: str, module: str, source: str, is_package: bool = False) -> ParsedFile:
    return ParsedFile(
        path=path,
        module=module,
        is_package=is_package,
        source=source,
        tree=ast.parse(source),
    )


def test_ph1_forest_001_skips_generated_and_ignored_files(tmp_path: Path) -> None:
    _write_file(tmp_path / ".gitignore", "build/\n")
    _write_file(tmp_path / "app.py", "x = 1\n")
    _write_file(tmp_path / "generated" / "Intercepted_f_app_py_1_1.g.py", "y = 2\n")
    _write_file(tmp_path / "build" / "copy.py", "z = 3\n")

    forest, errors = load_forest(tmp_path)

    assert [parsed.path for parsed in forest.files] == ["app.py"]
    assert errors == []


def test_ph1_forest_002_ignored_files_are_kept_when_gitignore_is_disabled(
    tmp_path: Path,
) -> None:
    _write_file(tmp_path / ".gitignore", "build/\n")
    _write_file(tmp_path / "build" / "copy.py", "z = 3\n")

    forest, _ = load_forest(tmp_path, respect_gitignore=False)

    assert [parsed.path for parsed in forest.files] == ["build/copy.py"]


def test_ph1_forest_003_unparsable_file_becomes_source_error(tmp_path: Path) -> None:
    _write_file(tmp_path / "broken.py", "def broken(:\n")
    _write_file(tmp_path / "ok.py", "x = 1\n")

    forest, errors = load_forest(tmp_path)

    assert [parsed.path for parsed in forest.files] == ["ok.py"]
    assert len(errors) == 1
    assert errors[0].file_path == "broken.py"


def test_ph1_forest_004_module_names_follow_src_layout_and_packages() -> None:
    assert module_name_for(Path("src/pkg/__init__.py")) == ("pkg", True)
    assert module_name_for(Path("src/pkg/calc.py")) == ("pkg.calc", False)
    assert module_name_for(Path("pkg/calc.py")) == ("pkg.calc", False)
    assert module_name_for(Path("app.py")) == ("app", False)


def test_ph1_forest_005_visible_imports_are_distinct_absolute_and_filtered() -> None:
    source = "\n".join(
        [
            "from __future__ import annotations",
            "import math",
            "from . import helpers",
            "from .util import scale as sc",
            "from exprcapture import Capture",
            "import exprcapture.capture",
            "import os, exprcapture",
            "if True:",
            "    import json",
            "def f():",
            "    import re",
            "import math",
            "",
        ]
    )
    parsed = _parsed("pkg/mod.py", "pkg.mod", source)

    imports = visible_imports(parsed, excluded_module="exprcapture")

    assert imports == (
        "import math",
        "from pkg import helpers",
        "from pkg.util import scale as sc",
        "import os",
        "import json",
    )


def test_ph1_forest_006_relative_imports_of_package_init_resolve_to_package() -> None:
    parsed = _parsed("pkg/__init__.py", "pkg", "from .calc import run\n", is_package=True)

    assert visible_imports(parsed, excluded_module="exprcapture") == (
        "from pkg.calc import run",
    )


def test_ph1_forest_007_call_location_points_at_callee_name() -> None:
    source = "obj.method(1)\nf(2)\nobj.first().second(3)\n"
    parsed = _parsed("app.py", "app", source)
    calls = sorted(
        (node for node in ast.walk(parsed.tree) if isinstance(node, ast.Call)),
        key=lambda node: (node.lineno, node.col_offset, -(node.end_col_offset or 0)),
    )

    locations = [call_location(parsed, call) for call in calls]

    assert locations == [(1, 5), (2, 1), (3, 13), (3, 5)]


def test_ph1_forest_008_call_location_counts_characters_not_bytes() -> None:
    parsed = _parsed("app.py", "app", 'x = "é"; f(x)\n')
    call = next(node for node in ast.walk(parsed.tree) if isinstance(node, ast.Call))

    assert call_location(parsed, call) == (1, 10)
