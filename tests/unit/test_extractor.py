# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for captured argument extraction."""

import ast
from dataclasses import replace
from pathlib import Path

import pytest

from exprcapture.discovery import DeclarationDiscoverer
from exprcapture.extractor import ExtractionError, SourceExtractor
from exprcapture.forest import load_forest
from exprcapture.model import CallSite, escape_capture_text
from exprcapture.resolver import CallSiteResolver


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _resolve(root: Path) -> dict[tuple[str, int, int], CallSite]:
    forest, _ = load_forest(root)
    declarations = DeclarationDiscoverer().discover(forest)
    call_sites = CallSiteResolver(forest, declarations).resolve()
    return {call_site.key: call_site for call_site in call_sites}


def test_ph3_ext_001_extracts_exact_text_and_argument_position(calc_project: Path) -> None:
    call_site = _resolve(calc_project)[("app.py", 6, 12)]

    extraction = SourceExtractor().extract(call_site)

    assert len(extraction.captures) == 1
    capture = extraction.captures[0]
    assert capture.parameter_name == "fn"
    assert capture.source_text == "lambda x: x * 10"
    assert (capture.line, capture.column) == (6, 18)
    assert extraction.imports == ("from typing import Callable",)


def test_ph3_ext_002_multiline_argument_keeps_internal_formatting(tmp_path: Path) -> None:
    _write_file(
        tmp_path / "ops.py",
        "\n".join(
            [
                "from exprcapture import Capture",
                "",
                "def go(fn: Capture[int]) -> int:",
                "    return 0",
                "",
                "go(",
                "    lambda x: (",
                "        x + 1",
                "    )",
                ")",
                "",
            ]
        ),
    )
    call_site = _resolve(tmp_path)[("ops.py", 6, 1)]

    capture = SourceExtractor().extract(call_site).captures[0]

    assert capture.source_text == "lambda x: (\n        x + 1\n    )"
    assert (capture.line, capture.column) == (7, 5)


def test_ph3_ext_003_escaping_doubles_backslashes_and_escapes_quotes() -> None:
    text = 'lambda s: s + "\\n" + \'q"\''

    escaped = escape_capture_text(text)

    assert escaped == 'lambda s: s + \\"\\\\n\\" + \'q\\"\''
    assert ast.literal_eval(f'"""{escaped}"""') == text


def test_ph3_ext_004_missing_captured_argument_raises(calc_project: Path) -> None:
    call_site = _resolve(calc_project)[("app.py", 5, 12)]
    broken = replace(call_site, arguments=())

    with pytest.raises(ExtractionError):
        SourceExtractor().extract(broken)


def test_ph3_ext_005_only_captured_parameters_are_extracted(calc_project: Path) -> None:
    call_site = _resolve(calc_project)[("app.py", 11, 12)]

    extraction = SourceExtractor().extract(call_site)

    assert [capture.parameter_name for capture in extraction.captures] == ["fn"]
    assert extraction.capture_for("self") is None
    assert extraction.captures[0].source_text == "lambda x: x"
