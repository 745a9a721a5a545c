# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for stand-in overload synthesis."""

import ast
from dataclasses import replace
from pathlib import Path

import pytest

from exprcapture.discovery import DeclarationDiscoverer
from exprcapture.emitter import default_return_expression, literal_default, render_parameters
from exprcapture.forest import load_forest
from exprcapture.model import CandidateDeclaration
from exprcapture.overloads import OverloadSynthesizer, SynthesisError


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _declarations(root: Path) -> dict[str, CandidateDeclaration]:
    forest, _ = load_forest(root)
    return {
        declaration.qualified_name: declaration
        for declaration in DeclarationDiscoverer().discover(forest)
    }


def test_ph4_ovl_001_instance_method_stand_in_text(calc_project: Path) -> None:
    declaration = _declarations(calc_project)["pkg.calc.Calculator.apply"]

    artifact = OverloadSynthesizer().synthesize(declaration)

    assert artifact.kind == "overload"
    assert artifact.file_name == "pkg_calc_Calculator_apply_Overload.g.py"
    assert artifact.source_text == "\n".join(
        [
            "# <auto-generated/>",
            "# Stand-in overload of pkg.calc.Calculator.apply",
            "from __future__ import annotations",
            "",
            "from typing import Callable",
            "",
            "",
            "class Calculator:",
            "    def apply(self, fn: Callable[[int], int], value: int = 2) -> int:",
            '        """Stand-in overload that can be intercepted."""',
            "        return 0",
            "",
        ]
    )


def test_ph4_ovl_002_binding_decorators_are_preserved(calc_project: Path) -> None:
    declarations = _declarations(calc_project)

    static_text = OverloadSynthesizer().synthesize(
        declarations["pkg.calc.Calculator.check"]
    ).source_text
    class_text = OverloadSynthesizer().synthesize(
        declarations["pkg.calc.Calculator.build"]
    ).source_text

    assert "    @staticmethod\n    def check(rule: Callable[[int], bool]) -> bool:\n" in static_text
    assert "        return False\n" in static_text
    assert "    @classmethod\n    def build(cls, fn: Callable[[], int]) -> \"Calculator\":\n" in class_text
    assert "        return None\n" in class_text


def test_ph4_ovl_003_no_value_function_has_no_return(calc_project: Path) -> None:
    declaration = _declarations(calc_project)["pkg.calc.run"]

    text = OverloadSynthesizer().synthesize(declaration).source_text

    assert 'def run(fn: Callable[[int], int], *, label: str = "x") -> None:\n' in text
    assert "return" not in text.split("def run", 1)[1]
    assert "class " not in text


def test_ph4_ovl_004_nested_async_declaration_compiles(tmp_path: Path) -> None:
    _write_file(
        tmp_path / "svc.py",
        "\n".join(
            [
                "import math",
                "from exprcapture import Capture",
                "",
                "class Outer:",
                "    class _Inner:",
                "        async def __fetch(self, fn: Capture[int], /, scale: float = math.pi, *rest: int, **extra: str) -> list[int]:",
                "            return []",
                "",
            ]
        ),
    )
    declaration = _declarations(tmp_path)["svc.Outer._Inner.__fetch"]

    text = OverloadSynthesizer().synthesize(declaration).source_text

    assert "class Outer:\n    class _Inner:\n        async def __fetch(" in text
    assert "(self, fn: int, /, scale: float = ..., *rest: int, **extra: str) -> list[int]:" in text
    assert "            return []\n" in text
    compile(text, "svc_overload.py", "exec")
    tree = ast.parse(text)
    assert isinstance(tree.body[0], ast.ImportFrom)
    assert tree.body[0].module == "__future__"


def test_ph4_ovl_005_declaration_without_capture_is_rejected(calc_project: Path) -> None:
    declaration = _declarations(calc_project)["pkg.calc.Calculator.apply"]
    plain = replace(
        declaration,
        parameters=tuple(
            parameter for parameter in declaration.parameters if not parameter.captured
        ),
    )

    with pytest.raises(SynthesisError):
        OverloadSynthesizer().synthesize(plain)


def test_ph4_ovl_006_default_returns_follow_annotation() -> None:
    assert default_return_expression("int") == "0"
    assert default_return_expression("float") == "0.0"
    assert default_return_expression("str") == '""'
    assert default_return_expression("bool") == "False"
    assert default_return_expression("list[int]") == "[]"
    assert default_return_expression("typing.Dict[str, int]") == "{}"
    assert default_return_expression("tuple[int, ...]") == "()"
    assert default_return_expression("Optional[int]") == "None"
    assert default_return_expression("None") is None
    assert default_return_expression(None) is None


def test_ph4_ovl_007_only_literal_defaults_are_copied() -> None:
    assert literal_default("2") == "2"
    assert literal_default("(1, 'a')") == "(1, 'a')"
    assert literal_default("math.pi") == "..."
    assert literal_default("make()") == "..."


def test_ph4_ovl_008_keyword_only_marker_is_emitted_without_varargs(
    calc_project: Path,
) -> None:
    declaration = _declarations(calc_project)["pkg.calc.run"]

    assert render_parameters(declaration.parameters) == (
        'fn: Callable[[int], int], *, label: str = "x"'
    )
