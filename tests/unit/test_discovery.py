# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for capturing declaration discovery."""

from pathlib import Path

from exprcapture.discovery import DeclarationDiscoverer
from exprcapture.forest import load_forest
from exprcapture.model import CandidateDeclaration

CALC_SOURCE = "\n".join(
    [
        "from typing import Callable",
        "",
        "from exprcapture import Capture",
        "",
        "",
        "class Calculator:",
        "    def apply(self, fn: Capture[Callable[[int], int]], value: int = 2) -> int:",
        "        return fn.value(value)",
        "",
        "    @staticmethod",
        '    def check(rule: "Capture[Callable[[int], bool]]") -> bool:',
        "        return True",
        "",
        "    @classmethod",
        "    async def build(cls, fn: exprcapture.Capture[Callable[[], int]]) -> None:",
        "        return None",
        "",
        "    def plain(self, value: int) -> int:",
        "        return value",
        "",
        "    class _Inner:",
        "        def __hidden(self, fn: Capture[Callable[[int], int]], *rest: Capture[int]) -> str:",
        '            return ""',
        "",
        "",
        'def run(fn: Capture[Callable[[int], int]], *, label: str = "x", **extra: int) -> None:',
        "    def nested(g: Capture[int]) -> None:",
        "        return None",
        "",
    ]
)


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _discover(tmp_path: Path, **kwargs: str) -> list[CandidateDeclaration]:
    _write_file(tmp_path / "pkg" / "calc.py", CALC_SOURCE)
    forest, _ = load_forest(tmp_path)
    return DeclarationDiscoverer(**kwargs).discover(forest)


def test_ph1_disc_001_finds_declarations_with_capture_parameters(tmp_path: Path) -> None:
    declarations = _discover(tmp_path)

    assert [declaration.qualified_name for declaration in declarations] == [
        "pkg.calc.Calculator.apply",
        "pkg.calc.Calculator.check",
        "pkg.calc.Calculator.build",
        "pkg.calc.Calculator._Inner.__hidden",
        "pkg.calc.run",
    ]


def test_ph1_disc_002_splits_captured_and_plain_parameters(tmp_path: Path) -> None:
    apply = _discover(tmp_path)[0]

    assert apply.binding == "instance"
    assert apply.class_name == "Calculator"
    assert apply.return_annotation == "int"
    assert apply.line == 7
    assert [parameter.name for parameter in apply.parameters] == ["self", "fn", "value"]
    self_param, fn, value = apply.parameters
    assert self_param.annotation is None
    assert fn.captured
    assert fn.inner_annotation == "Callable[[int], int]"
    assert fn.plain_annotation == "Callable[[int], int]"
    assert not value.captured
    assert value.annotation == "int"
    assert value.default == "2"


def test_ph1_disc_003_binding_and_async_follow_decorators(tmp_path: Path) -> None:
    declarations = _discover(tmp_path)
    check = declarations[1]
    build = declarations[2]

    assert check.binding == "static"
    assert check.parameters[0].inner_annotation == "Callable[[int], bool]"
    assert build.binding == "class"
    assert build.is_async
    assert build.returns_no_value
    assert build.parameters[1].inner_annotation == "Callable[[], int]"


def test_ph1_disc_004_visibility_comes_from_names(tmp_path: Path) -> None:
    hidden = _discover(tmp_path)[3]

    assert hidden.class_name == "Calculator._Inner"
    assert hidden.class_visibility == "protected"
    assert hidden.visibility == "private"
    assert hidden.parameters[-1].kind == "var_positional"
    assert not hidden.parameters[-1].captured


def test_ph1_disc_005_module_function_keeps_parameter_kinds(tmp_path: Path) -> None:
    run = _discover(tmp_path)[4]

    assert run.binding == "function"
    assert run.class_name is None
    assert run.class_visibility is None
    assert [(parameter.name, parameter.kind) for parameter in run.parameters] == [
        ("fn", "positional"),
        ("label", "keyword_only"),
        ("extra", "var_keyword"),
    ]
    assert run.parameters[1].default == '"x"'


def test_ph1_disc_006_imports_exclude_marker_module(tmp_path: Path) -> None:
    declarations = _discover(tmp_path)

    assert all(
        declaration.imports == ("from typing import Callable",)
        for declaration in declarations
    )


def test_ph1_disc_007_custom_marker_is_matched(tmp_path: Path) -> None:
    _write_file(
        tmp_path / "quoting.py",
        "\n".join(
            [
                "import mylib",
                "from mylib import Quoted",
                "",
                "def short(fn: Quoted[int]) -> int:",
                "    return 0",
                "",
                "def dotted(fn: mylib.Quoted[int]) -> int:",
                "    return 0",
                "",
                "def other(fn: Capture[int]) -> int:",
                "    return 0",
                "",
            ]
        ),
    )
    forest, _ = load_forest(tmp_path)

    declarations = DeclarationDiscoverer(
        marker_name="Quoted", marker_module="mylib"
    ).discover(forest)

    assert [declaration.method_name for declaration in declarations] == ["short", "dotted"]
    assert declarations[0].imports == ()


def test_ph1_disc_008_file_without_markers_yields_nothing(tmp_path: Path) -> None:
    _write_file(tmp_path / "plain.py", "def f(x: int) -> int:\n    return x\n")
    forest, _ = load_forest(tmp_path)

    assert DeclarationDiscoverer().discover(forest) == []
