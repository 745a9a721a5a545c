import sys
from pathlib import Path

import pytest


def _add_src_to_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_add_src_to_path()

CALC_MODULE = "\n".join(
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
        "    def check(rule: Capture[Callable[[int], bool]]) -> bool:",
        "        return True",
        "",
        "    @classmethod",
        '    def build(cls, fn: Capture[Callable[[], int]]) -> "Calculator":',
        "        return cls()",
        "",
        "    def twice(self) -> int:",
        "        return self.apply(lambda x: x * 2)",
        "",
        "",
        'def run(fn: Capture[Callable[[int], int]], *, label: str = "x") -> None:',
        "    return None",
        "",
    ]
)

APP_MODULE = "\n".join(
    [
        "from pkg import calc",
        "from pkg.calc import Calculator, run",
        "",
        "calculator = Calculator()",
        "calculator.apply(lambda x: 3 * x)",
        "calculator.apply(lambda x: x * 10, value=5)",
        "Calculator.check(lambda v: v > 0)",
        "Calculator.build(lambda: 1)",
        'run(lambda x: x, label="y")',
        "calc.run(lambda x: x + 1)",
        "Calculator.apply(calculator, lambda x: x)",
        "run(*[lambda x: x])",
        "print(len([1]))",
        "",
    ]
)


def write_project_file(root: Path, relative: str, content: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def calc_project(tmp_path: Path) -> Path:
    """Write a small project with every binding kind and call shape."""
    root = tmp_path / "project"
    write_project_file(root, "pkg/__init__.py", "")
    write_project_file(root, "pkg/calc.py", CALC_MODULE)
    write_project_file(root, "app.py", APP_MODULE)
    return root
