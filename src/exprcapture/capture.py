# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Capture marker carrying a value together with its source expression."""

import ast
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from exprcapture.semantic import SemanticModel

T = TypeVar("T")

CAPTURE_FILENAME = "<capture>"
_ANONYMOUS_NAME = "overload_capture_lambda"


class CaptureParseError(ValueError):
    """Represent a capture text that cannot be re-parsed."""


@dataclass(frozen=True)
class SourceLocation:
    """Represent a 1-based position in an original source file."""

    file_path: str
    line: int
    column: int


def build_snippet(assigned_name: str, text: str, imports: tuple[str, ...] = ()) -> str:
    """Build the snippet that isolates a captured expression.

    Args:
        assigned_name: Name of the assignment holding the expression.
        text: Captured source text.
        imports: Import statements placed above the assignment.

    Returns:
        Snippet source: the imports, a blank line and a parenthesised
        assignment of ``text``.
    """
    lines = list(imports)
    if lines:
        lines.append("")
    lines.append(f"{assigned_name} = (")
    lines.append(text)
    lines.append(")")
    return "\n".join(lines) + "\n"


def locate_assigned_expression(tree: ast.Module, name: str) -> ast.expr:
    """Return the value of the module-level assignment to ``name``.

    Args:
        tree: Parsed snippet.
        name: Assigned name.

    Returns:
        Assigned expression node.

    Raises:
        CaptureParseError: If there is not exactly one such assignment.
    """
    found = [
        node.value
        for node in tree.body
        if isinstance(node, ast.Assign)
        and len(node.targets) == 1
        and isinstance(node.targets[0], ast.Name)
        and node.targets[0].id == name
    ]
    if len(found) != 1:
        raise CaptureParseError(f"Expected one assignment to '{name}', found {len(found)}")
    return found[0]


class Capture(Generic[T]):
    """Wrap a runtime value with the expression that produced it.

    A declaration annotated with ``Capture[T]`` receives the value the caller
    passed, the syntax tree of the argument as written at the call site, and
    a semantic model of the snippet it was re-parsed from.
    """

    def __init__(
        self,
        value: T,
        expression: ast.expr | str,
        semantic_model: SemanticModel | None = None,
        *,
        location: SourceLocation | None = None,
    ) -> None:
        """Initialize the capture.

        Args:
            value: Runtime value of the argument.
            expression: Parsed argument expression, or its source text.
            semantic_model: Model of the snippet the expression lives in.
            location: Start of the argument in the original file.

        Raises:
            CaptureParseError: If ``expression`` is text that does not parse.
        """
        if isinstance(expression, str):
            expression, semantic_model = _parse_expression(expression)
        self._value = value
        self._expression = expression
        self._semantic_model = semantic_model
        self._location = location

    @property
    def value(self) -> T:
        return self._value

    @property
    def expression(self) -> ast.expr:
        return self._expression

    @property
    def semantic_model(self) -> SemanticModel | None:
        return self._semantic_model

    @property
    def location(self) -> SourceLocation | None:
        return self._location

    @property
    def source_text(self) -> str:
        """Source text of the captured expression."""
        if self._semantic_model is not None:
            segment = ast.get_source_segment(self._semantic_model.source, self._expression)
            if segment is not None:
                return segment
        return ast.unparse(self._expression)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if not callable(self._value):
            raise TypeError(f"Captured value is not callable: {type(self._value).__name__}")
        return self._value(*args, **kwargs)

    def __repr__(self) -> str:
        return f"Capture({self.source_text!r})"

    def original_position(self, node: ast.AST) -> SourceLocation | None:
        """Map a node of the captured expression back to the original file.

        Lines after the first keep their original columns because the
        captured text is embedded verbatim.

        Args:
            node: Node inside ``expression``.

        Returns:
            Original location, or ``None`` without a known location.
        """
        if self._location is None or not hasattr(node, "lineno"):
            return None
        node_line = getattr(node, "lineno")
        node_column = self._character_column(node_line, getattr(node, "col_offset"))
        line_delta = node_line - self._expression.lineno
        if line_delta == 0:
            start_column = self._character_column(
                self._expression.lineno, self._expression.col_offset
            )
            column = self._location.column + node_column - start_column
        else:
            column = node_column + 1
        return SourceLocation(
            file_path=self._location.file_path,
            line=self._location.line + line_delta,
            column=column,
        )

    def _character_column(self, line: int, byte_offset: int) -> int:
        if self._semantic_model is None:
            return byte_offset
        lines = self._semantic_model.source.splitlines(keepends=True)
        if line < 1 or line > len(lines):
            return byte_offset
        encoded = lines[line - 1].encode("utf-8")
        return len(encoded[:byte_offset].decode("utf-8", errors="replace"))


def _parse_expression(text: str) -> tuple[ast.expr, SemanticModel]:
    source = build_snippet(_ANONYMOUS_NAME, text)
    try:
        tree = ast.parse(source, filename=CAPTURE_FILENAME)
        model = SemanticModel.build(tree, source, CAPTURE_FILENAME)
    except SyntaxError as exc:
        raise CaptureParseError(f"Cannot parse captured expression: {exc}") from exc
    return locate_assigned_expression(tree, _ANONYMOUS_NAME), model
