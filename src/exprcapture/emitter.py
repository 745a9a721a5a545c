# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Emit Python source for generated modules."""

import ast
from collections.abc import Iterator
from contextlib import contextmanager
from io import StringIO

from exprcapture.model import CandidateDeclaration, GeneratedParameter

AUTO_GENERATED_HEADER = "# <auto-generated/>"
ELIDED_DEFAULT = "..."

_EMPTY_RETURNS: dict[str, str] = {
    "int": "0",
    "float": "0.0",
    "complex": "0j",
    "str": '""',
    "bytes": 'b""',
    "bool": "False",
    "list": "[]",
    "dict": "{}",
    "set": "set()",
    "frozenset": "frozenset()",
    "tuple": "()",
}
_TYPING_ALIASES = {"List", "Dict", "Set", "FrozenSet", "Tuple"}


class CodeEmitter:
    """Accumulate source lines with indentation tracking."""

    def __init__(self, indent_str: str = "    ") -> None:
        self._buffer = StringIO()
        self._indent_str = indent_str
        self._indent_level = 0

    def emit(self, code: str) -> None:
        """Emit a line of code at the current indentation."""
        if code.strip():
            self._buffer.write(self._indent_str * self._indent_level)
            self._buffer.write(code)
        self._buffer.write("\n")

    def emit_raw(self, code: str) -> None:
        """Emit lines without indentation, e.g. string literal bodies."""
        for line in code.split("\n"):
            self._buffer.write(line)
            self._buffer.write("\n")

    def emit_blank(self, count: int = 1) -> None:
        self._buffer.write("\n" * count)

    def indent(self) -> None:
        self._indent_level += 1

    def dedent(self) -> None:
        self._indent_level = max(0, self._indent_level - 1)

    @contextmanager
    def block(self, header: str) -> Iterator["CodeEmitter"]:
        """Emit ``header`` and indent the lines emitted inside the block."""
        self.emit(header)
        self.indent()
        try:
            yield self
        finally:
            self.dedent()

    def get_code(self) -> str:
        return self._buffer.getvalue()


def emit_module_preamble(
    emitter: CodeEmitter, description: str, imports: tuple[str, ...]
) -> None:
    """Emit the header comment, the ``__future__`` import and ``imports``.

    Args:
        emitter: Target emitter.
        description: One-line description placed below the header comment.
        imports: Import statements, emitted in order.
    """
    emitter.emit(AUTO_GENERATED_HEADER)
    emitter.emit(f"# {description}")
    emitter.emit("from __future__ import annotations")
    if imports:
        emitter.emit_blank()
        for statement in imports:
            emitter.emit(statement)


@contextmanager
def class_scopes(emitter: CodeEmitter, class_name: str | None) -> Iterator[CodeEmitter]:
    """Open nested mirror classes for a dotted class name.

    Args:
        emitter: Target emitter.
        class_name: Qualified class name such as ``Outer.Inner``; ``None``
            emits at module level.

    Yields:
        The emitter, indented inside the innermost class.
    """
    names = class_name.split(".") if class_name else []
    opened = 0
    try:
        for name in names:
            emitter.emit(f"class {name}:")
            emitter.indent()
            opened += 1
        yield emitter
    finally:
        for _ in range(opened):
            emitter.dedent()


def binding_decorator(declaration: CandidateDeclaration) -> str | None:
    if declaration.binding == "static":
        return "@staticmethod"
    if declaration.binding == "class":
        return "@classmethod"
    return None


def render_signature(declaration: CandidateDeclaration) -> str:
    """Render the ``def`` line of a generated function.

    Capture-marker annotations are unwrapped to their type argument.

    Args:
        declaration: Declaration to mirror.

    Returns:
        Function header without a trailing body.
    """
    keyword = "async def" if declaration.is_async else "def"
    returns = (
        f" -> {declaration.return_annotation}"
        if declaration.return_annotation is not None
        else ""
    )
    parameters = render_parameters(declaration.parameters)
    return f"{keyword} {declaration.method_name}({parameters}){returns}:"


def render_parameters(parameters: tuple[GeneratedParameter, ...]) -> str:
    """Render a parameter list with ``/`` and ``*`` separators.

    Args:
        parameters: Declared parameters in order.

    Returns:
        Comma separated parameter text.
    """
    rendered: list[str] = []
    positional_only = [p for p in parameters if p.kind == "positional_only"]
    has_var_positional = any(p.kind == "var_positional" for p in parameters)
    star_emitted = False
    for parameter in parameters:
        if parameter.kind == "keyword_only" and not has_var_positional and not star_emitted:
            rendered.append("*")
            star_emitted = True
        rendered.append(_render_parameter(parameter))
        if positional_only and parameter is positional_only[-1]:
            rendered.append("/")
    return ", ".join(rendered)


def _render_parameter(parameter: GeneratedParameter) -> str:
    prefix = ""
    if parameter.kind == "var_positional":
        prefix = "*"
    elif parameter.kind == "var_keyword":
        prefix = "**"
    annotation = parameter.plain_annotation
    text = f"{prefix}{parameter.name}"
    if annotation is not None:
        text = f"{text}: {annotation}"
    if parameter.default is not None:
        default = literal_default(parameter.default)
        separator = " = " if annotation is not None else "="
        text = f"{text}{separator}{default}"
    return text


def literal_default(text: str) -> str:
    """Return ``text`` when it is a literal, otherwise ``...``.

    Args:
        text: Default expression text from the declaration.

    Returns:
        Default text safe to evaluate in a standalone module.
    """
    try:
        ast.literal_eval(text)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return ELIDED_DEFAULT
    return text


def default_return_expression(return_annotation: str | None) -> str | None:
    """Choose the stand-in return expression for a return annotation.

    Args:
        return_annotation: Annotation text, if any.

    Returns:
        Expression text, or ``None`` when no return statement is emitted.
    """
    if return_annotation is None or return_annotation.strip() == "None":
        return None
    head = return_annotation.split("[", 1)[0].strip()
    head = head.rsplit(".", 1)[-1]
    if head in _TYPING_ALIASES:
        head = head.lower()
    return _EMPTY_RETURNS.get(head, "None")
