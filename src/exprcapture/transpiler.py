# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Translate captured lambdas into JavaScript arrow functions."""

import ast
import json
import logging
from collections.abc import Iterable

from exprcapture.capture import Capture, SourceLocation
from exprcapture.closures import ensure_no_outer_captures
from exprcapture.semantic import BUILTIN_NAMES

logger = logging.getLogger(__name__)

_BINARY_OPERATORS: dict[type[ast.operator], str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Mod: "%",
    ast.Pow: "**",
    ast.BitAnd: "&",
    ast.BitOr: "|",
    ast.BitXor: "^",
    ast.LShift: "<<",
    ast.RShift: ">>",
}
_UNARY_OPERATORS: dict[type[ast.unaryop], str] = {
    ast.Not: "!",
    ast.USub: "-",
    ast.UAdd: "+",
    ast.Invert: "~",
}
_COMPARISON_OPERATORS: dict[type[ast.cmpop], str] = {
    ast.Eq: "===",
    ast.NotEq: "!==",
    ast.Is: "===",
    ast.IsNot: "!==",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
}
_BUILTIN_FUNCTIONS: dict[str, str] = {
    "abs": "Math.abs",
    "min": "Math.min",
    "max": "Math.max",
    "round": "Math.round",
    "str": "String",
    "float": "Number",
}


class UnsupportedConstructError(ValueError):
    """Represent a captured construct without a JavaScript translation."""

    def __init__(self, construct: str, location: SourceLocation | None) -> None:
        self.construct = construct
        self.location = location
        where = (
            f" at {location.file_path}:{location.line}:{location.column}"
            if location is not None
            else ""
        )
        super().__init__(f"Unsupported construct '{construct}'{where}")


class _JavaScriptEmitter(ast.NodeVisitor):
    """Render one expression tree as JavaScript text."""

    def __init__(self, capture: Capture, allowed_names: frozenset[str]) -> None:
        self._capture = capture
        self._allowed_names = allowed_names
        self._bound: list[set[str]] = []

    def generic_visit(self, node: ast.AST) -> str:
        raise UnsupportedConstructError(
            type(node).__name__, self._capture.original_position(node)
        )

    def render(self, node: ast.AST) -> str:
        return self.visit(node)

    def visit_Lambda(self, node: ast.Lambda) -> str:
        args = node.args
        if args.kwonlyargs or args.kwarg is not None:
            raise UnsupportedConstructError(
                "keyword-only lambda parameter", self._capture.original_position(node)
            )
        positional = list(args.posonlyargs) + list(args.args)
        defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
        defaults.extend(args.defaults)
        parameters: list[str] = []
        for argument, default in zip(positional, defaults):
            if default is None:
                parameters.append(argument.arg)
            else:
                parameters.append(f"{argument.arg} = {self.render(default)}")
        if args.vararg is not None:
            parameters.append(f"...{args.vararg.arg}")
        names = {argument.arg for argument in positional}
        if args.vararg is not None:
            names.add(args.vararg.arg)
        self._bound.append(names)
        body = self.render(node.body)
        self._bound.pop()
        return f"({', '.join(parameters)}) => {body}"

    def visit_BinOp(self, node: ast.BinOp) -> str:
        left = self.render(node.left)
        right = self.render(node.right)
        if isinstance(node.op, ast.FloorDiv):
            return f"Math.floor({left} / {right})"
        operator = _BINARY_OPERATORS.get(type(node.op))
        if operator is None:
            raise UnsupportedConstructError(
                type(node.op).__name__, self._capture.original_position(node)
            )
        return f"({left} {operator} {right})"

    def visit_BoolOp(self, node: ast.BoolOp) -> str:
        operator = " && " if isinstance(node.op, ast.And) else " || "
        return f"({operator.join(self.render(value) for value in node.values)})"

    def visit_UnaryOp(self, node: ast.UnaryOp) -> str:
        return f"({_UNARY_OPERATORS[type(node.op)]}{self.render(node.operand)})"

    def visit_Compare(self, node: ast.Compare) -> str:
        parts: list[str] = []
        left = node.left
        for operator, right in zip(node.ops, node.comparators):
            parts.append(self._comparison(node, left, operator, right))
            left = right
        if len(parts) == 1:
            return parts[0]
        return f"({' && '.join(parts)})"

    def _comparison(
        self, node: ast.Compare, left: ast.expr, operator: ast.cmpop, right: ast.expr
    ) -> str:
        left_text = self.render(left)
        right_text = self.render(right)
        if isinstance(operator, ast.In):
            return f"{right_text}.includes({left_text})"
        if isinstance(operator, ast.NotIn):
            return f"!{right_text}.includes({left_text})"
        symbol = _COMPARISON_OPERATORS.get(type(operator))
        if symbol is None:
            raise UnsupportedConstructError(
                type(operator).__name__, self._capture.original_position(node)
            )
        return f"({left_text} {symbol} {right_text})"

    def visit_IfExp(self, node: ast.IfExp) -> str:
        return (
            f"({self.render(node.test)} ? {self.render(node.body)} : "
            f"{self.render(node.orelse)})"
        )

    def visit_Constant(self, node: ast.Constant) -> str:
        value = node.value
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return json.dumps(value)
        if isinstance(value, (int, float)):
            return repr(value)
        raise UnsupportedConstructError(
            f"{type(value).__name__} constant", self._capture.original_position(node)
        )

    def visit_Name(self, node: ast.Name) -> str:
        if self._is_builtin(node.id):
            if node.id not in _BUILTIN_FUNCTIONS:
                raise UnsupportedConstructError(
                    f"builtin '{node.id}'", self._capture.original_position(node)
                )
            return _BUILTIN_FUNCTIONS[node.id]
        return node.id

    def visit_Attribute(self, node: ast.Attribute) -> str:
        return f"{self.render(node.value)}.{node.attr}"

    def visit_Subscript(self, node: ast.Subscript) -> str:
        if isinstance(node.slice, ast.Slice):
            raise UnsupportedConstructError("Slice", self._capture.original_position(node))
        if _is_negative_index(node.slice):
            raise UnsupportedConstructError(
                "negative index", self._capture.original_position(node)
            )
        return f"{self.render(node.value)}[{self.render(node.slice)}]"

    def visit_Call(self, node: ast.Call) -> str:
        if node.keywords:
            raise UnsupportedConstructError(
                "keyword argument", self._capture.original_position(node)
            )
        arguments = ", ".join(self.render(argument) for argument in node.args)
        func = node.func
        if isinstance(func, ast.Name) and func.id == "len" and self._is_builtin("len"):
            if len(node.args) == 1:
                return f"{self.render(node.args[0])}.length"
        callee = self.render(func)
        if _is_constructor(func):
            return f"new {callee}({arguments})"
        return f"{callee}({arguments})"

    def visit_Starred(self, node: ast.Starred) -> str:
        return f"...{self.render(node.value)}"

    def visit_List(self, node: ast.List) -> str:
        return f"[{', '.join(self.render(element) for element in node.elts)}]"

    def visit_Tuple(self, node: ast.Tuple) -> str:
        return f"[{', '.join(self.render(element) for element in node.elts)}]"

    def visit_Dict(self, node: ast.Dict) -> str:
        entries: list[str] = []
        for key, value in zip(node.keys, node.values):
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                raise UnsupportedConstructError(
                    "non-string dict key", self._capture.original_position(node)
                )
            entries.append(f"{json.dumps(key.value)}: {self.render(value)}")
        return f"{{{', '.join(entries)}}}"

    def visit_NamedExpr(self, node: ast.NamedExpr) -> str:
        value = self.render(node.value)
        if self._bound:
            self._bound[-1].add(node.target.id)
        return f"({node.target.id} = {value})"

    def _is_builtin(self, name: str) -> bool:
        if name not in BUILTIN_NAMES or name in self._allowed_names:
            return False
        return not any(name in names for names in self._bound)


class JavaScriptTranspiler:
    """Translate captured Python lambdas into JavaScript source."""

    def __init__(self, allowed_names: Iterable[str] = ()) -> None:
        """Initialize the transpiler.

        Args:
            allowed_names: Outer names the generated code may reference,
                in addition to builtins and the snippet's imports.
        """
        self._allowed_names = frozenset(allowed_names)

    def transpile(self, capture: Capture) -> str:
        """Translate the captured expression.

        Args:
            capture: Capture produced by an interceptor.

        Returns:
            JavaScript expression text, an arrow function for lambdas.

        Raises:
            OuterVariableCaptureError: If the expression closes over call-site
                variables.
            UnsupportedConstructError: If a construct has no translation.
        """
        ensure_no_outer_captures(capture, allowed=self._allowed_names)
        emitter = _JavaScriptEmitter(capture, self._allowed_names)
        output = emitter.render(capture.expression)
        logger.debug(f"Transpiled capture (source={capture.source_text!r})")
        return output


def _is_constructor(func: ast.expr) -> bool:
    if isinstance(func, ast.Name):
        return func.id[:1].isupper()
    if isinstance(func, ast.Attribute):
        return func.attr[:1].isupper()
    return False


def _is_negative_index(index: ast.expr) -> bool:
    if isinstance(index, ast.UnaryOp) and isinstance(index.op, ast.USub):
        return isinstance(index.operand, ast.Constant)
    if not isinstance(index, ast.Constant) or isinstance(index.value, bool):
        return False
    return isinstance(index.value, (int, float)) and index.value < 0
