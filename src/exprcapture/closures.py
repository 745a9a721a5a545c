# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Detect identifiers a captured expression reads from the enclosing call site."""

import ast
from collections.abc import Iterable

from exprcapture.capture import Capture
from exprcapture.semantic import BUILTIN_NAMES

_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.GeneratorExp, ast.DictComp)


class OuterVariableCaptureError(ValueError):
    """Represent a captured expression that closes over call-site variables."""

    def __init__(self, names: list[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"Captured expression uses outer variables: {', '.join(names)}")


class _FreeNameCollector(ast.NodeVisitor):
    """Collect names read but not bound inside one expression."""

    def __init__(self, allowed: frozenset[str]) -> None:
        """Initialize collector state.

        Args:
            allowed: Names that never count as outer captures.
        """
        self._allowed = allowed
        self._scopes: list[tuple[bool, set[str]]] = [(False, set())]
        self.free_names: list[str] = []

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store):
            self._scopes[-1][1].add(node.id)
            return
        if self._is_bound(node.id) or node.id in self._allowed:
            return
        if node.id not in self.free_names:
            self.free_names.append(node.id)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        for default in list(node.args.defaults) + [
            item for item in node.args.kw_defaults if item is not None
        ]:
            self.visit(default)
        self._scopes.append((False, _argument_names(node.args)))
        self.visit(node.body)
        self._scopes.pop()

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        for is_comprehension, names in reversed(self._scopes):
            if not is_comprehension:
                names.add(node.target.id)
                return

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])

    def _visit_comprehension(self, node: ast.AST, results: list[ast.expr]) -> None:
        """Visit a comprehension with its own scope.

        The first iterable is evaluated in the enclosing scope.

        Args:
            node: Comprehension node.
            results: Element expressions evaluated per iteration.
        """
        generators: list[ast.comprehension] = getattr(node, "generators")
        self.visit(generators[0].iter)
        self._scopes.append((True, set()))
        for index, generator in enumerate(generators):
            if index > 0:
                self.visit(generator.iter)
            self.visit(generator.target)
            for condition in generator.ifs:
                self.visit(condition)
        for result in results:
            self.visit(result)
        self._scopes.pop()

    def _is_bound(self, name: str) -> bool:
        return any(name in names for _, names in self._scopes)


def find_outer_captures(
    expression: ast.expr, allowed: Iterable[str] = BUILTIN_NAMES
) -> list[str]:
    """List identifiers an expression reads from outside itself.

    Args:
        expression: Captured expression.
        allowed: Names resolvable without the call site, builtins by default.

    Returns:
        Free identifiers in first-use order.
    """
    collector = _FreeNameCollector(allowed=frozenset(allowed))
    collector.visit(expression)
    return collector.free_names


def ensure_no_outer_captures(
    capture: Capture, allowed: Iterable[str] = ()
) -> None:
    """Reject a capture whose expression closes over call-site variables.

    Builtins and names imported by the capture's snippet are always allowed.

    Args:
        capture: Capture to check.
        allowed: Additional names to accept.

    Raises:
        OuterVariableCaptureError: If any outer identifier is used.
    """
    reference = (
        capture.semantic_model.reference_names
        if capture.semantic_model is not None
        else BUILTIN_NAMES
    )
    names = find_outer_captures(capture.expression, allowed=reference | frozenset(allowed))
    if names:
        raise OuterVariableCaptureError(names)


def _argument_names(args: ast.arguments) -> set[str]:
    names = {
        argument.arg
        for argument in list(args.posonlyargs) + list(args.args) + list(args.kwonlyargs)
    }
    if args.vararg is not None:
        names.add(args.vararg.arg)
    if args.kwarg is not None:
        names.add(args.kwarg.arg)
    return names
