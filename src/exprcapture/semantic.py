# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Build a small semantic model for a re-parsed capture snippet."""

import ast
import builtins
import symtable
from dataclasses import dataclass
from typing import Literal

NameOrigin = Literal["local", "import", "global", "builtin", "unresolved"]

BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))
# symtable names lambda scopes "<lambda>" since 3.13.
_LAMBDA_SCOPE_NAMES = frozenset({"lambda", "<lambda>"})


@dataclass(frozen=True)
class ScopeInfo:
    """Summarize one function or lambda scope of the snippet.

    Attributes:
        name: Scope name as reported by ``symtable`` (``lambda`` for lambdas).
        line: First line of the scope.
        parameters: Parameter names in declaration order.
        local_names: Names bound inside the scope.
        free_names: Names read from an enclosing function scope.
        global_names: Names read from module or builtin scope.
    """

    name: str
    line: int
    parameters: tuple[str, ...]
    local_names: frozenset[str]
    free_names: frozenset[str]
    global_names: frozenset[str]


class SemanticModel:
    """Answer name-resolution questions about a parsed snippet."""

    def __init__(
        self,
        tree: ast.Module,
        source: str,
        filename: str,
        table: symtable.SymbolTable,
        imported_names: frozenset[str],
    ) -> None:
        self._tree = tree
        self._source = source
        self._filename = filename
        self._table = table
        self._imported_names = imported_names
        self._scopes = tuple(_collect_scopes(table))

    @classmethod
    def build(cls, tree: ast.Module, source: str, filename: str) -> "SemanticModel":
        """Build the model of a snippet.

        The reference set is deliberately small: builtins plus whatever the
        snippet itself imports.

        Args:
            tree: Parsed snippet.
            source: Snippet source text.
            filename: File name reported in diagnostics.

        Returns:
            Semantic model.

        Raises:
            SyntaxError: If ``source`` does not compile.
        """
        table = symtable.symtable(source, filename, "exec")
        return cls(
            tree=tree,
            source=source,
            filename=filename,
            table=table,
            imported_names=_imported_names(tree),
        )

    @property
    def tree(self) -> ast.Module:
        return self._tree

    @property
    def source(self) -> str:
        return self._source

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def imported_names(self) -> frozenset[str]:
        return self._imported_names

    @property
    def reference_names(self) -> frozenset[str]:
        """Names resolvable without the enclosing call site."""
        return BUILTIN_NAMES | self._imported_names

    @property
    def scopes(self) -> tuple[ScopeInfo, ...]:
        return self._scopes

    def scope_of(self, node: ast.Lambda | ast.FunctionDef | ast.AsyncFunctionDef) -> ScopeInfo | None:
        """Find the scope summary of a lambda or function node.

        Scopes starting on the same line are matched in source order.

        Args:
            node: Lambda or function node of this model's tree.

        Returns:
            Matching scope, or ``None`` when the node is not part of the tree.
        """
        same_line = [
            candidate
            for candidate in ast.walk(self._tree)
            if isinstance(candidate, type(node)) and candidate.lineno == node.lineno
        ]
        same_line.sort(key=lambda item: item.col_offset)
        if node not in same_line:
            return None
        index = same_line.index(node)
        expected = _LAMBDA_SCOPE_NAMES if isinstance(node, ast.Lambda) else {node.name}
        scopes = [
            scope for scope in self._scopes if scope.line == node.lineno and scope.name in expected
        ]
        if index >= len(scopes):
            return None
        return scopes[index]

    def classify(self, name: str, scope: ScopeInfo | None = None) -> NameOrigin:
        """Classify where a name used in the snippet is bound.

        Args:
            name: Identifier to classify.
            scope: Scope the name is used in; module scope when omitted.

        Returns:
            Origin of the binding.
        """
        if scope is not None and (name in scope.local_names or name in scope.free_names):
            return "local"
        if name in self._imported_names:
            return "import"
        try:
            symbol = self._table.lookup(name)
        except KeyError:
            symbol = None
        if symbol is not None and symbol.is_assigned():
            return "global"
        if name in BUILTIN_NAMES:
            return "builtin"
        return "unresolved"


def _collect_scopes(table: symtable.SymbolTable) -> list[ScopeInfo]:
    scopes: list[ScopeInfo] = []
    pending = list(table.get_children())
    while pending:
        child = pending.pop(0)
        if isinstance(child, symtable.Function):
            scopes.append(
                ScopeInfo(
                    name=child.get_name(),
                    line=child.get_lineno(),
                    parameters=tuple(child.get_parameters()),
                    local_names=frozenset(child.get_locals()),
                    free_names=frozenset(child.get_frees()),
                    global_names=frozenset(child.get_globals()),
                )
            )
        pending.extend(child.get_children())
    return scopes


def _imported_names(tree: ast.Module) -> frozenset[str]:
    names: set[str] = set()
    for node in tree.body:
        if isinstance(node, ast.Import):
            for alias in node.names:
                names.add(alias.asname or alias.name.split(".")[0])
        elif isinstance(node, ast.ImportFrom):
            for alias in node.names:
                if alias.name != "*":
                    names.add(alias.asname or alias.name)
    return frozenset(names)
