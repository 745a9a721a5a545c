# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Bind generated interceptors to their call sites at import time.

Interceptor modules register themselves with ``intercepts_location``. An
import hook then rewrites, in memory, each registered call of a project file
from ``callee(...)`` into ``bind(path, line, column, callee)(...)``; the file
on disk is never edited. ``bind`` returns the interceptor bound to the same
receiver, or the original callee when nothing is registered.
"""

import ast
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import re
import sys
import threading
import types
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from exprcapture.capture import SourceLocation
from exprcapture.forest import call_location
from exprcapture.model import ParsedFile

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

BIND_ALIAS = "_exprcapture_bind"
INTERCEPTOR_GLOB = "Intercepted_*.g.py"
GENERATED_PACKAGE = "_exprcapture_generated"


class InterceptionConflictError(RuntimeError):
    """Represent two different interceptors claiming one call site."""


class InterceptionRegistry:
    """Map call-site locations to interceptor functions."""

    def __init__(self) -> None:
        self._entries: dict[SourceLocation, Callable[..., Any]] = {}
        self._lock = threading.Lock()

    def register(self, location: SourceLocation, interceptor: Callable[..., Any]) -> None:
        """Register an interceptor for one location.

        Args:
            location: Call-site location.
            interceptor: Function replacing the call.

        Raises:
            InterceptionConflictError: If a different function is registered
                for the location.
        """
        with self._lock:
            existing = self._entries.get(location)
            if existing is not None and _identity(existing) != _identity(interceptor):
                raise InterceptionConflictError(
                    f"Location {location.file_path}:{location.line}:{location.column} "
                    f"is already intercepted by {_identity(existing)[1]}"
                )
            self._entries[location] = interceptor
        logger.debug(
            f"Registered interceptor (file_path={location.file_path} line={location.line} column={location.column})"
        )

    def lookup(self, file_path: str, line: int, column: int) -> Callable[..., Any] | None:
        return self._entries.get(SourceLocation(file_path, line, column))

    def locations_for(self, file_path: str) -> frozenset[tuple[int, int]]:
        """Return the registered ``(line, column)`` pairs of one file."""
        with self._lock:
            return frozenset(
                (location.line, location.column)
                for location in self._entries
                if location.file_path == file_path
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


default_registry = InterceptionRegistry()


def intercepts_location(file_path: str, *, line: int, column: int) -> Callable[[F], F]:
    """Register the decorated function as the interceptor of one call site.

    Args:
        file_path: Project-relative POSIX path of the calling file.
        line: Line of the callee name (1-based).
        column: Column of the callee name (1-based).

    Returns:
        Decorator returning the function unchanged.
    """

    def decorator(function: F) -> F:
        default_registry.register(SourceLocation(file_path, line, column), function)
        return function

    return decorator


def bind(
    file_path: str,
    line: int,
    column: int,
    callee: Callable[..., Any],
    registry: InterceptionRegistry | None = None,
) -> Callable[..., Any]:
    """Resolve the callable to invoke at one call site.

    Args:
        file_path: Project-relative path of the calling file.
        line: Line of the callee name.
        column: Column of the callee name.
        callee: The callable the original code would invoke.
        registry: Registry to consult; the default registry when omitted.

    Returns:
        The interceptor, bound to ``callee``'s receiver when it has one, or
        ``callee`` itself when no interceptor is registered.
    """
    active = registry if registry is not None else default_registry
    interceptor = active.lookup(file_path, line, column)
    if interceptor is None:
        return callee
    receiver = getattr(callee, "__self__", None)
    if receiver is None or isinstance(receiver, types.ModuleType):
        return interceptor
    return types.MethodType(interceptor, receiver)


@dataclass(frozen=True)
class CallSiteRewrite:
    """Represent one file rewritten for interception.

    Attributes:
        tree: Rewritten module, locations preserved.
        rewritten: Locations whose calls were wrapped, in source order.
    """

    tree: ast.Module
    rewritten: tuple[tuple[int, int], ...]

    @property
    def source_text(self) -> str:
        return f"{ast.unparse(self.tree)}\n"


class _CallSiteBinder(ast.NodeTransformer):
    """Wrap the callee of registered calls into ``bind(...)``."""

    def __init__(self, parsed: ParsedFile, locations: frozenset[tuple[int, int]]) -> None:
        self._parsed = parsed
        self._locations = locations
        self.rewritten: list[tuple[int, int]] = []

    def visit_Call(self, node: ast.Call) -> ast.AST:
        location = call_location(self._parsed, node)
        self.generic_visit(node)
        if location not in self._locations:
            return node
        wrapper = ast.Call(
            func=ast.Name(id=BIND_ALIAS, ctx=ast.Load()),
            args=[
                ast.Constant(value=self._parsed.path),
                ast.Constant(value=location[0]),
                ast.Constant(value=location[1]),
                node.func,
            ],
            keywords=[],
        )
        node.func = ast.copy_location(wrapper, node.func)
        self.rewritten.append(location)
        return node


def rewrite_call_sites(
    source: str, file_path: str, locations: frozenset[tuple[int, int]]
) -> CallSiteRewrite:
    """Rewrite the registered calls of one source file.

    Args:
        source: Original file source.
        file_path: Project-relative POSIX path of the file.
        locations: Registered ``(line, column)`` pairs of the file.

    Returns:
        Rewritten tree and the locations that matched a call.

    Raises:
        SyntaxError: If ``source`` does not parse.
    """
    tree = ast.parse(source, filename=file_path)
    parsed = ParsedFile(path=file_path, module="", is_package=False, source=source, tree=tree)
    binder = _CallSiteBinder(parsed=parsed, locations=locations)
    binder.visit(tree)
    if binder.rewritten:
        _inject_bind_import(tree)
    ast.fix_missing_locations(tree)
    missing = locations - set(binder.rewritten)
    if missing:
        logger.warning(
            f"Registered call sites not found (file_path={file_path} locations={sorted(missing)})"
        )
    return CallSiteRewrite(tree=tree, rewritten=tuple(binder.rewritten))


def _inject_bind_import(tree: ast.Module) -> None:
    """Insert the ``bind`` import after the docstring and ``__future__`` imports."""
    position = 0
    body = tree.body
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        position = 1
    while (
        position < len(body)
        and isinstance(body[position], ast.ImportFrom)
        and body[position].module == "__future__"
    ):
        position += 1
    statement = ast.ImportFrom(
        module="exprcapture.interception",
        names=[ast.alias(name="bind", asname=BIND_ALIAS)],
        level=0,
    )
    line = 1
    if position > 0:
        anchor = body[position - 1]
        line = anchor.end_lineno or anchor.lineno
    # compile() rejects nodes whose end precedes their start.
    statement.lineno = statement.end_lineno = line
    statement.col_offset = statement.end_col_offset = 0
    body.insert(position, statement)


class InterceptingLoader(importlib.machinery.SourceFileLoader):
    """Load a project module with its registered calls rewritten."""

    def __init__(
        self, fullname: str, path: str, relative_path: str, registry: InterceptionRegistry
    ) -> None:
        super().__init__(fullname, path)
        self._relative_path = relative_path
        self._registry = registry

    def get_code(self, fullname: str) -> types.CodeType:
        """Compile the rewritten module, bypassing the bytecode cache."""
        source = importlib.util.decode_source(self.get_data(self.path))
        rewrite = rewrite_call_sites(
            source,
            file_path=self._relative_path,
            locations=self._registry.locations_for(self._relative_path),
        )
        logger.debug(
            f"Rewrote module for interception (module={fullname} call_sites={len(rewrite.rewritten)})"
        )
        return compile(rewrite.tree, self.path, "exec", dont_inherit=True)


class InterceptingFinder(importlib.abc.MetaPathFinder):
    """Route imports of intercepted project files through the rewriting loader."""

    def __init__(self, project_root: Path, registry: InterceptionRegistry) -> None:
        self._project_root = project_root.resolve()
        self._registry = registry

    @property
    def project_root(self) -> Path:
        return self._project_root

    def find_spec(
        self,
        fullname: str,
        path: Sequence[str] | None,
        target: types.ModuleType | None = None,
    ) -> importlib.machinery.ModuleSpec | None:
        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is None or spec.origin is None:
            return None
        if not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return None
        try:
            relative = Path(spec.origin).resolve().relative_to(self._project_root).as_posix()
        except ValueError:
            return None
        if not self._registry.locations_for(relative):
            return None
        spec.loader = InterceptingLoader(fullname, spec.origin, relative, self._registry)
        return spec


def install(
    project_root: Path, registry: InterceptionRegistry = default_registry
) -> InterceptingFinder:
    """Install the import hook for files under ``project_root``.

    Modules imported before installation keep their original code.

    Args:
        project_root: Root the call-site paths are relative to.
        registry: Registry holding the interceptors.

    Returns:
        Installed finder, for ``uninstall``.
    """
    finder = InterceptingFinder(project_root=project_root, registry=registry)
    sys.meta_path.insert(0, finder)
    logger.info(f"Installed interception import hook (project_root={finder.project_root})")
    return finder


def uninstall(finder: InterceptingFinder) -> None:
    if finder in sys.meta_path:
        sys.meta_path.remove(finder)


def load_interceptors(directory: Path) -> list[types.ModuleType]:
    """Execute every generated interceptor module of a directory.

    Args:
        directory: Output directory of the generator.

    Returns:
        Loaded modules in file name order.

    Raises:
        ImportError: If a module spec cannot be created.
    """
    modules: list[types.ModuleType] = []
    for file_path in sorted(directory.glob(INTERCEPTOR_GLOB)):
        stem = re.sub(r"[^0-9A-Za-z_]", "_", file_path.name[: -len(".py")])
        name = f"{GENERATED_PACKAGE}.{stem}"
        spec = importlib.util.spec_from_file_location(name, file_path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load interceptor module: {file_path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        spec.loader.exec_module(module)
        modules.append(module)
    logger.info(f"Loaded interceptor modules (directory={directory} modules={len(modules)})")
    return modules


def activate(project_root: Path, directory: Path) -> InterceptingFinder:
    """Install the import hook, then load the generated interceptors.

    Args:
        project_root: Root the call-site paths are relative to.
        directory: Output directory of the generator.

    Returns:
        Installed finder.
    """
    finder = install(project_root)
    load_interceptors(directory)
    return finder


def _identity(function: Callable[..., Any]) -> tuple[str, str]:
    return (
        getattr(function, "__module__", "") or "",
        getattr(function, "__qualname__", repr(function)),
    )
