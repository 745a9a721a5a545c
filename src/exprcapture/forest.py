# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Load a project into a parsed syntax forest."""

import ast
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import pathspec

from exprcapture.model import ParsedFile, SourceError

logger = logging.getLogger(__name__)

GENERATED_SUFFIX = ".g.py"
_SKIPPED_DIRS: set[str] = {".git", "__pycache__", ".venv", "venv", ".tox"}


class IgnoreMatcher:
    """Match project paths against .gitignore patterns."""

    def __init__(self, spec: pathspec.GitIgnoreSpec) -> None:
        """Initialize matcher.

        Args:
            spec: Compiled gitignore matcher.
        """
        self._spec = spec

    @classmethod
    def from_project_root(cls, root_path: Path) -> "IgnoreMatcher":
        """Build matcher from root and nested .gitignore files.

        Args:
            root_path: Project root.

        Returns:
            Configured ignore matcher.

        Raises:
            OSError: If .gitignore files cannot be read.
            UnicodeDecodeError: If .gitignore files contain invalid UTF-8.
        """
        patterns: list[str] = []
        for ignore_path in sorted(root_path.rglob(".gitignore")):
            base = ignore_path.parent.relative_to(root_path).as_posix()
            if base == ".":
                base = ""
            lines = ignore_path.read_text(encoding="utf-8").splitlines()
            for line in lines:
                patterns.append(_translate_gitignore_line(line=line, base=base))
        return cls(spec=pathspec.GitIgnoreSpec.from_lines(patterns))

    @classmethod
    def empty(cls) -> "IgnoreMatcher":
        return cls(spec=pathspec.GitIgnoreSpec.from_lines([]))

    def matches(self, relative_path: str) -> bool:
        """Check whether a project-relative path is ignored.

        Args:
            relative_path: Project-relative POSIX path.

        Returns:
            True when path should be ignored.
        """
        normalized = relative_path.replace(os.sep, "/").strip("/")
        if not normalized:
            return False
        return self._spec.match_file(normalized)


@dataclass(frozen=True)
class SyntaxForest:
    """Represent every parsed source file of one project.

    Attributes:
        root_path: Absolute project root.
        files: Parsed files sorted by project-relative path.
    """

    root_path: Path
    files: tuple[ParsedFile, ...]

    def file(self, path: str) -> ParsedFile | None:
        for parsed in self.files:
            if parsed.path == path:
                return parsed
        return None


def load_forest(
    root_path: Path, respect_gitignore: bool = True
) -> tuple[SyntaxForest, list[SourceError]]:
    """Parse Python files beneath the provided root path.

    Args:
        root_path: Root directory to parse.
        respect_gitignore: Whether .gitignore patterns exclude files.

    Returns:
        The syntax forest and recoverable read/parse errors.
    """
    root = root_path.resolve()
    matcher = IgnoreMatcher.empty()
    if respect_gitignore:
        try:
            matcher = IgnoreMatcher.from_project_root(root)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Ignoring unreadable .gitignore files (error={exc})")

    files: list[ParsedFile] = []
    errors: list[SourceError] = []
    for file_path in sorted(root.rglob("*.py")):
        relative = file_path.relative_to(root)
        relative_path = relative.as_posix()
        if file_path.name.endswith(GENERATED_SUFFIX):
            continue
        if any(part in _SKIPPED_DIRS for part in relative.parts):
            continue
        if matcher.matches(relative_path):
            logger.debug(f"Skipping ignored file (file_path={relative_path})")
            continue
        try:
            source = file_path.read_text(encoding="utf-8")
            tree = ast.parse(source, filename=relative_path)
        except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as exc:
            logger.warning(
                f"Skipping file due to parse/read failure (file_path={relative_path} error={exc})",
            )
            errors.append(SourceError(file_path=relative_path, message=str(exc)))
            continue
        module, is_package = module_name_for(relative)
        files.append(
            ParsedFile(
                path=relative_path,
                module=module,
                is_package=is_package,
                source=source,
                tree=tree,
            )
        )

    return SyntaxForest(root_path=root, files=tuple(files)), errors


def module_name_for(relative: Path) -> tuple[str, bool]:
    """Derive the dotted module name of a project-relative file.

    Args:
        relative: Project-relative file path.

    Returns:
        Module name and whether the file is a package ``__init__``.
    """
    parts = list(relative.with_suffix("").parts)
    is_package = bool(parts) and parts[-1] == "__init__"
    if is_package:
        parts = parts[:-1]
    if len(parts) >= 2 and parts[0] == "src":
        parts = parts[1:]
    return ".".join(parts), is_package


def absolute_import_module(parsed: ParsedFile, node: ast.ImportFrom) -> str | None:
    """Resolve the module of a from-import to its absolute name.

    Args:
        parsed: File containing the import.
        node: From-import node.

    Returns:
        Absolute module name, or ``None`` when the relative level escapes the project.
    """
    if node.level == 0:
        return node.module
    package_parts = parsed.module.split(".") if parsed.module else []
    if not parsed.is_package:
        package_parts = package_parts[:-1]
    drop = node.level - 1
    if drop > len(package_parts):
        return None
    base_parts = package_parts[: len(package_parts) - drop]
    if node.module:
        base_parts = base_parts + node.module.split(".")
    if not base_parts:
        return None
    return ".".join(base_parts)


def module_level_imports(tree: ast.Module) -> list[ast.Import | ast.ImportFrom]:
    """Collect imports executed at module level, in source order.

    Imports inside module-level ``if``/``try``/``with`` blocks are included;
    imports inside function and class bodies are not.

    Args:
        tree: Parsed module.

    Returns:
        Import nodes in source order.
    """
    collected: list[ast.Import | ast.ImportFrom] = []
    pending: list[ast.stmt] = list(tree.body)
    while pending:
        node = pending.pop(0)
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            collected.append(node)
            continue
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            continue
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.stmt):
                pending.append(child)
            elif isinstance(child, ast.excepthandler):
                pending.extend(child.body)
    collected.sort(key=lambda item: (item.lineno, item.col_offset))
    return collected


def visible_imports(parsed: ParsedFile, excluded_module: str) -> tuple[str, ...]:
    """Render the distinct import statements visible in one file.

    Relative imports are rewritten to absolute form so the statements stay
    valid in a standalone module. ``__future__`` imports and imports of
    ``excluded_module`` (or its submodules) are left out.

    Args:
        parsed: File whose imports are collected.
        excluded_module: Module whose imports are never repeated.

    Returns:
        Import statements in first-seen order.
    """
    seen: set[str] = set()
    rendered: list[str] = []
    for node in module_level_imports(parsed.tree):
        if isinstance(node, ast.Import):
            names = [
                alias
                for alias in node.names
                if not _is_module_or_submodule(alias.name, excluded_module)
            ]
            if not names:
                continue
            statement = ast.unparse(ast.Import(names=names))
        else:
            module = absolute_import_module(parsed, node)
            if module is None:
                logger.debug(
                    f"Skipping relative import outside project (file_path={parsed.path} line={node.lineno})"
                )
                continue
            if module == "__future__" or _is_module_or_submodule(module, excluded_module):
                continue
            statement = ast.unparse(
                ast.ImportFrom(module=module, names=node.names, level=0)
            )
        if statement in seen:
            continue
        seen.add(statement)
        rendered.append(statement)
    return tuple(rendered)


def call_location(parsed: ParsedFile, call: ast.Call) -> tuple[int, int]:
    """Return the 1-based position of the callee name token of a call.

    ``f`` in ``f(x)`` and ``m`` in ``obj.m(x)``; chained calls therefore never
    share a position.

    Args:
        parsed: File containing the call.
        call: Call node.

    Returns:
        Line and column of the callee name.
    """
    func = call.func
    if (
        isinstance(func, ast.Attribute)
        and func.end_lineno is not None
        and func.end_col_offset is not None
    ):
        end_column = parsed.character_column(func.end_lineno, func.end_col_offset)
        return func.end_lineno, end_column - len(func.attr)
    return func.lineno, parsed.character_column(func.lineno, func.col_offset)


def node_start(parsed: ParsedFile, node: ast.AST) -> tuple[int, int]:
    """Return the 1-based start line and character column of a node."""
    line = getattr(node, "lineno")
    return line, parsed.character_column(line, getattr(node, "col_offset"))


def _is_module_or_submodule(name: str, module: str) -> bool:
    return name == module or name.startswith(f"{module}.")


def _translate_gitignore_line(line: str, base: str) -> str:
    """Translate one .gitignore line to root-relative pattern.

    Args:
        line: Original .gitignore line.
        base: Parent directory relative to project root.

    Returns:
        Root-relative pattern line.
    """
    if not base or not line:
        return line
    if line.lstrip().startswith("#"):
        return line
    if line.startswith(r"\!") or line.startswith(r"\#"):
        return line
    is_negation = line.startswith("!")
    pattern = line[1:] if is_negation else line
    anchored = pattern.startswith("/")
    normalized_pattern = pattern[1:] if anchored else pattern
    prefixed = f"{base}/{normalized_pattern}" if normalized_pattern else base
    if anchored:
        prefixed = f"/{prefixed}"
    if is_negation:
        return f"!{prefixed}"
    return prefixed
