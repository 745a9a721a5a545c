# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Discover declarations that request a capture of an argument."""

import ast
import logging

from exprcapture.forest import SyntaxForest, visible_imports
from exprcapture.model import (
    BindingKind,
    CandidateDeclaration,
    GeneratedParameter,
    ParameterKind,
    ParsedFile,
    visibility_of,
)

logger = logging.getLogger(__name__)

DEFAULT_MARKER_NAME = "Capture"
DEFAULT_MARKER_MODULE = "exprcapture"


class _DeclarationCollector(ast.NodeVisitor):
    """Collect capturing declarations from one parsed file."""

    def __init__(
        self, parsed: ParsedFile, marker_prefixes: tuple[str, ...], imports: tuple[str, ...]
    ) -> None:
        """Initialize collector state.

        Args:
            parsed: File being scanned.
            marker_prefixes: Annotation prefixes that denote the capture marker.
            imports: Visible imports of the file.
        """
        self._parsed = parsed
        self._marker_prefixes = marker_prefixes
        self._imports = imports
        self._class_stack: list[str] = []
        self.declarations: list[CandidateDeclaration] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._class_stack.append(node.name)
        self.generic_visit(node)
        self._class_stack.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._collect(node, is_async=False)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._collect(node, is_async=True)

    def _collect(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef, is_async: bool
    ) -> None:
        """Record the function when any parameter is capture-typed.

        Function bodies are not descended into; nested functions cannot be
        addressed from generated modules.

        Args:
            node: Function node.
            is_async: Whether the function is ``async def``.
        """
        parameters = self._convert_parameters(node.args)
        if not any(parameter.captured for parameter in parameters):
            return

        class_name = ".".join(self._class_stack) if self._class_stack else None
        binding = self._binding_of(node)
        returns = self._text(node.returns) if node.returns is not None else None
        declaration = CandidateDeclaration(
            file_path=self._parsed.path,
            line=node.lineno,
            module=self._parsed.module,
            class_name=class_name,
            class_visibility=(
                visibility_of(self._class_stack[-1]) if self._class_stack else None
            ),
            method_name=node.name,
            visibility=visibility_of(node.name),
            binding=binding,
            is_async=is_async,
            return_annotation=returns,
            parameters=parameters,
            imports=self._imports,
        )
        logger.debug(
            f"Discovered capturing declaration (name={declaration.qualified_name} file_path={self._parsed.path})"
        )
        self.declarations.append(declaration)

    def _binding_of(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> BindingKind:
        if not self._class_stack:
            return "function"
        for decorator in node.decorator_list:
            name = _decorator_name(decorator)
            if name == "staticmethod":
                return "static"
            if name == "classmethod":
                return "class"
        return "instance"

    def _convert_parameters(self, args: ast.arguments) -> tuple[GeneratedParameter, ...]:
        """Split declared parameters into captured and plain ones.

        Args:
            args: Function argument container.

        Returns:
            Parameters in declaration order.
        """
        positional = list(args.posonlyargs) + list(args.args)
        positional_defaults: list[ast.expr | None] = [None] * (
            len(positional) - len(args.defaults)
        ) + list(args.defaults)

        converted: list[GeneratedParameter] = []
        for index, argument in enumerate(positional):
            kind: ParameterKind = (
                "positional_only" if index < len(args.posonlyargs) else "positional"
            )
            converted.append(
                self._convert_parameter(argument, kind, positional_defaults[index])
            )
        if args.vararg is not None:
            converted.append(self._convert_parameter(args.vararg, "var_positional", None))
        for argument, default in zip(args.kwonlyargs, args.kw_defaults):
            converted.append(self._convert_parameter(argument, "keyword_only", default))
        if args.kwarg is not None:
            converted.append(self._convert_parameter(args.kwarg, "var_keyword", None))
        return tuple(converted)

    def _convert_parameter(
        self, argument: ast.arg, kind: ParameterKind, default: ast.expr | None
    ) -> GeneratedParameter:
        annotation = (
            self._annotation_text(argument.annotation)
            if argument.annotation is not None
            else None
        )
        default_text = self._text(default) if default is not None else None
        inner = self._marker_argument(annotation)
        if inner is not None and kind in ("var_positional", "var_keyword"):
            logger.warning(
                f"Ignoring capture marker on variadic parameter (file_path={self._parsed.path} parameter={argument.arg})"
            )
            inner = None
        return GeneratedParameter(
            name=argument.arg,
            annotation=annotation,
            kind=kind,
            default=default_text,
            captured=inner is not None,
            inner_annotation=inner,
        )

    def _marker_argument(self, annotation: str | None) -> str | None:
        """Return the marker's type argument when ``annotation`` is the marker.

        Args:
            annotation: Annotation text.

        Returns:
            Text between the outer brackets, or ``None``.
        """
        if annotation is None or not annotation.endswith("]"):
            return None
        for prefix in self._marker_prefixes:
            if annotation.startswith(prefix):
                return annotation[len(prefix) : -1].strip()
        return None

    def _annotation_text(self, annotation: ast.expr) -> str:
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            return annotation.value.strip()
        return self._text(annotation)

    def _text(self, node: ast.AST) -> str:
        segment = ast.get_source_segment(self._parsed.source, node)
        if segment is None:
            return ast.unparse(node)
        return segment


class DeclarationDiscoverer:
    """Find function declarations with capture-marker parameters."""

    def __init__(
        self,
        marker_name: str = DEFAULT_MARKER_NAME,
        marker_module: str = DEFAULT_MARKER_MODULE,
    ) -> None:
        """Initialize the discoverer.

        Args:
            marker_name: Name of the capture-marker generic.
            marker_module: Module exporting the marker.
        """
        self._marker_module = marker_module
        self._marker_prefixes = (f"{marker_name}[", f"{marker_module}.{marker_name}[")

    def discover(self, forest: SyntaxForest) -> list[CandidateDeclaration]:
        """Scan every file of the forest for capturing declarations.

        Matching is purely syntactic: an annotation whose text begins with the
        marker's generic prefix.

        Args:
            forest: Parsed project.

        Returns:
            One declaration per matching function, in file and source order.
        """
        declarations: list[CandidateDeclaration] = []
        for parsed in forest.files:
            imports = visible_imports(parsed, excluded_module=self._marker_module)
            collector = _DeclarationCollector(
                parsed=parsed, marker_prefixes=self._marker_prefixes, imports=imports
            )
            collector.visit(parsed.tree)
            declarations.extend(collector.declarations)
        logger.info(f"Declaration discovery completed (declarations={len(declarations)})")
        return declarations


def _decorator_name(decorator: ast.expr) -> str | None:
    if isinstance(decorator, ast.Name):
        return decorator.id
    if isinstance(decorator, ast.Attribute):
        return decorator.attr
    return None
