# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Generation model shared by discovery, resolution and synthesis."""

import ast
from dataclasses import dataclass
from functools import cached_property
from typing import Literal

ParameterKind = Literal[
    "positional_only", "positional", "var_positional", "keyword_only", "var_keyword"
]
BindingKind = Literal["function", "instance", "class", "static"]
Visibility = Literal["public", "protected", "private"]
ArtifactKind = Literal["overload", "interceptor"]

NO_VALUE_ANNOTATION = "None"


@dataclass(frozen=True)
class GeneratedParameter:
    """Represent one declared parameter of a capturing declaration.

    Attributes:
        name: Parameter name.
        annotation: Exact annotation text; ``None`` when unannotated.
        kind: Parameter slot kind.
        default: Exact default expression text; ``None`` when required.
        captured: Whether the annotation is the capture marker.
        inner_annotation: Marker type argument for captured parameters.
    """

    name: str
    annotation: str | None
    kind: ParameterKind
    default: str | None = None
    captured: bool = False
    inner_annotation: str | None = None

    @property
    def plain_annotation(self) -> str | None:
        """Annotation with the capture marker unwrapped."""
        if self.captured:
            return self.inner_annotation
        return self.annotation

    @property
    def is_variadic(self) -> bool:
        return self.kind in ("var_positional", "var_keyword")


@dataclass(frozen=True)
class CandidateDeclaration:
    """Represent one discovered declaration with captured parameters.

    Attributes:
        file_path: Project-relative POSIX path of the declaring file.
        line: Line of the ``def`` keyword (1-based).
        module: Dotted module name of the declaring file.
        class_name: Qualified containing class name; ``None`` for module functions.
        class_visibility: Visibility derived from the innermost class name.
        method_name: Function or method name.
        visibility: Visibility derived from ``method_name``.
        binding: How the callable receives its first argument.
        is_async: Whether the declaration is ``async def``.
        return_annotation: Exact return annotation text, if any.
        parameters: Declared parameters in declaration order.
        imports: Distinct import statements visible in the declaring file.
    """

    file_path: str
    line: int
    module: str
    class_name: str | None
    class_visibility: Visibility | None
    method_name: str
    visibility: Visibility
    binding: BindingKind
    is_async: bool
    return_annotation: str | None
    parameters: tuple[GeneratedParameter, ...]
    imports: tuple[str, ...]

    @property
    def key(self) -> tuple[str, str | None, str]:
        """Lookup key used to join call sites with declarations."""
        return (self.module, self.class_name, self.method_name)

    @property
    def signature(self) -> str:
        return ", ".join(
            f"{parameter.name}: {parameter.annotation}" for parameter in self.parameters
        )

    @property
    def captured_parameters(self) -> tuple[GeneratedParameter, ...]:
        return tuple(parameter for parameter in self.parameters if parameter.captured)

    @property
    def returns_no_value(self) -> bool:
        return self.return_annotation == NO_VALUE_ANNOTATION

    @property
    def qualified_name(self) -> str:
        if self.class_name is None:
            return f"{self.module}.{self.method_name}"
        return f"{self.module}.{self.class_name}.{self.method_name}"


@dataclass(frozen=True)
class ParsedFile:
    """Represent one parsed source file of the syntax forest.

    Attributes:
        path: Project-relative POSIX path.
        module: Dotted module name.
        is_package: Whether the file is a package ``__init__``.
        source: Full source text.
        tree: Parsed module tree.
    """

    path: str
    module: str
    is_package: bool
    source: str
    tree: ast.Module

    @cached_property
    def lines(self) -> list[str]:
        return self.source.splitlines(keepends=True)

    def character_column(self, line: int, byte_offset: int) -> int:
        """Convert an ast UTF-8 byte offset into a 1-based character column."""
        if line < 1 or line > len(self.lines):
            return byte_offset + 1
        encoded = self.lines[line - 1].encode("utf-8")
        return len(encoded[:byte_offset].decode("utf-8", errors="replace")) + 1


@dataclass(frozen=True)
class BoundArgument:
    """Pair one explicitly supplied argument with its parameter."""

    parameter_name: str
    expression: ast.expr


@dataclass(frozen=True)
class CallSite:
    """Represent one resolved call of a capturing declaration.

    Attributes:
        declaration: Resolved target declaration.
        file: Parsed file containing the call.
        line: Line of the callee name token (1-based).
        column: Column of the callee name token (1-based).
        arguments: Explicitly supplied non-variadic arguments.
        receiver_bound: Whether the first parameter is bound by the receiver.
        dispatch_through_receiver: Whether the original call reached the
            declaration by attribute lookup on the receiver, so overrides apply.
            False for receivers produced by a call such as ``super()``.
    """

    declaration: CandidateDeclaration
    file: ParsedFile
    line: int
    column: int
    arguments: tuple[BoundArgument, ...]
    receiver_bound: bool
    dispatch_through_receiver: bool = True

    @property
    def file_path(self) -> str:
        return self.file.path

    @property
    def key(self) -> tuple[str, int, int]:
        """Idempotency key of the call site."""
        return (self.file.path, self.line, self.column)

    def argument_for(self, parameter_name: str) -> ast.expr | None:
        for argument in self.arguments:
            if argument.parameter_name == parameter_name:
                return argument.expression
        return None

    def supplies(self, parameter_name: str) -> bool:
        return self.argument_for(parameter_name) is not None


@dataclass(frozen=True)
class CapturedParameter:
    """Represent the extracted source of one captured argument.

    Attributes:
        parameter_name: Captured parameter name.
        source_text: Exact argument source text.
        line: Argument start line in the calling file (1-based).
        column: Argument start column in the calling file (1-based).
    """

    parameter_name: str
    source_text: str
    line: int
    column: int

    @property
    def escaped_text(self) -> str:
        """Source text escaped for a non-raw triple-quoted literal."""
        return escape_capture_text(self.source_text)


@dataclass(frozen=True)
class SourceExtraction:
    """Capture texts and imports extracted for one call site."""

    call_site: CallSite
    captures: tuple[CapturedParameter, ...]
    imports: tuple[str, ...]

    def capture_for(self, parameter_name: str) -> CapturedParameter | None:
        for capture in self.captures:
            if capture.parameter_name == parameter_name:
                return capture
        return None


@dataclass(frozen=True)
class GeneratedArtifact:
    """Represent one generated compilation unit."""

    file_name: str
    source_text: str
    kind: ArtifactKind


@dataclass(frozen=True)
class SourceError:
    """Represent a recoverable error for one file or call site."""

    file_path: str
    message: str


def escape_capture_text(text: str) -> str:
    """Escape source text for embedding in a triple-quoted literal.

    Args:
        text: Raw source text.

    Returns:
        Text with backslashes doubled and double quotes escaped.
    """
    return text.replace("\\", "\\\\").replace('"', '\\"')


def visibility_of(name: str) -> Visibility:
    """Derive declaration visibility from Python naming conventions.

    Args:
        name: Function or class name.

    Returns:
        ``private`` for mangled names, ``protected`` for ``_name``.
    """
    if name.startswith("__") and not name.endswith("__"):
        return "private"
    if name.startswith("_") and not name.startswith("__"):
        return "protected"
    return "public"
