# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Capture call arguments together with their source expressions."""

from exprcapture.capture import (
    Capture,
    CaptureParseError,
    SourceLocation,
    build_snippet,
    locate_assigned_expression,
)
from exprcapture.closures import (
    OuterVariableCaptureError,
    ensure_no_outer_captures,
    find_outer_captures,
)
from exprcapture.interception import (
    InterceptionConflictError,
    InterceptionRegistry,
    activate,
    bind,
    default_registry,
    install,
    intercepts_location,
    load_interceptors,
    rewrite_call_sites,
    uninstall,
)
from exprcapture.pipeline import (
    GenerationResult,
    GeneratorOptions,
    WriteSummary,
    generate,
    write_artifacts,
)
from exprcapture.semantic import SemanticModel
from exprcapture.transpiler import JavaScriptTranspiler, UnsupportedConstructError

__all__ = [
    "Capture",
    "CaptureParseError",
    "GenerationResult",
    "GeneratorOptions",
    "InterceptionConflictError",
    "InterceptionRegistry",
    "JavaScriptTranspiler",
    "OuterVariableCaptureError",
    "SemanticModel",
    "SourceLocation",
    "UnsupportedConstructError",
    "WriteSummary",
    "activate",
    "bind",
    "build_snippet",
    "default_registry",
    "ensure_no_outer_captures",
    "find_outer_captures",
    "generate",
    "install",
    "intercepts_location",
    "load_interceptors",
    "locate_assigned_expression",
    "rewrite_call_sites",
    "uninstall",
    "write_artifacts",
]
