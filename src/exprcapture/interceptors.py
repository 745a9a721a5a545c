# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Synthesize per-call-site interceptors.

Each interceptor is a standalone module holding one function bound to a single
``(file, line, column)`` location. For every captured parameter it embeds the
argument's source text in a small snippet, re-parses that snippet at call time
and wraps the runtime value, the located expression and a semantic model of
the snippet into a ``Capture``. Plain parameters are passed through, and the
original declaration is called with the call site's arguments.
"""

import logging

from exprcapture.capture import build_snippet
from exprcapture.emitter import (
    CodeEmitter,
    binding_decorator,
    class_scopes,
    emit_module_preamble,
    render_signature,
)
from exprcapture.model import (
    CallSite,
    CapturedParameter,
    GeneratedArtifact,
    SourceExtraction,
    escape_capture_text,
)
from exprcapture.naming import interceptor_file_name
from exprcapture.overloads import SynthesisError

logger = logging.getLogger(__name__)

RESERVED_PREFIX = "_exprcapture"
TARGET_ALIAS = f"{RESERVED_PREFIX}_target"
RUNTIME_ALIAS = RESERVED_PREFIX
_RUNTIME_IMPORTS = (
    f"import ast as {RESERVED_PREFIX}_ast",
    "from typing import TYPE_CHECKING",
    "",
    f"import exprcapture as {RUNTIME_ALIAS}",
)


def local_name(parameter_name: str, role: str = "arg") -> str:
    """Name an interceptor local; parameters never use the reserved prefix."""
    return f"{RESERVED_PREFIX}_{role}_{parameter_name}"


def lambda_name(parameter_name: str) -> str:
    """Name of the snippet assignment holding a captured expression."""
    return f"overload_{parameter_name}_lambda"


def capture_snippet(capture: CapturedParameter, imports: tuple[str, ...]) -> str:
    """Build the snippet re-parsed by an interceptor for one capture."""
    return build_snippet(lambda_name(capture.parameter_name), capture.source_text, imports)


def _quoted(text: str) -> str:
    return f'"{escape_capture_text(text)}"'


class InterceptorSynthesizer:
    """Render the interceptor module of one call site."""

    def synthesize(self, extraction: SourceExtraction) -> GeneratedArtifact:
        """Render the interceptor for an extracted call site.

        Args:
            extraction: Captured texts of the call site.

        Returns:
            Interceptor artifact.

        Raises:
            SynthesisError: If a captured parameter has no extracted text or
                the declaring module cannot be imported by name. Parameter
                names starting with ``_exprcapture`` are rejected as well.
        """
        call_site = extraction.call_site
        declaration = call_site.declaration
        if not declaration.module:
            raise SynthesisError(
                f"Declaration has no importable module name: {declaration.file_path}"
            )
        reserved = [
            parameter.name
            for parameter in declaration.parameters
            if parameter.name.startswith(RESERVED_PREFIX)
        ]
        if reserved:
            raise SynthesisError(
                f"Parameter names use the reserved prefix '{RESERVED_PREFIX}': {', '.join(reserved)}"
            )

        emitter = CodeEmitter()
        emit_module_preamble(
            emitter,
            description=(
                f"Interceptor of {declaration.qualified_name} at "
                f"{call_site.file_path}:{call_site.line}:{call_site.column}"
            ),
            imports=_RUNTIME_IMPORTS,
        )
        if extraction.imports:
            emitter.emit_blank()
            with emitter.block("if TYPE_CHECKING:"):
                for statement in extraction.imports:
                    emitter.emit(statement)
        emitter.emit_blank(2)

        with class_scopes(emitter, declaration.class_name):
            decorator = binding_decorator(declaration)
            if decorator is not None:
                emitter.emit(decorator)
            emitter.emit(
                f"@{RUNTIME_ALIAS}.intercepts_location("
                f"{_quoted(call_site.file_path)}, line={call_site.line}, column={call_site.column})"
            )
            with emitter.block(render_signature(declaration)):
                self._emit_body(emitter, extraction)

        file_name = interceptor_file_name(
            declaration.method_name, call_site.file_path, call_site.line, call_site.column
        )
        logger.debug(f"Synthesized interceptor (file_name={file_name})")
        return GeneratedArtifact(
            file_name=file_name, source_text=emitter.get_code(), kind="interceptor"
        )

    def _emit_body(self, emitter: CodeEmitter, extraction: SourceExtraction) -> None:
        call_site = extraction.call_site
        declaration = call_site.declaration
        callee = self._callee_expression(call_site)
        if callee.startswith(TARGET_ALIAS):
            emitter.emit(f"import {declaration.module} as {TARGET_ALIAS}")
            emitter.emit_blank()

        receiver = self._receiver_name(call_site)
        for parameter in declaration.parameters:
            if parameter.is_variadic or parameter.name == receiver:
                continue
            if not call_site.supplies(parameter.name):
                continue
            if not parameter.captured:
                emitter.emit(f"{local_name(parameter.name)} = {parameter.name}")
                continue
            capture = extraction.capture_for(parameter.name)
            if capture is None:
                raise SynthesisError(
                    f"Missing capture text for '{parameter.name}' at "
                    f"{call_site.file_path}:{call_site.line}:{call_site.column}"
                )
            self._emit_capture(emitter, call_site, capture, extraction.imports)

        arguments = self._forwarded_arguments(call_site, receiver)
        if receiver is not None and not call_site.dispatch_through_receiver:
            arguments.insert(0, receiver)
        invocation = f"{callee}({', '.join(arguments)})"
        if declaration.is_async:
            invocation = f"await {invocation}"
        if declaration.returns_no_value:
            emitter.emit(invocation)
        else:
            emitter.emit(f"return {invocation}")

    def _emit_capture(
        self,
        emitter: CodeEmitter,
        call_site: CallSite,
        capture: CapturedParameter,
        imports: tuple[str, ...],
    ) -> None:
        name = capture.parameter_name
        target = local_name(name)
        source = local_name(name, "src")
        tree = local_name(name, "tree")
        path = _quoted(call_site.file_path)
        snippet = capture_snippet(capture, imports)
        emitter.emit(f'{source} = """\\')
        emitter.emit_raw(escape_capture_text(snippet) + '"""')
        emitter.emit(f"{tree} = {RESERVED_PREFIX}_ast.parse({source}, filename={path})")
        with emitter.block(f"{target} = {RUNTIME_ALIAS}.Capture("):
            emitter.emit(f"{name},")
            emitter.emit(
                f"{RUNTIME_ALIAS}.locate_assigned_expression({tree}, {_quoted(lambda_name(name))}),"
            )
            emitter.emit(
                f"{RUNTIME_ALIAS}.SemanticModel.build({tree}, {source}, {path}),"
            )
            emitter.emit(
                f"location={RUNTIME_ALIAS}.SourceLocation({path}, {capture.line}, {capture.column}),"
            )
        emitter.emit(")")

    def _receiver_name(self, call_site: CallSite) -> str | None:
        if not call_site.receiver_bound:
            return None
        return call_site.declaration.parameters[0].name

    def _callee_expression(self, call_site: CallSite) -> str:
        """Render the expression reaching the original declaration.

        Receiver-bound calls go through the receiver so that overrides keep
        dispatching as they did at the original call site. Calls whose
        receiver came from a call, ``super()`` included, bypassed that lookup
        and reach the declaring class directly.

        Args:
            call_site: Resolved call site.

        Returns:
            Callee expression text.
        """
        declaration = call_site.declaration
        receiver = self._receiver_name(call_site)
        if receiver is not None and call_site.dispatch_through_receiver:
            return f"{receiver}.{declaration.method_name}"
        if declaration.class_name is None:
            return f"{TARGET_ALIAS}.{declaration.method_name}"
        callee = f"{TARGET_ALIAS}.{declaration.class_name}.{declaration.method_name}"
        if receiver is not None and declaration.binding == "class":
            # Unwrap the classmethod so the forwarded cls is not bound twice.
            callee = f"{callee}.__func__"
        return callee

    def _forwarded_arguments(self, call_site: CallSite, receiver: str | None) -> list[str]:
        """Render the arguments forwarded to the original declaration.

        Positional parameters are passed positionally while every earlier
        positional parameter was supplied too, and by keyword afterwards.

        Args:
            call_site: Resolved call site.
            receiver: Implicitly bound receiver parameter, if any.

        Returns:
            Argument texts in call order.
        """
        rendered: list[str] = []
        positional_open = True
        for parameter in call_site.declaration.parameters:
            if parameter.name == receiver:
                continue
            if parameter.kind == "var_positional":
                rendered.append(f"*{parameter.name}")
                continue
            if parameter.kind == "var_keyword":
                rendered.append(f"**{parameter.name}")
                continue
            if not call_site.supplies(parameter.name):
                if parameter.kind in ("positional_only", "positional"):
                    positional_open = False
                continue
            value = local_name(parameter.name)
            if parameter.kind in ("positional_only", "positional") and positional_open:
                rendered.append(value)
            else:
                rendered.append(f"{parameter.name}={value}")
        return rendered
