# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Synthesize stand-in overloads for capturing declarations."""

import logging

from exprcapture.emitter import (
    CodeEmitter,
    binding_decorator,
    class_scopes,
    default_return_expression,
    emit_module_preamble,
    render_signature,
)
from exprcapture.model import CandidateDeclaration, GeneratedArtifact
from exprcapture.naming import overload_file_name

logger = logging.getLogger(__name__)

STAND_IN_DOCSTRING = '"""Stand-in overload that can be intercepted."""'


class SynthesisError(RuntimeError):
    """Represent failure to render a generated module."""


class OverloadSynthesizer:
    """Render one stand-in module per capturing declaration.

    The stand-in mirrors the declaration with every ``Capture[T]`` annotation
    unwrapped to ``T``, so that a call passing a plain callable type-checks
    against it. Its body only returns a default value; the real behaviour is
    reached through the call site's interceptor.
    """

    def synthesize(self, declaration: CandidateDeclaration) -> GeneratedArtifact:
        """Render the stand-in overload of ``declaration``.

        Args:
            declaration: Discovered declaration with captured parameters.

        Returns:
            Overload artifact.

        Raises:
            SynthesisError: If the declaration has no captured parameter.
        """
        if not declaration.captured_parameters:
            raise SynthesisError(
                f"Declaration has no captured parameter: {declaration.qualified_name}"
            )
        emitter = CodeEmitter()
        emit_module_preamble(
            emitter,
            description=f"Stand-in overload of {declaration.qualified_name}",
            imports=declaration.imports,
        )
        emitter.emit_blank(2)
        with class_scopes(emitter, declaration.class_name):
            decorator = binding_decorator(declaration)
            if decorator is not None:
                emitter.emit(decorator)
            with emitter.block(render_signature(declaration)):
                emitter.emit(STAND_IN_DOCSTRING)
                returned = default_return_expression(declaration.return_annotation)
                if returned is not None:
                    emitter.emit(f"return {returned}")

        file_name = overload_file_name(
            declaration.module, declaration.class_name, declaration.method_name
        )
        logger.debug(f"Synthesized overload (file_name={file_name})")
        return GeneratedArtifact(
            file_name=file_name, source_text=emitter.get_code(), kind="overload"
        )
