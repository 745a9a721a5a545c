# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Extract the source text of captured call arguments."""

import ast
import logging

from exprcapture.forest import node_start
from exprcapture.model import CallSite, CapturedParameter, SourceExtraction

logger = logging.getLogger(__name__)


class ExtractionError(RuntimeError):
    """Represent failure to recover the source text of a captured argument."""


class SourceExtractor:
    """Serialize captured argument expressions of resolved call sites."""

    def extract(self, call_site: CallSite) -> SourceExtraction:
        """Extract capture texts and declaration imports for one call site.

        Args:
            call_site: Resolved call site.

        Returns:
            Captured texts, one per captured parameter, and the distinct
            imports of the declaring file.

        Raises:
            ExtractionError: If a captured argument is missing or has no
                recoverable source segment.
        """
        captures: list[CapturedParameter] = []
        for parameter in call_site.declaration.captured_parameters:
            expression = call_site.argument_for(parameter.name)
            if expression is None:
                raise ExtractionError(
                    f"Captured parameter '{parameter.name}' is not supplied at "
                    f"{call_site.file_path}:{call_site.line}:{call_site.column}"
                )
            captures.append(self._capture(call_site, parameter.name, expression))
        logger.debug(
            f"Extracted captures (file_path={call_site.file_path} line={call_site.line} column={call_site.column} captures={len(captures)})"
        )
        return SourceExtraction(
            call_site=call_site,
            captures=tuple(captures),
            imports=call_site.declaration.imports,
        )

    def _capture(
        self, call_site: CallSite, parameter_name: str, expression: ast.expr
    ) -> CapturedParameter:
        text = ast.get_source_segment(call_site.file.source, expression)
        if text is None:
            raise ExtractionError(
                f"No source text for argument '{parameter_name}' at "
                f"{call_site.file_path}:{call_site.line}:{call_site.column}"
            )
        line, column = node_start(call_site.file, expression)
        return CapturedParameter(
            parameter_name=parameter_name,
            source_text=text.strip(),
            line=line,
            column=column,
        )
