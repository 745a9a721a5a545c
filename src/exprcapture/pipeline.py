# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Run the generation pipeline and write its artifacts."""

import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path

from exprcapture.discovery import (
    DEFAULT_MARKER_MODULE,
    DEFAULT_MARKER_NAME,
    DeclarationDiscoverer,
)
from exprcapture.extractor import ExtractionError, SourceExtractor
from exprcapture.forest import GENERATED_SUFFIX, load_forest
from exprcapture.interceptors import InterceptorSynthesizer
from exprcapture.model import CallSite, CandidateDeclaration, GeneratedArtifact, SourceError
from exprcapture.naming import disambiguated_file_name
from exprcapture.overloads import OverloadSynthesizer, SynthesisError
from exprcapture.resolver import AmbiguityPolicy, CallSiteResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratorOptions:
    """Configure one generation run.

    Attributes:
        marker_name: Name of the capture-marker generic.
        marker_module: Module exporting the marker; its imports are never
            repeated in generated code.
        on_ambiguity: ``first`` takes the first candidate declaration,
            ``drop`` drops calls with several candidates.
        respect_gitignore: Whether .gitignore patterns exclude files.
    """

    marker_name: str = DEFAULT_MARKER_NAME
    marker_module: str = DEFAULT_MARKER_MODULE
    on_ambiguity: AmbiguityPolicy = "first"
    respect_gitignore: bool = True


@dataclass(frozen=True)
class GenerationResult:
    """Represent the outcome of one generation run."""

    artifacts: tuple[GeneratedArtifact, ...]
    declarations: tuple[CandidateDeclaration, ...]
    call_sites: tuple[CallSite, ...]
    errors: tuple[SourceError, ...]

    def artifacts_of(self, kind: str) -> tuple[GeneratedArtifact, ...]:
        return tuple(artifact for artifact in self.artifacts if artifact.kind == kind)


@dataclass(frozen=True)
class WriteSummary:
    """Represent write phase counters."""

    files_written: int
    files_unchanged: int
    files_removed: int
    elapsed_ms: int


def generate(root_path: Path, options: GeneratorOptions | None = None) -> GenerationResult:
    """Generate stand-in overloads and interceptors for a project.

    A failure extracting or synthesizing one call site is recorded as a
    ``SourceError`` and does not stop the others. Artifacts whose derived
    file names clash are renamed with a digest of what they were derived from.

    Args:
        root_path: Project root.
        options: Run configuration; defaults when omitted.

    Returns:
        Artifacts sorted by file name, together with the discovered
        declarations, resolved call sites and recoverable errors.
    """
    options = options or GeneratorOptions()
    forest, errors = load_forest(root_path, respect_gitignore=options.respect_gitignore)
    declarations = DeclarationDiscoverer(
        marker_name=options.marker_name, marker_module=options.marker_module
    ).discover(forest)
    call_sites = CallSiteResolver(
        forest, declarations, on_ambiguity=options.on_ambiguity
    ).resolve()

    pending: list[tuple[str, str, GeneratedArtifact]] = []
    overloads = OverloadSynthesizer()
    for declaration in declarations:
        try:
            artifact = overloads.synthesize(declaration)
        except SynthesisError as exc:
            logger.warning(
                f"Skipping overload (name={declaration.qualified_name} error={exc})"
            )
            errors.append(SourceError(file_path=declaration.file_path, message=str(exc)))
            continue
        pending.append((declaration.qualified_name, declaration.file_path, artifact))

    extractor = SourceExtractor()
    interceptors = InterceptorSynthesizer()
    for call_site in call_sites:
        try:
            artifact = interceptors.synthesize(extractor.extract(call_site))
        except (ExtractionError, SynthesisError) as exc:
            logger.warning(
                f"Skipping call site (file_path={call_site.file_path} line={call_site.line} column={call_site.column} error={exc})"
            )
            errors.append(
                SourceError(
                    file_path=call_site.file_path,
                    message=f"{call_site.line}:{call_site.column}: {exc}",
                )
            )
            continue
        identity = f"{call_site.file_path}:{call_site.line}:{call_site.column}"
        pending.append((identity, call_site.file_path, artifact))

    artifacts = _unique_artifacts(pending, errors)
    ordered = tuple(artifacts[name] for name in sorted(artifacts))
    logger.info(
        f"Generation completed (declarations={len(declarations)} call_sites={len(call_sites)} artifacts={len(ordered)} errors={len(errors)})"
    )
    return GenerationResult(
        artifacts=ordered,
        declarations=tuple(declarations),
        call_sites=tuple(call_sites),
        errors=tuple(errors),
    )


def _unique_artifacts(
    pending: list[tuple[str, str, GeneratedArtifact]], errors: list[SourceError]
) -> dict[str, GeneratedArtifact]:
    """Key artifacts by file name.

    The first artifact of a repeated identity is kept. When different
    identities derive the same file name, every one of them gets a digest
    suffix. A clash left after that is recorded as an error.

    Args:
        pending: ``(identity, file_path, artifact)`` triples in generation order.
        errors: Error list receiving unresolvable clashes.

    Returns:
        Artifacts by file name.
    """
    owners: dict[str, set[tuple[str, str]]] = {}
    for identity, _, artifact in pending:
        owners.setdefault(artifact.file_name, set()).add((artifact.kind, identity))

    artifacts: dict[str, GeneratedArtifact] = {}
    seen: set[tuple[str, str]] = set()
    for identity, file_path, artifact in pending:
        if (artifact.kind, identity) in seen:
            logger.debug(f"Keeping first artifact (identity={identity})")
            continue
        seen.add((artifact.kind, identity))
        if len(owners[artifact.file_name]) > 1:
            file_name = disambiguated_file_name(artifact.file_name, identity)
            logger.info(
                f"Disambiguated clashing artifact name (identity={identity} file_name={file_name})"
            )
            artifact = replace(artifact, file_name=file_name)
        if artifact.file_name in artifacts:
            logger.warning(f"Skipping clashing artifact (file_name={artifact.file_name})")
            errors.append(
                SourceError(
                    file_path=file_path,
                    message=f"artifact name clash: {artifact.file_name}",
                )
            )
            continue
        artifacts[artifact.file_name] = artifact
    return artifacts


def write_artifacts(
    artifacts: tuple[GeneratedArtifact, ...], output_dir: Path, clean: bool = False
) -> WriteSummary:
    """Write artifacts into the output directory.

    Files are written through a temporary file and replaced atomically;
    files whose content is unchanged are left untouched.

    Args:
        artifacts: Generated artifacts.
        output_dir: Target directory, created when missing.
        clean: Whether generated files of earlier runs are removed first.

    Returns:
        Write phase counters.

    Raises:
        OSError: If a file cannot be written or removed.
    """
    started = time.monotonic()
    output_dir.mkdir(parents=True, exist_ok=True)
    current = {artifact.file_name for artifact in artifacts}
    removed = 0
    if clean:
        for stale in sorted(output_dir.glob(f"*{GENERATED_SUFFIX}")):
            if stale.name not in current:
                stale.unlink()
                removed += 1

    written = 0
    unchanged = 0
    for artifact in artifacts:
        target = output_dir / artifact.file_name
        if target.exists() and target.read_text(encoding="utf-8") == artifact.source_text:
            unchanged += 1
            continue
        tmp_path = target.with_name(f"{target.name}.tmp")
        try:
            tmp_path.write_text(artifact.source_text, encoding="utf-8")
            tmp_path.replace(target)
        except OSError as exc:
            logger.warning(f"Failed writing artifact (path={target} error={exc})")
            raise
        written += 1

    elapsed_ms = int(round((time.monotonic() - started) * 1000))
    return WriteSummary(
        files_written=written,
        files_unchanged=unchanged,
        files_removed=removed,
        elapsed_ms=elapsed_ms,
    )
