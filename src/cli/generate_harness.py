# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""CLI harness for capture overload and interceptor generation."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.style import Style
from rich.table import Table

from exprcapture import (
    GenerationResult,
    GeneratorOptions,
    generate,
    write_artifacts,
)
from exprcapture.discovery import DEFAULT_MARKER_MODULE, DEFAULT_MARKER_NAME
from exprcapture.model import CallSite, CandidateDeclaration, SourceError

logger = logging.getLogger(__name__)

TABLE_COLUMN_RATIOS: dict[str, int] = {
    "kind": 1,
    "target": 4,
    "location": 3,
    "binding": 1,
    "captured": 2,
}


class ValidationError(RuntimeError):
    """Represent user input validation failure."""


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser instance.
    """
    parser = argparse.ArgumentParser(prog="exprcapture")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser("generate")
    generate_parser.add_argument("--input", required=True, help="Project root to scan.")
    generate_parser.add_argument(
        "--output", required=True, help="Directory receiving generated modules."
    )
    generate_parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove generated modules of earlier runs that are no longer produced.",
    )
    _add_generation_arguments(generate_parser)

    inspect_parser = subparsers.add_parser("inspect")
    inspect_parser.add_argument("--input", required=True, help="Project root to scan.")
    inspect_parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Output format.",
    )
    _add_generation_arguments(inspect_parser)
    return parser


def _add_generation_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--on-ambiguity",
        choices=("first", "drop"),
        default="first",
        help="Policy for calls with several candidate declarations.",
    )
    parser.add_argument(
        "--marker", default=DEFAULT_MARKER_NAME, help="Name of the capture-marker generic."
    )
    parser.add_argument(
        "--marker-module",
        default=DEFAULT_MARKER_MODULE,
        help="Module exporting the capture marker.",
    )
    parser.add_argument(
        "--no-gitignore",
        action="store_true",
        help="Scan files matched by .gitignore patterns too.",
    )


def _generator_options(args: argparse.Namespace) -> GeneratorOptions:
    return GeneratorOptions(
        marker_name=args.marker,
        marker_module=args.marker_module,
        on_ambiguity=args.on_ambiguity,
        respect_gitignore=not args.no_gitignore,
    )


def run(argv: list[str], stdout: TextIO, stderr: TextIO) -> int:
    """Run CLI command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.

    Returns:
        Exit code.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        logger.warning(f"Argument parsing failed (argv={argv})")
        return 2
    if args.command == "generate":
        return _run_generate(args=args, stdout=stdout, stderr=stderr)
    if args.command == "inspect":
        return _run_inspect(args=args, stdout=stdout, stderr=stderr)

    logger.warning(f"Unsupported command (command={args.command})")
    stderr.write(f"Unsupported command: {args.command}\n")
    return 2


def _run_generate(args: argparse.Namespace, stdout: TextIO, stderr: TextIO) -> int:
    """Run generate command.

    Args:
        args: Parsed CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.

    Returns:
        Exit code.
    """
    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    _emit_marker(console=console, phase="validation", state="start")
    try:
        input_path = _validate_input(Path(args.input))
        output_path = _validate_output(Path(args.output))
    except ValidationError as exc:
        logger.warning(f"Validation failed (error={exc})")
        stderr.write(f"{exc}\n")
        return 2
    _emit_marker(console=console, phase="validation", state="done")

    _emit_marker(console=console, phase="generate", state="start")
    result = generate(input_path, _generator_options(args))
    _write_errors(errors=result.errors, stderr=stderr)
    _emit_marker(console=console, phase="generate", state="done")
    _emit_summary(
        console=console,
        summary={
            "declarations": len(result.declarations),
            "call_sites": len(result.call_sites),
            "overloads": len(result.artifacts_of("overload")),
            "interceptors": len(result.artifacts_of("interceptor")),
            "errors": len(result.errors),
        },
    )

    _emit_marker(console=console, phase="write", state="start")
    try:
        summary = write_artifacts(result.artifacts, output_path, clean=args.clean)
    except OSError as exc:
        logger.warning(f"Write failed (error={exc})")
        stderr.write(f"Write failed: {exc}\n")
        return 2
    _emit_marker(console=console, phase="write", state="done")
    _emit_summary(
        console=console,
        summary={
            "files_written": summary.files_written,
            "files_unchanged": summary.files_unchanged,
            "files_removed": summary.files_removed,
            "elapsed_ms": summary.elapsed_ms,
        },
    )
    console.print("status=success")
    return 0


def _run_inspect(args: argparse.Namespace, stdout: TextIO, stderr: TextIO) -> int:
    """Run inspect command.

    Args:
        args: Parsed CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.

    Returns:
        Exit code.
    """
    try:
        input_path = _validate_input(Path(args.input))
    except ValidationError as exc:
        logger.warning(f"Validation failed (error={exc})")
        stderr.write(f"{exc}\n")
        return 2
    result = generate(input_path, _generator_options(args))
    _write_errors(errors=result.errors, stderr=stderr)
    if args.format == "json":
        _write_json(result=result, stdout=stdout)
    else:
        _write_table(result=result, root_path=input_path, stdout=stdout)
    return 0


def _emit_marker(console: Console, phase: str, state: str) -> None:
    console.print(f"{phase}:{state}")


def _emit_summary(console: Console, summary: dict[str, int]) -> None:
    fields = " ".join(f"{key}={value}" for key, value in summary.items())
    console.print(fields)


def _validate_input(input_path: Path) -> Path:
    """Validate the project root argument.

    Args:
        input_path: Input path from user args.

    Returns:
        Normalized absolute input path.

    Raises:
        ValidationError: If the path is missing or not a directory.
    """
    input_abs = input_path.resolve()
    if not input_abs.exists():
        raise ValidationError(f"Input path does not exist: {input_abs}")
    if not input_abs.is_dir():
        raise ValidationError(f"Input path must be a directory: {input_abs}")
    return input_abs


def _validate_output(output_path: Path) -> Path:
    output_abs = output_path.resolve()
    if output_abs.exists() and not output_abs.is_dir():
        raise ValidationError(f"Output path must be a directory: {output_abs}")
    return output_abs


def _write_errors(errors: tuple[SourceError, ...], stderr: TextIO) -> None:
    for error in errors:
        stderr.write(f"source_error: {error.file_path}: {error.message}\n")


def _declaration_payload(declaration: CandidateDeclaration) -> dict[str, Any]:
    return {
        "qualified_name": declaration.qualified_name,
        "file_path": declaration.file_path,
        "line": declaration.line,
        "binding": declaration.binding,
        "visibility": declaration.visibility,
        "is_async": declaration.is_async,
        "return_annotation": declaration.return_annotation,
        "captured": [parameter.name for parameter in declaration.captured_parameters],
        "imports": list(declaration.imports),
    }


def _call_site_payload(call_site: CallSite) -> dict[str, Any]:
    return {
        "target": call_site.declaration.qualified_name,
        "file_path": call_site.file_path,
        "line": call_site.line,
        "column": call_site.column,
        "arguments": [argument.parameter_name for argument in call_site.arguments],
    }


def _write_json(result: GenerationResult, stdout: TextIO) -> None:
    """Write declarations, call sites and errors in JSON format.

    Args:
        result: Generation result.
        stdout: Standard output stream.
    """
    payload = {
        "declarations": [_declaration_payload(item) for item in result.declarations],
        "call_sites": [_call_site_payload(item) for item in result.call_sites],
        "artifacts": [artifact.file_name for artifact in result.artifacts],
        "errors": [
            {"file_path": error.file_path, "message": error.message}
            for error in result.errors
        ],
    }
    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    console.print(
        json.dumps(payload, indent=2, sort_keys=True),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _write_table(result: GenerationResult, root_path: Path, stdout: TextIO) -> None:
    """Write declarations and their call sites as a table.

    Args:
        result: Generation result.
        root_path: Scanned project root.
        stdout: Standard output stream.
    """
    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    console.rule(f"{root_path}", style=Style(color="cyan"), characters="-")
    table = Table(show_header=True, show_lines=True, expand=True)
    for column in ("kind", "target", "location", "binding", "captured"):
        table.add_column(column, ratio=TABLE_COLUMN_RATIOS[column], overflow="fold")
    for declaration in result.declarations:
        table.add_row(
            "declaration",
            declaration.qualified_name,
            f"{declaration.file_path}:{declaration.line}",
            declaration.binding,
            ", ".join(parameter.name for parameter in declaration.captured_parameters),
        )
    for call_site in result.call_sites:
        table.add_row(
            "call_site",
            call_site.declaration.qualified_name,
            f"{call_site.file_path}:{call_site.line}:{call_site.column}",
            call_site.declaration.binding,
            ", ".join(
                parameter.name
                for parameter in call_site.declaration.captured_parameters
            ),
        )
    console.print(table)


def main() -> None:
    """Run the CLI application and exit."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
