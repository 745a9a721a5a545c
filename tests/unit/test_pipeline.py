# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for the generation pipeline."""

from pathlib import Path

import pytest

from exprcapture.extractor import ExtractionError, SourceExtractor
from exprcapture.model import SourceError
from exprcapture.naming import disambiguated_file_name
from exprcapture.pipeline import GeneratorOptions, generate, write_artifacts

LIB_MODULE = "\n".join(
    [
        "from exprcapture import Capture",
        "",
        "",
        "def go(fn: Capture[int]) -> int:",
        "    return 0",
        "",
    ]
)


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_ph8_pipe_001_generates_overloads_and_interceptors(calc_project: Path) -> None:
    result = generate(calc_project)

    assert len(result.declarations) == 4
    assert len(result.call_sites) == 8
    assert len(result.artifacts_of("overload")) == 4
    assert len(result.artifacts_of("interceptor")) == 8
    assert result.errors == ()
    names = [artifact.file_name for artifact in result.artifacts]
    assert names == sorted(names)
    assert "Intercepted_apply_app_py_5_12.g.py" in names
    assert "Intercepted_apply_app_py_6_12.g.py" in names
    assert "pkg_calc_run_Overload.g.py" in names


def test_ph8_pipe_002_generation_is_deterministic(calc_project: Path) -> None:
    first = generate(calc_project)
    second = generate(calc_project)

    assert first.artifacts == second.artifacts


def test_ph8_pipe_003_project_without_captures_yields_nothing(tmp_path: Path) -> None:
    _write_file(tmp_path / "main.py", "def go(fn):\n    return fn\n\ngo(lambda: 1)\n")

    result = generate(tmp_path)

    assert result.artifacts == ()
    assert result.declarations == ()
    assert result.call_sites == ()


def test_ph8_pipe_004_write_skips_unchanged_and_cleans_stale(
    calc_project: Path, tmp_path: Path
) -> None:
    output = tmp_path / "generated"
    artifacts = generate(calc_project).artifacts

    first = write_artifacts(artifacts, output)
    second = write_artifacts(artifacts, output)
    _write_file(output / "Old_Overload.g.py", "# stale\n")
    _write_file(output / "notes.txt", "keep\n")
    third = write_artifacts(artifacts, output, clean=True)

    assert (first.files_written, first.files_unchanged) == (12, 0)
    assert (second.files_written, second.files_unchanged) == (0, 12)
    assert third.files_removed == 1
    assert not (output / "Old_Overload.g.py").exists()
    assert (output / "notes.txt").exists()
    assert not list(output.glob("*.tmp"))
    written = (output / "pkg_calc_run_Overload.g.py").read_text(encoding="utf-8")
    assert written.startswith("# <auto-generated/>\n")


def test_ph8_pipe_005_failing_call_site_does_not_stop_others(
    calc_project: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = SourceExtractor.extract

    def flaky(self, call_site):
        if call_site.key == ("app.py", 5, 12):
            raise ExtractionError("boom")
        return original(self, call_site)

    monkeypatch.setattr(SourceExtractor, "extract", flaky)

    result = generate(calc_project)

    assert result.errors == (SourceError(file_path="app.py", message="5:12: boom"),)
    assert len(result.artifacts_of("interceptor")) == 7


def test_ph8_pipe_006_clashing_interceptor_names_are_disambiguated(tmp_path: Path) -> None:
    _write_file(tmp_path / "lib.py", LIB_MODULE)
    _write_file(tmp_path / "a_b.py", "from lib import go\ngo(lambda: 1)\n")
    _write_file(tmp_path / "a" / "b.py", "from lib import go\ngo(lambda: 2)\n")

    result = generate(tmp_path)

    clashing = "Intercepted_go_a_b_py_2_1.g.py"
    assert result.errors == ()
    assert sorted(artifact.file_name for artifact in result.artifacts_of("interceptor")) == sorted(
        [
            disambiguated_file_name(clashing, "a/b.py:2:1"),
            disambiguated_file_name(clashing, "a_b.py:2:1"),
        ]
    )
    assert disambiguated_file_name(clashing, "a/b.py:2:1") == (
        "Intercepted_go_a_b_py_2_1_f4bc1066.g.py"
    )


def test_ph8_pipe_007_gitignore_is_respected_unless_disabled(calc_project: Path) -> None:
    _write_file(calc_project / ".gitignore", "app.py\n")

    ignored = generate(calc_project)
    included = generate(calc_project, GeneratorOptions(respect_gitignore=False))

    assert [call_site.key for call_site in ignored.call_sites] == [("pkg/calc.py", 19, 21)]
    assert len(included.call_sites) == 8


def test_ph8_pipe_008_custom_marker_and_module(tmp_path: Path) -> None:
    _write_file(
        tmp_path / "ops.py",
        "\n".join(
            [
                "import json",
                "from mylib import Quoted",
                "",
                "def go(fn: Quoted[int]) -> int:",
                "    return 0",
                "",
                "go(lambda: 1)",
                "",
            ]
        ),
    )

    default = generate(tmp_path)
    custom = generate(tmp_path, GeneratorOptions(marker_name="Quoted", marker_module="mylib"))

    assert default.declarations == ()
    assert [declaration.qualified_name for declaration in custom.declarations] == ["ops.go"]
    assert custom.declarations[0].imports == ("import json",)
    assert len(custom.artifacts_of("interceptor")) == 1


def test_ph8_pipe_009_unparsable_files_are_reported(calc_project: Path) -> None:
    _write_file(calc_project / "broken.py", "def (:\n")

    result = generate(calc_project)

    assert [error.file_path for error in result.errors] == ["broken.py"]
    assert len(result.call_sites) == 8


def test_ph8_pipe_010_clashing_overload_names_keep_both_declarations(tmp_path: Path) -> None:
    _write_file(tmp_path / "a_b.py", LIB_MODULE)
    _write_file(tmp_path / "a" / "b.py", LIB_MODULE)
    _write_file(tmp_path / "lib.py", "from a_b import go\ngo(lambda: 1)\n")

    result = generate(tmp_path)

    assert [declaration.qualified_name for declaration in result.declarations] == [
        "a.b.go",
        "a_b.go",
    ]
    assert sorted(artifact.file_name for artifact in result.artifacts_of("overload")) == sorted(
        [
            disambiguated_file_name("a_b_go_Overload.g.py", "a.b.go"),
            disambiguated_file_name("a_b_go_Overload.g.py", "a_b.go"),
        ]
    )
    assert [artifact.file_name for artifact in result.artifacts_of("interceptor")] == [
        "Intercepted_go_lib_py_2_1.g.py"
    ]
