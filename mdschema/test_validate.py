#!/usr/bin/env python3
"""
Test suite for the command-line tool.

Tests file discovery, schema resolution, output formats and exit codes of
every command.
"""

import json

import pytest
import yaml

from mdschema.generator import DEFAULT_SCHEMA
from mdschema.schema import JSON_SCHEMA
from mdschema.validate import (
    EXIT_ERROR,
    EXIT_OK,
    EXIT_VIOLATIONS,
    discover_files,
    format_json,
    format_text,
    main,
)
from mdschema.violation import Violation


SCHEMA = "structure:\n  - heading: '# Title'\n    children: ['## Usage']\n"


@pytest.fixture
def project(tmp_path):
    """A directory with a schema, one valid and one invalid document."""
    (tmp_path / ".mdschema.yml").write_text(SCHEMA, encoding="utf-8")
    (tmp_path / "good.md").write_text("# Title\n\n## Usage\n", encoding="utf-8")
    (tmp_path / "bad.md").write_text("# Title\n", encoding="utf-8")
    return tmp_path


# ============================================================================
# File Discovery Tests
# ============================================================================

def test_discover_directory_recursively(tmp_path):
    (tmp_path / "docs" / "sub").mkdir(parents=True)
    (tmp_path / "docs" / "a.md").write_text("# A\n")
    (tmp_path / "docs" / "sub" / "b.mdx").write_text("# B\n")
    (tmp_path / "docs" / "notes.txt").write_text("text\n")

    files = discover_files([str(tmp_path / "docs")])

    assert [f.name for f in files] == ["a.md", "b.mdx"]


def test_discover_glob(tmp_path):
    (tmp_path / "docs" / "sub").mkdir(parents=True)
    (tmp_path / "docs" / "a.md").write_text("# A\n")
    (tmp_path / "docs" / "sub" / "c.md").write_text("# C\n")
    (tmp_path / "README.md").write_text("# R\n")

    files = discover_files([str(tmp_path / "docs" / "**" / "*.md")])

    assert sorted(f.name for f in files) == ["a.md", "c.md"]


def test_discover_deduplicates(tmp_path):
    doc = tmp_path / "README.md"
    doc.write_text("# R\n")

    files = discover_files([str(doc), str(tmp_path)])

    assert files == [doc]


def test_discover_ignores_other_extensions(tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("text\n")
    assert discover_files([str(notes)]) == []


def test_discover_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        discover_files([str(tmp_path / "missing.md")])


# ============================================================================
# Formatting Tests
# ============================================================================

def test_format_text_summary():
    violations = [
        Violation(rule="structure", message="Missing", line=1, column=3, path="a.md"),
        Violation(rule="link", message="Broken", line=4, column=1, path="a.md"),
    ]
    output = format_text(violations, 3)

    assert output.startswith("[ERROR] a.md:1:3: structure\n  Missing")
    assert output.endswith("Found 2 violation(s) in 1 file(s) (3 checked)")


def test_format_text_passed():
    assert format_text([], 2) == "Validation passed: 2 document(s)"


def test_format_json():
    violations = [Violation(rule="structure", message="Missing", line=1, column=3, path="a.md")]
    data = json.loads(format_json(violations, 1))

    assert data["files_checked"] == 1
    assert data["violation_count"] == 1
    assert data["violations"][0]["rule"] == "structure"
    assert data["violations"][0]["path"] == "a.md"


# ============================================================================
# check Command Tests
# ============================================================================

def test_check_passes(project, capsys):
    exit_code = main(["check", str(project / "good.md"), "--schema", str(project / ".mdschema.yml")])

    assert exit_code == EXIT_OK
    assert "Validation passed: 1 document(s)" in capsys.readouterr().out


def test_check_reports_violations(project, capsys):
    exit_code = main(["check", str(project), "-s", str(project / ".mdschema.yml")])
    out = capsys.readouterr().out

    assert exit_code == EXIT_VIOLATIONS
    assert f"[ERROR] {project / 'bad.md'}:1:3: structure" in out
    assert 'Required element "## Usage" not found within "Title"' in out
    assert "Found 1 violation(s) in 1 file(s) (2 checked)" in out


def test_check_json_output(project, capsys):
    exit_code = main(["check", str(project), "--format", "json", "--schema", str(project / ".mdschema.yml")])
    data = json.loads(capsys.readouterr().out)

    assert exit_code == EXIT_VIOLATIONS
    assert data["files_checked"] == 2
    assert data["violation_count"] == 1
    assert data["violations"][0]["path"] == str(project / "bad.md")
    assert data["violations"][0]["line"] == 1


def test_check_discovers_schema(project, capsys, monkeypatch):
    monkeypatch.chdir(project)
    exit_code = main(["check", "good.md"])

    assert exit_code == EXIT_OK


def test_warnings_still_fail(tmp_path, capsys):
    schema = tmp_path / "schema.yml"
    schema.write_text("structure:\n  - heading: '# Title'\n    severity: warning\n", encoding="utf-8")
    doc = tmp_path / "doc.md"
    doc.write_text("# Other\n", encoding="utf-8")

    exit_code = main(["check", str(doc), "--schema", str(schema)])

    assert exit_code == EXIT_VIOLATIONS
    assert "[WARNING]" in capsys.readouterr().out


def test_check_missing_schema_file(project, capsys):
    exit_code = main(["check", str(project / "good.md"), "--schema", str(project / "nope.yml")])

    assert exit_code == EXIT_ERROR
    assert "cannot read schema file" in capsys.readouterr().err


def test_check_invalid_schema(tmp_path, capsys):
    schema = tmp_path / "schema.yml"
    schema.write_text("structure: oops\n", encoding="utf-8")
    doc = tmp_path / "doc.md"
    doc.write_text("# T\n", encoding="utf-8")

    exit_code = main(["check", str(doc), "--schema", str(schema)])
    err = capsys.readouterr().err

    assert exit_code == EXIT_ERROR
    assert "invalid schema" in err
    assert "structure: 'oops' is not of type 'array'" in err


def test_check_missing_document(project, capsys):
    exit_code = main(["check", str(project / "missing.md"), "--schema", str(project / ".mdschema.yml")])

    assert exit_code == EXIT_ERROR
    assert "No such file or directory" in capsys.readouterr().err


def test_check_no_markdown_files(project, capsys):
    empty = project / "empty"
    empty.mkdir()
    exit_code = main(["check", str(empty), "--schema", str(project / ".mdschema.yml")])

    assert exit_code == EXIT_ERROR
    assert "no markdown files matched" in capsys.readouterr().err


def test_check_verbose(project, capsys):
    exit_code = main(["-v", "check", str(project / "good.md"), "--schema", str(project / ".mdschema.yml")])
    assert exit_code == EXIT_OK


# ============================================================================
# lint-schema Command Tests
# ============================================================================

def test_lint_schema_valid(project, capsys):
    exit_code = main(["lint-schema", str(project / ".mdschema.yml")])

    assert exit_code == EXIT_OK
    assert "Schema is valid:" in capsys.readouterr().out


def test_lint_schema_discovered(project, capsys, monkeypatch):
    monkeypatch.chdir(project)
    exit_code = main(["lint-schema"])

    assert exit_code == EXIT_OK
    assert "(1 top-level element(s))" in capsys.readouterr().out


def test_lint_schema_invalid(tmp_path, capsys):
    schema = tmp_path / "schema.yml"
    schema.write_text("structure:\n  - heading: {expr: 'nope('}\n", encoding="utf-8")

    exit_code = main(["lint-schema", str(schema)])

    assert exit_code == EXIT_ERROR
    assert "Error:" in capsys.readouterr().err


# ============================================================================
# init Command Tests
# ============================================================================

def test_init_creates_schema(tmp_path, capsys):
    exit_code = main(["init", str(tmp_path)])

    assert exit_code == EXIT_OK
    assert (tmp_path / ".mdschema.yml").read_text(encoding="utf-8") == DEFAULT_SCHEMA
    assert "with default configuration" in capsys.readouterr().out


def test_init_keeps_existing_schema(project, capsys):
    exit_code = main(["init", str(project)])

    assert exit_code == EXIT_OK
    assert (project / ".mdschema.yml").read_text(encoding="utf-8") == SCHEMA
    assert "Schema file already exists" in capsys.readouterr().out


def test_init_defaults_to_current_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["init"]) == EXIT_OK
    assert main(["lint-schema"]) == EXIT_OK


# ============================================================================
# generate Command Tests
# ============================================================================

def test_generate_to_stdout(project, capsys):
    exit_code = main(["generate", str(project / ".mdschema.yml")])
    out = capsys.readouterr().out

    assert exit_code == EXIT_OK
    assert out.startswith("<!-- Generated from schema -->\n")
    assert "\n# Title\n" in out
    assert "\n## Usage\n" in out


def test_generate_to_file_passes_check(project, capsys):
    output = project / "out" / "TEMPLATE.md"
    exit_code = main(["generate", str(project / ".mdschema.yml"), "-o", str(output)])

    assert exit_code == EXIT_OK
    assert f"Generated markdown template at {output}" in capsys.readouterr().out
    assert main(["check", str(output), "--schema", str(project / ".mdschema.yml")]) == EXIT_OK


def test_generate_invalid_schema(tmp_path, capsys):
    schema = tmp_path / "schema.yml"
    schema.write_text("structure: oops\n", encoding="utf-8")

    assert main(["generate", str(schema)]) == EXIT_ERROR
    assert "invalid schema" in capsys.readouterr().err


# ============================================================================
# derive Command Tests
# ============================================================================

def test_derive_to_stdout(project, capsys):
    exit_code = main(["derive", str(project / "good.md")])
    out = capsys.readouterr().out

    assert exit_code == EXIT_OK
    assert yaml.safe_load(out) == {
        'structure': [{'heading': '# Title', 'children': [{'heading': '## Usage'}]}],
    }


def test_derive_to_file_round_trips(project, capsys):
    output = project / "derived.yml"
    exit_code = main(["derive", str(project / "good.md"), "--output", str(output)])

    assert exit_code == EXIT_OK
    assert f"Derived schema written to {output}" in capsys.readouterr().out
    assert main(["check", str(project / "good.md"), "--schema", str(output)]) == EXIT_OK


def test_derive_document_without_headings(tmp_path, capsys):
    doc = tmp_path / "notes.md"
    doc.write_text("Just text.\n", encoding="utf-8")

    assert main(["derive", str(doc)]) == EXIT_ERROR
    assert "no headings to infer structure" in capsys.readouterr().err


def test_derive_missing_document(tmp_path, capsys):
    assert main(["derive", str(tmp_path / "missing.md")]) == EXIT_ERROR
    assert "cannot read" in capsys.readouterr().err


# ============================================================================
# schema Command Tests
# ============================================================================

def test_schema_to_stdout(capsys):
    exit_code = main(["schema"])

    assert exit_code == EXIT_OK
    assert json.loads(capsys.readouterr().out) == JSON_SCHEMA


def test_schema_to_file(tmp_path, capsys):
    output = tmp_path / "editor" / "schema.json"
    exit_code = main(["schema", "-o", str(output)])

    assert exit_code == EXIT_OK
    assert json.loads(output.read_text(encoding="utf-8")) == JSON_SCHEMA
    assert f"JSON Schema written to {output}" in capsys.readouterr().out


# ============================================================================
# Argument Tests
# ============================================================================

def test_command_required():
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2


def test_check_requires_paths():
    with pytest.raises(SystemExit):
        main(["check"])
