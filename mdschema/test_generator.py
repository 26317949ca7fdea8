#!/usr/bin/env python3
"""
Test suite for schema scaffolding.

Tests the default schema written by init and the markdown templates
generated from schemas.
"""

import pytest

from mdschema.generator import (
    DEFAULT_SCHEMA,
    PLACEHOLDER_TEXT,
    TEMPLATE_HEADER,
    generate_template,
    write_default_schema,
)
from mdschema.markdown_parser import parse_document
from mdschema.rule_evaluator import RuleEvaluator
from mdschema.schema import load_schema, parse_schema


# ============================================================================
# Default Schema Tests
# ============================================================================

def test_default_schema_is_valid():
    schema = parse_schema(DEFAULT_SCHEMA)

    assert len(schema.structure) == 2
    project, license_ = schema.structure
    assert project.heading.pattern == "# [a-zA-Z0-9_\\- ]+"
    assert [c.heading.text for c in project.children] == ["## Features", "## Installation", "## Usage"]
    assert not license_.is_required


def test_write_default_schema(tmp_path):
    path = write_default_schema(tmp_path / ".mdschema.yml")

    assert path.read_text(encoding="utf-8") == DEFAULT_SCHEMA
    assert len(load_schema(path).structure) == 2


def test_write_default_schema_keeps_existing_file(tmp_path):
    path = tmp_path / ".mdschema.yml"
    path.write_text("structure: []\n", encoding="utf-8")

    with pytest.raises(FileExistsError):
        write_default_schema(path)
    assert path.read_text(encoding="utf-8") == "structure: []\n"


# ============================================================================
# Template Tests
# ============================================================================

def test_template_headings_follow_schema():
    schema = parse_schema("""
structure:
  - heading: "# Title"
    children:
      - "## Installation"
      - heading: "## FAQ"
        optional: true
""")
    template = generate_template(schema)
    headings = [line for line in template.splitlines() if line.startswith("#")]

    assert template.startswith(TEMPLATE_HEADER + "\n")
    assert headings == ["# Title", "## Installation", "## FAQ"]
    assert "<!-- 1. ## Installation (required) -->" in template
    assert "<!-- 2. ## FAQ (optional) -->" in template
    assert "<!-- Optional section -->" in template


def test_template_placeholder_for_plain_section():
    template = generate_template(parse_schema("structure: ['# Title']"))
    assert template == f"{TEMPLATE_HEADER}\n\n# Title\n\n{PLACEHOLDER_TEXT}\n"


def test_empty_schema_template():
    assert generate_template(parse_schema("")) == f"{TEMPLATE_HEADER}\n"


def test_template_regex_heading():
    schema = parse_schema("structure:\n  - heading: {pattern: '^## Step [0-9]+$'}\n    count: {min: 1, max: 3}\n")
    lines = generate_template(schema).splitlines()

    assert "## Step [0-9]+" in lines
    assert "<!-- Heading must match: ^## Step [0-9]+$ -->" in lines
    assert "<!-- Occurrences: 1 to 3 -->" in lines


def test_template_regex_heading_without_level_uses_depth():
    schema = parse_schema("""
structure:
  - heading: "# Title"
    children:
      - heading: {pattern: "(Usage|Examples)"}
""")
    assert "## (Usage|Examples)" in generate_template(schema).splitlines()


def test_template_expression_heading():
    schema = parse_schema("structure:\n  - heading: {expr: 'slug(filename) == slug(heading)'}\n")
    lines = generate_template(schema).splitlines()

    assert "# TODO: Add heading" in lines
    assert "<!-- Heading must satisfy: slug(filename) == slug(heading) -->" in lines


def test_template_text_requirements():
    schema = parse_schema("""
structure:
  - heading: "# Title"
    required_text: ["license", {pattern: "v[0-9]+"}]
    forbidden_text: ["lorem ipsum"]
""")
    template = generate_template(schema)

    assert "<!-- - license -->" in template
    assert "<!-- - v[0-9]+ (regex) -->" in template
    assert "<!-- WARNING: This section must NOT contain the following: -->" in template
    assert "<!-- - lorem ipsum -->" in template
    assert PLACEHOLDER_TEXT not in template


def test_template_table_headers():
    schema = parse_schema("""
structure:
  - heading: "# Title"
    tables:
      - {min: 1, min_columns: 3, required_headers: [Name]}
""")
    lines = generate_template(schema).splitlines()

    assert "| Name | Column 2 | Column 3 |" in lines
    assert "|---|---|---|" in lines


def test_template_frontmatter():
    schema = parse_schema("""
frontmatter:
  fields:
    - {name: title, type: string}
    - {name: date, type: date}
    - {name: status, enum: [draft, final], optional: true}
    - {name: author, format: email, optional: true}
""")
    template = generate_template(schema)

    assert template.startswith(
        '---\n'
        'title: "TODO"  # required\n'
        'date: 2024-01-01  # required\n'
        'status: draft\n'
        'author: user@example.com\n'
        '---\n'
    )


def test_template_satisfies_its_schema():
    """A generated template passes validation against the schema it came from."""
    schema = parse_schema("""
structure:
  - heading: "# Project"
    children:
      - heading: "## Installation"
        code_blocks:
          - {lang: bash, min: 1}
      - heading: "## Usage"
        required_text: ["example"]
        lists:
          - {type: ordered, min: 1, min_items: 2}
      - heading: "## Reference"
        tables:
          - {min: 1, required_headers: [Option, Default]}
        images:
          - {min: 1, require_alt: true, formats: [svg]}
frontmatter:
  fields:
    - {name: title, type: string}
    - {name: date, type: date}
""")
    document = parse_document(generate_template(schema), path="README.md")

    assert RuleEvaluator(schema).evaluate(document) == []
