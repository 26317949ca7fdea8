#!/usr/bin/env python3
"""
Schema Scaffolding

Produces starting points for schema authors and document writers:

- DEFAULT_SCHEMA / write_default_schema: a commented ``.mdschema.yml``
  describing a typical project README
- generate_template: a markdown skeleton with one heading per schema
  element, placeholder content for each content rule and HTML comments
  stating what the section must contain

Example:
    >>> from mdschema.schema import parse_schema
    >>> schema = parse_schema("structure:\\n  - heading: '# Title'\\n    children: ['## Usage']\\n")
    >>> print(generate_template(schema))
    <!-- Generated from schema -->
    <BLANKLINE>
    # Title
    <BLANKLINE>
    <!-- This section should contain the following subsections in order: -->
    <!-- 1. ## Usage (required) -->
    <BLANKLINE>
    ## Usage
    <BLANKLINE>
    TODO: Add content for this section.
    <BLANKLINE>
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from mdschema.schema import (
    ExprHeading,
    FrontmatterConfig,
    FrontmatterField,
    HeadingSpec,
    LiteralHeading,
    Schema,
    SchemaElement,
    TextPattern,
)

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = """\
# Markdown schema configuration
# Validate documents with: mdschema check <files>

structure:
  - heading: {pattern: '# [a-zA-Z0-9_\\- ]+'}
    children:
      - heading: "## Features"
        optional: true
      - heading: "## Installation"
        children:
          - heading: "### Windows"
            optional: true
          - heading: "### macOS"
            optional: true
        code_blocks:
          - {lang: bash, min: 1}
      - heading: "## Usage"
        code_blocks:
          - {lang: python, min: 1}
  - heading: "# LICENSE"
    optional: true
"""

TEMPLATE_HEADER = "<!-- Generated from schema -->"
PLACEHOLDER_TEXT = "TODO: Add content for this section."

_LEADING_HASHES_RE = re.compile(r'^(#{1,6})\s+')


def write_default_schema(path: Union[str, Path]) -> Path:
    """
    Write DEFAULT_SCHEMA to ``path``.

    Raises:
        FileExistsError: If the file already exists
    """
    path = Path(path)
    if path.exists():
        raise FileExistsError(f"Schema file already exists at {path}")
    path.write_text(DEFAULT_SCHEMA, encoding='utf-8')
    logger.debug("Wrote default schema to %s", path)
    return path


def _comment(text: str) -> str:
    return f"<!-- {text} -->"


def _heading_line(spec: HeadingSpec, depth: int) -> List[str]:
    """
    Heading line for a spec, plus a comment for non-literal specs.

    Literal headings are written as-is. Regex headings keep their own level
    markers when the pattern starts with them; otherwise the nesting depth
    decides the level.
    """
    if isinstance(spec, LiteralHeading):
        return [spec.text]
    if isinstance(spec, ExprHeading):
        return ["#" * depth + " TODO: Add heading", _comment(f"Heading must satisfy: {spec.source}")]

    pattern = spec.pattern.lstrip('^').rstrip('$')
    match = _LEADING_HASHES_RE.match(pattern)
    if match:
        line = match.group(1) + " " + pattern[match.end():]
    else:
        line = "#" * depth + " " + pattern
    return [line, _comment(f"Heading must match: {spec.pattern}")]


def _frontmatter_placeholder(spec: FrontmatterField) -> str:
    if spec.enum:
        return str(spec.enum[0])
    if spec.format == 'date' or spec.type == 'date':
        return "2024-01-01"
    if spec.format == 'email':
        return "user@example.com"
    if spec.format == 'url':
        return "https://example.com"
    placeholders = {
        'number': "0",
        'boolean': "false",
        'array': '["item1", "item2"]',
    }
    return placeholders.get(spec.type, '"TODO"')


def _text_requirements(title: str, patterns: List[TextPattern]) -> List[str]:
    lines = [_comment(title)]
    for pattern in patterns:
        suffix = " (regex)" if pattern.is_regex else ""
        lines.append(_comment(f"- {pattern.display}{suffix}"))
    lines.append("")
    return lines


class TemplateGenerator:
    """Builds a markdown template from a schema."""

    def generate(self, schema: Schema) -> str:
        # front matter is only recognized at the very start of a document
        lines = self._frontmatter(schema.frontmatter)
        lines.extend([TEMPLATE_HEADER, ""])
        for element in schema.structure:
            self._element(lines, element, 1)
        return "\n".join(lines)

    def _frontmatter(self, config: Optional[FrontmatterConfig]) -> List[str]:
        if config is None or not config.fields:
            return []
        lines = ["---"]
        for spec in config.fields:
            line = f"{spec.name}: {_frontmatter_placeholder(spec)}"
            if not spec.optional:
                line += "  # required"
            lines.append(line)
        lines.extend(["---", ""])
        return lines

    def _element(self, lines: List[str], element: SchemaElement, depth: int) -> None:
        lines.extend(_heading_line(element.heading, depth))
        lines.append("")

        notes = []
        if element.description:
            notes.append(_comment(element.description))
        if not element.is_required:
            notes.append(_comment("Optional section"))
        if element.count is not None:
            maximum = element.count.max or "unlimited"
            notes.append(_comment(f"Occurrences: {element.count.min} to {maximum}"))
        if notes:
            lines.extend(notes)
            lines.append("")

        content = self._content(element)
        lines.extend(content or [PLACEHOLDER_TEXT, ""])

        for child in element.children:
            self._element(lines, child, depth + 1)

    def _content(self, element: SchemaElement) -> List[str]:
        rules = element.rules
        lines: List[str] = []

        if element.children:
            lines.append(_comment("This section should contain the following subsections in order:"))
            for i, child in enumerate(element.children, 1):
                status = "required" if child.is_required else "optional"
                lines.append(_comment(f"{i}. {child.heading.display} ({status})"))
            lines.append("")

        if rules.required_text:
            lines.extend(_text_requirements(
                "This section must contain the following text:", rules.required_text))
        if rules.forbidden_text:
            lines.extend(_text_requirements(
                "WARNING: This section must NOT contain the following:", rules.forbidden_text))

        lines.extend(self._code_blocks(element))
        lines.extend(self._images(element))
        lines.extend(self._tables(element))
        lines.extend(self._lists(element))

        word_count = rules.word_count
        if word_count is not None:
            lines.append(_comment("Word count requirements:"))
            if word_count.min:
                lines.append(_comment(f"Minimum {word_count.min} words required"))
            if word_count.max:
                lines.append(_comment(f"Maximum {word_count.max} words allowed"))
            lines.append("")

        return lines

    def _code_blocks(self, element: SchemaElement) -> List[str]:
        requirements = element.rules.code_blocks
        if not requirements:
            return []

        lines = [_comment("Code block requirements:")]
        for rule in requirements:
            kind = f"{rule.lang} code blocks" if rule.lang else "code blocks"
            if rule.min:
                lines.append(_comment(f"Minimum {rule.min} {kind} required"))
            if rule.max:
                lines.append(_comment(f"Maximum {rule.max} {kind} allowed"))
        lines.append("")

        for rule in requirements:
            for _ in range(rule.min):
                lines.extend([f"```{rule.lang or 'text'}", "TODO: Add your code here", "```", ""])
        return lines

    def _images(self, element: SchemaElement) -> List[str]:
        requirements = element.rules.images
        if not requirements:
            return []

        lines = [_comment("Image requirements:")]
        for rule in requirements:
            if rule.min:
                lines.append(_comment(f"Minimum {rule.min} images required"))
            if rule.max:
                lines.append(_comment(f"Maximum {rule.max} images allowed"))
            if rule.require_alt:
                lines.append(_comment("All images must have alt text"))
            if rule.formats:
                lines.append(_comment(f"Allowed formats: {', '.join(rule.formats)}"))
        lines.append("")

        for rule in requirements:
            extension = rule.formats[0] if rule.formats else "png"
            for _ in range(rule.min):
                lines.extend([f"![TODO: Add alt text](path/to/image.{extension})", ""])
        return lines

    def _tables(self, element: SchemaElement) -> List[str]:
        requirements = element.rules.tables
        if not requirements:
            return []

        lines = [_comment("Table requirements:")]
        for rule in requirements:
            if rule.min:
                lines.append(_comment(f"Minimum {rule.min} tables required"))
            if rule.max:
                lines.append(_comment(f"Maximum {rule.max} tables allowed"))
            if rule.min_columns:
                lines.append(_comment(f"Minimum {rule.min_columns} columns required"))
            if rule.required_headers:
                lines.append(_comment(f"Required headers: {', '.join(rule.required_headers)}"))
        lines.append("")

        for rule in requirements:
            headers = list(rule.required_headers)
            columns = max(rule.min_columns, len(headers) or 2)
            headers += [f"Column {i}" for i in range(len(headers) + 1, columns + 1)]
            for _ in range(rule.min):
                lines.append("| " + " | ".join(headers) + " |")
                lines.append("|" + "---|" * len(headers))
                lines.append("| " + " | ".join("TODO" for _ in headers) + " |")
                lines.append("")
        return lines

    def _lists(self, element: SchemaElement) -> List[str]:
        requirements = element.rules.lists
        if not requirements:
            return []

        lines = [_comment("List requirements:")]
        for rule in requirements:
            kind = f"{rule.type} lists" if rule.type else "lists"
            if rule.min:
                lines.append(_comment(f"Minimum {rule.min} {kind} required"))
            if rule.max:
                lines.append(_comment(f"Maximum {rule.max} {kind} allowed"))
            if rule.min_items:
                lines.append(_comment(f"Minimum {rule.min_items} items per list"))
        lines.append("")

        for rule in requirements:
            items = rule.min_items or 3
            for _ in range(rule.min):
                for i in range(1, items + 1):
                    marker = f"{i}." if rule.type == 'ordered' else "-"
                    lines.append(f"{marker} TODO: Add list item")
                lines.append("")
        return lines


def generate_template(schema: Schema) -> str:
    """
    Generate a markdown template for a schema.

    Args:
        schema: Loaded schema

    Returns:
        Markdown text ending in a newline
    """
    return TemplateGenerator().generate(schema)
