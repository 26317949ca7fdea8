#!/usr/bin/env python3
"""
Section Content Rules

Validators for the content rules attached to schema elements. Each rule looks
only at bound nodes of the VAST, reads the bound section's own content and
elements, and reports with error severity.

Rules:
- required-text: literal substring or regex must appear in the section
- forbidden-text: literal substring or regex must not appear in the section
- codeblock: fenced code block count, optionally per language
- image: image count (optionally filtered by file format) and alt text
- table: table count, column count and required headers
- list: list count by type and items per list
- word-count: whitespace separated word count of the section's own text

Example:
    >>> from mdschema.markdown_parser import parse_document
    >>> from mdschema.schema import parse_schema
    >>> from mdschema.vast import Context
    >>> doc = parse_document("# Title\\n\\nNo code here.\\n")
    >>> schema = parse_schema("structure:\\n  - heading: '# Title'\\n    code_blocks: [{min: 1}]\\n")
    >>> [v.message for v in CodeBlockRule().validate(Context(doc, schema))]
    ["Section 'Title' requires at least 1 code blocks, found 0"]
"""

import logging
import os
import re

from mdschema.schema import CodeBlockRule as CodeBlockRequirement
from mdschema.schema import ImageRule as ImageRequirement
from mdschema.schema import ListRule as ListRequirement
from mdschema.schema import TableRule as TableRequirement
from mdschema.schema import TextPattern
from mdschema.vast import Context, Node, Rule

logger = logging.getLogger(__name__)


def content_contains(content: str, pattern: TextPattern) -> bool:
    """
    Check whether section content contains a text pattern.

    Regex patterns that fail to compile are searched for as plain substrings.

    Example:
        >>> content_contains("Run make install", TextPattern(literal="make"))
        True
        >>> content_contains("Version 1.2", TextPattern(pattern=r"\\d+\\.\\d+"))
        True
    """
    if pattern.is_regex:
        try:
            return re.search(pattern.pattern, content) is not None
        except re.error:
            logger.warning("Invalid text regex %r; searching for it literally", pattern.pattern)
            return pattern.pattern in content
    return pattern.literal in content


def count_words(content: str) -> int:
    """Count whitespace separated tokens."""
    return len(content.split())


class RequiredTextRule(Rule):
    """Text that must appear in a section."""

    name = "required-text"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            for pattern in node.element.rules.required_text:
                if not content_contains(node.content, pattern):
                    line, col = node.location()
                    self.report(
                        f"Required text '{pattern.display}' not found in section '{node.heading_text()}'",
                        line, col,
                    )


class ForbiddenTextRule(Rule):
    """Text that must not appear in a section."""

    name = "forbidden-text"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            for pattern in node.element.rules.forbidden_text:
                if content_contains(node.content, pattern):
                    line, col = node.location()
                    self.report(
                        f"Forbidden text '{pattern.display}' found in section '{node.heading_text()}'",
                        line, col,
                    )


class CodeBlockRule(Rule):
    """Fenced code block count, optionally restricted to one language."""

    name = "codeblock"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            for requirement in node.element.rules.code_blocks:
                self._check_requirement(node, requirement)

    def _check_requirement(self, node: Node, requirement: CodeBlockRequirement) -> None:
        count = sum(
            1 for block in node.code_blocks
            if not requirement.lang or block.lang == requirement.lang
        )
        kind = f"'{requirement.lang}' code blocks" if requirement.lang else "code blocks"
        line, col = node.location()

        if requirement.min > 0 and count < requirement.min:
            self.report(
                f"Section '{node.heading_text()}' requires at least {requirement.min} {kind}, found {count}",
                line, col,
            )
        if requirement.max > 0 and count > requirement.max:
            self.report(
                f"Section '{node.heading_text()}' has too many {kind} (max {requirement.max}, found {count})",
                line, col,
            )


class ImageRule(Rule):
    """Image count, format filter and alt text."""

    name = "image"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            for requirement in node.element.rules.images:
                self._check_requirement(node, requirement)

    @staticmethod
    def _has_format(url: str, formats) -> bool:
        ext = os.path.splitext(url.split('?', 1)[0].split('#', 1)[0])[1].lstrip('.').lower()
        return any(ext == fmt.lower() for fmt in formats)

    def _check_requirement(self, node: Node, requirement: ImageRequirement) -> None:
        images = node.images
        if requirement.formats:
            count = sum(1 for img in images if self._has_format(img.url, requirement.formats))
        else:
            count = len(images)
        line, col = node.location()

        if requirement.min > 0 and count < requirement.min:
            kind = f"images ({', '.join(requirement.formats)})" if requirement.formats else "images"
            self.report(
                f"Section '{node.heading_text()}' requires at least {requirement.min} {kind}, found {count}",
                line, col,
            )
        if requirement.max > 0 and count > requirement.max:
            self.report(
                f"Section '{node.heading_text()}' has too many images (max {requirement.max}, found {count})",
                line, col,
            )
        if requirement.require_alt:
            for img in images:
                if not img.alt.strip():
                    self.report(
                        f"Image in section '{node.heading_text()}' is missing alt text",
                        img.line, img.column,
                    )


class TableRule(Rule):
    """Table count, minimum columns and required headers."""

    name = "table"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            for requirement in node.element.rules.tables:
                self._check_requirement(node, requirement)

    def _check_requirement(self, node: Node, requirement: TableRequirement) -> None:
        tables = node.tables
        count = len(tables)
        line, col = node.location()

        if requirement.min > 0 and count < requirement.min:
            self.report(
                f"Section '{node.heading_text()}' requires at least {requirement.min} tables, found {count}",
                line, col,
            )
        if requirement.max > 0 and count > requirement.max:
            self.report(
                f"Section '{node.heading_text()}' has too many tables (max {requirement.max}, found {count})",
                line, col,
            )

        for table in tables:
            if requirement.min_columns > 0 and len(table.headers) < requirement.min_columns:
                self.report(
                    f"Table in section '{node.heading_text()}' has too few columns "
                    f"(minimum {requirement.min_columns}, found {len(table.headers)})",
                    table.line, table.column,
                )
            present = {h.strip().lower() for h in table.headers}
            for required in requirement.required_headers:
                if required.strip().lower() not in present:
                    self.report(
                        f"Table in section '{node.heading_text()}' is missing required header '{required}'",
                        table.line, table.column,
                    )


class ListRule(Rule):
    """List count by type and minimum items per list."""

    name = "list"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            for requirement in node.element.rules.lists:
                self._check_requirement(node, requirement)

    @staticmethod
    def _matches_type(is_ordered: bool, list_type: str) -> bool:
        if list_type == "ordered":
            return is_ordered
        if list_type == "unordered":
            return not is_ordered
        return True

    def _check_requirement(self, node: Node, requirement: ListRequirement) -> None:
        matching = [lst for lst in node.lists if self._matches_type(lst.is_ordered, requirement.type)]
        count = len(matching)
        kind = f"{requirement.type} lists" if requirement.type else "lists"
        line, col = node.location()

        if requirement.min > 0 and count < requirement.min:
            self.report(
                f"Section '{node.heading_text()}' requires at least {requirement.min} {kind}, found {count}",
                line, col,
            )
        if requirement.max > 0 and count > requirement.max:
            self.report(
                f"Section '{node.heading_text()}' has too many {kind} (max {requirement.max}, found {count})",
                line, col,
            )
        if requirement.min_items > 0:
            for lst in matching:
                if lst.item_count < requirement.min_items:
                    self.report(
                        f"List in section '{node.heading_text()}' has too few items "
                        f"(minimum {requirement.min_items}, found {lst.item_count})",
                        lst.line, lst.column,
                    )


class WordCountRule(Rule):
    """Word count bounds for a section's own text."""

    name = "word-count"

    def check(self, ctx: Context) -> None:
        for node in ctx.tree.bound_nodes():
            rule = node.element.rules.word_count
            if rule is None:
                continue
            words = count_words(node.content)
            line, col = node.location()
            if rule.min > 0 and words < rule.min:
                self.report(
                    f"Section '{node.heading_text()}' has too few words (minimum {rule.min}, found {words})",
                    line, col,
                )
            if rule.max > 0 and words > rule.max:
                self.report(
                    f"Section '{node.heading_text()}' has too many words (maximum {rule.max}, found {words})",
                    line, col,
                )
