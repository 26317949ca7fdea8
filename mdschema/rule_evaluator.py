#!/usr/bin/env python3
"""
Rule Evaluator - Runs every validation rule for one document.

This module ties the pieces together: it parses nothing itself, but given a
parsed document and a loaded schema it builds the validation context (VAST and
slug index) once and runs each rule against it.

Key Features:
- One Context per (document, schema) pair, shared by all rules
- Rules run in a fixed order: structure, section content rules, then
  document-level rules
- Violations carry the document path and come back in rule order
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from mdschema.content_rules import (
    CodeBlockRule,
    ForbiddenTextRule,
    ImageRule,
    ListRule,
    RequiredTextRule,
    TableRule,
    WordCountRule,
)
from mdschema.document_rules import FrontmatterRule, HeadingRule, LinkRule
from mdschema.markdown_parser import Document, parse_file
from mdschema.schema import Schema
from mdschema.structure import StructureRule
from mdschema.vast import Context, Rule
from mdschema.violation import Violation

logger = logging.getLogger(__name__)


def default_rules() -> List[Rule]:
    """All rules, in evaluation order."""
    return [
        StructureRule(),
        RequiredTextRule(),
        ForbiddenTextRule(),
        CodeBlockRule(),
        ImageRule(),
        TableRule(),
        ListRule(),
        WordCountRule(),
        HeadingRule(),
        LinkRule(),
        FrontmatterRule(),
    ]


class RuleEvaluator:
    """
    Validates documents against one schema.

    Example:
        >>> from mdschema.markdown_parser import parse_document
        >>> from mdschema.schema import parse_schema
        >>> evaluator = RuleEvaluator(parse_schema("structure: ['# Title', '# Usage']"))
        >>> [v.message for v in evaluator.evaluate(parse_document("# Title\\n"))]
        ['Required element "# Usage" not found within "document root"']
    """

    def __init__(self, schema: Schema, root_dir: Optional[str] = None, rules: Optional[Sequence[Rule]] = None):
        """
        Initialize rule evaluator.

        Args:
            schema: Loaded schema
            root_dir: Directory that ``/``-prefixed file links resolve against
                (default: directory of the schema file, if known)
            rules: Rules to run (default: all rules)
        """
        self.schema = schema
        if root_dir is None:
            root_dir = str(Path(schema.path).parent) if schema.path and schema.path != "<string>" else ""
        self.root_dir = root_dir
        self.rules = list(rules) if rules is not None else default_rules()

    def evaluate(self, document: Document) -> List[Violation]:
        """
        Evaluate a document against all rules.

        Args:
            document: Parsed document

        Returns:
            List of Violation objects (empty if validation passes), each
            carrying the document path
        """
        ctx = Context(document, self.schema, root_dir=self.root_dir)

        violations: List[Violation] = []
        for rule in self.rules:
            found = rule.validate(ctx)
            if found:
                logger.debug("%s: rule %s reported %d violation(s)", document.path, rule.name, len(found))
            violations.extend(found)

        return [v.with_path(document.path) for v in violations]


def validate_document(document_path: Union[str, Path], schema: Schema) -> List[Violation]:
    """
    Convenience function to validate a markdown file against a schema.

    Args:
        document_path: Path to the document to validate
        schema: Loaded schema

    Returns:
        List of Violation objects (empty if validation passes)

    Raises:
        OSError: If the document cannot be read
    """
    document = parse_file(str(document_path))
    return RuleEvaluator(schema).evaluate(document)


if __name__ == '__main__':
    # Example usage
    import sys

    from mdschema.schema import SchemaError, load_schema

    if len(sys.argv) < 3:
        print("Usage: rule_evaluator.py <document_path> <schema_path>")
        sys.exit(1)

    doc_path = Path(sys.argv[1])

    try:
        loaded = load_schema(sys.argv[2])
    except SchemaError as e:
        print(f"Error loading schema: {e}")
        sys.exit(2)

    errors = validate_document(doc_path, loaded)

    if errors:
        print(f"Validation failed with {len(errors)} violation(s):\n")
        for error in errors:
            print(error.format_error())
            print()
        sys.exit(1)
    else:
        print(f"Validation passed: {doc_path}")
        sys.exit(0)
