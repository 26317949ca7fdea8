#!/usr/bin/env python3
"""
Schema Inference

Derives a schema from an existing document: every heading becomes a literal
structure element nested the way the document nests it. The result is a
plain dict ready for YAML output, and it accepts the document it came from.

Example:
    >>> from mdschema.markdown_parser import parse_document
    >>> derive_schema(parse_document("# Title\\n\\n## Usage\\n"))
    {'structure': [{'heading': '# Title', 'children': [{'heading': '## Usage'}]}]}
"""

from typing import Any, Dict

import yaml

from mdschema.markdown_parser import Document, Section
from mdschema.pattern_matcher import full_heading


class InferenceError(ValueError):
    """Raised when a document has no structure to derive a schema from."""


def _element(section: Section) -> Dict[str, Any]:
    element: Dict[str, Any] = {'heading': full_heading(section.heading)}
    if section.children:
        element['children'] = [_element(child) for child in section.children]
    return element


def derive_schema(document: Document) -> Dict[str, Any]:
    """
    Build schema data mirroring a document's heading hierarchy.

    Front matter is not part of the section tree, so ``---`` delimited
    metadata never contributes headings.

    Raises:
        InferenceError: If the document has no headings
    """
    if not document.root.children:
        raise InferenceError("document has no headings to infer structure")
    return {'structure': [_element(section) for section in document.root.children]}


def dump_schema(data: Dict[str, Any]) -> str:
    """Serialize schema data as block-style YAML, keeping key order."""
    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
