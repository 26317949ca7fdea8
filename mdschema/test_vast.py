#!/usr/bin/env python3
"""
Test suite for the VAST builder.

Tests binding of schema elements to document sections, multi-match
elements, unbound nodes for missing elements, node locations and the
validation context.
"""

import pytest

from mdschema.markdown_parser import parse_document
from mdschema.schema import parse_schema
from mdschema.vast import Context, Node, Rule, VastBuilder, build_slug_index


def build(markdown, schema_yaml, path=""):
    doc = parse_document(markdown, path=path)
    schema = parse_schema(schema_yaml)
    return VastBuilder().build(doc, schema.structure)


NESTED_SCHEMA = """
structure:
  - heading: "# Title"
    children:
      - "## Installation"
      - "## Usage"
"""


# ============================================================================
# Binding Tests
# ============================================================================

def test_binds_nested_elements():
    tree = build("# Title\n\n## Installation\n\n## Usage\n", NESTED_SCHEMA)

    assert len(tree.roots) == 1
    title = tree.roots[0]
    assert title.is_bound
    assert [n.heading_text() for n in title.children] == ["Installation", "Usage"]
    assert all(child.parent is title for child in title.children)
    assert tree.unmatched_sections == []


def test_nodes_are_pre_order():
    tree = build("# Title\n\n## Installation\n\n## Usage\n", NESTED_SCHEMA)
    assert [n.heading_text() for n in tree.nodes] == ["Title", "Installation", "Usage"]
    assert [n.order for n in tree.nodes] == [0, 0, 1]


def test_binding_follows_document_order():
    """An element is only bound after its bound predecessor."""
    tree = build("# Title\n\n## Usage\n\n## Installation\n", NESTED_SCHEMA)
    install, usage = tree.roots[0].children

    assert install.is_bound
    assert not usage.is_bound
    assert [s.heading.text for s in tree.unmatched_sections] == ["Usage"]


def test_children_bind_within_their_own_section():
    """Sub-headings of a different parent are not candidates."""
    markdown = "# Title\n\n## Installation\n\n# Other\n\n## Usage\n"
    tree = build(markdown, NESTED_SCHEMA)

    install, usage = tree.roots[0].children
    assert install.is_bound
    assert not usage.is_bound
    assert [s.heading.text for s in tree.unmatched_sections] == ["Other", "Usage"]


def test_unmatched_sections_in_document_order():
    tree = build("# Title\n\n## Extra\n\n### Deep\n\n## More\n", "structure: ['# Title']")
    assert [s.heading.text for s in tree.unmatched_sections] == ["Extra", "Deep", "More"]


def test_each_section_bound_once():
    tree = build("## A\n\n## A\n", "structure: ['## A', '## A']")
    first, second = tree.roots
    assert first.section is not second.section
    assert first.section.start_line < second.section.start_line


# ============================================================================
# Multi-match Tests
# ============================================================================

STEP_SCHEMA = """
structure:
  - heading: {pattern: '## Step \\d+'}
    count: {min: 1, max: 3}
"""


def test_multi_match_binds_each_occurrence():
    tree = build("## Step 1\n\n## Step 2\n", STEP_SCHEMA)

    assert len(tree.roots) == 2
    assert [n.match_index for n in tree.roots] == [0, 1]
    assert all(n.match_count == 2 for n in tree.roots)
    assert all(n.order == 0 for n in tree.roots)


def test_multi_match_respects_max():
    markdown = "".join(f"## Step {i}\n\n" for i in range(1, 5))
    tree = build(markdown, STEP_SCHEMA)

    assert len(tree.roots) == 3
    assert [s.heading.text for s in tree.unmatched_sections] == ["Step 4"]


def test_multi_match_unlimited():
    schema = "structure:\n  - heading: {pattern: '## Step \\d+'}\n    count: {min: 0}\n"
    markdown = "".join(f"## Step {i}\n\n" for i in range(1, 7))
    tree = build(markdown, schema)
    assert len(tree.roots) == 6


def test_multi_match_children_bind_per_occurrence():
    schema = """
structure:
  - heading: {pattern: '## Step \\d+'}
    count: {min: 1}
    children: ['### Result']
"""
    tree = build("## Step 1\n\n### Result\n\n## Step 2\n\n### Result\n", schema)

    assert len(tree.roots) == 2
    for node in tree.roots:
        assert node.children[0].is_bound
        assert node.children[0].section.parent is node.section


# ============================================================================
# Determinism Tests
# ============================================================================

def _tree_shape(tree):
    nodes = [
        (n.is_bound, n.section.start_line if n.section else None, n.match_index, n.match_count)
        for n in tree.nodes
    ]
    return nodes, [s.start_line for s in tree.unmatched_sections]


def test_build_is_deterministic():
    schema = parse_schema("""
structure:
  - heading: "# Guide"
    children:
      - "## Installation"
      - heading: {pattern: '## Step \\d+'}
        count: {min: 1, max: 2}
      - "## Usage"
""")
    doc = parse_document(
        "# Guide\n\n## Usage\n\n## Installation\n\n## Step 1\n\n## Step 2\n\n## Step 3\n"
    )

    first = VastBuilder().build(doc, schema.structure)
    second = VastBuilder().build(doc, schema.structure)

    assert _tree_shape(first) == _tree_shape(second)
    assert _tree_shape(first) == (
        [(True, 1, 0, 1), (True, 5, 0, 1), (True, 7, 0, 2), (True, 9, 1, 2), (False, None, 0, 0)],
        [3, 11],
    )


# ============================================================================
# Unbound Node Tests
# ============================================================================

def test_missing_required_element_gets_unbound_node():
    tree = build("# Title\n\n## Installation\n", NESTED_SCHEMA)
    usage = tree.roots[0].children[1]

    assert not usage.is_bound
    assert usage.heading_text() == "## Usage"
    assert tree.unbound_nodes() == [usage]


def test_missing_optional_element_has_no_node():
    schema = "structure:\n  - heading: '# Title'\n    optional: true\n"
    tree = build("Just text.\n", schema)
    assert tree.roots == []
    assert tree.nodes == []


def test_unbound_parent_carries_required_children():
    schema = """
structure:
  - heading: "# Title"
    children:
      - "## Required"
      - heading: "## Optional"
        optional: true
"""
    tree = build("# Other\n", schema)
    title = tree.roots[0]

    assert not title.is_bound
    assert [c.element.heading.display for c in title.children] == ["## Required"]
    assert not title.children[0].is_bound


# ============================================================================
# Node Tests
# ============================================================================

def test_location_of_bound_node():
    tree = build("# Title\n\n## Installation\n\n## Usage\n", NESTED_SCHEMA)
    assert tree.roots[0].children[1].location() == (5, 4)


def test_unbound_node_borrows_parent_location():
    tree = build("# Title\n\n## Installation\n", NESTED_SCHEMA)
    assert tree.roots[0].children[1].location() == (1, 3)


def test_unbound_top_level_location():
    tree = build("Text only.\n", "structure: ['# Title']")
    assert tree.roots[0].location() == (1, 1)


def test_node_content_and_elements():
    markdown = "# Title\n\n```sh\nmake\n```\n\n![logo](logo.png)\n"
    tree = build(markdown, "structure: ['# Title']")
    node = tree.roots[0]

    assert "make" in node.content
    assert len(node.code_blocks) == 1
    assert len(node.images) == 1
    assert node.tables == []


def test_unbound_node_is_empty():
    tree = build("", "structure: ['# Title']")
    node = tree.roots[0]
    assert node.content == ""
    assert node.code_blocks == []
    assert node.links == []
    assert node.lists == []


def test_node_identity():
    tree = build("# Title\n", "structure: ['# Title']")
    node = tree.roots[0]
    assert node != Node(element=node.element, section=node.section)


def test_ancestors():
    tree = build("# Title\n\n## Installation\n\n## Usage\n", NESTED_SCHEMA)
    usage = tree.roots[0].children[1]
    assert list(usage.ancestors()) == [tree.roots[0]]


# ============================================================================
# Context Tests
# ============================================================================

def test_slug_index_deduplicates():
    doc = parse_document("# Usage\n\n## Usage\n\n## Usage 1\n")
    assert list(build_slug_index(doc.sections())) == ["usage", "usage-1", "usage-1-1"]


def test_context_slugs():
    doc = parse_document("# Getting Started\n\n## API Reference\n")
    ctx = Context(doc, parse_schema(""))

    assert ctx.has_slug("getting-started")
    assert ctx.has_slug("api-reference")
    assert not ctx.has_slug("missing")


def test_context_builds_tree():
    doc = parse_document("# Title\n")
    ctx = Context(doc, parse_schema("structure: ['# Title']"), root_dir="/docs")

    assert ctx.tree.roots[0].is_bound
    assert ctx.root_dir == "/docs"


class _CountingRule(Rule):
    name = "counting"

    def check(self, ctx):
        for node in ctx.tree.nodes:
            self.report(f"node {node.heading_text()}", 1, 1, severity="warning")


def test_rule_resets_between_runs():
    ctx = Context(parse_document("# Title\n"), parse_schema("structure: ['# Title']"))
    rule = _CountingRule()

    first = rule.validate(ctx)
    second = rule.validate(ctx)

    assert len(first) == 1
    assert len(second) == 1
    assert second[0].rule == "counting"
    assert second[0].severity == "warning"


def test_base_rule_requires_check():
    ctx = Context(parse_document("# Title\n"), parse_schema(""))
    with pytest.raises(NotImplementedError):
        Rule().validate(ctx)
