#!/usr/bin/env python3
"""
Validation AST (VAST) Builder

Binds schema elements to document sections, producing a tree of Nodes that
mirrors the schema. Every rule works from this tree instead of re-matching
headings itself.

Binding walks each sibling list of schema elements in order against the
corresponding list of document sections:

- Single-match elements bind the first matching, not yet bound section that
  starts after the previously bound sibling.
- Multi-match elements (``count.max != 1``) bind every such section, up to
  ``count.max`` (0 = unlimited); each occurrence becomes its own Node.
- Required elements with no match get an unbound Node so their absence can be
  reported; required descendants of that element get unbound Nodes as well.
- Each bound Node's children are bound against its own section's children.
- Sections that no element bound are collected as unmatched.

Example:
    >>> from mdschema.markdown_parser import parse_document
    >>> from mdschema.schema import parse_schema
    >>> doc = parse_document("# Title\\n\\n## Usage\\n")
    >>> schema = parse_schema("structure:\\n  - heading: '# Title'\\n    children: ['## Usage']\\n")
    >>> tree = VastBuilder().build(doc, schema.structure)
    >>> [n.heading_text() for n in tree.nodes]
    ['Title', 'Usage']
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from mdschema.markdown_parser import CodeBlock, Document, Image, Link, ListBlock, Section, Table
from mdschema.pattern_matcher import PatternMatcher
from mdschema.schema import Schema, SchemaElement
from mdschema.violation import SEVERITY_ERROR, Violation, severity_from_schema

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Node:
    """
    A schema element, bound to at most one document section.

    Attributes:
        element: Schema element this node represents
        section: Bound section, or None when the element was not found
        parent: Parent node (None for top-level nodes)
        children: Child nodes, in schema order
        order: Position of the element among its schema siblings
        match_count: Number of sections a multi-match element bound
        match_index: 0-based position of this occurrence
    """
    element: SchemaElement
    section: Optional[Section] = None
    parent: Optional["Node"] = field(default=None, repr=False)
    children: List["Node"] = field(default_factory=list)
    order: int = 0
    match_count: int = 0
    match_index: int = 0

    @property
    def is_bound(self) -> bool:
        return self.section is not None

    @property
    def content(self) -> str:
        return self.section.content if self.section else ""

    @property
    def code_blocks(self) -> List[CodeBlock]:
        return self.section.code_blocks if self.section else []

    @property
    def tables(self) -> List[Table]:
        return self.section.tables if self.section else []

    @property
    def links(self) -> List[Link]:
        return self.section.links if self.section else []

    @property
    def images(self) -> List[Image]:
        return self.section.images if self.section else []

    @property
    def lists(self) -> List[ListBlock]:
        return self.section.lists if self.section else []

    def heading_text(self) -> str:
        """Actual heading text when bound, otherwise the expected pattern."""
        if self.section is not None and self.section.heading is not None:
            return self.section.heading.text
        return self.element.heading.display

    def location(self) -> Tuple[int, int]:
        """
        Line/column to report this node at.

        Bound nodes point at their heading; unbound nodes borrow the nearest
        bound ancestor's location, falling back to 1:1.
        """
        node: Optional[Node] = self
        while node is not None:
            if node.section is not None and node.section.heading is not None:
                return node.section.heading.line, node.section.heading.column
            node = node.parent
        return 1, 1

    def ancestors(self) -> Iterator["Node"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def walk(self) -> Iterator["Node"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Tree:
    """
    Result of binding one schema to one document.

    Attributes:
        document: The parsed document
        roots: Nodes for the top-level schema elements
        nodes: Every node, depth-first pre-order
        unmatched_sections: Sections no element bound, in document order
    """
    document: Document
    roots: List[Node] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)
    unmatched_sections: List[Section] = field(default_factory=list)

    def bound_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.is_bound]

    def unbound_nodes(self) -> List[Node]:
        return [n for n in self.nodes if not n.is_bound]


class VastBuilder:
    """Builds a VAST Tree from a document and a list of schema elements."""

    def __init__(self, matcher: Optional[PatternMatcher] = None):
        self.matcher = matcher or PatternMatcher()

    def build(self, document: Document, elements: Sequence[SchemaElement]) -> Tree:
        """
        Bind schema elements to document sections.

        Args:
            document: Parsed document
            elements: Top-level schema elements

        Returns:
            Tree with roots, flattened nodes and unmatched sections
        """
        tree = Tree(document=document)
        bound: Set[Section] = set()

        tree.roots = self._bind_siblings(document, document.root.children, elements, None, bound)
        for root in tree.roots:
            tree.nodes.extend(root.walk())

        tree.unmatched_sections = [
            s for s in document.root.walk()
            if not s.is_root and s not in bound
        ]

        logger.debug(
            "Bound %d of %d nodes, %d unmatched sections",
            len(tree.bound_nodes()), len(tree.nodes), len(tree.unmatched_sections),
        )
        return tree

    def _bind_siblings(
        self,
        document: Document,
        sections: List[Section],
        elements: Sequence[SchemaElement],
        parent: Optional[Node],
        bound: Set[Section],
    ) -> List[Node]:
        nodes: List[Node] = []
        last_matched_line = 0

        for order, element in enumerate(elements):
            if element.is_multi_match:
                matches = self._find_all_after(document, sections, element, bound, last_matched_line)
            else:
                match = self._find_first_after(document, sections, element, bound, last_matched_line)
                matches = [match] if match is not None else []

            if not matches:
                if element.is_required:
                    nodes.append(self._unbound_node(element, parent, order))
                continue

            for index, section in enumerate(matches):
                bound.add(section)
                node = Node(
                    element=element,
                    section=section,
                    parent=parent,
                    order=order,
                    match_count=len(matches),
                    match_index=index,
                )
                if element.children:
                    node.children = self._bind_siblings(
                        document, section.children, element.children, node, bound
                    )
                nodes.append(node)

            last_matched_line = matches[-1].start_line

        return nodes

    def _unbound_node(self, element: SchemaElement, parent: Optional[Node], order: int) -> Node:
        node = Node(element=element, parent=parent, order=order)
        node.children = [
            self._unbound_node(child, node, i)
            for i, child in enumerate(element.children)
            if child.is_required
        ]
        return node

    def _candidates(
        self,
        document: Document,
        sections: List[Section],
        element: SchemaElement,
        bound: Set[Section],
        min_line: int,
    ) -> Iterator[Section]:
        for section in sections:
            if section in bound or section.start_line <= min_line:
                continue
            if self.matcher.matches(section, element.heading, document.path):
                yield section

    def _find_first_after(self, document, sections, element, bound, min_line) -> Optional[Section]:
        return next(self._candidates(document, sections, element, bound, min_line), None)

    def _find_all_after(self, document, sections, element, bound, min_line) -> List[Section]:
        limit = element.count.max if element.count is not None else 0
        found = []
        for section in self._candidates(document, sections, element, bound, min_line):
            found.append(section)
            if limit and len(found) >= limit:
                break
        return found


class Context:
    """
    Everything rules need to validate one document against one schema.

    Attributes:
        document: Parsed document
        schema: Loaded schema
        tree: VAST built from the schema structure
        root_dir: Directory that ``/``-prefixed links resolve against
        matcher: Pattern matcher shared by the builder and the rules
    """

    def __init__(self, document: Document, schema: Schema, root_dir: str = "",
                 matcher: Optional[PatternMatcher] = None):
        self.document = document
        self.schema = schema
        self.root_dir = root_dir
        self.matcher = matcher or PatternMatcher()
        self.tree = VastBuilder(self.matcher).build(document, schema.structure)
        self._slug_index = build_slug_index(document.sections())

    def has_slug(self, slug: str) -> bool:
        """Check whether an internal ``#anchor`` target exists."""
        return slug in self._slug_index


def build_slug_index(sections: Sequence[Section]) -> Dict[str, Section]:
    """
    Map anchor slugs to sections.

    Repeated slugs get ``-1``, ``-2``, ... suffixes; a candidate that is
    already taken is skipped, so a later "Usage 1" heading becomes
    ``usage-1-1``.

    Example:
        >>> from mdschema.markdown_parser import parse_document
        >>> doc = parse_document("# Usage\\n# Usage\\n# Usage 1\\n")
        >>> sorted(build_slug_index(doc.sections()))
        ['usage', 'usage-1', 'usage-1-1']
    """
    index: Dict[str, Section] = {}
    for section in sections:
        if section.heading is None or not section.heading.slug:
            continue
        slug = section.heading.slug
        if slug in index:
            counter = 1
            while f"{section.heading.slug}-{counter}" in index:
                counter += 1
            slug = f"{section.heading.slug}-{counter}"
        index[slug] = section
    return index


class Rule:
    """
    Base class for validation rules.

    Subclasses set ``name`` and implement ``check``, calling ``report`` for
    each problem found. ``validate`` resets the collected violations on every
    call, so a rule instance can be reused across documents.
    """

    name = ""

    def __init__(self):
        self.violations: List[Violation] = []

    def validate(self, ctx: Context) -> List[Violation]:
        self.violations = []
        self.check(ctx)
        return self.violations

    def check(self, ctx: Context) -> None:
        raise NotImplementedError

    def report(self, message: str, line: int, column: int, severity: str = SEVERITY_ERROR) -> None:
        self.violations.append(Violation(
            rule=self.name,
            message=message,
            line=line,
            column=column,
            severity=severity_from_schema(severity),
        ))
