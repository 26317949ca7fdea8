#!/usr/bin/env python3
"""
Structure Evaluator

Turns a bound VAST into structure violations (rule id ``structure``).

Passes, in output order:
1. First heading: the first child of each scope must match the first expected
   child when that child is required
2. Unexpected sections: sections no element bound, unless an ancestor bound to
   an ``allow_additional`` element permits them
3. Missing elements: required elements with no bound section, reported once
   at the top of each missing branch
4. Ordering: an element that was not found after its bound predecessor, but
   exists earlier in the same scope, is reported as out of order
5. Occurrence count: multi-match elements bound fewer times than ``count.min``

An element found out of order is not also reported as missing. Its section
stays unmatched, so it and any unmatched sections beneath it are reported as
unexpected like any other section the schema does not place.

Example:
    >>> from mdschema.markdown_parser import parse_document
    >>> from mdschema.schema import parse_schema
    >>> from mdschema.vast import VastBuilder
    >>> doc = parse_document("# Title\\n\\n## Extra\\n")
    >>> schema = parse_schema("structure: ['# Title']")
    >>> [v.message for v in evaluate(VastBuilder().build(doc, schema.structure), schema)]
    ['Unexpected section "## Extra" found under "Title"']
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from mdschema.markdown_parser import Section
from mdschema.pattern_matcher import PatternMatcher, full_heading
from mdschema.schema import Schema, SchemaElement
from mdschema.vast import Context, Node, Rule, Tree
from mdschema.violation import SEVERITY_ERROR, Violation, severity_from_schema

RULE_NAME = "structure"
DOCUMENT_ROOT = "document root"


@dataclass
class Misplaced:
    """An unbound node whose section exists before its bound predecessor."""
    node: Node
    section: Section
    after: str


def _quote(text: str) -> str:
    """Double-quote a value for messages, escaping backslashes and quotes."""
    escaped = text.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def _violation(message: str, line: int, column: int, severity: str = SEVERITY_ERROR) -> Violation:
    return Violation(
        rule=RULE_NAME,
        message=message,
        line=line,
        column=column,
        severity=severity_from_schema(severity),
    )


class StructureEvaluator:
    """
    Evaluates one Tree against its schema.

    The evaluator only reads the tree; running it twice yields the same
    violations.
    """

    def __init__(self, tree: Tree, schema: Schema, matcher: Optional[PatternMatcher] = None):
        self.tree = tree
        self.schema = schema
        self.matcher = matcher or PatternMatcher()
        self.path = tree.document.path
        self.node_by_section: Dict[Section, Node] = {n.section: n for n in tree.bound_nodes()}
        self.bound_sections: Set[Section] = set(self.node_by_section)

    def evaluate(self) -> List[Violation]:
        misplaced = self._find_misplaced()
        misplaced_nodes = {id(m.node) for m in misplaced}

        violations: List[Violation] = []
        violations.extend(self._check_first_headings())
        violations.extend(self._check_unmatched_sections())
        violations.extend(self._check_missing(misplaced_nodes))
        violations.extend(
            _violation(
                f"Element {_quote(m.section.heading.text)} should appear after "
                f"{_quote(m.after)} but appears before it",
                m.section.heading.line,
                m.section.heading.column,
                m.node.element.severity,
            )
            for m in misplaced
        )
        violations.extend(self._check_counts())
        return violations

    def _matches(self, section: Section, element: SchemaElement) -> bool:
        return self.matcher.matches(section, element.heading, self.path)

    # Pass 1

    def _check_first_headings(self) -> List[Violation]:
        violations = []
        root = self.tree.document.root
        first = self._first_heading_violation(DOCUMENT_ROOT, self.schema.structure, root.children)
        if first:
            violations.append(first)

        for node in self.tree.bound_nodes():
            first = self._first_heading_violation(
                node.section.heading.text, node.element.children, node.section.children
            )
            if first:
                violations.append(first)
        return violations

    def _first_heading_violation(self, parent_name, expected, actual) -> Optional[Violation]:
        if not expected or not actual:
            return None
        first_expected = expected[0]
        first_actual = actual[0]
        if not first_expected.is_required or self._matches(first_actual, first_expected):
            return None
        return _violation(
            f"First heading under {_quote(parent_name)} is {_quote(full_heading(first_actual.heading))} "
            f"but expected {_quote(first_expected.heading.display)}",
            first_actual.heading.line,
            first_actual.heading.column,
            first_expected.severity,
        )

    # Pass 2

    def _allows_additional(self, section: Section) -> bool:
        """True if any ancestor section is bound to an allow_additional element."""
        ancestor = section.parent
        while ancestor is not None and not ancestor.is_root:
            node = self.node_by_section.get(ancestor)
            if node is not None and node.element.allow_additional:
                return True
            ancestor = ancestor.parent
        return False

    def _check_unmatched_sections(self) -> List[Violation]:
        violations = []
        for section in self.tree.unmatched_sections:
            if self._allows_additional(section):
                continue
            parent = section.parent
            parent_name = parent.heading.text if parent is not None and parent.heading else DOCUMENT_ROOT
            violations.append(_violation(
                f"Unexpected section {_quote(full_heading(section.heading))} found under {_quote(parent_name)}",
                section.heading.line,
                section.heading.column,
            ))
        return violations

    # Pass 3

    def _check_missing(self, misplaced_nodes: Set[int]) -> List[Violation]:
        violations = []
        for node in self.tree.unbound_nodes():
            if not node.element.is_required or id(node) in misplaced_nodes:
                continue
            if any(not ancestor.is_bound for ancestor in node.ancestors()):
                continue
            parent_name = node.parent.heading_text() if node.parent is not None else DOCUMENT_ROOT
            line, column = node.location()
            violations.append(_violation(
                f"Required element {_quote(node.element.heading.display)} not found within {_quote(parent_name)}",
                line,
                column,
                node.element.severity,
            ))
        return violations

    # Pass 4

    def _find_misplaced(self) -> List[Misplaced]:
        found: List[Misplaced] = []
        self._scan_siblings(self.tree.roots, self.tree.document.root.children, found)
        for node in self.tree.bound_nodes():
            if node.children:
                self._scan_siblings(node.children, node.section.children, found)
        return found

    def _scan_siblings(self, siblings: List[Node], sections: List[Section], found: List[Misplaced]) -> None:
        max_bound_line = 0
        max_bound_text = ""
        claimed = {m.section for m in found}

        for node in siblings:
            if node.is_bound:
                if node.section.start_line > max_bound_line:
                    max_bound_line = node.section.start_line
                    max_bound_text = node.section.heading.text
                continue
            if max_bound_line == 0:
                continue
            for section in sections:
                if section in self.bound_sections or section in claimed:
                    continue
                if section.start_line >= max_bound_line:
                    continue
                if self._matches(section, node.element):
                    found.append(Misplaced(node=node, section=section, after=max_bound_text))
                    claimed.add(section)
                    break

    # Pass 5

    def _check_counts(self) -> List[Violation]:
        violations = []
        for node in self.tree.bound_nodes():
            element = node.element
            if not element.is_multi_match or node.match_index != 0:
                continue
            if node.match_count < element.count.min:
                line, column = node.location()
                violations.append(_violation(
                    f"Element {_quote(element.heading.display)} expected at least "
                    f"{element.count.min} occurrence(s), found {node.match_count}",
                    line,
                    column,
                    element.severity,
                ))
        return violations


def evaluate(tree: Tree, schema: Schema, matcher: Optional[PatternMatcher] = None) -> List[Violation]:
    """
    Evaluate a bound tree into structure violations.

    Args:
        tree: Tree produced by VastBuilder.build
        schema: Schema the tree was built from
        matcher: Pattern matcher to reuse (a new one is created if omitted)

    Returns:
        Violations in pass order
    """
    return StructureEvaluator(tree, schema, matcher).evaluate()


class StructureRule(Rule):
    """Structure rule: heading hierarchy, order and occurrence checks."""

    name = RULE_NAME

    def check(self, ctx: Context) -> None:
        self.violations.extend(evaluate(ctx.tree, ctx.schema, ctx.matcher))
