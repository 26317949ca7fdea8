#!/usr/bin/env python3
"""
Heading Pattern Matcher

Decides whether a document heading satisfies a schema heading spec.

Matching is done against the reconstructed heading, i.e. the level markers
plus the heading text (``"## Installation"``):

- LiteralHeading: exact string equality
- RegexHeading: the pattern must match the whole reconstructed heading
  (``^``/``$`` anchors are added when missing). A pattern that does not
  compile degrades to a literal comparison.
- ExprHeading: the compiled expression is evaluated with ``filename``,
  ``heading`` and ``level`` bound
"""

import logging
import os
import re
from typing import Dict, Optional, Union

from mdschema.markdown_parser import Heading, Section
from mdschema.schema import ExprHeading, HeadingSpec, LiteralHeading, RegexHeading

logger = logging.getLogger(__name__)


def extract_filename(path: str) -> str:
    """
    File name without directory or extension.

    Example:
        >>> extract_filename("docs/getting-started.md")
        'getting-started'
        >>> extract_filename("")
        ''
    """
    if not path:
        return ""
    base = os.path.basename(path)
    return os.path.splitext(base)[0]


def full_heading(heading: Heading) -> str:
    """Heading as written in ATX form, e.g. ``## Usage``."""
    return "#" * heading.level + " " + heading.text


def _anchor(pattern: str) -> str:
    if not pattern.startswith("^"):
        pattern = "^" + pattern
    if not pattern.endswith("$"):
        pattern = pattern + "$"
    return pattern


class PatternMatcher:
    """
    Matches headings against heading specs.

    Compiled regexes are cached on the instance; a matcher is shared by
    everything that validates one document.
    """

    def __init__(self):
        self._regex_cache: Dict[str, Optional[re.Pattern]] = {}

    def matches(self, target: Union[Section, Heading, None], spec: HeadingSpec, document_path: str = "") -> bool:
        """
        Check whether a section (or heading) matches a heading spec.

        Args:
            target: Section or Heading to test; the root section never matches
            spec: Heading spec from the schema
            document_path: Path of the document, used for the ``filename`` variable

        Returns:
            True if the heading satisfies the spec
        """
        heading = target.heading if isinstance(target, Section) else target
        if heading is None:
            return False

        if isinstance(spec, ExprHeading):
            return self._matches_expr(heading, spec, document_path)

        text = full_heading(heading)
        if isinstance(spec, LiteralHeading):
            return text == spec.text.strip()
        if isinstance(spec, RegexHeading):
            return self._matches_regex(text, spec.pattern)

        raise TypeError(f"Unknown heading spec type: {type(spec).__name__}")

    def _matches_expr(self, heading: Heading, spec: ExprHeading, document_path: str) -> bool:
        filename = extract_filename(document_path)
        if not filename:
            return False
        return spec.expression.evaluate({
            'filename': filename,
            'heading': heading.text,
            'level': heading.level,
        })

    def _compile(self, pattern: str) -> Optional[re.Pattern]:
        if pattern in self._regex_cache:
            return self._regex_cache[pattern]
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            logger.warning("Invalid heading regex %r (%s); matching it literally", pattern, e)
            compiled = None
        self._regex_cache[pattern] = compiled
        return compiled

    def _matches_regex(self, text: str, pattern: str) -> bool:
        anchored = _anchor(pattern)
        compiled = self._compile(anchored)
        if compiled is None:
            literal = anchored[1:-1]
            return text == literal
        return compiled.fullmatch(text) is not None
