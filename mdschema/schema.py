#!/usr/bin/env python3
"""
Schema Model and Loader

Defines the in-memory representation of a ``.mdschema.yml`` file and loads it
from YAML. Raw YAML is first validated against the bundled JSON Schema
(``schema.json``, Draft 7) and then converted into frozen dataclasses.

Key Features:
- Heading specs as a closed set of types: literal, regex or expression
- Occurrence counts with derived required/multi-match semantics
- Section-scoped content rules (text, code blocks, images, tables, lists, word count)
- Document-level rules (links, heading rules, front matter)
- Schema discovery by walking up the directory hierarchy

Example schema:

    structure:
      - heading: "# Project"
        children:
          - heading: "## Installation"
            code_blocks:
              - {lang: bash, min: 1}
          - heading: {pattern: "## (Usage|Examples)"}
            optional: true
    heading_rules:
      no_skip_levels: true
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from jsonschema import Draft7Validator

from mdschema.expression import Expression, ExpressionSyntaxError, compile_expression
from mdschema.violation import SEVERITY_ERROR

logger = logging.getLogger(__name__)

SCHEMA_FILENAMES = ('.mdschema.yml', '.mdschema.yaml')
DEFAULT_EXTERNAL_TIMEOUT = 10

# Load JSON Schema once at module level
JSON_SCHEMA_PATH = Path(__file__).parent / "schema.json"
with open(JSON_SCHEMA_PATH, encoding='utf-8') as f:
    JSON_SCHEMA = json.load(f)

_validator = Draft7Validator(JSON_SCHEMA)


class SchemaError(Exception):
    """
    Exception raised when a schema file cannot be loaded.

    Attributes:
        source: Schema file path or "<string>"
        errors: Individual problems found, one message each
    """

    def __init__(self, message: str, source: str = "", errors: Optional[List[str]] = None):
        self.source = source
        self.errors = errors or []
        details = "".join(f"\n  - {e}" for e in self.errors)
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}{details}")


# Heading specs

@dataclass(frozen=True)
class LiteralHeading:
    """Exact match against the reconstructed heading, e.g. ``## Features``."""
    text: str

    @property
    def display(self) -> str:
        return self.text


@dataclass(frozen=True)
class RegexHeading:
    """Regex that must fully match the reconstructed heading, e.g. ``## v\\d+``."""
    pattern: str

    @property
    def display(self) -> str:
        return self.pattern


@dataclass(frozen=True)
class ExprHeading:
    """
    Boolean expression over the heading and file name.

    The expression is compiled on construction, so a malformed expression
    raises ExpressionSyntaxError here rather than during matching.
    """
    source: str
    expression: Expression = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'expression', compile_expression(self.source))

    @property
    def display(self) -> str:
        return self.source


HeadingSpec = Union[LiteralHeading, RegexHeading, ExprHeading]


# Section rules

@dataclass(frozen=True)
class TextPattern:
    """Substring (``literal``) or regex (``pattern``); exactly one is set."""
    literal: str = ""
    pattern: str = ""

    @property
    def is_regex(self) -> bool:
        return bool(self.pattern)

    @property
    def display(self) -> str:
        return self.pattern or self.literal


@dataclass(frozen=True)
class CodeBlockRule:
    lang: str = ""
    min: int = 0
    max: int = 0


@dataclass(frozen=True)
class ImageRule:
    min: int = 0
    max: int = 0
    require_alt: bool = False
    formats: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TableRule:
    min: int = 0
    max: int = 0
    min_columns: int = 0
    required_headers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ListRule:
    min: int = 0
    max: int = 0
    type: str = ""
    min_items: int = 0


@dataclass(frozen=True)
class WordCountRule:
    min: int = 0
    max: int = 0


@dataclass(frozen=True)
class SectionRules:
    """Content rules scoped to the section an element is bound to."""
    required_text: Tuple[TextPattern, ...] = ()
    forbidden_text: Tuple[TextPattern, ...] = ()
    code_blocks: Tuple[CodeBlockRule, ...] = ()
    images: Tuple[ImageRule, ...] = ()
    tables: Tuple[TableRule, ...] = ()
    lists: Tuple[ListRule, ...] = ()
    word_count: Optional[WordCountRule] = None


# Structure

@dataclass(frozen=True)
class CountConstraint:
    """Occurrence constraint; ``max == 0`` means unlimited."""
    min: int = 0
    max: int = 0


@dataclass(frozen=True)
class SchemaElement:
    """
    One expected heading in the document structure.

    Attributes:
        heading: Heading spec to match
        optional: Element may be absent (superseded by count)
        count: Occurrence constraint, if any
        severity: Severity of structure violations for this element
        allow_additional: Extra sub-sections below this element are permitted
        children: Expected sub-sections, in order
        rules: Content rules for the bound section
        description: Free-form guidance text
    """
    heading: HeadingSpec
    optional: bool = False
    count: Optional[CountConstraint] = None
    severity: str = SEVERITY_ERROR
    allow_additional: bool = False
    children: Tuple["SchemaElement", ...] = ()
    rules: SectionRules = field(default_factory=SectionRules)
    description: str = ""

    @property
    def min_occurrences(self) -> int:
        if self.count is not None:
            return self.count.min
        return 0 if self.optional else 1

    @property
    def is_required(self) -> bool:
        return self.min_occurrences > 0

    @property
    def is_multi_match(self) -> bool:
        return self.count is not None and self.count.max != 1


# Document-level rules

@dataclass(frozen=True)
class LinkRules:
    validate_internal: bool = False
    validate_files: bool = False
    validate_external: bool = False
    external_timeout: int = DEFAULT_EXTERNAL_TIMEOUT
    allowed_domains: Tuple[str, ...] = ()
    blocked_domains: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HeadingRules:
    no_skip_levels: bool = False
    unique: bool = False
    unique_per_level: bool = False
    max_depth: int = 0


@dataclass(frozen=True)
class FrontmatterField:
    name: str
    optional: bool = False
    type: str = ""
    format: str = ""
    enum: Tuple[Any, ...] = ()
    pattern: str = ""


@dataclass(frozen=True)
class FrontmatterConfig:
    optional: bool = False
    fields: Tuple[FrontmatterField, ...] = ()


@dataclass(frozen=True)
class Schema:
    """A complete, validated schema."""
    structure: Tuple[SchemaElement, ...] = ()
    links: Optional[LinkRules] = None
    heading_rules: Optional[HeadingRules] = None
    frontmatter: Optional[FrontmatterConfig] = None
    path: str = ""


# Conversion from validated YAML data

def _heading_spec(raw: Any) -> HeadingSpec:
    if isinstance(raw, str):
        return LiteralHeading(raw.strip())
    if 'expr' in raw:
        return ExprHeading(raw['expr'])
    return RegexHeading(raw['pattern'])


def _text_patterns(items: List[Any]) -> Tuple[TextPattern, ...]:
    patterns = []
    for item in items:
        if isinstance(item, str):
            patterns.append(TextPattern(literal=item))
        else:
            patterns.append(TextPattern(pattern=item['pattern']))
    return tuple(patterns)


def _section_rules(raw: Dict[str, Any]) -> SectionRules:
    word_count = raw.get('word_count')
    return SectionRules(
        required_text=_text_patterns(raw.get('required_text', [])),
        forbidden_text=_text_patterns(raw.get('forbidden_text', [])),
        code_blocks=tuple(CodeBlockRule(**r) for r in raw.get('code_blocks', [])),
        images=tuple(
            ImageRule(**{**r, 'formats': tuple(r.get('formats', ()))})
            for r in raw.get('images', [])
        ),
        tables=tuple(
            TableRule(**{**r, 'required_headers': tuple(r.get('required_headers', ()))})
            for r in raw.get('tables', [])
        ),
        lists=tuple(ListRule(**r) for r in raw.get('lists', [])),
        word_count=WordCountRule(**word_count) if word_count is not None else None,
    )


def _element(raw: Any) -> SchemaElement:
    if isinstance(raw, str):
        return SchemaElement(heading=_heading_spec(raw))

    count = raw.get('count')
    return SchemaElement(
        heading=_heading_spec(raw['heading']),
        optional=raw.get('optional', False),
        count=CountConstraint(**count) if count is not None else None,
        severity=raw.get('severity', SEVERITY_ERROR),
        allow_additional=raw.get('allow_additional', False),
        children=tuple(_element(child) for child in raw.get('children', [])),
        rules=_section_rules(raw),
        description=raw.get('description', ''),
    )


def validate_schema_data(data: Any) -> List[str]:
    """
    Validate raw schema data against the bundled JSON Schema.

    Args:
        data: Parsed YAML data

    Returns:
        List of error messages (empty if valid)

    Example:
        >>> validate_schema_data({'structure': ['# Title']})
        []
        >>> validate_schema_data({'structure': 'oops'})
        ["structure: 'oops' is not of type 'array'"]
    """
    errors = []
    for error in sorted(_validator.iter_errors(data), key=lambda e: list(map(str, e.absolute_path))):
        location = "/".join(str(p) for p in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def schema_from_dict(data: Any, source: str = "") -> Schema:
    """
    Build a Schema from parsed YAML data.

    Args:
        data: Parsed YAML (None is treated as an empty schema)
        source: Origin of the data, used in error messages

    Returns:
        Schema instance

    Raises:
        SchemaError: If the data does not conform to the schema format or an
            expression heading fails to compile
    """
    if data is None:
        data = {}

    errors = validate_schema_data(data)
    if errors:
        raise SchemaError("invalid schema", source=source, errors=errors)

    try:
        structure = tuple(_element(raw) for raw in data.get('structure', []))
    except ExpressionSyntaxError as e:
        raise SchemaError(str(e), source=source) from e

    links = data.get('links')
    heading_rules = data.get('heading_rules')
    frontmatter = data.get('frontmatter')

    return Schema(
        structure=structure,
        links=LinkRules(**{
            **links,
            'allowed_domains': tuple(links.get('allowed_domains', ())),
            'blocked_domains': tuple(links.get('blocked_domains', ())),
        }) if links is not None else None,
        heading_rules=HeadingRules(**heading_rules) if heading_rules is not None else None,
        frontmatter=FrontmatterConfig(
            optional=frontmatter.get('optional', False),
            fields=tuple(
                FrontmatterField(**{**fld, 'enum': tuple(fld.get('enum', ()))})
                for fld in frontmatter.get('fields', [])
            ),
        ) if frontmatter is not None else None,
        path=source,
    )


def parse_schema(text: str, source: str = "<string>") -> Schema:
    """
    Parse schema YAML text.

    Example:
        >>> schema = parse_schema("structure:\\n  - '# Title'\\n")
        >>> schema.structure[0].heading
        LiteralHeading(text='# Title')
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaError(f"YAML syntax error: {e}", source=source) from e
    return schema_from_dict(data, source=source)


def load_schema(path: Union[str, Path]) -> Schema:
    """
    Load and validate a schema file.

    Args:
        path: Path to a .mdschema.yml file

    Returns:
        Schema instance

    Raises:
        SchemaError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise SchemaError(f"cannot read schema file: {e.strerror or e}", source=str(path)) from e

    schema = parse_schema(text, source=str(path))
    logger.debug("Loaded schema %s (%d top-level elements)", path, len(schema.structure))
    return schema


def find_schema(start: Union[str, Path, None] = None) -> Optional[Path]:
    """
    Find the nearest schema file walking up from ``start``.

    Args:
        start: File or directory to start from (default: current directory)

    Returns:
        Path to the schema file, or None if none exists up to the filesystem root
    """
    current = Path(start) if start is not None else Path.cwd()
    current = current.resolve()
    if not current.is_dir():
        current = current.parent

    for directory in [current, *current.parents]:
        for name in SCHEMA_FILENAMES:
            candidate = directory / name
            if candidate.is_file():
                logger.debug("Found schema %s", candidate)
                return candidate
    return None
