#!/usr/bin/env python3
"""
Markdown AST Parser and Section Tree Builder

This module parses markdown documents with markdown-it-py and arranges them
into a tree of sections, one per heading, so that schema elements can be
bound to them.

Key Features:
- Parse markdown (CommonMark + GFM tables) to AST using markdown-it-py
- Build a section tree where each heading owns the following content
  up to its first sub-heading
- Extract fenced code blocks, tables, links, images and lists per section
- Strip a leading YAML front matter block while preserving line numbers
- Generate GitHub-style heading slugs

All line and column numbers are 1-based.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml
from markdown_it import MarkdownIt
from markdown_it.token import Token


@dataclass
class Heading:
    """
    A markdown heading.

    Attributes:
        level: Heading level (1 for H1, 2 for H2, etc.)
        text: Plain heading text (inline markup removed)
        line: Line number of the heading
        column: Column of the heading text
        slug: Anchor slug generated from the text
    """
    level: int
    text: str
    line: int
    column: int
    slug: str


@dataclass
class CodeBlock:
    """A fenced code block. ``lang`` is the first word of the info string."""
    lang: str
    line: int
    column: int


@dataclass
class Table:
    headers: List[str]
    line: int
    column: int


@dataclass
class Link:
    url: str
    text: str
    is_internal: bool
    line: int
    column: int


@dataclass
class Image:
    url: str
    alt: str
    line: int
    column: int


@dataclass
class ListBlock:
    """A bullet or ordered list. Nested lists are recorded separately."""
    is_ordered: bool
    item_count: int
    line: int
    column: int


@dataclass
class FrontMatter:
    """
    Leading YAML front matter block.

    Attributes:
        content: Raw YAML text between the delimiters
        data: Parsed mapping, or None when the YAML is invalid or not a mapping
        error: YAML error message when parsing failed
    """
    content: str
    data: Optional[Dict[str, Any]]
    error: str = ""


@dataclass(eq=False)
class Section:
    """
    A document section: one heading and the content it owns.

    The synthetic root section has no heading and owns the content before the
    first heading. A section's content and elements never include those of its
    child sections. Sections compare and hash by identity.
    """
    heading: Optional[Heading]
    start_line: int
    end_line: int
    content: str = ""
    children: List["Section"] = field(default_factory=list)
    parent: Optional["Section"] = field(default=None, repr=False)
    code_blocks: List[CodeBlock] = field(default_factory=list)
    tables: List[Table] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    images: List[Image] = field(default_factory=list)
    lists: List[ListBlock] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.heading is None

    def walk(self) -> Iterator["Section"]:
        """Yield this section and all descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Document:
    """
    A parsed markdown document.

    Attributes:
        path: Source file path ("" when parsed from a string)
        content: Full source text
        root: Synthetic root section
        front_matter: Front matter block, if the document starts with one
    """
    path: str
    content: str
    root: Section
    front_matter: Optional[FrontMatter] = None

    def sections(self) -> List[Section]:
        """All heading sections in document order (root excluded)."""
        return [s for s in self.root.walk() if not s.is_root]

    def headings(self) -> List[Heading]:
        return [s.heading for s in self.sections()]

    def links(self) -> List[Link]:
        return [link for s in self.root.walk() for link in s.links]


_SLUG_DROP_RE = re.compile(r'[^a-z0-9_\- ]')
_SLUG_DASHES_RE = re.compile(r'-{2,}')


def generate_slug(text: str) -> str:
    """
    Generate a GitHub-style anchor slug.

    Lowercases, keeps ASCII letters, digits and underscores, turns spaces and
    hyphens into hyphens, drops everything else, collapses repeated hyphens
    and trims hyphens from both ends.

    Args:
        text: Heading text

    Returns:
        Slug string

    Example:
        >>> generate_slug("Getting Started!")
        'getting-started'
        >>> generate_slug("API -- Reference")
        'api-reference'
    """
    slug = _SLUG_DROP_RE.sub('', text.lower()).replace(' ', '-')
    slug = _SLUG_DASHES_RE.sub('-', slug)
    return slug.strip('-')


# CommonMark plus GFM tables
_md = MarkdownIt("commonmark").enable("table")


def parse_markdown(text: str) -> List[Token]:
    """
    Parse markdown text to markdown-it-py block tokens.

    Example:
        >>> tokens = parse_markdown("# Title\\n\\nParagraph text.")
        >>> tokens[0].type
        'heading_open'
    """
    return _md.parse(text)


_FRONT_MATTER_CLOSE = ('---', '...')


def split_front_matter(text: str) -> Tuple[Optional[FrontMatter], str]:
    """
    Separate a leading YAML front matter block from the markdown body.

    The front matter lines are replaced with empty lines so that line numbers
    in the remaining markdown still match the source file.

    Args:
        text: Full document text

    Returns:
        Tuple of (FrontMatter or None, markdown body)

    Example:
        >>> fm, body = split_front_matter("---\\ntitle: Hi\\n---\\n# Title\\n")
        >>> fm.data
        {'title': 'Hi'}
        >>> body.splitlines()[3]
        '# Title'
    """
    lines = text.split('\n')
    if not lines or lines[0].rstrip() != '---':
        return None, text

    for idx in range(1, len(lines)):
        if lines[idx].rstrip() in _FRONT_MATTER_CLOSE:
            raw = '\n'.join(lines[1:idx])
            data: Optional[Dict[str, Any]] = None
            error = ""
            try:
                loaded = yaml.safe_load(raw) if raw.strip() else {}
                if isinstance(loaded, dict):
                    data = loaded
                else:
                    error = "front matter is not a mapping"
            except yaml.YAMLError as e:
                error = str(e)
            body = '\n'.join([''] * (idx + 1) + lines[idx + 1:])
            return FrontMatter(content=raw, data=data, error=error), body

    # Unterminated block: treat as plain markdown
    return None, text


def _inline_text(token: Token) -> str:
    """Plain text of an inline token, markup removed."""
    parts = []
    for child in token.children or []:
        if child.type in ('text', 'code_inline'):
            parts.append(child.content)
        elif child.type in ('softbreak', 'hardbreak'):
            parts.append(' ')
        elif child.type == 'image':
            parts.append(child.content)
    return ''.join(parts).strip()


def _heading_column(line: str) -> int:
    """Column of the heading text on an ATX or setext heading line."""
    stripped = line.lstrip(' ')
    indent = len(line) - len(stripped)
    if stripped.startswith('#'):
        hashes = len(stripped) - len(stripped.lstrip('#'))
        rest = stripped[hashes:]
        return indent + hashes + (len(rest) - len(rest.lstrip())) + 1
    return indent + 1


def _block_column(line: str) -> int:
    return len(line) - len(line.lstrip()) + 1


class _SectionBuilder:
    """Walks a markdown-it token stream and assembles the section tree."""

    def __init__(self, body: str):
        self.lines = body.split('\n')
        self.tokens = parse_markdown(body)
        self.root = Section(heading=None, start_line=1, end_line=max(len(self.lines), 1))
        self.current = self.root
        # (section, 0-based index of first content line)
        self.owned: List[Tuple[Section, int]] = []

    def _line(self, lineno: int) -> str:
        if 1 <= lineno <= len(self.lines):
            return self.lines[lineno - 1]
        return ""

    def _locate(self, needle: str, marker: str, block_map: Optional[List[int]]) -> Tuple[int, int]:
        """
        Find the line/column of an inline element in its enclosing block.

        Searches the block's source lines for ``needle`` and reports the
        column of the nearest preceding ``marker`` (e.g. ``[`` or ``![``).
        """
        if not block_map:
            return 1, 1
        start, end = block_map
        for idx in range(start, min(end, len(self.lines))):
            text = self.lines[idx]
            pos = text.find(needle) if needle else -1
            if pos >= 0:
                marker_pos = text.rfind(marker, 0, pos + 1)
                col = marker_pos if marker_pos >= 0 else pos
                return idx + 1, col + 1
        column = _block_column(self.lines[start]) if start < len(self.lines) else 1
        return start + 1, column

    def build(self) -> Section:
        stack: List[Section] = [self.root]
        open_lists: List[ListBlock] = []
        table: Optional[Table] = None
        in_thead = False
        block_map: Optional[List[int]] = None
        tokens = self.tokens
        i = 0

        while i < len(tokens):
            token = tokens[i]
            if token.map:
                block_map = token.map

            if token.type == 'heading_open' and token.level == 0:
                level = int(token.tag[1])
                inline = tokens[i + 1]
                text = _inline_text(inline)
                line = token.map[0] + 1
                heading = Heading(
                    level=level,
                    text=text,
                    line=line,
                    column=_heading_column(self._line(line)),
                    slug=generate_slug(text),
                )
                while stack[-1].heading is not None and stack[-1].heading.level >= level:
                    stack.pop()
                parent = stack[-1]
                section = Section(heading=heading, start_line=line, end_line=line, parent=parent)
                parent.children.append(section)
                stack.append(section)
                self.current = section
                self.owned.append((section, token.map[1]))
                # Skip inline + heading_close
                i += 3
                continue

            if token.type == 'fence':
                info = token.info.strip()
                lang = info.split()[0] if info else ""
                line = token.map[0] + 1
                self.current.code_blocks.append(
                    CodeBlock(lang=lang, line=line, column=_block_column(self._line(line)))
                )

            elif token.type in ('bullet_list_open', 'ordered_list_open'):
                line = token.map[0] + 1
                block = ListBlock(
                    is_ordered=token.type == 'ordered_list_open',
                    item_count=0,
                    line=line,
                    column=_block_column(self._line(line)),
                )
                self.current.lists.append(block)
                open_lists.append(block)

            elif token.type in ('bullet_list_close', 'ordered_list_close'):
                if open_lists:
                    open_lists.pop()

            elif token.type == 'list_item_open':
                if open_lists:
                    open_lists[-1].item_count += 1

            elif token.type == 'table_open':
                line = token.map[0] + 1
                table = Table(headers=[], line=line, column=_block_column(self._line(line)))
                self.current.tables.append(table)

            elif token.type == 'thead_open':
                in_thead = True

            elif token.type == 'thead_close':
                in_thead = False

            elif token.type == 'table_close':
                table = None

            elif token.type == 'inline':
                if in_thead and table is not None:
                    table.headers.append(_inline_text(token))
                self._collect_inline(token, block_map)

            i += 1

        self._finish()
        return self.root

    def _collect_inline(self, token: Token, block_map: Optional[List[int]]) -> None:
        children = token.children or []
        for idx, child in enumerate(children):
            if child.type == 'link_open':
                url = str(child.attrGet('href') or '')
                text_parts = []
                for inner in children[idx + 1:]:
                    if inner.type == 'link_close':
                        break
                    if inner.type in ('text', 'code_inline'):
                        text_parts.append(inner.content)
                # markdown-it normalizes href, so this search can miss and
                # fall back to the start of the block
                if child.markup == 'autolink':
                    line, col = self._locate(url, '<', block_map)
                else:
                    line, col = self._locate(f"]({url}", '[', block_map)
                self.current.links.append(Link(
                    url=url,
                    text=''.join(text_parts),
                    is_internal=url.startswith('#'),
                    line=line,
                    column=col,
                ))
            elif child.type == 'image':
                url = str(child.attrGet('src') or '')
                line, col = self._locate(f"]({url}", '![', block_map)
                self.current.images.append(Image(url=url, alt=child.content, line=line, column=col))

    def _finish(self) -> None:
        """Compute end lines and own content for every heading section."""
        total = len(self.lines)
        sections = [s for s, _ in self.owned]

        for idx, (section, content_start) in enumerate(self.owned):
            level = section.heading.level
            end = total
            for later in sections[idx + 1:]:
                if later.heading.level <= level:
                    end = later.start_line - 1
                    break
            section.end_line = max(end, section.start_line)

            next_heading = sections[idx + 1].start_line - 1 if idx + 1 < len(sections) else total
            section.content = '\n'.join(self.lines[content_start:next_heading]).strip('\n')

        first_heading = sections[0].start_line - 1 if sections else total
        self.root.content = '\n'.join(self.lines[:first_heading]).strip('\n')


def parse_document(text: str, path: str = "") -> Document:
    """
    Parse markdown text into a Document with a section tree.

    Args:
        text: Markdown source
        path: Source file path, used for expression variables and link resolution

    Returns:
        Parsed Document

    Example:
        >>> doc = parse_document("# Title\\n\\n## Usage\\n\\nRun it.\\n")
        >>> [s.heading.text for s in doc.sections()]
        ['Title', 'Usage']
        >>> doc.root.children[0].children[0].content
        'Run it.'
    """
    front_matter, body = split_front_matter(text)
    root = _SectionBuilder(body).build()
    return Document(path=path, content=text, root=root, front_matter=front_matter)


def parse_file(path: str) -> Document:
    """
    Read and parse a markdown file.

    Raises:
        OSError: If the file cannot be read
    """
    with open(path, 'r', encoding='utf-8') as f:
        text = f.read()
    return parse_document(text, path=str(path))


if __name__ == '__main__':
    # Example usage
    import sys

    if len(sys.argv) < 2:
        print("Usage: markdown_parser.py <markdown_file>")
        print("\nParses markdown file and displays the section tree.")
        sys.exit(1)

    document = parse_file(sys.argv[1])

    print(f"Found {len(document.sections())} sections:\n")

    for section in document.sections():
        indent = "  " * (section.heading.level - 1)
        print(f"{indent}{'#' * section.heading.level} {section.heading.text}")
        print(f"{indent}  Lines: {section.start_line}-{section.end_line}")
        print(f"{indent}  Code blocks: {len(section.code_blocks)}  Tables: {len(section.tables)}"
              f"  Links: {len(section.links)}  Images: {len(section.images)}  Lists: {len(section.lists)}")
