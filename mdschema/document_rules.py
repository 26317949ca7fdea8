#!/usr/bin/env python3
"""
Document-Level Rules

Rules configured once per schema rather than per section:

- heading: heading level skips, duplicate headings, maximum depth
- frontmatter: presence of the YAML block, required fields, field types,
  formats, allowed values and patterns
- link: internal anchors, relative file links, blocked/allowed domains and
  optional reachability of external URLs

External URLs are checked with one HEAD request each through httpx, with the
schema's timeout and no retry. A client can be injected for testing:

    >>> import httpx
    >>> transport = httpx.MockTransport(lambda request: httpx.Response(404))
    >>> rule = LinkRule(client=httpx.Client(transport=transport))
"""

import datetime
import logging
import os
import re
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import httpx

from mdschema.markdown_parser import Heading, Link
from mdschema.schema import DEFAULT_EXTERNAL_TIMEOUT, FrontmatterField, LinkRules
from mdschema.vast import Context, Rule

logger = logging.getLogger(__name__)

USER_AGENT = "mdschema-link-validator/1.0"

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_SCHEME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*:')


class HeadingRule(Rule):
    """Global heading checks from ``heading_rules``."""

    name = "heading"

    def check(self, ctx: Context) -> None:
        rules = ctx.schema.heading_rules
        if rules is None:
            return

        headings = ctx.document.headings()
        if not headings:
            return

        if rules.no_skip_levels:
            self._check_skip_levels(headings)
        if rules.unique:
            self._check_unique(headings)
        if rules.unique_per_level:
            self._check_unique_per_level(headings)
        if rules.max_depth > 0:
            self._check_max_depth(headings, rules.max_depth)

    def _check_skip_levels(self, headings: List[Heading]) -> None:
        prev_level = headings[0].level
        for h in headings[1:]:
            if h.level > prev_level + 1:
                self.report(
                    f"Heading level skipped: '{h.text}' (h{h.level}) after h{prev_level}",
                    h.line, h.column,
                )
            prev_level = h.level

    def _check_unique(self, headings: List[Heading]) -> None:
        seen: Dict[str, Heading] = {}
        for h in headings:
            key = h.text.strip().lower()
            if key in seen:
                self.report(
                    f"Duplicate heading '{h.text}' (first occurrence at line {seen[key].line})",
                    h.line, h.column,
                )
            else:
                seen[key] = h

    def _check_unique_per_level(self, headings: List[Heading]) -> None:
        seen: Dict[tuple, Heading] = {}
        for h in headings:
            key = (h.level, h.text.strip().lower())
            if key in seen:
                self.report(
                    f"Duplicate h{h.level} heading '{h.text}' (first occurrence at line {seen[key].line})",
                    h.line, h.column,
                )
            else:
                seen[key] = h

    def _check_max_depth(self, headings: List[Heading], max_depth: int) -> None:
        for h in headings:
            if h.level > max_depth:
                self.report(
                    f"Heading '{h.text}' (h{h.level}) exceeds maximum depth of {max_depth}",
                    h.line, h.column,
                )


def _is_valid_date(value: Any) -> bool:
    if isinstance(value, (datetime.date, datetime.datetime)):
        return True
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


class FrontmatterRule(Rule):
    """
    Front matter checks from ``frontmatter``.

    All violations point at line 1, column 1.
    """

    name = "frontmatter"

    def check(self, ctx: Context) -> None:
        config = ctx.schema.frontmatter
        if config is None:
            return

        front_matter = ctx.document.front_matter
        if front_matter is None:
            if not config.optional:
                self.report("Frontmatter is required but not found", 1, 1)
            return

        if front_matter.data is None:
            self.report("Frontmatter could not be parsed as valid YAML", 1, 1)
            return

        for spec in config.fields:
            if spec.name not in front_matter.data:
                if not spec.optional:
                    self.report(f"Required frontmatter field '{spec.name}' is missing", 1, 1)
                continue
            for message in self._check_field(spec, front_matter.data[spec.name]):
                self.report(message, 1, 1)

    def _check_field(self, spec: FrontmatterField, value: Any) -> List[str]:
        errors = []
        name = spec.name

        if spec.type:
            error = self._check_type(name, value, spec.type)
            if error:
                errors.append(error)

        if spec.format:
            error = self._check_format(name, value, spec.format)
            if error:
                errors.append(error)

        if spec.enum and value not in spec.enum:
            allowed = ", ".join(str(v) for v in spec.enum)
            errors.append(f"Frontmatter field '{name}' must be one of: {allowed} (found '{value}')")

        if spec.pattern:
            try:
                if not re.search(spec.pattern, str(value)):
                    errors.append(f"Frontmatter field '{name}' does not match pattern '{spec.pattern}'")
            except re.error as e:
                errors.append(f"Invalid regex pattern for frontmatter field '{name}': {e}")

        return errors

    @staticmethod
    def _check_type(name: str, value: Any, expected: str) -> Optional[str]:
        if expected == "string" and not isinstance(value, str):
            return f"Frontmatter field '{name}' should be a string"
        if expected == "number" and (isinstance(value, bool) or not isinstance(value, (int, float))):
            return f"Frontmatter field '{name}' should be a number"
        if expected == "boolean" and not isinstance(value, bool):
            return f"Frontmatter field '{name}' should be a boolean"
        if expected == "array" and not isinstance(value, list):
            return f"Frontmatter field '{name}' should be an array"
        if expected == "date" and not _is_valid_date(value):
            return f"Frontmatter field '{name}' should be a date (YYYY-MM-DD)"
        return None

    @staticmethod
    def _check_format(name: str, value: Any, fmt: str) -> Optional[str]:
        if fmt == "date":
            if not _is_valid_date(value):
                return f"Frontmatter field '{name}' should be in YYYY-MM-DD format"
            return None
        if not isinstance(value, str):
            return f"Frontmatter field '{name}' format validation requires a string value"
        if fmt == "email" and not _EMAIL_RE.match(value):
            return f"Frontmatter field '{name}' should be a valid email address"
        if fmt == "url" and not _is_valid_url(value):
            return f"Frontmatter field '{name}' should be a valid URL"
        return None


def _domain_matches(host: str, domain: str) -> bool:
    host = host.lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


class LinkRule(Rule):
    """
    Link checks from ``links``.

    Args:
        client: httpx client used for external checks; one is created per
            document when omitted
    """

    name = "link"

    def __init__(self, client: Optional[httpx.Client] = None):
        super().__init__()
        self.client = client

    def check(self, ctx: Context) -> None:
        rules = ctx.schema.links
        if rules is None:
            return

        doc_dir = os.path.dirname(ctx.document.path)
        links = ctx.document.links()

        if self.client is not None or not rules.validate_external:
            self._check_links(ctx, rules, links, doc_dir, self.client)
            return

        timeout = rules.external_timeout if rules.external_timeout > 0 else DEFAULT_EXTERNAL_TIMEOUT
        with httpx.Client(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        ) as client:
            self._check_links(ctx, rules, links, doc_dir, client)

    def _check_links(self, ctx: Context, rules: LinkRules, links: List[Link], doc_dir: str,
                     client: Optional[httpx.Client]) -> None:
        for link in links:
            url = link.url
            if url.startswith("#"):
                if rules.validate_internal and not ctx.has_slug(url[1:]):
                    self.report(
                        f"Broken internal link: anchor '{url}' does not exist in the document",
                        link.line, link.column,
                    )
            elif url.startswith(("http://", "https://")):
                self._check_external(link, rules, client)
            elif _SCHEME_RE.match(url):
                # mailto:, ftp:, ... are not checked
                continue
            elif rules.validate_files:
                self._check_file(link, doc_dir, ctx.root_dir)

    def _check_external(self, link: Link, rules: LinkRules, client: Optional[httpx.Client]) -> None:
        try:
            host = urlparse(link.url).hostname or ""
        except ValueError:
            self.report(f"Invalid URL format: {link.url}", link.line, link.column)
            return

        for blocked in rules.blocked_domains:
            if _domain_matches(host, blocked):
                self.report(f"Link to blocked domain: {host}", link.line, link.column)
                return

        if rules.allowed_domains and not any(_domain_matches(host, d) for d in rules.allowed_domains):
            self.report(
                f"Link to domain '{host}' is not in the allowed domains list",
                link.line, link.column,
            )
            return

        if not rules.validate_external or client is None:
            return

        timeout = rules.external_timeout if rules.external_timeout > 0 else DEFAULT_EXTERNAL_TIMEOUT
        logger.debug("HEAD %s", link.url)
        try:
            response = client.head(
                link.url,
                headers={"User-Agent": USER_AGENT},
                timeout=timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            self.report(f"Failed to reach URL '{link.url}': {e}", link.line, link.column)
            return

        if response.status_code >= 400:
            self.report(
                f"URL '{link.url}' returned status {response.status_code}",
                link.line, link.column,
            )

    def _check_file(self, link: Link, doc_dir: str, root_dir: str) -> None:
        target = link.url.split("#", 1)[0].split("?", 1)[0]
        if not target:
            return
        target = unquote(target)

        if target.startswith("/"):
            base = root_dir or doc_dir
            path = os.path.normpath(os.path.join(base, target.lstrip("/")))
        else:
            path = os.path.normpath(os.path.join(doc_dir, target))

        if not os.path.exists(path):
            self.report(f"Broken file link: '{link.url}' does not exist", link.line, link.column)
