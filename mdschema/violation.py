#!/usr/bin/env python3
"""
Violation model shared by every validation rule.

A violation records which rule fired, a human readable message, the 1-based
line/column it points at, and a severity. Rules never know which file they
are looking at; the caller attaches the path with ``with_path`` before
sorting and rendering.
"""

from dataclasses import dataclass, replace, asdict
from typing import Any, Dict

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"

SEVERITIES = (SEVERITY_ERROR, SEVERITY_WARNING, SEVERITY_INFO)


def severity_from_schema(value: str) -> str:
    """
    Normalize a schema severity string.

    Unknown or empty values fall back to error.

    Example:
        >>> severity_from_schema("warning")
        'warning'
        >>> severity_from_schema("")
        'error'
    """
    if value in SEVERITIES:
        return value
    return SEVERITY_ERROR


@dataclass(frozen=True)
class Violation:
    """
    Structured rule violation.

    Attributes:
        rule: Identifier of the rule that produced the violation
        message: Human readable description
        line: 1-based line number
        column: 1-based column number
        severity: One of "error", "warning" or "info"
        path: Source file path (empty until the caller attaches it)
    """
    rule: str
    message: str
    line: int
    column: int
    severity: str = SEVERITY_ERROR
    path: str = ""

    def with_path(self, path: str) -> "Violation":
        """Return a copy attached to a file path."""
        return replace(self, path=path)

    @property
    def position(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"

    def format_error(self) -> str:
        """
        Format violation for console output.

        Returns:
            Formatted violation string

        Example:
            [ERROR] docs/README.md:3:1: structure
              Required element "## Usage" not found within "Title"
        """
        severity_tag = f"[{self.severity.upper()}]"
        location = self.position if self.path else f"{self.line}:{self.column}"
        return f"{severity_tag} {location}: {self.rule}\n  {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.position}: {self.rule}: {self.message}"
