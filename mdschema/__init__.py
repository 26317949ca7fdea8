"""Validate Markdown documents against a declarative YAML schema."""

__version__ = "0.1.0"
