#!/usr/bin/env python3
"""Markdown schema validation tool."""

import argparse
import glob
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from mdschema.generator import generate_template, write_default_schema
from mdschema.infer import InferenceError, derive_schema, dump_schema
from mdschema.markdown_parser import parse_file
from mdschema.rule_evaluator import RuleEvaluator
from mdschema.schema import (
    JSON_SCHEMA,
    SCHEMA_FILENAMES,
    Schema,
    SchemaError,
    find_schema,
    load_schema,
)
from mdschema.violation import Violation

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ('.md', '.mdx')

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_ERROR = 2


def discover_files(patterns: List[str]) -> List[Path]:
    """Expand files, directories and glob patterns into markdown files.

    Directories are searched recursively. ``**`` in patterns matches any
    number of directories.

    Args:
        patterns: Paths or glob patterns from the command line

    Returns:
        Sorted, de-duplicated list of markdown files

    Raises:
        FileNotFoundError: If a pattern matches nothing
    """
    found = set()

    for pattern in patterns:
        if os.path.isdir(pattern):
            matches = [str(p) for p in Path(pattern).rglob('*')]
        elif any(ch in pattern for ch in "*?["):
            matches = glob.glob(pattern, recursive=True)
        elif os.path.exists(pattern):
            matches = [pattern]
        else:
            raise FileNotFoundError(f"No such file or directory: {pattern}")

        for match in matches:
            path = Path(match)
            if path.is_file() and path.suffix.lower() in MARKDOWN_EXTENSIONS:
                found.add(path)

    return sorted(found)


def resolve_schema(schema_path: Optional[str]) -> Schema:
    """Load the schema named on the command line, or discover the nearest one.

    Raises:
        SchemaError: If no schema can be found or it fails to load
    """
    if schema_path:
        return load_schema(schema_path)

    discovered = find_schema()
    if discovered is None:
        raise SchemaError(
            f"no schema file found (looked for {', '.join(SCHEMA_FILENAMES)} "
            f"in {Path.cwd()} and its parents); use --schema"
        )
    return load_schema(discovered)


def format_text(violations: List[Violation], file_count: int) -> str:
    """Render violations in the console format, followed by a summary line."""
    lines = [v.format_error() for v in violations]
    files_with_violations = len({v.path for v in violations})
    if violations:
        lines.append("")
        lines.append(f"Found {len(violations)} violation(s) in {files_with_violations} file(s) "
                     f"({file_count} checked)")
    else:
        lines.append(f"Validation passed: {file_count} document(s)")
    return "\n".join(lines)


def format_json(violations: List[Violation], file_count: int) -> str:
    """Render violations as a JSON document."""
    return json.dumps({
        'files_checked': file_count,
        'violation_count': len(violations),
        'violations': [v.to_dict() for v in violations],
    }, indent=2)


def check(args) -> int:
    """Validate markdown files against a schema.

    Args:
        args: Command-line arguments from argparse

    Returns:
        Exit code: 0 on success, 1 on violations, 2 on schema or file errors
    """
    try:
        schema = resolve_schema(args.schema)
    except SchemaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        files = discover_files(args.paths)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not files:
        print("Error: no markdown files matched", file=sys.stderr)
        return EXIT_ERROR

    evaluator = RuleEvaluator(schema)
    violations: List[Violation] = []

    for path in files:
        logger.debug("Checking %s", path)
        try:
            document = parse_file(str(path))
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: cannot read {path}: {e}", file=sys.stderr)
            return EXIT_ERROR
        violations.extend(evaluator.evaluate(document))

    violations.sort(key=lambda v: (v.path, v.line, v.column))

    if args.format == 'json':
        print(format_json(violations, len(files)))
    else:
        print(format_text(violations, len(files)))

    return EXIT_VIOLATIONS if violations else EXIT_OK


def lint_schema(args) -> int:
    """Load and validate a schema file without checking any documents.

    Args:
        args: Command-line arguments from argparse

    Returns:
        Exit code: 0 if the schema is valid, 2 otherwise
    """
    try:
        schema = resolve_schema(args.schema)
    except SchemaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Schema is valid: {schema.path} ({len(schema.structure)} top-level element(s))")
    return EXIT_OK


def write_output(content: str, output: Optional[str]) -> bool:
    """Write content to a file, creating parent directories, or print it.

    Returns:
        True if a file was written
    """
    if not output:
        print(content, end='' if content.endswith('\n') else '\n')
        return False

    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding='utf-8')
    return True


def init(args) -> int:
    """Create a starter schema file.

    An existing schema is left untouched.

    Returns:
        Exit code: 0 on success or if the schema exists, 2 if it cannot be written
    """
    path = Path(args.directory) / SCHEMA_FILENAMES[0]
    try:
        write_default_schema(path)
    except FileExistsError as e:
        print(e)
        return EXIT_OK
    except OSError as e:
        print(f"Error: cannot create {path}: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Created {path} with default configuration")
    return EXIT_OK


def generate(args) -> int:
    """Generate a markdown template from a schema.

    Returns:
        Exit code: 0 on success, 2 on schema or write errors
    """
    try:
        schema = resolve_schema(args.schema)
    except SchemaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        written = write_output(generate_template(schema), args.output)
    except OSError as e:
        print(f"Error: cannot write {args.output}: {e}", file=sys.stderr)
        return EXIT_ERROR

    if written:
        print(f"Generated markdown template at {args.output}")
    return EXIT_OK


def derive(args) -> int:
    """Infer a schema from an existing markdown document.

    Returns:
        Exit code: 0 on success, 2 if the document cannot be read, has no
        headings, or the schema cannot be written
    """
    try:
        document = parse_file(args.document)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: cannot read {args.document}: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        data = derive_schema(document)
    except InferenceError as e:
        print(f"Error: {args.document}: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        written = write_output(dump_schema(data), args.output)
    except OSError as e:
        print(f"Error: cannot write {args.output}: {e}", file=sys.stderr)
        return EXIT_ERROR

    if written:
        print(f"Derived schema written to {args.output}")
    return EXIT_OK


def json_schema(args) -> int:
    """Print or write the JSON Schema for schema files, for editor integration.

    Returns:
        Exit code: 0 on success, 2 if the output cannot be written
    """
    try:
        written = write_output(json.dumps(JSON_SCHEMA, indent=2) + "\n", args.output)
    except OSError as e:
        print(f"Error: cannot write {args.output}: {e}", file=sys.stderr)
        return EXIT_ERROR

    if written:
        print(f"JSON Schema written to {args.output}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the validation tool."""
    parser = argparse.ArgumentParser(
        prog='mdschema',
        description="Validate Markdown documents against a YAML schema",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s check README.md
  %(prog)s check 'docs/**/*.md' --schema docs/.mdschema.yml
  %(prog)s check docs --format json
  %(prog)s lint-schema .mdschema.yml
  %(prog)s init
  %(prog)s generate -o TEMPLATE.md
  %(prog)s derive README.md -o .mdschema.yml
  %(prog)s schema -o schema.json
        """
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        required=True,
        help='Command to run'
    )

    # check subcommand
    parser_check = subparsers.add_parser(
        'check',
        help='Validate markdown files against the schema'
    )
    parser_check.add_argument(
        'paths',
        nargs='+',
        help='Markdown files, directories or glob patterns'
    )
    parser_check.add_argument(
        '--schema', '-s',
        help='Schema file (default: nearest .mdschema.yml)'
    )
    parser_check.add_argument(
        '--format', '-f',
        choices=['text', 'json'],
        default='text',
        help='Output format (default: text)'
    )

    # lint-schema subcommand
    parser_lint = subparsers.add_parser(
        'lint-schema',
        help='Validate a schema file'
    )
    parser_lint.add_argument(
        'schema',
        nargs='?',
        help='Schema file (default: nearest .mdschema.yml)'
    )

    # init subcommand
    parser_init = subparsers.add_parser(
        'init',
        help='Create a starter .mdschema.yml'
    )
    parser_init.add_argument(
        'directory',
        nargs='?',
        default='.',
        help='Directory to create the schema in (default: current directory)'
    )

    # generate subcommand
    parser_generate = subparsers.add_parser(
        'generate',
        help='Generate a markdown template from the schema'
    )
    parser_generate.add_argument(
        'schema',
        nargs='?',
        help='Schema file (default: nearest .mdschema.yml)'
    )
    parser_generate.add_argument(
        '--output', '-o',
        help='Output file (default: stdout)'
    )

    # derive subcommand
    parser_derive = subparsers.add_parser(
        'derive',
        help='Infer a schema from an existing markdown document'
    )
    parser_derive.add_argument(
        'document',
        help='Markdown document to derive the schema from'
    )
    parser_derive.add_argument(
        '--output', '-o',
        help='Output file (default: stdout)'
    )

    # schema subcommand
    parser_schema = subparsers.add_parser(
        'schema',
        help='Print the JSON Schema for .mdschema.yml files'
    )
    parser_schema.add_argument(
        '--output', '-o',
        help='Output file (default: stdout)'
    )

    # Parse arguments
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    # Dispatch to handler functions
    handlers: Dict[str, callable] = {
        'check': check,
        'lint-schema': lint_schema,
        'init': init,
        'generate': generate,
        'derive': derive,
        'schema': json_schema,
    }

    handler = handlers.get(args.command)
    if handler is None:
        print(f"Error: Unknown command '{args.command}'", file=sys.stderr)
        return EXIT_ERROR

    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
