#!/usr/bin/env python3
"""
Heading Expression Language

A small boolean expression language used by ``{expr: ...}`` heading specs to
match headings dynamically, e.g.:

    slug(filename) == slug(heading)
    hasPrefix(heading, "v") && match(heading, "^v[0-9]+")
    trimPrefix(filename, "[0-9]+-") == slug(heading)

Expressions are compiled once when the schema is loaded. Compilation checks
syntax, variable names, function names and arities, so a malformed expression
is reported at load time and never during matching. Evaluation has no side
effects and always returns a bool.

Supported syntax:
- String literals: "text" or 'text' (backslash escapes)
- Numbers, true, false
- Variables: filename, heading, level
- Function calls: name(arg, ...)
- Operators: == != + ! && || (and the keywords not, and, or)
- Parentheses for grouping
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from mdschema.markdown_parser import generate_slug


class ExpressionError(Exception):
    """Base exception for heading expression errors."""
    pass


class ExpressionSyntaxError(ExpressionError):
    """Exception raised when an expression cannot be compiled."""
    pass


# Function implementations

def _search(pattern: str, text: str) -> Optional[re.Match]:
    try:
        return re.search(pattern, text)
    except re.error:
        return None


def match_regex(s: Any, pattern: Any) -> bool:
    """Check if a string contains a match for a regex (invalid regex never matches)."""
    return _search(str(pattern), str(s)) is not None


def trim_prefix_regex(s: Any, pattern: Any) -> str:
    """
    Remove a regex match from the start of a string.

    Example:
        >>> trim_prefix_regex("01-getting-started", "[0-9]+-")
        'getting-started'
    """
    s = str(s)
    try:
        m = re.match(str(pattern), s)
    except re.error:
        return s
    if m:
        return s[m.end():]
    return s


def trim_suffix_regex(s: Any, pattern: Any) -> str:
    """
    Remove a regex match from the end of a string.

    Example:
        >>> trim_suffix_regex("install-guide", "-guide")
        'install'
    """
    s = str(s)
    try:
        return re.sub(f"(?:{pattern})$", "", s, count=1)
    except re.error:
        return s


def to_kebab_case(s: Any) -> str:
    """
    Convert PascalCase/camelCase to kebab-case.

    Example:
        >>> to_kebab_case("CreateUnit")
        'create-unit'
        >>> to_kebab_case("XMLParser")
        'xml-parser'
    """
    s = str(s)
    out = []
    for i, ch in enumerate(s):
        if i > 0 and "A" <= ch <= "Z":
            prev_lower = "a" <= s[i - 1] <= "z"
            next_lower = i + 1 < len(s) and "a" <= s[i + 1] <= "z"
            if prev_lower or next_lower:
                out.append("-")
        out.append(ch)
    return "".join(out).lower()


# Function registry: name -> (implementation, arity)
FUNCTIONS: Dict[str, Tuple[Callable[..., Any], int]] = {
    'slug': (lambda s: generate_slug(str(s)), 1),
    'kebab': (to_kebab_case, 1),
    'lower': (lambda s: str(s).lower(), 1),
    'upper': (lambda s: str(s).upper(), 1),
    'trim': (lambda s: str(s).strip(), 1),
    'hasPrefix': (lambda s, p: str(s).startswith(str(p)), 2),
    'hasSuffix': (lambda s, p: str(s).endswith(str(p)), 2),
    'contains': (lambda s, sub: str(sub) in str(s), 2),
    'match': (match_regex, 2),
    'replace': (lambda s, old, new: str(s).replace(str(old), str(new)), 3),
    'trimPrefix': (trim_prefix_regex, 2),
    'trimSuffix': (trim_suffix_regex, 2),
}

VARIABLES = ('filename', 'heading', 'level')


# Tokenizer

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>==|!=|&&|\|\||[!+(),])
""", re.VERBOSE)

_ESCAPES = {'n': '\n', 't': '\t', '\\': '\\', '"': '"', "'": "'"}


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    pos: int


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == '\\' and i + 1 < len(body):
            nxt = body[i + 1]
            # Unknown escapes keep the backslash so regex arguments survive
            out.append(_ESCAPES.get(nxt, '\\' + nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def tokenize(source: str) -> List[Token]:
    """
    Split an expression into tokens.

    Raises:
        ExpressionSyntaxError: On characters that start no valid token
    """
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if not m:
            if source[pos] in "\"'":
                raise ExpressionSyntaxError(f"Unterminated string at position {pos}: {source}")
            raise ExpressionSyntaxError(f"Unexpected character {source[pos]!r} at position {pos}: {source}")
        kind = m.lastgroup
        text = m.group(kind)
        if kind == 'number':
            tokens.append(Token('number', float(text) if '.' in text else int(text), pos))
        elif kind == 'string':
            tokens.append(Token('string', _unescape(text[1:-1]), pos))
        elif kind == 'ident':
            if text in ('and', 'or', 'not'):
                tokens.append(Token('op', {'and': '&&', 'or': '||', 'not': '!'}[text], pos))
            elif text in ('true', 'false'):
                tokens.append(Token('bool', text == 'true', pos))
            else:
                tokens.append(Token('ident', text, pos))
        elif kind == 'op':
            tokens.append(Token('op', text, pos))
        pos = m.end()
    tokens.append(Token('end', None, len(source)))
    return tokens


# Expression tree

@dataclass(frozen=True)
class Const:
    value: Any

    def evaluate(self, env: Dict[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Var:
    name: str

    def evaluate(self, env: Dict[str, Any]) -> Any:
        return env.get(self.name, "")


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple[Any, ...]

    def evaluate(self, env: Dict[str, Any]) -> Any:
        func, _ = FUNCTIONS[self.name]
        return func(*(arg.evaluate(env) for arg in self.args))


@dataclass(frozen=True)
class Not:
    operand: Any

    def evaluate(self, env: Dict[str, Any]) -> Any:
        return not _truthy(self.operand.evaluate(env))


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any

    def evaluate(self, env: Dict[str, Any]) -> Any:
        if self.op == '&&':
            return _truthy(self.left.evaluate(env)) and _truthy(self.right.evaluate(env))
        if self.op == '||':
            return _truthy(self.left.evaluate(env)) or _truthy(self.right.evaluate(env))

        left = self.left.evaluate(env)
        right = self.right.evaluate(env)
        if self.op == '==':
            return left == right
        if self.op == '!=':
            return left != right
        # '+'
        if _is_number(left) and _is_number(right):
            return left + right
        return f"{left}{right}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _truthy(value: Any) -> bool:
    return value is True


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def accept_op(self, *ops: str) -> Optional[str]:
        token = self.peek()
        if token.kind == 'op' and token.value in ops:
            self.pos += 1
            return token.value
        return None

    def expect_op(self, op: str) -> None:
        if not self.accept_op(op):
            self.error(f"expected {op!r}")

    def error(self, what: str) -> None:
        token = self.peek()
        found = "end of expression" if token.kind == 'end' else repr(token.value)
        raise ExpressionSyntaxError(
            f"Invalid expression {self.source!r}: {what} at position {token.pos}, found {found}"
        )

    def parse(self):
        if self.peek().kind == 'end':
            self.error("expected an expression")
        node = self.parse_or()
        if self.peek().kind != 'end':
            self.error("unexpected trailing input")
        return node

    def parse_or(self):
        node = self.parse_and()
        while self.accept_op('||'):
            node = Binary('||', node, self.parse_and())
        return node

    def parse_and(self):
        node = self.parse_not()
        while self.accept_op('&&'):
            node = Binary('&&', node, self.parse_not())
        return node

    def parse_not(self):
        if self.accept_op('!'):
            return Not(self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self):
        node = self.parse_additive()
        op = self.accept_op('==', '!=')
        if op:
            node = Binary(op, node, self.parse_additive())
        return node

    def parse_additive(self):
        node = self.parse_primary()
        while self.accept_op('+'):
            node = Binary('+', node, self.parse_primary())
        return node

    def parse_primary(self):
        token = self.peek()

        if token.kind in ('string', 'number', 'bool'):
            self.advance()
            return Const(token.value)

        if token.kind == 'ident':
            self.advance()
            if self.accept_op('('):
                return self.parse_call(token)
            if token.value not in VARIABLES:
                raise ExpressionSyntaxError(
                    f"Unknown variable {token.value!r} in {self.source!r}. "
                    f"Available variables: {', '.join(VARIABLES)}"
                )
            return Var(token.value)

        if self.accept_op('('):
            node = self.parse_or()
            self.expect_op(')')
            return node

        self.error("expected a value")

    def parse_call(self, name_token: Token):
        name = name_token.value
        if name not in FUNCTIONS:
            raise ExpressionSyntaxError(
                f"Unknown function {name!r} in {self.source!r}. "
                f"Available functions: {', '.join(FUNCTIONS.keys())}"
            )

        args = []
        if not self.accept_op(')'):
            args.append(self.parse_or())
            while self.accept_op(','):
                args.append(self.parse_or())
            self.expect_op(')')

        _, arity = FUNCTIONS[name]
        if len(args) != arity:
            raise ExpressionSyntaxError(
                f"Function {name!r} takes {arity} argument(s), got {len(args)} in {self.source!r}"
            )
        return Call(name, tuple(args))


class Expression:
    """
    A compiled heading expression.

    Example:
        >>> expr = compile_expression('slug(filename) == slug(heading)')
        >>> expr.evaluate({'filename': 'getting-started', 'heading': 'Getting Started'})
        True
    """

    def __init__(self, source: str):
        self.source = source
        self._tree = _Parser(source).parse()

    def evaluate(self, variables: Dict[str, Any]) -> bool:
        """
        Evaluate against variable bindings.

        Missing variables evaluate to the empty string. Any non-boolean result
        counts as False.
        """
        result = self._tree.evaluate(variables)
        return result is True

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Expression) and other.source == self.source

    def __hash__(self) -> int:
        return hash(self.source)


def compile_expression(source: str) -> Expression:
    """
    Compile an expression string.

    Args:
        source: Expression source text

    Returns:
        Compiled Expression

    Raises:
        ExpressionSyntaxError: If the expression is malformed
    """
    if not isinstance(source, str):
        raise ExpressionSyntaxError(f"Expression must be a string, got {type(source).__name__}")
    return Expression(source.strip())


if __name__ == '__main__':
    import sys

    if len(sys.argv) < 3:
        print("Usage: expression.py <expression> <filename> [heading]")
        print("\nExample:")
        print('  expression.py \'slug(filename) == slug(heading)\' getting-started "Getting Started"')
        sys.exit(1)

    try:
        expr = compile_expression(sys.argv[1])
    except ExpressionError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    heading = sys.argv[3] if len(sys.argv) > 3 else ""
    result = expr.evaluate({'filename': sys.argv[2], 'heading': heading, 'level': 1})
    print(f"Result: {result}")
    sys.exit(0 if result else 1)
