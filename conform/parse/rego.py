"""Rego (OPA) policy parser.

Rego has no resource blocks, so the module's own constructs are the
resources:

  package authz.http        → kind "package", fields {"path": "authz.http"}
  import data.lib as lib    → kind "import",  fields {"path": "data.lib", "alias": "lib"}
  default allow := false    → kind "rule",    fields {"name": "allow", "default": True, "value": False, ...}
  deny[msg] { ... }         → kind "rule",    fields {"name": "deny", "key": "msg", "body": [...], ...}

Rule fields:
  name     Rule name (dotted refs kept as written).
  default  True for ``default`` rules.
  args     Function arguments as written, when the rule is a function.
  key      Partial set/object key (``deny[msg]`` or ``deny contains msg``).
  value    Assigned value: decoded when it is a JSON literal, else raw text.
           True when the rule has no explicit value.
  body     Body expressions as written, one string per expression.
  else     List of {"value", "body"} for ``else`` branches.
  head     The raw rule head.

Rules are not evaluated; checks address the structure, e.g. "the default
of ``allow`` is false" or "``deny`` has a body".
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any, NamedTuple

from conform.parse.models import (
    Dialect,
    ParsedResource,
    PolicySyntaxError,
    SourceLocation,
)

_NUMBER_RE = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")
_OPERATORS_2 = (":=", "==", "!=", "<=", ">=")
_OPERATORS_1 = "=<>+-*/%|&.,;:()[]{}!"
_OPENERS = {"{": "}", "[": "]", "(": ")"}
_CLOSERS = {"}", "]", ")"}
_ASSIGN = {"=", ":="}


class _Token(NamedTuple):
    type: str  # IDENT, STRING, NUMBER, OP, NEWLINE, EOF
    value: Any
    line: int
    column: int
    start: int
    end: int


def _tokenize(text: str, source: str) -> Iterator[_Token]:
    line = 1
    line_start = 0
    i = 0
    n = len(text)

    def error(message: str, at_line: int, at_col: int) -> PolicySyntaxError:
        return PolicySyntaxError(
            message, source=source, line=at_line, column=at_col, dialect=Dialect.REGO
        )

    while i < n:
        ch = text[i]
        col = i - line_start + 1

        if ch == "\n":
            yield _Token("NEWLINE", "\n", line, col, i, i + 1)
            i += 1
            line += 1
            line_start = i
        elif ch in " \t\r\ufeff":
            i += 1
        elif ch == "#":
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                if text[j] == "\n":
                    raise error("Unterminated string literal", line, col)
                j += 2 if text[j] == "\\" else 1
            if j >= n:
                raise error("Unterminated string literal", line, col)
            raw = text[i:j + 1]
            try:
                value = json.loads(raw)
            except json.JSONDecodeError:
                raise error(f"Invalid string literal {raw}", line, col) from None
            yield _Token("STRING", value, line, col, i, j + 1)
            i = j + 1
        elif ch == "`":
            end = text.find("`", i + 1)
            if end == -1:
                raise error("Unterminated raw string", line, col)
            yield _Token("STRING", text[i + 1:end], line, col, i, end + 1)
            chunk = text[i:end + 1]
            if "\n" in chunk:
                line += chunk.count("\n")
                line_start = i + chunk.rfind("\n") + 1
            i = end + 1
        elif ch.isdigit():
            m = _NUMBER_RE.match(text, i)
            assert m is not None
            yield _Token("NUMBER", m.group(0), line, col, i, m.end())
            i = m.end()
        elif ch.isalpha() or ch == "_":
            start = i
            while i < n and (text[i].isalnum() or text[i] == "_"):
                i += 1
            yield _Token("IDENT", text[start:i], line, col, start, i)
        else:
            op = next((o for o in _OPERATORS_2 if text.startswith(o, i)), None)
            if op is None and ch in _OPERATORS_1:
                op = ch
            if op is None:
                raise error(f"Unexpected character {ch!r}", line, col)
            yield _Token("OP", op, line, col, i, i + len(op))
            i += len(op)

    yield _Token("EOF", None, line, i - line_start + 1, n, n)


class _RegoParser:
    def __init__(self, text: str, source: str, max_depth: int) -> None:
        self._text = text
        self._source = source
        self._max_depth = max_depth
        self._tokens = _tokenize(text, source)
        self._peeked: _Token | None = None

    def _peek(self) -> _Token:
        if self._peeked is None:
            self._peeked = next(self._tokens)
        return self._peeked

    def _next(self) -> _Token:
        tok = self._peek()
        self._peeked = None
        return tok

    def _error(self, message: str, tok: _Token) -> PolicySyntaxError:
        return PolicySyntaxError(
            message,
            source=self._source,
            line=tok.line,
            column=tok.column,
            dialect=Dialect.REGO,
        )

    def _slice(self, tokens: list[_Token]) -> str:
        if not tokens:
            return ""
        return self._text[tokens[0].start:tokens[-1].end].strip()

    def _location(self, tok: _Token) -> SourceLocation:
        return SourceLocation(self._source, tok.line, tok.column)

    def _skip_newlines(self) -> None:
        while self._peek().type == "NEWLINE":
            self._next()

    def _line(self) -> list[_Token]:
        """Tokens up to the end of the current line (bracket-aware)."""
        tokens: list[_Token] = []
        level = 0
        while True:
            tok = self._peek()
            if tok.type == "EOF" or (tok.type == "NEWLINE" and level == 0):
                return tokens
            self._next()
            if tok.type == "OP" and tok.value in _OPENERS:
                level += 1
            elif tok.type == "OP" and tok.value in _CLOSERS:
                level -= 1
            if tok.type != "NEWLINE":
                tokens.append(tok)

    # -- statements -----------------------------------------------------

    def resources(self) -> Iterator[ParsedResource]:
        seen_package = False
        while True:
            self._skip_newlines()
            tok = self._peek()
            if tok.type == "EOF":
                if not seen_package:
                    raise self._error("Missing 'package' declaration", tok)
                return
            if tok.type != "IDENT":
                raise self._error(
                    f"Expected a package, import or rule, found {tok.value!r}", tok
                )

            if tok.value == "package":
                if seen_package:
                    raise self._error("Duplicate 'package' declaration", tok)
                seen_package = True
                yield self._package()
                continue

            if not seen_package:
                raise self._error(
                    "Missing 'package' declaration before the first statement", tok
                )

            if tok.value == "import":
                yield self._import()
            else:
                yield self._rule()

    def _package(self) -> ParsedResource:
        start = self._next()
        path_tokens = self._line()
        if not path_tokens:
            raise self._error("Expected a package path", start)
        path = self._slice(path_tokens)
        return ParsedResource(
            kind="package",
            name=path,
            fields={"path": path},
            location=self._location(start),
            dialect=Dialect.REGO,
        )

    def _import(self) -> ParsedResource:
        start = self._next()
        tokens = self._line()
        if not tokens:
            raise self._error("Expected an import path", start)
        alias = None
        if len(tokens) >= 2 and tokens[-2].type == "IDENT" and tokens[-2].value == "as":
            alias = tokens[-1].value
            tokens = tokens[:-2]
        path = self._slice(tokens)
        return ParsedResource(
            kind="import",
            name=alias or path.rsplit(".", 1)[-1],
            fields={"path": path, "alias": alias},
            location=self._location(start),
            dialect=Dialect.REGO,
        )

    def _rule(self) -> ParsedResource:
        start = self._peek()
        is_default = False
        if start.value == "default":
            self._next()
            is_default = True

        head = self._head()
        if not head:
            raise self._error("Expected a rule head", start)
        fields = self._analyze_head(head, start)
        fields["default"] = is_default
        fields["body"] = self._body_after_head()
        else_branches: list[dict[str, Any]] = []

        while self._peek().type == "IDENT" and self._peek().value == "else":
            else_tok = self._next()
            else_head = self._head()
            value: Any = True
            if else_head:
                if else_head[0].type != "OP" or else_head[0].value not in _ASSIGN:
                    raise self._error("Expected '=' or ':=' after 'else'", else_tok)
                value = self._decode(else_head[1:])
            else_branches.append({"value": value, "body": self._body_after_head()})

        fields["else"] = else_branches
        return ParsedResource(
            kind="rule",
            name=fields["name"],
            fields=fields,
            location=self._location(start),
            dialect=Dialect.REGO,
        )

    def _head(self) -> list[_Token]:
        """Collect head tokens up to the body, 'if', 'else' or end of line."""
        tokens: list[_Token] = []
        closers: list[str] = []
        while True:
            tok = self._peek()
            if tok.type == "EOF":
                break
            if not closers:
                if tok.type == "NEWLINE":
                    break
                if tok.type == "IDENT" and tok.value in ("if", "else"):
                    break
                if tok.type == "OP" and tok.value == "{":
                    last = tokens[-1] if tokens else None
                    value_position = last is not None and (
                        (last.type == "OP" and last.value in _ASSIGN)
                        or (last.type == "IDENT" and last.value == "contains")
                    )
                    if not value_position:
                        break
            self._next()
            if tok.type == "OP" and tok.value in _OPENERS:
                closers.append(_OPENERS[tok.value])
                self._check_depth(len(closers), tok)
            elif tok.type == "OP" and tok.value in _CLOSERS:
                if not closers or closers[-1] != tok.value:
                    raise self._error(f"Unbalanced {tok.value!r}", tok)
                closers.pop()
            if tok.type != "NEWLINE":
                tokens.append(tok)
        if closers:
            raise self._error(f"Expected {closers[-1]!r}", self._peek())
        return tokens

    def _analyze_head(self, head: list[_Token], start: _Token) -> dict[str, Any]:
        # Name: leading ref (ident / dotted ident)
        idx = 0
        while idx < len(head) and (
            head[idx].type == "IDENT"
            or (head[idx].type == "OP" and head[idx].value == ".")
        ):
            if head[idx].type == "IDENT" and head[idx].value == "contains":
                break
            idx += 1
        if idx == 0:
            raise self._error("Rule head must start with a name", head[0])
        name = self._slice(head[:idx])
        rest = head[idx:]

        fields: dict[str, Any] = {"name": name, "head": self._slice(head)}

        if rest and rest[0].type == "OP" and rest[0].value == "(":
            close = _matching(rest)
            fields["args"] = [self._slice(a) for a in _split(rest[1:close], ",")]
            rest = rest[close + 1:]

        if rest and rest[0].type == "OP" and rest[0].value == "[":
            close = _matching(rest)
            fields["key"] = self._slice(rest[1:close])
            rest = rest[close + 1:]
        elif rest and rest[0].type == "IDENT" and rest[0].value == "contains":
            assign_at = next(
                (i for i, t in enumerate(rest) if t.type == "OP" and t.value in _ASSIGN),
                len(rest),
            )
            fields["key"] = self._slice(rest[1:assign_at])
            rest = rest[assign_at:]

        if rest:
            if rest[0].type != "OP" or rest[0].value not in _ASSIGN:
                raise self._error(
                    f"Unexpected {rest[0].value!r} in rule head", rest[0]
                )
            if len(rest) == 1:
                raise self._error("Expected a value after assignment", rest[0])
            fields["value"] = self._decode(rest[1:])
        else:
            fields["value"] = True
        return fields

    def _body_after_head(self) -> list[str]:
        tok = self._peek()
        if tok.type == "IDENT" and tok.value == "if":
            self._next()
            if self._peek().type == "OP" and self._peek().value == "{":
                return self._braced_body()
            expr = self._line()
            if not expr:
                raise self._error("Expected a condition after 'if'", tok)
            return [self._slice(expr)]
        if tok.type == "OP" and tok.value == "{":
            return self._braced_body()
        return []

    def _braced_body(self) -> list[str]:
        """Parse ``{ expr; expr \\n expr }`` into expression strings."""
        open_tok = self._next()
        self._check_depth(1, open_tok)
        expressions: list[str] = []
        current: list[_Token] = []
        closers: list[str] = []
        while True:
            tok = self._next()
            if tok.type == "EOF":
                raise self._error("Unexpected end of file, expected '}'", tok)
            if not closers:
                if tok.type == "OP" and tok.value == "}":
                    break
                if tok.type == "NEWLINE" or (tok.type == "OP" and tok.value == ";"):
                    if current:
                        expressions.append(self._slice(current))
                    current = []
                    continue
            if tok.type == "OP" and tok.value in _OPENERS:
                closers.append(_OPENERS[tok.value])
                self._check_depth(1 + len(closers), tok)
            elif tok.type == "OP" and tok.value in _CLOSERS:
                if not closers or closers[-1] != tok.value:
                    raise self._error(f"Unbalanced {tok.value!r}", tok)
                closers.pop()
            if tok.type != "NEWLINE":
                current.append(tok)
        if current:
            expressions.append(self._slice(current))
        return expressions

    def _check_depth(self, depth: int, tok: _Token) -> None:
        if depth > self._max_depth:
            raise self._error(
                f"Nesting exceeds the maximum depth of {self._max_depth}", tok
            )

    def _decode(self, tokens: list[_Token]) -> Any:
        """Decode a value as JSON when possible, else keep its text."""
        text = self._slice(tokens)
        if len(tokens) == 1 and tokens[0].type == "STRING":
            return tokens[0].value
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text


def _matching(tokens: list[_Token]) -> int:
    level = 0
    for idx, tok in enumerate(tokens):
        if tok.type == "OP" and tok.value in _OPENERS:
            level += 1
        elif tok.type == "OP" and tok.value in _CLOSERS:
            level -= 1
            if level == 0:
                return idx
    return len(tokens) - 1


def _split(tokens: list[_Token], separator: str) -> list[list[_Token]]:
    items: list[list[_Token]] = []
    current: list[_Token] = []
    level = 0
    for tok in tokens:
        if tok.type == "OP" and tok.value in _OPENERS:
            level += 1
        elif tok.type == "OP" and tok.value in _CLOSERS:
            level -= 1
        if level == 0 and tok.type == "OP" and tok.value == separator:
            items.append(current)
            current = []
            continue
        current.append(tok)
    if current:
        items.append(current)
    return items


def parse_rego(text: str, source: str, max_depth: int) -> Iterator[ParsedResource]:
    """Parse a Rego module into package, import and rule resources.

    Args:
        text: The Rego source.
        source: Label used in locations and errors.
        max_depth: Maximum bracket nesting depth.

    Yields:
        ParsedResource per statement (ordinal not yet assigned).

    Raises:
        PolicySyntaxError: On malformed input or excessive nesting.
    """
    yield from _RegoParser(text, source, max_depth).resources()
