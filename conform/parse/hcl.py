"""Terraform HCL parser.

Turns HCL2 text into one ParsedResource per top-level block:

  resource "aws_s3_bucket" "logs" { ... }   → kind "aws_s3_bucket", name "logs"
  data "aws_iam_policy_document" "p" { ... } → kind "data.aws_iam_policy_document"
  provider "aws" { ... }                     → kind "provider", name "aws"
  locals { ... }                             → kind "locals"

Attributes become fields. Nested blocks become nested mappings: a block
type that repeats becomes a list, and labelled nested blocks nest under
their labels (``dynamic "ingress" {}`` → ``fields["dynamic"]["ingress"]``).

Literal values (strings, numbers, bools, null, heredocs, tuples, objects)
are decoded. Expressions that need Terraform to evaluate (references,
function calls, conditionals, for-expressions) are kept verbatim as
``"${...}"`` strings, as in Terraform's own JSON output.

The parser is a generator: blocks are yielded as soon as their closing
brace is read, so a syntax error late in the file surfaces only once
iteration reaches it.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any, NamedTuple

from conform.parse.models import (
    Dialect,
    ParsedResource,
    PolicySyntaxError,
    SourceLocation,
)

# Token types
_IDENT = "IDENT"
_STRING = "STRING"
_NUMBER = "NUMBER"
_OP = "OP"
_NEWLINE = "NEWLINE"
_EOF = "EOF"

_NUMBER_RE = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")
_OPERATORS_3 = ("...",)
_OPERATORS_2 = ("==", "!=", "<=", ">=", "&&", "||", "=>")
_OPERATORS_1 = "{}[]()=,.:?!<>+-*/%"
_OPENERS = {"{": "}", "[": "]", "(": ")"}
_CLOSERS = {"}", "]", ")"}
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", '"': '"', "\\": "\\"}
_HEREDOC_RE = re.compile(r"<<(-?)([A-Za-z_][A-Za-z0-9_]*)[ \t\r]*\n")


class _Token(NamedTuple):
    type: str
    value: Any
    line: int
    column: int
    start: int
    end: int


class _Tokenizer:
    """Lazy HCL tokenizer with line/column tracking."""

    def __init__(self, text: str, source: str) -> None:
        self._text = text
        self._source = source
        self._line = 1
        self._line_start = 0

    def error(self, message: str, line: int, column: int) -> PolicySyntaxError:
        return PolicySyntaxError(
            message,
            source=self._source,
            line=line,
            column=column,
            dialect=Dialect.TERRAFORM_HCL,
        )

    def _col(self, pos: int) -> int:
        return pos - self._line_start + 1

    def tokens(self) -> Iterator[_Token]:
        text = self._text
        n = len(text)
        i = 0

        while i < n:
            ch = text[i]
            line, col = self._line, self._col(i)

            if ch == "\n":
                yield _Token(_NEWLINE, "\n", line, col, i, i + 1)
                i += 1
                self._line += 1
                self._line_start = i
                continue

            if ch in " \t\r\ufeff":
                i += 1
                continue

            if ch == "#" or text.startswith("//", i):
                end = text.find("\n", i)
                i = n if end == -1 else end
                continue

            if text.startswith("/*", i):
                end = text.find("*/", i + 2)
                if end == -1:
                    raise self.error("Unterminated block comment", line, col)
                self._advance_lines(i, end + 2)
                i = end + 2
                continue

            if ch == '"':
                value, end = self._scan_quoted(i)
                yield _Token(_STRING, value, line, col, i, end)
                i = end
                continue

            if text.startswith("<<", i):
                heredoc = self._scan_heredoc(i)
                if heredoc is not None:
                    value, end = heredoc
                    yield _Token(_STRING, value, line, col, i, end)
                    i = end
                    continue

            if ch.isdigit():
                m = _NUMBER_RE.match(text, i)
                assert m is not None
                yield _Token(_NUMBER, m.group(0), line, col, i, m.end())
                i = m.end()
                continue

            if ch.isalpha() or ch == "_":
                start = i
                while i < n and (text[i].isalnum() or text[i] in "_-"):
                    i += 1
                yield _Token(_IDENT, text[start:i], line, col, start, i)
                continue

            op = None
            for candidate in _OPERATORS_3 + _OPERATORS_2:
                if text.startswith(candidate, i):
                    op = candidate
                    break
            if op is None and ch in _OPERATORS_1:
                op = ch
            if op is None:
                raise self.error(f"Unexpected character {ch!r}", line, col)
            yield _Token(_OP, op, line, col, i, i + len(op))
            i += len(op)

        yield _Token(_EOF, None, self._line, self._col(n), n, n)

    def _advance_lines(self, start: int, end: int) -> None:
        """Account for newlines consumed inside a multi-line token."""
        chunk = self._text[start:end]
        count = chunk.count("\n")
        if count:
            self._line += count
            self._line_start = start + chunk.rfind("\n") + 1

    def _scan_quoted(self, i: int) -> tuple[str, int]:
        """Decode a quoted template string starting at text[i] == '"'.

        Interpolation sequences are kept verbatim in the decoded value.

        Returns:
            Tuple of (decoded_value, index_after_closing_quote).
        """
        text = self._text
        n = len(text)
        out: list[str] = []
        j = i + 1

        while j < n:
            c = text[j]
            if c == '"':
                return "".join(out), j + 1
            if c == "\n":
                break
            if c == "\\":
                if j + 1 >= n:
                    break
                esc = text[j + 1]
                if esc in _ESCAPES:
                    out.append(_ESCAPES[esc])
                    j += 2
                    continue
                if esc in ("u", "U"):
                    width = 4 if esc == "u" else 8
                    digits = text[j + 2:j + 2 + width]
                    try:
                        out.append(chr(int(digits, 16)))
                    except ValueError:
                        raise self.error(
                            f"Invalid unicode escape '\\{esc}{digits}'",
                            self._line,
                            self._col(j),
                        ) from None
                    j += 2 + width
                    continue
                raise self.error(
                    f"Invalid escape sequence '\\{esc}'", self._line, self._col(j)
                )
            if text.startswith("$${", j) or text.startswith("%%{", j):
                out.append(text[j + 1:j + 3])
                j += 3
                continue
            if text.startswith("${", j) or text.startswith("%{", j):
                end = self._skip_template(j + 2)
                out.append(text[j:end])
                j = end
                continue
            out.append(c)
            j += 1

        raise self.error("Unterminated string literal", self._line, self._col(i))

    def _skip_template(self, j: int) -> int:
        """Find the end of an interpolation whose body starts at text[j]."""
        text = self._text
        depth = 1
        while j < len(text):
            c = text[j]
            if c == '"':
                _value, j = self._scan_quoted(j)
                continue
            if c == "\n":
                break
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    return j + 1
            j += 1
        raise self.error("Unterminated template interpolation", self._line, self._col(j))

    def _scan_heredoc(self, i: int) -> tuple[str, int] | None:
        """Decode a heredoc starting at text[i:i+2] == '<<'.

        Returns:
            Tuple of (value, index_after_closing_marker), or None when the
            '<<' is not followed by a heredoc marker.
        """
        text = self._text
        m = _HEREDOC_RE.match(text, i)
        if m is None:
            return None
        indented = m.group(1) == "-"
        marker = m.group(2)
        start_line, start_col = self._line, self._col(i)

        lines: list[str] = []
        pos = m.end()
        while True:
            if pos >= len(text):
                raise self.error(
                    f"Unterminated heredoc, expected closing '{marker}'",
                    start_line,
                    start_col,
                )
            nl = text.find("\n", pos)
            line_end = len(text) if nl == -1 else nl
            raw_line = text[pos:line_end].rstrip("\r")
            if raw_line.strip() == marker:
                end = line_end
                break
            lines.append(raw_line)
            if nl == -1:
                pos = len(text)
            else:
                pos = nl + 1

        if indented:
            widths = [len(ln) - len(ln.lstrip(" \t")) for ln in lines if ln.strip()]
            trim = min(widths, default=0)
            lines = [ln[trim:] for ln in lines]

        self._advance_lines(i, end)
        value = "\n".join(lines) + "\n" if lines else ""
        return value, end


class _HclParser:
    """Recursive-descent parser over the token stream."""

    def __init__(self, text: str, source: str, max_depth: int) -> None:
        self._text = text
        self._source = source
        self._max_depth = max_depth
        self._tokenizer = _Tokenizer(text, source)
        self._tokens = self._tokenizer.tokens()
        self._peeked: _Token | None = None

    # -- token helpers --------------------------------------------------

    def _peek(self) -> _Token:
        if self._peeked is None:
            self._peeked = next(self._tokens)
        return self._peeked

    def _next(self) -> _Token:
        tok = self._peek()
        self._peeked = None
        return tok

    def _skip_newlines(self) -> None:
        while self._peek().type == _NEWLINE:
            self._next()

    def _error(self, message: str, tok: _Token) -> PolicySyntaxError:
        return self._tokenizer.error(message, tok.line, tok.column)

    def _describe(self, tok: _Token) -> str:
        if tok.type == _EOF:
            return "end of file"
        if tok.type == _NEWLINE:
            return "newline"
        if tok.type == _STRING:
            return "string literal"
        return repr(tok.value)

    def _check_depth(self, depth: int, tok: _Token) -> None:
        if depth > self._max_depth:
            raise self._error(
                f"Nesting exceeds the maximum depth of {self._max_depth}", tok
            )

    # -- structure ------------------------------------------------------

    def resources(self) -> Iterator[ParsedResource]:
        while True:
            self._skip_newlines()
            tok = self._next()
            if tok.type == _EOF:
                return
            if tok.type != _IDENT:
                raise self._error(
                    f"Expected a block type, found {self._describe(tok)}", tok
                )
            if self._peek().type == _OP and self._peek().value == "=":
                raise self._error(
                    f"Unexpected top-level attribute '{tok.value}'; "
                    f"only blocks are allowed at the top level",
                    tok,
                )
            labels, body = self._block_rest(depth=1)
            yield self._to_resource(tok, labels, body)

    def _to_resource(
        self, tok: _Token, labels: list[str], body: dict[str, Any]
    ) -> ParsedResource:
        block_type = tok.value
        location = SourceLocation(self._source, tok.line, tok.column)

        if block_type == "resource":
            if len(labels) != 2:
                raise self._error(
                    f"A resource block needs a type and a name label, got {len(labels)} label(s)",
                    tok,
                )
            kind, name = labels[0], labels[1]
        elif block_type == "data":
            if len(labels) != 2:
                raise self._error(
                    f"A data block needs a type and a name label, got {len(labels)} label(s)",
                    tok,
                )
            kind, name = f"data.{labels[0]}", labels[1]
        else:
            kind = block_type
            name = labels[0] if labels else None

        return ParsedResource(
            kind=kind,
            name=name,
            fields=body,
            location=location,
            dialect=Dialect.TERRAFORM_HCL,
        )

    def _block_rest(self, depth: int) -> tuple[list[str], dict[str, Any]]:
        """Parse labels and body of a block whose type was just consumed."""
        labels: list[str] = []
        while self._peek().type in (_STRING, _IDENT):
            labels.append(self._next().value)

        tok = self._next()
        if tok.type != _OP or tok.value != "{":
            raise self._error(
                f"Expected '{{' to open block, found {self._describe(tok)}", tok
            )
        self._check_depth(depth, tok)
        body = self._body(depth)

        nxt = self._peek()
        if nxt.type not in (_NEWLINE, _EOF) and not (nxt.type == _OP and nxt.value == "}"):
            raise self._error(
                f"Expected newline after block, found {self._describe(nxt)}", nxt
            )
        return labels, body

    def _body(self, depth: int) -> dict[str, Any]:
        """Parse block items up to and including the closing brace."""
        body: dict[str, Any] = {}
        while True:
            self._skip_newlines()
            tok = self._next()
            if tok.type == _OP and tok.value == "}":
                return body
            if tok.type == _EOF:
                raise self._error("Unexpected end of file, expected '}'", tok)
            if tok.type != _IDENT:
                raise self._error(
                    f"Expected an attribute or block name, found {self._describe(tok)}",
                    tok,
                )

            nxt = self._peek()
            if nxt.type == _OP and nxt.value == "=":
                self._next()
                if tok.value in body:
                    raise self._error(
                        f"Attribute '{tok.value}' is defined more than once", tok
                    )
                expr = self._collect(depth, stop={_NEWLINE: None, _OP: {"}"}})
                body[tok.value] = self._interpret(expr)
                end = self._peek()
                if end.type == _NEWLINE:
                    self._next()
                elif end.type == _EOF:
                    raise self._error("Unexpected end of file, expected '}'", end)
            else:
                labels, sub = self._block_rest(depth + 1)
                self._insert_block(body, tok, labels, sub)

    def _insert_block(
        self,
        body: dict[str, Any],
        tok: _Token,
        labels: list[str],
        sub: dict[str, Any],
    ) -> None:
        keys = [tok.value] + labels
        target = body
        for key in keys[:-1]:
            existing = target.setdefault(key, {})
            if not isinstance(existing, dict):
                raise self._error(
                    f"Block '{key}' conflicts with an existing attribute", tok
                )
            target = existing

        last = keys[-1]
        if last not in target:
            target[last] = sub
        elif isinstance(target[last], list):
            target[last].append(sub)
        else:
            target[last] = [target[last], sub]

    # -- expressions ----------------------------------------------------

    def _collect(self, depth: int, stop: dict[str, set[str] | None]) -> list[_Token]:
        """Read one expression's tokens, up to (not including) a terminator.

        Args:
            depth: Current block depth, for the depth limit.
            stop: Token types that terminate the expression at bracket level 0.
                  A None value means any token of that type; a set restricts
                  to those values.

        Returns:
            The expression's tokens, newlines inside brackets included.
        """
        tokens: list[_Token] = []
        closers: list[str] = []
        while True:
            tok = self._peek()
            if tok.type == _EOF:
                break
            if not closers and tok.type in stop:
                allowed = stop[tok.type]
                if allowed is None or tok.value in allowed:
                    break
            self._next()
            if tok.type == _OP and tok.value in _OPENERS:
                closers.append(_OPENERS[tok.value])
                self._check_depth(depth + len(closers), tok)
            elif tok.type == _OP and tok.value in _CLOSERS:
                if not closers or closers[-1] != tok.value:
                    raise self._error(f"Unbalanced {tok.value!r}", tok)
                closers.pop()
            tokens.append(tok)

        if closers:
            raise self._error(
                f"Unexpected end of file, expected {closers[-1]!r}", self._peek()
            )
        if not tokens:
            raise self._error(
                f"Expected an expression, found {self._describe(self._peek())}",
                self._peek(),
            )
        return tokens

    def _interpret(self, tokens: list[_Token]) -> Any:
        """Decode a collected expression into a Python value."""
        tokens = _strip_newlines(tokens)
        if not tokens:
            return None
        first, last = tokens[0], tokens[-1]

        if len(tokens) == 1:
            if first.type == _STRING:
                return first.value
            if first.type == _NUMBER:
                return _to_number(first.value)
            if first.type == _IDENT:
                if first.value == "true":
                    return True
                if first.value == "false":
                    return False
                if first.value == "null":
                    return None

        if (
            len(tokens) == 2
            and first.type == _OP
            and first.value == "-"
            and last.type == _NUMBER
        ):
            return -_to_number(last.value)

        if first.type == _OP and first.value in ("[", "{") and _matching(tokens) == len(tokens) - 1:
            inner = tokens[1:-1]
            lead = _strip_newlines(inner)
            if not (lead and lead[0].type == _IDENT and lead[0].value == "for"):
                if first.value == "[":
                    return [
                        self._interpret(item)
                        for item in _split(inner, {","}, newlines=False)
                    ]
                obj = self._object(inner)
                if obj is not None:
                    return obj

        return "${" + self._text[first.start:last.end].strip() + "}"

    def _object(self, inner: list[_Token]) -> dict[str, Any] | None:
        """Decode object-constructor items, or None if a key is computed."""
        result: dict[str, Any] = {}
        for item in _split(inner, {","}, newlines=True):
            if len(item) < 3:
                raise self._error("Expected 'key = value' in object", item[0])
            key_tok, sep = item[0], item[1]
            if sep.type != _OP or sep.value not in ("=", ":"):
                return None
            if key_tok.type in (_IDENT, _STRING):
                key = key_tok.value
            elif key_tok.type == _NUMBER:
                key = key_tok.value
            else:
                return None
            result[key] = self._interpret(item[2:])
        return result


def _strip_newlines(tokens: list[_Token]) -> list[_Token]:
    start, end = 0, len(tokens)
    while start < end and tokens[start].type == _NEWLINE:
        start += 1
    while end > start and tokens[end - 1].type == _NEWLINE:
        end -= 1
    return tokens[start:end]


def _matching(tokens: list[_Token]) -> int:
    """Index of the bracket closing tokens[0]."""
    level = 0
    for idx, tok in enumerate(tokens):
        if tok.type != _OP:
            continue
        if tok.value in _OPENERS:
            level += 1
        elif tok.value in _CLOSERS:
            level -= 1
            if level == 0:
                return idx
    return -1


def _split(tokens: list[_Token], separators: set[str], newlines: bool) -> list[list[_Token]]:
    """Split tokens on top-level separators, dropping empty items."""
    items: list[list[_Token]] = []
    current: list[_Token] = []
    level = 0
    for tok in tokens:
        if tok.type == _OP and tok.value in _OPENERS:
            level += 1
        elif tok.type == _OP and tok.value in _CLOSERS:
            level -= 1
        if level == 0 and (
            (tok.type == _OP and tok.value in separators)
            or (newlines and tok.type == _NEWLINE)
        ):
            if _strip_newlines(current):
                items.append(_strip_newlines(current))
            current = []
            continue
        current.append(tok)
    if _strip_newlines(current):
        items.append(_strip_newlines(current))
    return items


def _to_number(raw: str) -> int | float:
    if any(c in raw for c in ".eE"):
        return float(raw)
    return int(raw)


def parse_hcl(text: str, source: str, max_depth: int) -> Iterator[ParsedResource]:
    """Parse Terraform HCL text into resources, one per top-level block.

    Args:
        text: The HCL document.
        source: Label used in locations and errors.
        max_depth: Maximum block/collection nesting depth.

    Yields:
        ParsedResource per top-level block (ordinal not yet assigned).

    Raises:
        PolicySyntaxError: On malformed input or excessive nesting.
    """
    yield from _HclParser(text, source, max_depth).resources()
