"""Minimal ZON (Zig Object Notation) reader.

Covers the subset that appears in build.zig.zon files: anonymous struct and
list literals, string literals, enum literals, booleans, null and integers.
Structs become ``dict`` (declaration order kept), lists become ``list``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from z_ebuild_generator.exceptions import ManifestParseError

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+|//[^\n]*)
  | (?P<string>"(?:[^"\\\n]|\\.)*")
  | (?P<quoted_ident>@"(?:[^"\\\n]|\\.)*")
  | (?P<number>-?(?:0x[0-9a-fA-F_]+|0o[0-7_]+|0b[01_]+|\d[\d_]*))
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<punct>[.{}=,])
    """,
    re.VERBOSE,
)

_SIMPLE_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True)
class EnumLiteral:
    """A ``.identifier`` value, e.g. ``.name = .foo``."""

    name: str


@dataclass
class _Token:
    kind: str
    text: str
    line: int


def unescape(literal: str, line: int = 0) -> str:
    """Decode a double-quoted Zig string literal, quotes included."""
    if len(literal) < 2 or literal[0] != '"' or literal[-1] != '"':
        raise ManifestParseError(f"line {line}: string is not inside double quotes: {literal}")
    body = literal[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(body):
            raise ManifestParseError(f"line {line}: invalid string literal: {literal}")
        esc = body[i + 1]
        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
            i += 2
        elif esc == "x":
            digits = body[i + 2 : i + 4]
            if not re.fullmatch(r"[0-9a-fA-F]{2}", digits):
                raise ManifestParseError(f"line {line}: invalid \\x escape in {literal}")
            out.append(chr(int(digits, 16)))
            i += 4
        elif esc == "u":
            m = re.match(r"\{([0-9a-fA-F]+)\}", body[i + 2 :])
            if not m:
                raise ManifestParseError(f"line {line}: invalid \\u escape in {literal}")
            out.append(chr(int(m.group(1), 16)))
            i += 2 + m.end()
        else:
            raise ManifestParseError(f"line {line}: invalid escape \\{esc} in {literal}")
    return "".join(out)


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    line = 1
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            snippet = text[pos : pos + 20].split("\n", 1)[0]
            raise ManifestParseError(f"line {line}: unexpected input {snippet!r}")
        kind = m.lastgroup or ""
        chunk = m.group()
        if kind != "ws":
            tokens.append(_Token(kind, chunk, line))
        line += chunk.count("\n")
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self, offset: int = 0) -> _Token | None:
        idx = self._pos + offset
        return self._tokens[idx] if idx < len(self._tokens) else None

    def _next(self) -> _Token:
        tok = self._peek()
        if tok is None:
            raise ManifestParseError("unexpected end of document")
        self._pos += 1
        return tok

    def _expect(self, text: str) -> _Token:
        tok = self._next()
        if tok.text != text:
            raise ManifestParseError(f"line {tok.line}: expected {text!r}, found {tok.text!r}")
        return tok

    def parse_document(self) -> Any:
        value = self.parse_value()
        extra = self._peek()
        if extra is not None:
            raise ManifestParseError(f"line {extra.line}: unexpected {extra.text!r} after document")
        return value

    def parse_value(self) -> Any:
        tok = self._next()
        if tok.kind == "string":
            return unescape(tok.text, tok.line)
        if tok.kind == "number":
            try:
                return int(tok.text.replace("_", ""), 0)
            except ValueError:
                raise ManifestParseError(f"line {tok.line}: invalid number {tok.text!r}") from None
        if tok.kind == "ident":
            if tok.text in ("true", "false"):
                return tok.text == "true"
            if tok.text == "null":
                return None
            raise ManifestParseError(f"line {tok.line}: unexpected identifier {tok.text!r}")
        if tok.text == ".":
            nxt = self._next()
            if nxt.text == "{":
                return self._parse_init(nxt.line)
            if nxt.kind == "ident":
                return EnumLiteral(nxt.text)
            if nxt.kind == "quoted_ident":
                return EnumLiteral(unescape(nxt.text[1:], nxt.line))
            raise ManifestParseError(f"line {nxt.line}: unexpected {nxt.text!r} after '.'")
        raise ManifestParseError(f"line {tok.line}: unexpected {tok.text!r}")

    def _is_field_start(self) -> bool:
        first, second, third = self._peek(), self._peek(1), self._peek(2)
        return (
            first is not None
            and first.text == "."
            and second is not None
            and second.kind in ("ident", "quoted_ident")
            and third is not None
            and third.text == "="
        )

    def _parse_init(self, line: int) -> dict[str, Any] | list[Any]:
        tok = self._peek()
        if tok is not None and tok.text == "}":
            self._next()
            # ".{}" is both an empty struct and an empty list
            return {}
        if self._is_field_start():
            return self._parse_struct_body(line)
        return self._parse_list_body()

    def _field_name(self) -> str:
        tok = self._next()
        if tok.kind == "quoted_ident":
            return unescape(tok.text[1:], tok.line)
        return tok.text

    def _parse_struct_body(self, line: int) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        while True:
            tok = self._peek()
            if tok is not None and tok.text == "}":
                self._next()
                return fields
            if not self._is_field_start():
                bad = self._peek()
                where = bad.line if bad else line
                raise ManifestParseError(f"line {where}: expected '.field = value'")
            self._expect(".")
            name = self._field_name()
            self._expect("=")
            if name in fields:
                raise ManifestParseError(f"line {line}: duplicate field {name!r}")
            fields[name] = self.parse_value()
            sep = self._next()
            if sep.text == "}":
                return fields
            if sep.text != ",":
                raise ManifestParseError(f"line {sep.line}: expected ',' or '}}', found {sep.text!r}")

    def _parse_list_body(self) -> list[Any]:
        items: list[Any] = []
        while True:
            tok = self._peek()
            if tok is not None and tok.text == "}":
                self._next()
                return items
            items.append(self.parse_value())
            sep = self._next()
            if sep.text == "}":
                return items
            if sep.text != ",":
                raise ManifestParseError(f"line {sep.line}: expected ',' or '}}', found {sep.text!r}")


def loads(text: str) -> Any:
    """Parse a ZON document into plain Python values."""
    return _Parser(_tokenize(text)).parse_document()
