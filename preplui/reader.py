"""Reader turning Clojure/EDN text into :mod:`preplui.forms` values."""

from __future__ import annotations

import re
from fractions import Fraction
from typing import Any

from .errors import ReaderError
from .forms import (
    CHAR_NAMES,
    Char,
    Keyword,
    Map,
    ReaderConditional,
    Regex,
    SetForm,
    SList,
    Symbol,
    TaggedLiteral,
    Vector,
)

_WHITESPACE = frozenset(" \t\n\r\f,")
_TERMINATORS = frozenset('";@^`~()[]{}\\') | _WHITESPACE
_CLOSERS = {")": "(", "]": "[", "}": "{"}
_NAMED_CHARS = {name: char for char, name in CHAR_NAMES.items()}
_STRING_ESCAPES = {"t": "\t", "r": "\r", "n": "\n", "\\": "\\", '"': '"', "b": "\b", "f": "\f"}
_SYMBOLIC_VALUES = {"Inf": float("inf"), "-Inf": float("-inf"), "NaN": float("nan")}
_LITERALS = {"nil": None, "true": True, "false": False}

_INT = re.compile(r"([+-]?\d+)N?")
_HEX = re.compile(r"([+-]?)0[xX]([0-9a-fA-F]+)N?")
_RATIO = re.compile(r"([+-]?\d+)/(\d+)")
_FLOAT = re.compile(r"[+-]?\d+(?:\.\d*)?(?:[eE][+-]?\d+)?M?")
_NUMBER_START = re.compile(r"[+-]?\d")
_CODE_DIGITS = {16: re.compile(r"[0-9a-fA-F]+"), 8: re.compile(r"[0-7]+")}


class _Reader:
    """Single-pass recursive reader over a string."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def at_end(self) -> bool:
        self._skip()
        return self._pos >= len(self._text)

    def read_form(self) -> Any:
        self._skip()
        if self._pos >= len(self._text):
            raise ReaderError("EOF while reading")
        ch = self._text[self._pos]
        if ch in _CLOSERS:
            raise ReaderError(f"Unmatched delimiter: {ch}")
        self._pos += 1
        if ch == "(":
            return SList(self._read_delimited(")"))
        if ch == "[":
            return Vector(self._read_delimited("]"))
        if ch == "{":
            return self._read_map()
        if ch == '"':
            return self._read_string()
        if ch == "\\":
            return self._read_char()
        if ch == ":":
            return self._read_keyword()
        if ch == "'":
            return SList((Symbol("quote"), self.read_form()))
        if ch == "`":
            return SList((Symbol("syntax-quote"), self.read_form()))
        if ch == "~":
            if self._peek() == "@":
                self._pos += 1
                return SList((Symbol("clojure.core/unquote-splicing"), self.read_form()))
            return SList((Symbol("clojure.core/unquote"), self.read_form()))
        if ch == "@":
            return SList((Symbol("clojure.core/deref"), self.read_form()))
        if ch == "^":
            self.read_form()
            return self.read_form()
        if ch == "#":
            return self._read_dispatch()
        self._pos -= 1
        return self._read_atom(self._read_token())

    def _peek(self) -> str:
        if self._pos < len(self._text):
            return self._text[self._pos]
        return ""

    def _skip(self) -> None:
        text = self._text
        while self._pos < len(text):
            ch = text[self._pos]
            if ch in _WHITESPACE:
                self._pos += 1
            elif ch == ";" or text.startswith("#!", self._pos):
                end = text.find("\n", self._pos)
                self._pos = len(text) if end < 0 else end + 1
            elif text.startswith("#_", self._pos):
                self._pos += 2
                self.read_form()
            else:
                return

    def _read_delimited(self, closer: str) -> list[Any]:
        items: list[Any] = []
        while True:
            self._skip()
            if self._pos >= len(self._text):
                raise ReaderError(f"EOF while reading, expected {closer}")
            if self._text[self._pos] == closer:
                self._pos += 1
                return items
            items.append(self.read_form())

    def _read_map(self) -> Map:
        items = self._read_delimited("}")
        if len(items) % 2:
            raise ReaderError("Map literal must contain an even number of forms")
        return Map(zip(items[::2], items[1::2]))

    def _read_token(self) -> str:
        start = self._pos
        text = self._text
        while self._pos < len(text) and text[self._pos] not in _TERMINATORS:
            self._pos += 1
        return text[start:self._pos]

    def _read_string(self) -> str:
        out: list[str] = []
        text = self._text
        while True:
            if self._pos >= len(text):
                raise ReaderError("EOF while reading string")
            ch = text[self._pos]
            self._pos += 1
            if ch == '"':
                return "".join(out)
            if ch != "\\":
                out.append(ch)
                continue
            if self._pos >= len(text):
                raise ReaderError("EOF while reading string")
            esc = text[self._pos]
            self._pos += 1
            if esc in _STRING_ESCAPES:
                out.append(_STRING_ESCAPES[esc])
            elif esc == "u":
                digits = text[self._pos:self._pos + 4]
                if len(digits) != 4:
                    raise ReaderError(f"Invalid unicode escape: \\u{digits}")
                out.append(_code_point(digits, 16))
                self._pos += 4
            elif esc in "01234567":
                match = re.match(r"[0-7]{1,3}", text[self._pos - 1:])
                assert match is not None
                out.append(_code_point(match.group(0), 8))
                self._pos += len(match.group(0)) - 1
            else:
                raise ReaderError(f"Unsupported escape character: \\{esc}")

    def _read_regex(self) -> Regex:
        out: list[str] = []
        text = self._text
        while True:
            if self._pos >= len(text):
                raise ReaderError("EOF while reading regex")
            ch = text[self._pos]
            self._pos += 1
            if ch == '"':
                return Regex("".join(out))
            if ch == "\\" and self._pos < len(text):
                nxt = text[self._pos]
                self._pos += 1
                # An escaped quote is part of the pattern text, not its end.
                out.append(nxt if nxt == '"' else ch + nxt)
                continue
            out.append(ch)

    def _read_char(self) -> Char:
        if self._pos >= len(self._text):
            raise ReaderError("EOF while reading character")
        start = self._pos
        self._pos += 1
        token = self._text[start] + self._read_token()
        if len(token) == 1:
            return Char(token)
        if token in _NAMED_CHARS:
            return Char(_NAMED_CHARS[token])
        if token.startswith("u") and len(token) == 5:
            return Char(_code_point(token[1:], 16))
        if token.startswith("o") and 2 <= len(token) <= 4:
            return Char(_code_point(token[1:], 8))
        raise ReaderError(f"Unsupported character: \\{token}")

    def _read_keyword(self) -> Keyword:
        token = self._read_token()
        if not token or token == ":":
            raise ReaderError("Invalid keyword")
        try:
            return Keyword(token)
        except ValueError as exc:
            raise ReaderError(str(exc)) from exc

    def _read_dispatch(self) -> Any:
        ch = self._peek()
        if not ch:
            raise ReaderError("EOF while reading dispatch macro")
        self._pos += 1
        if ch == "{":
            return SetForm(self._read_delimited("}"))
        if ch == '"':
            return self._read_regex()
        if ch == "(":
            return SList((Symbol("fn*"), SList(self._read_delimited(")"))))
        if ch == "'":
            return SList((Symbol("var"), self.read_form()))
        if ch == "?":
            splicing = self._peek() == "@"
            if splicing:
                self._pos += 1
            if self._peek() != "(":
                raise ReaderError("Reader conditional body must be a list")
            self._pos += 1
            return ReaderConditional(SList(self._read_delimited(")")), splicing)
        if ch == ":":
            return self._read_namespaced_map()
        if ch == "#":
            token = self._read_token()
            if token not in _SYMBOLIC_VALUES:
                raise ReaderError(f"Unknown symbolic value: ##{token}")
            return _SYMBOLIC_VALUES[token]
        if ch == "=":
            raise ReaderError("Read-time evaluation is not supported")
        self._pos -= 1
        tag = self._read_token()
        if not tag:
            raise ReaderError(f"No dispatch macro for: #{ch}")
        return TaggedLiteral(self._symbol(tag), self.read_form())

    def _read_namespaced_map(self) -> Map:
        ns = self._read_token()
        self._skip()
        if self._peek() != "{":
            raise ReaderError("Namespaced map must specify a map")
        self._pos += 1
        entries = self._read_map()
        if not ns or ns == ":":
            return entries
        return Map(
            (Keyword(f"{ns}/{key.name}") if isinstance(key, Keyword) and "/" not in key.name else key, value)
            for key, value in entries.items()
        )

    def _read_atom(self, token: str) -> Any:
        if not token:
            raise ReaderError(f"Unexpected character: {self._peek()!r}")
        if token in _LITERALS:
            return _LITERALS[token]
        if _NUMBER_START.match(token):
            return _parse_number(token)
        return self._symbol(token)

    @staticmethod
    def _symbol(token: str) -> Symbol:
        try:
            return Symbol(token)
        except ValueError as exc:
            raise ReaderError(str(exc)) from exc


def _code_point(digits: str, base: int) -> str:
    if not _CODE_DIGITS[base].fullmatch(digits):
        raise ReaderError(f"Invalid character code: {digits}")
    return chr(int(digits, base))


def _parse_number(token: str) -> int | float | Fraction:
    if match := _INT.fullmatch(token):
        return int(match.group(1))
    if match := _HEX.fullmatch(token):
        value = int(match.group(2), 16)
        return -value if match.group(1) == "-" else value
    if match := _RATIO.fullmatch(token):
        if int(match.group(2)) == 0:
            raise ReaderError(f"Divide by zero: {token}")
        return Fraction(int(match.group(1)), int(match.group(2)))
    if _FLOAT.fullmatch(token):
        return float(token.rstrip("M"))
    raise ReaderError(f"Invalid number: {token}")


def read_all(text: str) -> list[Any]:
    """Read every top-level form in ``text``."""

    reader = _Reader(text)
    forms: list[Any] = []
    while not reader.at_end():
        forms.append(reader.read_form())
    return forms


def read_string(text: str) -> Any:
    """Read the first form in ``text``."""

    reader = _Reader(text)
    if reader.at_end():
        raise ReaderError("No form to read")
    return reader.read_form()


def count_forms(text: str) -> int:
    """Number of top-level forms in ``text``; discarded forms do not count."""

    return len(read_all(text))


__all__ = ["count_forms", "read_all", "read_string"]
