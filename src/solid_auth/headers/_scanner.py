"""Shared lexical helpers for the HTTP header parsers.

Implements the RFC 9110 building blocks the parsers need (token,
quoted-string, OWS) plus a splitter for comma-separated list elements that
respects quoted strings and, for Link headers, angle-bracketed targets.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, Optional, Union

from solid_auth.errors import HeaderParseError

HeaderValues = Union[str, Iterable[str]]

TCHARS = frozenset("!#$%&'*+-.^_`|~0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
OWS = " \t"

_TOKEN_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


def join_header_values(headers: Optional[HeaderValues]) -> str:
    """Concatenate repeated header values into one comma-separated list."""
    if headers is None:
        return ""
    if isinstance(headers, str):
        return headers
    return ", ".join(value for value in headers if value is not None)


def split_elements(text: str, *, angle_brackets: bool = False) -> Iterator[tuple[int, str]]:
    """Yield ``(offset, element)`` for each non-empty top-level list element.

    Commas inside quoted strings never split. With ``angle_brackets`` set,
    commas between ``<`` and the next ``>`` do not split either. An
    unterminated quote swallows the rest of the input into one element.
    Elements are stripped of surrounding whitespace; empty ones are skipped.
    """
    start = 0
    in_quotes = False
    in_brackets = False
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if in_quotes:
            if ch == "\\":
                i += 1
            elif ch == '"':
                in_quotes = False
        elif in_brackets:
            if ch == ">":
                in_brackets = False
        elif ch == '"':
            in_quotes = True
        elif angle_brackets and ch == "<":
            in_brackets = True
        elif ch == ",":
            yield from _stripped(start, text[start:i])
            start = i + 1
        i += 1
    yield from _stripped(start, text[start:])


def _stripped(offset: int, raw: str) -> Iterator[tuple[int, str]]:
    element = raw.strip(OWS + "\r\n")
    if element:
        yield offset + raw.index(element[0]), element


class HeaderScanner:
    """Cursor over a single header element.

    Each ``expect_*``/``read_*`` method either consumes input or raises
    HeaderParseError carrying the absolute offset of the failure.
    """

    def __init__(self, header: str, text: str, offset: int = 0) -> None:
        self.header = header
        self.text = text
        self.offset = offset
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        if self.at_end():
            return ""
        return self.text[self.pos]

    def error(self, reason: str) -> HeaderParseError:
        return HeaderParseError(self.header, reason, self.offset + self.pos)

    def skip_ows(self) -> bool:
        """Skip optional whitespace; return True if any was consumed."""
        start = self.pos
        while not self.at_end() and self.text[self.pos] in OWS:
            self.pos += 1
        return self.pos > start

    def read_token(self) -> Optional[str]:
        match = _TOKEN_RE.match(self.text, self.pos)
        if match is None:
            return None
        self.pos = match.end()
        return match.group()

    def expect_token(self, what: str) -> str:
        token = self.read_token()
        if token is None:
            raise self.error(f"expected {what}")
        return token

    def expect(self, char: str) -> None:
        if self.peek() != char:
            raise self.error(f"expected {char!r}")
        self.pos += 1

    def read_quoted(self) -> str:
        """Consume a quoted-string and return its unescaped content."""
        self.expect('"')
        chars: list[str] = []
        while not self.at_end():
            ch = self.text[self.pos]
            self.pos += 1
            if ch == "\\":
                if self.at_end():
                    break
                chars.append(self.text[self.pos])
                self.pos += 1
            elif ch == '"':
                return "".join(chars)
            else:
                chars.append(ch)
        raise self.error("unterminated quoted-string")

    def read_value(self) -> Optional[str]:
        """Consume ``token / quoted-string``; None when neither is present."""
        if self.peek() == '"':
            return self.read_quoted()
        return self.read_token()

    def skip_word(self) -> None:
        """Advance to the next whitespace character or the end of input."""
        while not self.at_end() and self.text[self.pos] not in OWS:
            self.pos += 1

    def expect_end(self) -> None:
        self.skip_ows()
        if not self.at_end():
            raise self.error(f"unexpected {self.peek()!r}")
