"""Parser for ``WWW-Authenticate`` response headers (RFC 7235 section 2.1).

The grammar is applied tolerantly:

- ``challenge = scheme [ 1*SP ( token68 / auth-param *( SP / "," auth-param ) ) ]``
- ``auth-param = token "=" ( token / quoted-string )``
- A comma-separated element that starts with ``token "="`` continues the
  parameter list of the preceding challenge.
- Opaque credential words following the scheme (``Basic abcdef==``) are
  accepted and ignored.
- Malformed challenges are logged at debug level and dropped.
"""

from __future__ import annotations

from typing import Optional

from solid_auth.errors import HeaderParseError
from solid_auth.headers._scanner import (
    OWS,
    TCHARS,
    HeaderScanner,
    HeaderValues,
    join_header_values,
    split_elements,
)
from solid_auth.models.challenge import Challenge
from solid_auth.observability import get_logger

logger = get_logger(__name__)

HEADER_NAME = "WWW-Authenticate"


def _parse_params(scanner: HeaderScanner, params: dict[str, str]) -> None:
    """Consume whitespace-separated auth-params into ``params``.

    Words that start like a token but are not a valid auth-param are opaque
    credentials and are skipped. A word starting with anything else makes
    the element malformed.
    """
    while True:
        scanner.skip_ows()
        if scanner.at_end():
            return
        if scanner.peek() == "/":
            # token68 may start with "/", which is not a tchar
            scanner.skip_word()
            continue
        if scanner.peek() not in TCHARS:
            raise scanner.error("expected auth-param")
        word_start = scanner.pos
        name = scanner.expect_token("auth-param name")
        if scanner.peek() == "=":
            scanner.pos += 1
            value = scanner.read_value()
            if value is not None and (scanner.at_end() or scanner.peek() in OWS):
                params[name] = value
                continue
        scanner.pos = word_start
        scanner.skip_word()


def _classify(element: str) -> Optional[str]:
    """Return "param" for a parameter continuation, "challenge" for a new scheme."""
    scanner = HeaderScanner(HEADER_NAME, element)
    if scanner.read_token() is None:
        return None
    next_char = scanner.peek()
    if next_char == "=":
        return "param"
    if next_char == "" or next_char in OWS:
        return "challenge"
    return None


def parse_www_authenticate(headers: Optional[HeaderValues]) -> list[Challenge]:
    """Parse one or more ``WWW-Authenticate`` values into challenges.

    Repeated header values are concatenated and parsed as one list. The
    result preserves server order; no error is ever raised.

    Args:
        headers: A single header value or an iterable of values.

    Returns:
        Challenges in the order they were offered.

    Example:
        >>> parse_www_authenticate('UMA as_uri="https://as.example", ticket=abc, Bearer')
        [Challenge(scheme='UMA', ...), Challenge(scheme='Bearer', parameters={})]
    """
    text = join_header_values(headers)
    parsed: list[tuple[str, dict[str, str]]] = []
    current: Optional[dict[str, str]] = None

    for offset, element in split_elements(text):
        scanner = HeaderScanner(HEADER_NAME, element, offset)
        kind = _classify(element)
        try:
            if kind == "challenge":
                scheme = scanner.expect_token("auth-scheme")
                params: dict[str, str] = {}
                _parse_params(scanner, params)
                parsed.append((scheme, params))
                current = params
            elif kind == "param":
                if current is None:
                    raise scanner.error("auth-param without a preceding challenge")
                continued: dict[str, str] = {}
                _parse_params(scanner, continued)
                current.update(continued)
            else:
                raise scanner.error("expected auth-scheme")
        except HeaderParseError as exc:
            if kind != "param":
                current = None
            logger.debug(
                "solid_auth.headers.challenge_skipped",
                header=HEADER_NAME,
                position=exc.position,
                reason=exc.reason,
            )

    return [Challenge(scheme=scheme, parameters=params) for scheme, params in parsed]
