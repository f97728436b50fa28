"""Parser for ``Link`` response headers (RFC 8288 section 3).

Grammar::

    Link       = #link-value
    link-value = "<" URI-Reference ">" *( OWS ";" OWS link-param )
    link-param = token BWS [ "=" BWS ( token / quoted-string ) ]

Targets must be valid URI-references. Relative references, IRIs and
non-HTTP schemes (``urn:``, ``did:``, ``file:``) are accepted as-is; targets
containing characters that may not appear in a URI are rejected rather
than repaired.
"""

from __future__ import annotations

import ipaddress
import re
import unicodedata
from typing import Optional

from solid_auth.errors import HeaderParseError
from solid_auth.headers._scanner import (
    OWS,
    HeaderScanner,
    HeaderValues,
    join_header_values,
    split_elements,
)
from solid_auth.models.link import Link
from solid_auth.observability import get_logger

logger = get_logger(__name__)

HEADER_NAME = "Link"

# RFC 3986 section 2 character classes; non-ASCII stands in for RFC 3987 ucschar
_UNRESERVED = r"A-Za-z0-9\-._~"
_SUB_DELIMS = r"!$&'()*+,;="
_PCT_ENCODED = r"%[0-9A-Fa-f]{2}"


def _component(extra: str) -> re.Pattern[str]:
    return re.compile(rf"(?:[{_UNRESERVED}{_SUB_DELIMS}{extra}]|{_PCT_ENCODED}|[^\x00-\x7f])*")


_PATH = _component(":@/")
_QUERY = _component(":@/?")
_USERINFO = _component(":")
_REG_NAME = _component("")
_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")
_PORT = re.compile(r"[0-9]*")
_IPV_FUTURE = re.compile(rf"[vV][0-9A-Fa-f]+\.[{_UNRESERVED}{_SUB_DELIMS}:]+")


def _is_ip_literal(text: str) -> bool:
    if _IPV_FUTURE.fullmatch(text):
        return True
    if "%" in text:
        return False
    try:
        ipaddress.IPv6Address(text)
    except ValueError:
        return False
    return True


def _is_authority(authority: str) -> bool:
    userinfo, at, hostport = authority.rpartition("@")
    if at and _USERINFO.fullmatch(userinfo) is None:
        return False
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0 or not _is_ip_literal(hostport[1:end]):
            return False
        port = hostport[end + 1 :]
        return not port or (port.startswith(":") and _PORT.fullmatch(port[1:]) is not None)
    host, _, port = hostport.partition(":")
    return _PORT.fullmatch(port) is not None and _REG_NAME.fullmatch(host) is not None


def is_uri_reference(value: str) -> bool:
    """Return True if ``value`` is a syntactically valid URI- or IRI-reference.

    The value is split into scheme, authority, path, query and fragment
    (RFC 3986 section 4.1) and each part is checked against its own
    character set. Square brackets are only valid around an IP-literal host.
    """
    if not value:
        return False
    if any(
        ch.isspace() or unicodedata.category(ch) in ("Cc", "Cs") for ch in value if ord(ch) > 0x7F
    ):
        return False

    rest, hash_mark, fragment = value.partition("#")
    if hash_mark and _QUERY.fullmatch(fragment) is None:
        return False
    rest, question_mark, query = rest.partition("?")
    if question_mark and _QUERY.fullmatch(query) is None:
        return False

    scheme, colon, hier_part = rest.partition(":")
    if colon and "/" not in scheme:
        if _SCHEME.fullmatch(scheme) is None:
            return False
    else:
        hier_part = rest

    path = hier_part
    if hier_part.startswith("//"):
        authority, slash, path = hier_part[2:].partition("/")
        if not _is_authority(authority):
            return False
        path = slash + path
    return _PATH.fullmatch(path) is not None


def _split_params(text: str, offset: int) -> list[tuple[int, str]]:
    """Split the text after ``>`` on top-level semicolons."""
    segments: list[tuple[int, str]] = []
    start = 0
    in_quotes = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_quotes:
            if ch == "\\":
                i += 1
            elif ch == '"':
                in_quotes = False
        elif ch == '"':
            in_quotes = True
        elif ch == ";":
            segments.append((offset + start, text[start:i]))
            start = i + 1
        i += 1
    segments.append((offset + start, text[start:]))
    return segments


def _parse_link_value(scanner: HeaderScanner) -> Link:
    scanner.expect("<")
    end = scanner.text.find(">", scanner.pos)
    if end < 0:
        raise scanner.error("unterminated link target")
    target = scanner.text[scanner.pos : end]
    if not is_uri_reference(target):
        raise scanner.error("link target is not a valid URI-reference")
    scanner.pos = end + 1

    rest = scanner.text[scanner.pos :]
    if rest.strip(OWS) and not rest.lstrip(OWS).startswith(";"):
        raise scanner.error("unexpected content after link target")

    parameters: dict[str, str] = {}
    for param_offset, segment in _split_params(rest, scanner.offset + scanner.pos)[1:]:
        segment = segment.strip(OWS)
        if not segment:
            continue
        param = HeaderScanner(HEADER_NAME, segment, param_offset)
        try:
            name = param.expect_token("link-param name")
            param.skip_ows()
            param.expect("=")
            param.skip_ows()
            value = param.read_value()
            if value is None:
                raise param.error("expected link-param value")
            param.expect_end()
        except HeaderParseError as exc:
            logger.debug(
                "solid_auth.headers.link_param_skipped",
                header=HEADER_NAME,
                position=exc.position,
                reason=exc.reason,
            )
            continue
        # occurrences after the first are ignored (RFC 8288 section 3.3)
        parameters.setdefault(name, value)

    return Link(uri=target, parameters=parameters)


def parse_link(headers: Optional[HeaderValues]) -> list[Link]:
    """Parse one or more ``Link`` values into links, preserving server order.

    Invalid link-params are dropped individually; a link whose target is
    missing or malformed is dropped entirely. No error is ever raised.

    Args:
        headers: A single header value or an iterable of values.

    Returns:
        Links in the order the server sent them.

    Example:
        >>> parse_link('<https://a.example>; rel="x", </acl>; rel=acl')
        [Link(uri='https://a.example', parameters={'rel': 'x'}), Link(uri='/acl', ...)]
    """
    text = join_header_values(headers)
    links: list[Link] = []
    for offset, element in split_elements(text, angle_brackets=True):
        scanner = HeaderScanner(HEADER_NAME, element, offset)
        try:
            links.append(_parse_link_value(scanner))
        except HeaderParseError as exc:
            logger.debug(
                "solid_auth.headers.link_skipped",
                header=HEADER_NAME,
                position=exc.position,
                reason=exc.reason,
            )
    return links
