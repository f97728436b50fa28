"""HTTP header parsers for the reactive authorization layer.

Public exports:
    parse_www_authenticate: WWW-Authenticate values -> list[Challenge]
    parse_wac_allow: WAC-Allow values -> {permission group: access modes}
    parse_link: Link values -> list[Link]
    is_uri_reference: URI-reference syntax check used for Link targets

All parsers accept a single header value or an iterable of repeated values
and never raise; malformed elements are logged at debug level and skipped.
"""

from solid_auth.headers.link import is_uri_reference, parse_link
from solid_auth.headers.wac_allow import parse_wac_allow
from solid_auth.headers.www_authenticate import parse_www_authenticate

__all__ = [
    "is_uri_reference",
    "parse_link",
    "parse_wac_allow",
    "parse_www_authenticate",
]
