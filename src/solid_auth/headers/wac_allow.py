"""Parser for ``WAC-Allow`` response headers.

``WAC-Allow: user="read write append", public="read"`` advertises the
access modes each permission group holds on a resource. Grammar::

    wac-allow    = #access-param
    access-param = permission-group OWS "=" OWS DQUOTE access-modes DQUOTE
    access-modes = OWS [ access-mode *( RWS access-mode ) ] OWS
"""

from __future__ import annotations

import re
from typing import Optional

from solid_auth.errors import HeaderParseError
from solid_auth.headers._scanner import HeaderScanner, HeaderValues, join_header_values, split_elements
from solid_auth.observability import get_logger

logger = get_logger(__name__)

HEADER_NAME = "WAC-Allow"

_FIELD_NAME_PREFIX = re.compile(r"^\s*WAC-Allow\s*:", re.IGNORECASE)


def parse_wac_allow(headers: Optional[HeaderValues]) -> dict[str, frozenset[str]]:
    """Parse ``WAC-Allow`` values into access modes per permission group.

    Whitespace inside a mode list is collapsed. A group whose list is empty
    or blank is left out of the result entirely. Groups repeated within or
    across headers have their modes merged. Malformed elements are logged
    and skipped. A leading ``WAC-Allow:`` field name is tolerated.

    Args:
        headers: A single header value or an iterable of values.

    Returns:
        Mapping of permission group (e.g. "user", "public") to access modes.

    Example:
        >>> parse_wac_allow('user="read  write", public=""')
        {'user': frozenset({'read', 'write'})}
    """
    text = join_header_values(headers)
    modes: dict[str, set[str]] = {}

    for offset, element in split_elements(_FIELD_NAME_PREFIX.sub("", text, count=1)):
        scanner = HeaderScanner(HEADER_NAME, element, offset)
        try:
            group = scanner.expect_token("permission group")
            scanner.skip_ows()
            scanner.expect("=")
            scanner.skip_ows()
            value = scanner.read_quoted()
            scanner.expect_end()
        except HeaderParseError as exc:
            logger.debug(
                "solid_auth.headers.access_param_skipped",
                header=HEADER_NAME,
                position=exc.position,
                reason=exc.reason,
            )
            continue
        access_modes = value.split()
        if access_modes:
            modes.setdefault(group, set()).update(access_modes)

    return {group: frozenset(values) for group, values in modes.items()}
