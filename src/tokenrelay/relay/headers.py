"""Hop-by-hop header sanitisation.

Headers that describe one transport leg must not cross the relay
boundary: the relay has already decoded the body and will frame the
response itself, so forwarding e.g. ``content-length`` or
``content-encoding`` would misdescribe what the caller receives.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Union

HOP_BY_HOP_HEADERS = frozenset(
    {
        "content-encoding",
        "content-length",
        "transfer-encoding",
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "upgrade",
    }
)

HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def strip_hop_by_hop(headers: HeaderSource) -> list[tuple[str, str]]:
    """Return the header pairs of *headers* that are not hop-by-hop.

    Names are compared case-insensitively. Repeated headers stay separate
    pairs, so each ``Set-Cookie`` line survives forwarding.
    """
    items = headers.items() if isinstance(headers, Mapping) else headers
    return [(name, value) for name, value in items if name.lower() not in HOP_BY_HOP_HEADERS]


def sanitize_headers(headers: HeaderSource) -> dict[str, str]:
    """Return *headers* as a dict without hop-by-hop entries.

    Repeated names are joined with ``", "``, except ``Set-Cookie``: cookie
    values may contain commas, so its lines are joined with ``"\\n"``,
    which no header value can contain.

    Example:
        >>> sanitize_headers({"Content-Type": "text/plain", "Content-Length": "4"})
        {'Content-Type': 'text/plain'}
    """
    result: dict[str, str] = {}
    for name, value in strip_hop_by_hop(headers):
        if name not in result:
            result[name] = value
        elif name.lower() == "set-cookie":
            result[name] = f"{result[name]}\n{value}"
        else:
            result[name] = f"{result[name]}, {value}"
    return result
