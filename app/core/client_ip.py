"""Client address resolution and IP whitelist matching.

The service is expected to run behind a proxy or CDN, so the client address
is read from the standard forwarding headers rather than the socket peer.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Mapping

from fastapi import Request

logger = logging.getLogger(__name__)

# Checked in priority order; the first usable value wins.
CLIENT_IP_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Client-IP",
    "X-Forwarded",
    "Forwarded-For",
    "Forwarded",
)

DEFAULT_CLIENT_IP = "0.0.0.0"

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def _first_entry(header_name: str, value: str) -> str:
    entry = value.split(",")[0].strip()
    if header_name.lower() == "forwarded":
        # RFC 7239: for=192.0.2.60;proto=http;by=203.0.113.43
        for part in entry.split(";"):
            name, _, param = part.strip().partition("=")
            if name.lower() == "for":
                return param.strip().strip('"')
    return entry


def extract_client_ip(headers: Mapping[str, str]) -> str:
    """Return the client address advertised by proxy headers.

    Args:
        headers: Case-insensitive request headers.

    Returns:
        The first non-empty, non-"unknown" address, or ``0.0.0.0``.

    Examples:
        >>> extract_client_ip({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})
        '1.2.3.4'
        >>> extract_client_ip({})
        '0.0.0.0'
    """
    for header_name in CLIENT_IP_HEADERS:
        value = headers.get(header_name)
        if not value:
            continue
        ip = _first_entry(header_name, value)
        if ip and ip.lower() != "unknown":
            return ip
    return DEFAULT_CLIENT_IP


def get_client_ip(request: Request) -> str:
    """Default rate limit key generator: the client's IP address."""
    return extract_client_ip(request.headers)


def parse_ip_whitelist(whitelist: str | None) -> list[IPNetwork]:
    """Parse a comma-separated list of IPs/CIDR blocks.

    Invalid entries are logged and skipped.

    Examples:
        >>> [str(n) for n in parse_ip_whitelist("10.0.0.0/8, 127.0.0.1")]
        ['10.0.0.0/8', '127.0.0.1/32']
    """
    if not whitelist:
        return []

    networks: list[IPNetwork] = []
    for entry in (item.strip() for item in whitelist.split(",")):
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("ip_whitelist.invalid_entry", extra={"entry": entry})
    return networks


def is_ip_whitelisted(client_ip: str, networks: Iterable[IPNetwork]) -> bool:
    """Return True if ``client_ip`` falls inside any whitelisted network."""
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(address in network for network in networks)
