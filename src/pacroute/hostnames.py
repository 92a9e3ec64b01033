from __future__ import annotations

import re
from ipaddress import IPv4Address, IPv6Address, ip_address, ip_network
from typing import Optional, Sequence, Union
from urllib.parse import urlparse

from .errors import ClassificationInputError

SPECIAL_PURPOSE_NETWORKS = [
    ip_network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "198.51.100.0/24",
        "203.0.113.0/24",
        "224.0.0.0/4",
        "240.0.0.0/4",
        "::/128",
        "::1/128",
        "::/96",
        "::ffff:0:0/96",
        "2001:db8::/32",
        "fe80::/10",
        "fec0::/10",
        "fc00::/7",
        "ff00::/8",
    )
]

LOCALHOST_RE = re.compile(r"localhost")
SCHEME_ONLY_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:(?!\d)")
HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)(?!-)[a-z0-9-]{1,63}(?<!-)(\.(?!-)[a-z0-9-]{1,63}(?<!-))*\.[a-z0-9-]{2,63}$"
)


def extract_host(url: str) -> Optional[str]:
    value = (url or "").strip()
    if not value:
        return None
    if "://" not in value:
        try:
            return str(ip_address(value.strip("[]")))
        except ValueError:
            pass
        # "about:blank" style URLs carry no host; "example.com:8080" does
        if not SCHEME_ONLY_RE.match(value):
            value = f"http://{value}"
    try:
        parsed = urlparse(value)
        hostname = parsed.hostname
    except ValueError:
        return None
    if hostname:
        return hostname.lower()
    return None


def clean_hostname(hostname: str) -> str:
    host = hostname.strip().lower()
    if host.endswith("."):
        host = host[:-1]
    return host


def display_hostname(hostname: str) -> str:
    host = clean_hostname(hostname)
    if host.startswith("www."):
        host = host[len("www."):]
    return host


def is_valid_hostname(hostname: str) -> bool:
    return bool(HOSTNAME_RE.match(clean_hostname(hostname)))


def second_level_domain(host: str) -> str:
    """Reduce ``host`` to its last two labels, the way the PAC script does.

    One trailing dot is dropped first. Hosts with at most one dot are
    returned unchanged.
    """
    if host.endswith("."):
        host = host[:-1]
    last_dot = host.rfind(".")
    if last_dot != -1:
        prev_dot = host.rfind(".", 0, max(last_dot, 1))
        if prev_dot != -1:
            host = host[prev_dot + 1:]
    return host


def binary_search(domains: Sequence[str], target: str) -> bool:
    left = 0
    right = len(domains) - 1
    while left <= right:
        mid = left + (right - left) // 2
        if domains[mid] == target:
            return True
        if domains[mid] < target:
            left = mid + 1
        else:
            right = mid - 1
    return False


def parse_ip(host: str) -> Union[IPv4Address, IPv6Address]:
    value = host.strip()
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    try:
        return ip_address(value)
    except ValueError as exc:
        raise ClassificationInputError(f"not an IP literal: {host!r}") from exc


def is_special_purpose_ip(host: str) -> bool:
    try:
        addr = parse_ip(host)
    except ClassificationInputError:
        return False
    return any(addr in net for net in SPECIAL_PURPOSE_NETWORKS)


def is_localhost(host: str) -> bool:
    return bool(LOCALHOST_RE.search(host))
