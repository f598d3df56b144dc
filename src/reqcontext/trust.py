# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Trusted host authorities — who may vouch for ``X-Forwarded-*`` headers.

Leaf module, stdlib only (ipaddress, logging).

The request context only needs ``is_trusted_host(ip) -> bool``. Two stock
implementations are provided:

- ``NetworkTrustAuthority`` — single IPs, CIDRs, the ``cloudflare`` keyword
  and ``*``, parsed by :func:`parse_trusted_proxies`.
- ``StaticTrustAuthority`` — a fixed answer, for tests and single-host setups.

Peer addresses that do not parse as an IP are never trusted.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# ── Cloudflare IP ranges (static defaults) ────────────────────────────
# WARNING: These ranges may become stale. Verify against the canonical source:
#   IPv4: https://www.cloudflare.com/ips-v4
#   IPv6: https://www.cloudflare.com/ips-v6
# Last updated: 2026-02-23.

CLOUDFLARE_IPV4_CIDRS: tuple[str, ...] = (
    "173.245.48.0/20",
    "103.21.244.0/22",
    "103.22.200.0/22",
    "103.31.4.0/22",
    "141.101.64.0/18",
    "108.162.192.0/18",
    "190.93.240.0/20",
    "188.114.96.0/20",
    "197.234.240.0/22",
    "198.41.128.0/17",
    "162.158.0.0/15",
    "104.16.0.0/13",
    "104.24.0.0/14",
    "172.64.0.0/13",
    "131.0.72.0/22",
)

CLOUDFLARE_IPV6_CIDRS: tuple[str, ...] = (
    "2400:cb00::/32",
    "2606:4700::/32",
    "2803:f800::/32",
    "2405:b500::/32",
    "2405:8100::/32",
    "2a06:98c0::/29",
    "2c0f:f248::/32",
)


@runtime_checkable
class TrustedHostAuthority(Protocol):
    """Decides whether the immediate peer may be believed for forwarded headers."""

    def is_trusted_host(self, ip: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class StaticTrustAuthority:
    """Answers every query with the same verdict."""

    trusted: bool = False

    def is_trusted_host(self, ip: str) -> bool:
        return self.trusted


@dataclass(frozen=True, slots=True)
class NetworkTrustAuthority:
    """Immutable allow-list of proxy hosts and networks.

    ``trusted_networks`` is a tuple (not frozenset) because
    ``ipaddress`` networks require sequential containment checks.
    """

    trusted_hosts: frozenset[IPv4Address | IPv6Address] = frozenset()
    trusted_networks: tuple[IPv4Network | IPv6Network, ...] = ()
    trust_all: bool = False

    def is_trusted_host(self, ip: str) -> bool:
        if self.trust_all:
            return True
        if not ip:
            return False
        try:
            addr = ipaddress.ip_address(normalize_ip_str(ip))
        except ValueError:
            logger.debug("Peer address %r is not an IP; treating as untrusted", ip)
            return False
        return self.contains(addr)

    def contains(self, addr: IPv4Address | IPv6Address) -> bool:
        """O(1) host lookup + O(n) network containment check."""
        if addr in self.trusted_hosts:
            return True
        return any(addr in net for net in self.trusted_networks)


def normalize_ip_str(raw: str) -> str:
    """Normalize an IP string for ``ipaddress.ip_address()``.

    Handles IPv6 brackets (``[2001:db8::1]`` → ``2001:db8::1``)
    and zone IDs (``fe80::1%eth0`` → ``fe80::1``).
    """
    s = raw.strip()
    if s.startswith("[") and s.endswith("]"):
        s = s[1:-1]
    if "%" in s:
        s = s[: s.index("%")]
    return s


def parse_trusted_proxies(raw: list[str] | tuple[str, ...]) -> NetworkTrustAuthority:
    """Parse proxy specifications into a :class:`NetworkTrustAuthority`.

    Supported formats:
    - Single IP: ``"10.0.0.1"``, ``"::1"``
    - CIDR: ``"10.0.0.0/8"``, ``"2001:db8::/32"``
    - Keyword ``"cloudflare"`` — expands to static Cloudflare CIDRs
    - Keyword ``"*"`` — trust all peers (development only)

    Blank entries are ignored.

    Raises:
        ValueError: If any entry is invalid.
    """
    hosts: set[IPv4Address | IPv6Address] = set()
    networks: list[IPv4Network | IPv6Network] = []
    trust_all = False

    for entry in raw:
        entry = entry.strip()
        if not entry:
            continue
        low = entry.lower()

        if low == "*":
            trust_all = True
            continue

        if low == "cloudflare":
            for cidr in CLOUDFLARE_IPV4_CIDRS + CLOUDFLARE_IPV6_CIDRS:
                networks.append(ipaddress.ip_network(cidr, strict=False))
            continue

        if "/" in entry:
            networks.append(ipaddress.ip_network(entry, strict=False))
        else:
            hosts.add(ipaddress.ip_address(normalize_ip_str(entry)))

    if trust_all:
        logger.warning("Trusting forwarded headers from every peer ('*'); do not use in production")

    return NetworkTrustAuthority(
        trusted_hosts=frozenset(hosts),
        trusted_networks=tuple(networks),
        trust_all=trust_all,
    )
