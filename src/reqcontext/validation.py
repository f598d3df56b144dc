# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Trust-boundary checks run once per request, before anything is derived.

Leaf module — depends on snapshot.py and trust.py only.

Both passes are pure: they take a snapshot and return a *new* snapshot plus
the list of offending keys. Raising is left to the caller so that the
sanitized snapshot can be installed first (no rollback on failure).

1. ``scrub_charset`` — header values (``HTTP_*``) and cookie values must be
   printable US-ASCII (0x20–0x7E). Anything else becomes ``?``.
2. ``strip_untrusted_forwarded`` — ``X-Forwarded-*`` headers are dropped
   unless the immediate peer is a trusted proxy.
"""

from __future__ import annotations

import logging
import re

from .snapshot import RequestSnapshot
from .trust import TrustedHostAuthority

logger = logging.getLogger(__name__)

HEADER_PREFIX = "HTTP_"

FORWARDED_HEADERS: tuple[str, ...] = (
    "HTTP_X_FORWARDED_FOR",
    "HTTP_X_FORWARDED_HOST",
    "HTTP_X_FORWARDED_PROTO",
    "HTTP_X_FORWARDED_PORT",
)

_DISALLOWED_RE = re.compile(r"[^\x20-\x7e]")


def _question_marks(match: re.Match[str]) -> str:
    char = match.group(0)
    if ord(char) <= 0xFF:
        return "?"
    # One "?" per UTF-8 byte of the character.
    return "?" * len(char.encode("utf-8", "surrogatepass"))


def scrub_value(value: str) -> str:
    """Replace every byte outside printable US-ASCII with ``?``.

    Values captured by :mod:`snapshot` are latin-1 decoded, so one character
    is one wire byte. Characters above U+00FF can only come from a snapshot
    built by hand; they are counted by their UTF-8 length (``"a€b"`` becomes
    ``"a???b"``).
    """
    return _DISALLOWED_RE.sub(_question_marks, value)


def scrub_charset(snapshot: RequestSnapshot) -> tuple[RequestSnapshot, list[str]]:
    """Sanitize header and cookie values.

    Returns the sanitized snapshot and the offending keys: server keys first
    in snapshot order, then cookie names. When nothing offends, the original
    snapshot is returned unchanged.
    """
    invalid: list[str] = []

    server = dict(snapshot.server)
    for key, value in server.items():
        if key.startswith(HEADER_PREFIX) and _DISALLOWED_RE.search(value):
            server[key] = scrub_value(value)
            invalid.append(key)

    cookies = dict(snapshot.cookies)
    for name, value in cookies.items():
        if _DISALLOWED_RE.search(value):
            cookies[name] = scrub_value(value)
            invalid.append(name)

    if not invalid:
        return snapshot, invalid
    return snapshot.replace(server=server, cookies=cookies), invalid


def strip_untrusted_forwarded(
    snapshot: RequestSnapshot,
    authority: TrustedHostAuthority,
) -> tuple[RequestSnapshot, list[str]]:
    """Drop ``X-Forwarded-*`` headers sent by an untrusted peer.

    The authority is consulted only when at least one forwarded header is
    present. Returns the (possibly stripped) snapshot and the keys removed,
    in snapshot order.
    """
    present = [key for key in snapshot.server if key in FORWARDED_HEADERS]
    if not present:
        return snapshot, []

    peer_ip = snapshot.server.get("REMOTE_ADDR", "")
    if authority.is_trusted_host(peer_ip):
        logger.debug("Forwarded headers accepted from trusted peer %s: %s", peer_ip, " ".join(present))
        return snapshot, []

    server = {k: v for k, v in snapshot.server.items() if k not in present}
    return snapshot.replace(server=server), present
