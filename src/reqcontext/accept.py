# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Accept-family header parsing — ``Accept``, ``Accept-Encoding``, ``Accept-Language``.

Leaf module, stdlib only.

A header value such as ``text/html, application/xml;q=0.9, */*;q=0.8`` is
decomposed into an ordered ``{token: AcceptEntry}`` mapping, most preferred
first. Ordering rules, in precedence:

1. Higher quality first.
2. Among equal quality, ``*/*`` goes last.
3. Among equal quality, a partial wildcard (``text/*``, ``*``) goes after
   a concrete token.
4. Remaining ties keep input order.

``q`` parameters are applied left to right, so a segment carrying two
``q`` parameters ends up with the last one. This mirrors how the header is
read, not what RFC 9110 intends.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

FULL_WILDCARD = "*/*"

_LEADING_NUMBER_RE = re.compile(r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True, slots=True)
class AcceptEntry:
    """One token of an Accept-family header with its attributes."""

    name: str
    quality: float = 1.0
    params: dict[str, str] = field(default_factory=dict)
    markers: tuple[str, ...] = ()  # bare parameters without "="

    @property
    def is_wildcard(self) -> bool:
        return self.name.endswith("*")

    def to_dict(self) -> dict[Any, Any]:
        """Flat mapping: ``{"q": quality, **params, 0: marker, 1: marker, ...}``."""
        d: dict[Any, Any] = {"q": self.quality}
        d.update(self.params)
        for i, marker in enumerate(self.markers):
            d[i] = marker
        return d


def _parse_quality(raw: str) -> float:
    """Read the leading decimal number of *raw*; ``0.0`` when there is none."""
    m = _LEADING_NUMBER_RE.match(raw)
    if m is None:
        return 0.0
    return float(m.group(0))


def _parse_segment(segment: str) -> AcceptEntry | None:
    pieces = segment.split(";")
    name = pieces[0].strip()
    if not name:
        return None

    quality = 1.0
    params: dict[str, str] = {}
    markers: list[str] = []
    for piece in pieces[1:]:
        piece = piece.strip()
        if not piece:
            continue
        if "=" not in piece:
            markers.append(piece)
            continue
        key, value = piece.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key == "q":
            quality = _parse_quality(value)
        else:
            params[key] = value

    return AcceptEntry(name=name, quality=quality, params=params, markers=tuple(markers))


def _sort_key(item: tuple[int, AcceptEntry]) -> tuple[float, bool, bool, int]:
    index, entry = item
    is_full = entry.name == FULL_WILDCARD
    return (-entry.quality, is_full, not is_full and entry.is_wildcard, index)


def parse_accept_header(value: str | None) -> dict[str, AcceptEntry]:
    """Parse an Accept-family header into an ordered ``{token: AcceptEntry}`` mapping.

    Empty or missing input yields ``{}``. When a token occurs twice the later
    occurrence wins, both for its attributes and for its position.
    """
    if not value:
        return {}

    by_name: dict[str, tuple[int, AcceptEntry]] = {}
    for index, segment in enumerate(value.split(",")):
        entry = _parse_segment(segment)
        if entry is None:
            continue
        # Re-insert so the mapping reflects the latest occurrence.
        by_name.pop(entry.name, None)
        by_name[entry.name] = (index, entry)

    ordered = sorted(by_name.values(), key=_sort_key)
    return {entry.name: entry for _, entry in ordered}


def _matches(token: str, offered: str) -> bool:
    token = token.lower()
    offered = offered.lower()
    if token in ("*", FULL_WILDCARD):
        return True
    if token.endswith("/*"):
        return offered.startswith(token[:-1])
    return token == offered


def best_match(offered: Iterable[str], accepted: dict[str, AcceptEntry]) -> str | None:
    """Return the offered value the client prefers most, or ``None``.

    Walks *accepted* in preference order; entries with quality ``0`` are
    refusals and never match. Comparison is case-insensitive and the offered
    spelling is returned.
    """
    candidates = list(offered)
    for token, entry in accepted.items():
        if entry.quality <= 0:
            continue
        for candidate in candidates:
            if _matches(token, candidate):
                return candidate
    return None
