# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""reqcontext exception hierarchy.

All reqcontext errors inherit from RequestContextError. Two kinds matter to
callers:

- ``BadRequestError`` — the client sent something we refuse to believe.
  The HTTP layer is expected to answer with a 400.
- ``RequestLogicError`` — the caller or the front-end server misbehaved
  (missing request target, unknown property name). Not recoverable.
"""

from __future__ import annotations


class RequestContextError(Exception):
    """Base exception for all reqcontext errors."""


class BadRequestError(RequestContextError):
    """Client-caused error; maps to HTTP 400."""

    status_code = 400

    def __init__(self, message: str, *, fields: tuple[str, ...] | list[str] = ()) -> None:
        super().__init__(message)
        self.fields = tuple(fields)


class RequestLogicError(RequestContextError):
    """Programming error or misconfigured front-end server."""


class UnknownPropertyError(RequestLogicError, AttributeError):
    """A derived property that does not exist was requested."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown request property: {name!r}")
        self.name = name
