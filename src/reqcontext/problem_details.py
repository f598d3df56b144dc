# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for request-context errors.

Gives the HTTP layer a single place to turn a :class:`BadRequestError` (or
anything else escaping request handling) into a response body. Near-leaf:
stdlib + errors.py, Starlette imported lazily by ``to_response()``.

Key public API:

- ``ProblemType``   — error taxonomy.
- ``ProblemDetail`` — frozen dataclass (→ JSON dict / JSON string / Starlette response).
- ``from_exception()`` — build a ``ProblemDetail`` from an exception.
- ``sanitize_detail()`` — strip control characters and truncate.

Type URI namespace: ``https://www.retio.ai/reqcontext/errors/{slug}``
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import BadRequestError, RequestContextError

_ERROR_BASE = "https://www.retio.ai/reqcontext/errors"

MAX_DETAIL_LENGTH = 200

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

# Standard RFC 9457 fields that extensions must never shadow.
_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance"})


class ProblemType(StrEnum):
    BAD_REQUEST = "bad-request"
    INTERNAL_ERROR = "internal-error"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


_TYPE_METADATA: dict[ProblemType, tuple[int, str]] = {
    ProblemType.BAD_REQUEST: (400, "Bad Request"),
    ProblemType.INTERNAL_ERROR: (500, "Internal Server Error"),
}


def sanitize_detail(text: str) -> str:
    """Drop control characters from *text* and cap it at ``MAX_DETAIL_LENGTH``."""
    text = _CONTROL_RE.sub("", text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """RFC 9457 JSON dict.  Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_response(self):
        """Starlette ``JSONResponse`` with ``application/problem+json`` and ``Cache-Control: no-store``."""
        from starlette.responses import JSONResponse

        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers={"Cache-Control": "no-store"},
        )


def from_exception(exc: Exception, *, instance: str = "") -> ProblemDetail:
    """Build a ProblemDetail from an exception.

    ``BadRequestError`` → 400 with the offending keys in ``fields``.
    Logic errors and foreign exceptions → 500 with a generic detail, so that
    internals never leak to the client.
    """
    if isinstance(exc, BadRequestError):
        status, title = _TYPE_METADATA[ProblemType.BAD_REQUEST]
        ext: dict[str, Any] = {}
        if exc.fields:
            ext["fields"] = list(exc.fields)
        return ProblemDetail(
            type=ProblemType.BAD_REQUEST.uri,
            title=title,
            status=status,
            detail=sanitize_detail(str(exc)),
            instance=instance,
            extensions=ext,
        )

    if isinstance(exc, RequestContextError):
        status, title = _TYPE_METADATA[ProblemType.INTERNAL_ERROR]
        return ProblemDetail(
            type=ProblemType.INTERNAL_ERROR.uri,
            title=title,
            status=status,
            detail="The request could not be processed.",
            instance=instance,
        )

    return ProblemDetail(
        type="about:blank",
        status=500,
        detail="Internal server error.",
        instance=instance,
    )
