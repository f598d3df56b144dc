# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""reqcontext: typed, validated view of the current HTTP request.

Wraps an immutable snapshot of server variables and cookies and exposes:
- derived request properties (method, URI, host, port, absolute URL, ...)
- ordered Accept / Accept-Encoding / Accept-Language preferences
- one-time validation of header/cookie charset and forwarded-header trust
"""

from __future__ import annotations

from .accept import AcceptEntry, best_match, parse_accept_header
from .context import DERIVED_PROPERTIES, RequestContext
from .errors import BadRequestError, RequestContextError, RequestLogicError, UnknownPropertyError
from .snapshot import RequestSnapshot
from .trust import NetworkTrustAuthority, StaticTrustAuthority, TrustedHostAuthority, parse_trusted_proxies

__version__ = "0.1.0"

__all__ = [
    "DERIVED_PROPERTIES",
    "AcceptEntry",
    "BadRequestError",
    "NetworkTrustAuthority",
    "RequestContext",
    "RequestContextError",
    "RequestLogicError",
    "RequestSnapshot",
    "StaticTrustAuthority",
    "TrustedHostAuthority",
    "UnknownPropertyError",
    "best_match",
    "parse_accept_header",
    "parse_trusted_proxies",
]
