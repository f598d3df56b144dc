# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RequestSnapshot — immutable capture of a request's server variables and cookies.

Leaf module, stdlib only (http.cookies, types).

Keys follow the CGI convention: transport headers as ``HTTP_<NAME>``, plus
``REQUEST_METHOD``, ``REQUEST_URI``, ``REMOTE_ADDR``, ``SERVER_PORT``,
``HTTPS``, ``CONTENT_TYPE``, ``REQUEST_TIME_FLOAT`` and the like.

Two capture helpers translate what Python front ends hand us:

- ``from_wsgi_environ()`` — PEP 3333 environ (already CGI-shaped).
- ``from_asgi_scope()`` — ASGI HTTP scope (headers as byte pairs).

Header bytes are decoded as latin-1 so that every byte survives capture;
rejecting non-ASCII content is the validator's job, not ours.
"""

from __future__ import annotations

import dataclasses
import http.cookies
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

# CGI puts these two headers in the environment without the HTTP_ prefix.
_UNPREFIXED_HEADERS = {"CONTENT_TYPE", "CONTENT_LENGTH"}


def _freeze(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


def header_key(name: str) -> str:
    """CGI key for an HTTP header name: ``X-Api-Key`` → ``HTTP_X_API_KEY``."""
    return "HTTP_" + name.strip().upper().replace("-", "_")


def _parse_cookie_header(raw: str) -> dict[str, str]:
    if not raw:
        return {}
    jar = http.cookies.SimpleCookie()
    try:
        jar.load(raw)
    except http.cookies.CookieError:
        # SimpleCookie gives up on the whole header; fall back to a plain split.
        cookies: dict[str, str] = {}
        for pair in raw.split(";"):
            if "=" not in pair:
                continue
            name, value = pair.split("=", 1)
            name = name.strip()
            if name:
                cookies[name] = value.strip()
        return cookies
    return {name: morsel.value for name, morsel in jar.items()}


@dataclasses.dataclass(frozen=True, slots=True)
class RequestSnapshot:
    """Server variables and cookies of one request, frozen at capture time."""

    server: Mapping[str, str] = dataclasses.field(default_factory=dict)
    cookies: Mapping[str, str] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "server", _freeze(self.server))
        object.__setattr__(self, "cookies", _freeze(self.cookies))

    def replace(
        self,
        *,
        server: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> RequestSnapshot:
        """Return a copy with *server* and/or *cookies* swapped out."""
        return RequestSnapshot(
            server=self.server if server is None else server,
            cookies=self.cookies if cookies is None else cookies,
        )

    # ── Capture helpers ────────────────────────────────────────────────

    @classmethod
    def from_wsgi_environ(cls, environ: Mapping[str, Any]) -> RequestSnapshot:
        """Capture a PEP 3333 environ.

        Only ``str`` values are kept (``wsgi.input`` and friends are dropped).
        ``REQUEST_URI`` and ``HTTPS`` are synthesized when the server did not
        provide them.
        """
        server = {k: v for k, v in environ.items() if isinstance(v, str)}

        if "REQUEST_URI" not in server and "PATH_INFO" in server:
            uri = server.get("SCRIPT_NAME", "") + server["PATH_INFO"]
            qs = server.get("QUERY_STRING", "")
            server["REQUEST_URI"] = uri + ("?" + qs if qs else "")

        if "HTTPS" not in server and environ.get("wsgi.url_scheme") == "https":
            server["HTTPS"] = "on"

        return cls(server=server, cookies=_parse_cookie_header(server.get("HTTP_COOKIE", "")))

    @classmethod
    def from_asgi_scope(
        cls,
        scope: Mapping[str, Any],
        *,
        extra: Mapping[str, str] | None = None,
    ) -> RequestSnapshot:
        """Capture an ASGI ``http`` scope.

        *extra* entries (for example ``REQUEST_TIME_FLOAT`` or the environment
        tag) are applied last and override anything captured from the scope.
        """
        server: dict[str, str] = {}

        for raw_name, raw_value in scope.get("headers", []):
            name = raw_name.decode("latin-1")
            value = raw_value.decode("latin-1")
            key = header_key(name)
            if key[5:] in _UNPREFIXED_HEADERS:
                key = key[5:]
            if key in server:
                server[key] = server[key] + ", " + value
            else:
                server[key] = value

        server["REQUEST_METHOD"] = scope.get("method", "GET")

        raw_path = scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else scope.get("path", "/")
        query = scope.get("query_string", b"").decode("latin-1")
        server["REQUEST_URI"] = path + ("?" + query if query else "")

        client = scope.get("client")
        if client:
            server["REMOTE_ADDR"] = client[0]

        srv = scope.get("server")
        if srv and srv[1] is not None:
            server["SERVER_NAME"] = srv[0]
            server["SERVER_PORT"] = str(srv[1])

        if scope.get("scheme") == "https":
            server["HTTPS"] = "on"

        if extra:
            server.update(extra)

        return cls(server=server, cookies=_parse_cookie_header(server.get("HTTP_COOKIE", "")))
