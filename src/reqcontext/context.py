# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RequestContext — typed, memoized view of one inbound request.

Dependency graph: context.py <- accept.py, errors.py, snapshot.py,
trust.py, validation.py (all leaves).

Lifecycle:

1. Build from a :class:`RequestSnapshot` and a trusted host authority.
2. Call :meth:`RequestContext.validate` early. Any derived property read
   before that triggers the same validation, so no value is ever computed
   from an unvalidated snapshot.
3. Read properties. Each is computed at most once and then frozen for the
   lifetime of the context.

Validation is attempted exactly once. On failure the sanitized snapshot is
still installed and a :class:`BadRequestError` is raised; later property
reads see the sanitized values without raising again, while later calls to
``validate()`` re-raise the recorded error.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .accept import AcceptEntry, best_match, parse_accept_header
from .errors import BadRequestError, RequestLogicError, UnknownPropertyError
from .snapshot import RequestSnapshot, header_key
from .trust import TrustedHostAuthority
from .validation import scrub_charset, strip_untrusted_forwarded

logger = logging.getLogger(__name__)

DEFAULT_ENV_KEY = "PLAISIO_ENV"

_ABSOLUTE_FORM_RE = re.compile(r"^(?:http|https)://[^/]+", re.IGNORECASE)
_PORT_RE = re.compile(r"[0-9]+")


class _derived:
    """Memoized property that validates the snapshot before its first computation.

    Non-data descriptor: once a value sits in the instance ``__dict__`` it
    shadows the descriptor. A miss takes only the per-instance lock, so
    properties that read other properties never wait on a second lock.
    """

    def __init__(self, func: Callable[[RequestContext], Any]) -> None:
        self.func = func
        self.attrname = func.__name__
        self.__doc__ = func.__doc__

    def __set_name__(self, owner: type, name: str) -> None:
        self.attrname = name

    def __get__(self, instance: RequestContext | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        cache = instance.__dict__
        try:
            return cache[self.attrname]
        except KeyError:
            pass
        with instance._lock:
            if self.attrname in cache:
                return cache[self.attrname]
            instance._ensure_validated()
            value = self.func(instance)
            cache[self.attrname] = value
            return value


def _strip_port(host: str) -> str:
    """``example.com:8080`` → ``example.com``; ``[::1]:8080`` → ``[::1]``."""
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    name, sep, port = host.rpartition(":")
    if sep and port.isdigit() and ":" not in name:
        return name
    return host


class RequestContext:
    """Read-mostly view of the current request.

    The wrapped snapshot is swapped once by validation; derived values live
    in the instance ``__dict__``.
    """

    def __init__(
        self,
        snapshot: RequestSnapshot,
        trusted_host_authority: TrustedHostAuthority,
        *,
        env_key: str = DEFAULT_ENV_KEY,
    ) -> None:
        self._snapshot = snapshot
        self._authority = trusted_host_authority
        self._env_key = env_key
        self._lock = threading.RLock()
        self._validation_attempted = False
        self._validation_error: BadRequestError | None = None

    def __repr__(self) -> str:
        state = "validated" if self._validation_attempted else "pending"
        return f"<RequestContext {state}>"

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails.
        raise UnknownPropertyError(name)

    # ── Validation ────────────────────────────────────────────────────

    def validate(self) -> None:
        """Scrub header/cookie charset, then drop untrusted forwarded headers.

        Raises:
            BadRequestError: If any header or cookie held bytes outside
                printable US-ASCII, or forwarded headers came from an
                untrusted peer. The sanitized snapshot is installed first.
        """
        with self._lock:
            if not self._validation_attempted:
                self._run_validation()
            if self._validation_error is not None:
                raise self._validation_error

    @property
    def is_validated(self) -> bool:
        return self._validation_attempted

    def _ensure_validated(self) -> None:
        if not self._validation_attempted:
            self.validate()

    def _run_validation(self) -> None:
        snapshot, invalid = scrub_charset(self._snapshot)
        snapshot, rejected = strip_untrusted_forwarded(snapshot, self._authority)

        self._snapshot = snapshot
        self._validation_attempted = True

        messages: list[str] = []
        peer_ip = snapshot.server.get("REMOTE_ADDR", "")
        if invalid:
            logger.warning("Invalid characters in request from %s: %s", peer_ip, " ".join(invalid))
            messages.append(f"Invalid HTTP header(s) or cookie(s) found: {' '.join(invalid)}.")
        if rejected:
            logger.warning("Forwarded headers from untrusted peer %s stripped: %s", peer_ip, " ".join(rejected))
            messages.append(f"Untrusted forwarded header(s) found: {' '.join(rejected)}.")

        if messages:
            self._validation_error = BadRequestError(" ".join(messages), fields=[*invalid, *rejected])

    # ── Raw lookups ───────────────────────────────────────────────────

    @property
    def snapshot(self) -> RequestSnapshot:
        """The snapshot currently installed (sanitized once validation ran)."""
        return self._snapshot

    @property
    def cookies(self) -> Mapping[str, str]:
        self._ensure_validated()
        return self._snapshot.cookies

    def get_cookie(self, name: str) -> str | None:
        self._ensure_validated()
        return self._snapshot.cookies.get(name)

    def get_header_optional(self, name: str) -> str | None:
        """Value of HTTP header *name* (e.g. ``X-Api-Key``), or ``None``."""
        self._ensure_validated()
        return self._snapshot.server.get(header_key(name))

    def get_header_required(self, name: str) -> str:
        """Value of HTTP header *name*.

        Raises:
            BadRequestError: If the header is absent.
        """
        value = self.get_header_optional(name)
        if value is None:
            raise BadRequestError(f"Mandatory header '{name}' not found", fields=[header_key(name)])
        return value

    def get(self, name: str) -> Any:
        """Generic accessor for a derived property by name.

        Raises:
            UnknownPropertyError: If *name* is not a derived property.
        """
        if name not in DERIVED_PROPERTIES:
            raise UnknownPropertyError(name)
        return getattr(self, name)

    def _server(self, key: str) -> str | None:
        return self._snapshot.server.get(key)

    # ── Method ────────────────────────────────────────────────────────

    @_derived
    def method(self) -> str:
        override = self._server("HTTP_X_HTTP_METHOD_OVERRIDE")
        if override is not None:
            return override.upper()
        method = self._server("REQUEST_METHOD")
        if method is not None:
            return method.upper()
        return "GET"

    @_derived
    def is_get(self) -> bool:
        return self.method == "GET"

    @_derived
    def is_post(self) -> bool:
        return self.method == "POST"

    @_derived
    def is_put(self) -> bool:
        return self.method == "PUT"

    @_derived
    def is_patch(self) -> bool:
        return self.method == "PATCH"

    @_derived
    def is_delete(self) -> bool:
        return self.method == "DELETE"

    @_derived
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @_derived
    def is_options(self) -> bool:
        return self.method == "OPTIONS"

    # ── Target, host, URL ─────────────────────────────────────────────

    @_derived
    def request_uri(self) -> str:
        """Request target including the query string.

        An absolute-form target (``https://host/path``) is reduced to its
        path. Raises :class:`RequestLogicError` when the front end supplied
        no target at all.
        """
        uri = self._server("REQUEST_URI")
        if uri is None:
            raise RequestLogicError("Unable to resolve requested URI")
        if uri and not uri.startswith("/"):
            uri = _ABSOLUTE_FORM_RE.sub("", uri, count=1)
        return uri

    @_derived
    def is_secure_channel(self) -> bool:
        https = self._server("HTTPS")
        if https is not None and https.lower() in ("on", "1"):
            return True
        proto = self._server("HTTP_X_FORWARDED_PROTO")
        return proto is not None and proto.lower() == "https"

    @_derived
    def port(self) -> int:
        """Forwarded port, else server port, else the scheme default.

        Raises:
            BadRequestError: If the port in use is not a decimal integer.
        """
        for key in ("HTTP_X_FORWARDED_PORT", "SERVER_PORT"):
            raw = self._server(key)
            if raw is None:
                continue
            raw = str(raw)
            if not _PORT_RE.fullmatch(raw):
                raise BadRequestError("Port must be an integer", fields=[key])
            return int(raw)
        return 443 if self.is_secure_channel else 80

    @_derived
    def hostname(self) -> str | None:
        """First of forwarded host, ``Host`` header, ``SERVER_NAME`` that is present.

        A present but empty value is returned as ``""``; it does not fall
        through to the next source.
        """
        for key in ("HTTP_X_FORWARDED_HOST", "HTTP_HOST", "SERVER_NAME"):
            raw = self._server(key)
            if raw is not None:
                return _strip_port(raw.strip().lower())
        return None

    @_derived
    def absolute_url(self) -> str:
        """``scheme://host[:port]/path?query`` — default ports omitted."""
        scheme = "https" if self.is_secure_channel else "http"
        default_port = 443 if self.is_secure_channel else 80
        port = "" if self.port == default_port else f":{self.port}"
        path = self.request_uri
        if path == "/":
            path = ""
        return f"{scheme}://{self.hostname or ''}{port}{path}"

    # ── Content negotiation ───────────────────────────────────────────

    @_derived
    def accept_content_types(self) -> dict[str, AcceptEntry]:
        return parse_accept_header(self._server("HTTP_ACCEPT"))

    @_derived
    def accept_encodings(self) -> dict[str, AcceptEntry]:
        return parse_accept_header(self._server("HTTP_ACCEPT_ENCODING"))

    @_derived
    def accept_languages(self) -> dict[str, AcceptEntry]:
        return parse_accept_header(self._server("HTTP_ACCEPT_LANGUAGE"))

    def negotiate_content_type(self, offered: Iterable[str]) -> str | None:
        return best_match(offered, self.accept_content_types)

    def negotiate_language(self, offered: Iterable[str]) -> str | None:
        return best_match(offered, self.accept_languages)

    @_derived
    def content_type(self) -> str | None:
        return self._server("CONTENT_TYPE") or None

    # ── Misc ──────────────────────────────────────────────────────────

    @_derived
    def is_ajax(self) -> bool:
        return self._server("HTTP_X_REQUESTED_WITH") == "XMLHttpRequest"

    @_derived
    def is_env_dev(self) -> bool:
        return self._server(self._env_key) == "dev"

    @_derived
    def is_env_prod(self) -> bool:
        return self._server(self._env_key) == "prod"

    @_derived
    def user_agent(self) -> str | None:
        return self._server("HTTP_USER_AGENT")

    @_derived
    def referrer(self) -> str | None:
        return self._server("HTTP_REFERER")

    @_derived
    def remote_ip(self) -> str | None:
        return self._server("REMOTE_ADDR")

    @_derived
    def request_time(self) -> float | None:
        """``REQUEST_TIME_FLOAT`` as seconds since the epoch."""
        raw = self._server("REQUEST_TIME_FLOAT")
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            raise BadRequestError("Request time must be a number", fields=["REQUEST_TIME_FLOAT"]) from None


DERIVED_PROPERTIES: frozenset[str] = frozenset(
    name for name, attr in vars(RequestContext).items() if isinstance(attr, _derived)
)
