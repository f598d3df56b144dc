# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for snapshot.py — immutable capture and WSGI/ASGI helpers."""

from __future__ import annotations

import io

import pytest

from reqcontext.snapshot import RequestSnapshot, header_key

# ── TestHeaderKey ─────────────────────────────────────────────────────


class TestHeaderKey:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("X-Api-Key", "HTTP_X_API_KEY"),
            ("host", "HTTP_HOST"),
            (" Accept-Language ", "HTTP_ACCEPT_LANGUAGE"),
        ],
    )
    def test_header_key(self, name, expected):
        assert header_key(name) == expected


# ── TestImmutability ──────────────────────────────────────────────────


class TestImmutability:
    def test_mappings_are_read_only(self):
        snapshot = RequestSnapshot(server={"HTTP_HOST": "a"}, cookies={"c": "1"})
        with pytest.raises(TypeError):
            snapshot.server["HTTP_HOST"] = "b"  # type: ignore[index]
        with pytest.raises(TypeError):
            snapshot.cookies["c"] = "2"  # type: ignore[index]

    def test_fields_are_frozen(self):
        snapshot = RequestSnapshot()
        with pytest.raises(AttributeError):
            snapshot.server = {}  # type: ignore[misc]

    def test_source_dict_is_copied(self):
        server = {"HTTP_HOST": "a"}
        snapshot = RequestSnapshot(server=server)
        server["HTTP_HOST"] = "b"
        assert snapshot.server["HTTP_HOST"] == "a"

    def test_defaults_empty(self):
        snapshot = RequestSnapshot()
        assert dict(snapshot.server) == {}
        assert dict(snapshot.cookies) == {}

    def test_replace_keeps_untouched_side(self):
        snapshot = RequestSnapshot(server={"A": "1"}, cookies={"c": "1"})
        swapped = snapshot.replace(server={"B": "2"})
        assert dict(swapped.server) == {"B": "2"}
        assert dict(swapped.cookies) == {"c": "1"}
        assert dict(snapshot.server) == {"A": "1"}

    def test_replace_with_empty_mapping(self):
        snapshot = RequestSnapshot(cookies={"c": "1"})
        assert dict(snapshot.replace(cookies={}).cookies) == {}


# ── TestFromWsgiEnviron ───────────────────────────────────────────────


class TestFromWsgiEnviron:
    def _environ(self, **overrides):
        environ = {
            "REQUEST_METHOD": "GET",
            "SCRIPT_NAME": "",
            "PATH_INFO": "/products/42",
            "QUERY_STRING": "",
            "SERVER_NAME": "example.com",
            "SERVER_PORT": "80",
            "REMOTE_ADDR": "203.0.113.7",
            "wsgi.url_scheme": "http",
            "wsgi.input": io.BytesIO(b""),
            "wsgi.multithread": True,
        }
        environ.update(overrides)
        return environ

    def test_non_string_values_dropped(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ())
        assert "wsgi.input" not in snapshot.server
        assert "wsgi.multithread" not in snapshot.server
        assert snapshot.server["wsgi.url_scheme"] == "http"

    def test_request_uri_synthesized(self):
        snapshot = RequestSnapshot.from_wsgi_environ(
            self._environ(SCRIPT_NAME="/shop", QUERY_STRING="page=2&sort=asc")
        )
        assert snapshot.server["REQUEST_URI"] == "/shop/products/42?page=2&sort=asc"

    def test_request_uri_without_query(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ())
        assert snapshot.server["REQUEST_URI"] == "/products/42"

    def test_existing_request_uri_kept(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ(REQUEST_URI="/raw%2Fpath"))
        assert snapshot.server["REQUEST_URI"] == "/raw%2Fpath"

    def test_https_synthesized_from_url_scheme(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ(**{"wsgi.url_scheme": "https"}))
        assert snapshot.server["HTTPS"] == "on"

    def test_https_absent_for_plain_http(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ())
        assert "HTTPS" not in snapshot.server

    def test_cookies_parsed(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ(HTTP_COOKIE="sid=abc123; theme=dark"))
        assert dict(snapshot.cookies) == {"sid": "abc123", "theme": "dark"}

    def test_malformed_cookie_header_keeps_plain_pairs(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ(HTTP_COOKIE="a=1; b@d=2; c=3"))
        assert snapshot.cookies["a"] == "1"

    def test_no_cookie_header(self):
        snapshot = RequestSnapshot.from_wsgi_environ(self._environ())
        assert dict(snapshot.cookies) == {}


# ── TestFromAsgiScope ─────────────────────────────────────────────────


def _scope(**overrides):
    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "path": "/api/items",
        "raw_path": b"/api/items",
        "query_string": b"",
        "headers": [
            (b"host", b"example.com"),
            (b"user-agent", b"pytest"),
        ],
        "client": ("198.51.100.4", 51234),
        "server": ("example.com", 8080),
    }
    scope.update(overrides)
    return scope


class TestFromAsgiScope:
    def test_headers_become_cgi_keys(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope())
        assert snapshot.server["HTTP_HOST"] == "example.com"
        assert snapshot.server["HTTP_USER_AGENT"] == "pytest"

    def test_content_type_and_length_unprefixed(self):
        headers = [(b"content-type", b"application/json"), (b"content-length", b"12")]
        snapshot = RequestSnapshot.from_asgi_scope(_scope(headers=headers))
        assert snapshot.server["CONTENT_TYPE"] == "application/json"
        assert snapshot.server["CONTENT_LENGTH"] == "12"
        assert "HTTP_CONTENT_TYPE" not in snapshot.server

    def test_repeated_headers_joined(self):
        headers = [(b"x-forwarded-for", b"1.1.1.1"), (b"x-forwarded-for", b"2.2.2.2")]
        snapshot = RequestSnapshot.from_asgi_scope(_scope(headers=headers))
        assert snapshot.server["HTTP_X_FORWARDED_FOR"] == "1.1.1.1, 2.2.2.2"

    def test_latin1_bytes_survive(self):
        headers = [(b"referer", "https://caf\xe9.example/".encode("latin-1"))]
        snapshot = RequestSnapshot.from_asgi_scope(_scope(headers=headers))
        assert snapshot.server["HTTP_REFERER"] == "https://caf\xe9.example/"

    def test_method_and_target(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope(query_string=b"q=shoes&page=2"))
        assert snapshot.server["REQUEST_METHOD"] == "POST"
        assert snapshot.server["REQUEST_URI"] == "/api/items?q=shoes&page=2"

    def test_path_used_without_raw_path(self):
        scope = _scope(path="/fallback")
        del scope["raw_path"]
        snapshot = RequestSnapshot.from_asgi_scope(scope)
        assert snapshot.server["REQUEST_URI"] == "/fallback"

    def test_raw_path_preferred(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope(path="/a/b", raw_path=b"/a%2Fb"))
        assert snapshot.server["REQUEST_URI"] == "/a%2Fb"

    def test_peer_and_server(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope())
        assert snapshot.server["REMOTE_ADDR"] == "198.51.100.4"
        assert snapshot.server["SERVER_NAME"] == "example.com"
        assert snapshot.server["SERVER_PORT"] == "8080"

    def test_missing_client_and_server(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope(client=None, server=None))
        assert "REMOTE_ADDR" not in snapshot.server
        assert "SERVER_PORT" not in snapshot.server

    def test_unix_socket_server_has_no_port(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope(server=("/tmp/app.sock", None)))
        assert "SERVER_PORT" not in snapshot.server

    def test_https_scheme(self):
        snapshot = RequestSnapshot.from_asgi_scope(_scope(scheme="https"))
        assert snapshot.server["HTTPS"] == "on"

    def test_extra_overrides_captured_values(self):
        extra = {"REQUEST_TIME_FLOAT": "1700000000.25", "PLAISIO_ENV": "dev", "REMOTE_ADDR": "10.0.0.1"}
        snapshot = RequestSnapshot.from_asgi_scope(_scope(), extra=extra)
        assert snapshot.server["REQUEST_TIME_FLOAT"] == "1700000000.25"
        assert snapshot.server["PLAISIO_ENV"] == "dev"
        assert snapshot.server["REMOTE_ADDR"] == "10.0.0.1"

    def test_cookies_parsed(self):
        headers = [(b"cookie", b"sid=xyz; lang=nl")]
        snapshot = RequestSnapshot.from_asgi_scope(_scope(headers=headers))
        assert dict(snapshot.cookies) == {"sid": "xyz", "lang": "nl"}
