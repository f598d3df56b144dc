# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import reqcontext  # noqa: F401
except ImportError:
    raise ImportError("reqcontext is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from reqcontext.context import RequestContext
from reqcontext.snapshot import RequestSnapshot
from reqcontext.trust import StaticTrustAuthority


@pytest.fixture
def make_context():
    """Factory: ``make_context(server, cookies, trusted=False, env_key=...)``."""

    def _make(server=None, cookies=None, *, trusted=False, **kwargs) -> RequestContext:
        snapshot = RequestSnapshot(server=server or {}, cookies=cookies or {})
        return RequestContext(snapshot, StaticTrustAuthority(trusted), **kwargs)

    return _make


@pytest.fixture
def validated(make_context):
    """Factory returning an already validated context."""

    def _make(server=None, cookies=None, *, trusted=False, **kwargs) -> RequestContext:
        ctx = make_context(server, cookies, trusted=trusted, **kwargs)
        ctx.validate()
        return ctx

    return _make
