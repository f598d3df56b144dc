# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge, plus per-request log context.

Modules log through plain ``logging.getLogger(__name__)``; ``configure()``
routes those records through structlog processors so they come out as
console lines or JSON lines. ``bind_request_context()`` attaches request
metadata to every record emitted while a request is being handled.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

import structlog

if TYPE_CHECKING:
    from .context import RequestContext


def configure(*, json_output: bool = False, level: str = "INFO", stream: TextIO | None = None) -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines (log shippers), False for human-readable console output.
        level: Root logger level (default INFO). Unknown names fall back to INFO.
        stream: Destination stream (default ``sys.stderr``).
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def bind_request_context(ctx: RequestContext) -> None:
    """Bind method, target and peer IP of *ctx* to structlog contextvars.

    Call after ``ctx.validate()`` so only sanitized values reach the logs.
    Values the front end did not supply are bound as empty strings.
    """
    server = ctx.snapshot.server
    structlog.contextvars.bind_contextvars(
        method=ctx.method,
        request_uri=server.get("REQUEST_URI", ""),
        client_ip=ctx.remote_ip or "",
    )


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars("method", "request_uri", "client_ip")
