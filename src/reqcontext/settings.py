# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Environment-driven settings.

==============================  ===========================================
Variable                        Meaning
==============================  ===========================================
``REQCONTEXT_TRUSTED_PROXIES``  Comma-separated IPs / CIDRs / ``cloudflare`` / ``*``
``REQCONTEXT_ENV_KEY``          Server key holding the environment tag
``REQCONTEXT_LOG_LEVEL``        Root log level (default ``INFO``)
``REQCONTEXT_JSON_LOGS``        ``1``/``true``/``yes`` for JSON log lines
==============================  ===========================================
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .context import DEFAULT_ENV_KEY, RequestContext
from .logging_config import configure
from .snapshot import RequestSnapshot
from .trust import NetworkTrustAuthority, TrustedHostAuthority, parse_trusted_proxies

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True, slots=True)
class Settings:
    trusted_proxies: tuple[str, ...] = ()
    env_key: str = DEFAULT_ENV_KEY
    log_level: str = "INFO"
    json_logs: bool = False

    def build_authority(self) -> NetworkTrustAuthority:
        """Trusted host authority for ``trusted_proxies``.

        Raises:
            ValueError: If a proxy entry is not an IP, CIDR or keyword.
        """
        return parse_trusted_proxies(self.trusted_proxies)

    def configure_logging(self) -> None:
        configure(json_output=self.json_logs, level=self.log_level)

    def create_context(self, snapshot: RequestSnapshot, authority: TrustedHostAuthority) -> RequestContext:
        return RequestContext(snapshot, authority, env_key=self.env_key)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from *environ* (default ``os.environ``)."""
    env = os.environ if environ is None else environ

    proxies = tuple(p.strip() for p in env.get("REQCONTEXT_TRUSTED_PROXIES", "").split(",") if p.strip())
    env_key = env.get("REQCONTEXT_ENV_KEY", "").strip() or DEFAULT_ENV_KEY
    log_level = env.get("REQCONTEXT_LOG_LEVEL", "").strip().upper() or "INFO"
    json_logs = env.get("REQCONTEXT_JSON_LOGS", "").strip().lower() in _TRUTHY

    return Settings(
        trusted_proxies=proxies,
        env_key=env_key,
        log_level=log_level,
        json_logs=json_logs,
    )
