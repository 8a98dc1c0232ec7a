from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from mcp.server.transport_security import TransportSecuritySettings

TransportName = Literal["stdio", "http"]

TRANSPORTS: tuple[str, ...] = ("stdio", "http")
DEFAULT_ALLOWED_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")
DEFAULT_ALLOWED_HOSTS = ("127.0.0.1", "localhost")
_TRUE_VALUES = {"1", "true", "yes", "on"}


def split_list(value: str | None, default: tuple[str, ...]) -> list[str]:
    if value is None or not value.strip():
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class ServerSettings:
    transport: TransportName = "stdio"
    host: str = "127.0.0.1"
    port: int = 3001
    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    allowed_hosts: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_HOSTS))
    production: bool = False
    json_response: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls, default_port: int = 3001, environ: Mapping[str, str] | None = None
    ) -> ServerSettings:
        env = os.environ if environ is None else environ

        transport = env.get("TRANSPORT", "stdio").strip().lower() or "stdio"
        if transport not in TRANSPORTS:
            raise ValueError(f"TRANSPORT must be one of {', '.join(TRANSPORTS)}, got {transport!r}")

        raw_port = env.get("PORT")
        try:
            port = int(raw_port) if raw_port else default_port
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {raw_port!r}") from None
        if not 0 < port < 65536:
            raise ValueError(f"PORT out of range: {port}")

        return cls(
            transport=transport,  # type: ignore[arg-type]
            host=env.get("HOST", "127.0.0.1"),
            port=port,
            allowed_origins=split_list(env.get("ALLOWED_ORIGINS"), DEFAULT_ALLOWED_ORIGINS),
            allowed_hosts=split_list(env.get("ALLOWED_HOSTS"), DEFAULT_ALLOWED_HOSTS),
            production=env.get("NODE_ENV", "").strip().lower() == "production",
            json_response=env.get("JSON_RESPONSE", "").strip().lower() in _TRUE_VALUES,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **overrides: Any) -> ServerSettings:
        changes = {key: value for key, value in overrides.items() if value is not None}
        if changes.get("transport") not in (None, *TRANSPORTS):
            raise ValueError(f"Unknown transport: {changes['transport']!r}")
        return replace(self, **changes)

    def security_settings(self) -> TransportSecuritySettings:
        # DNS-rebinding protection is only enforced in production.
        hosts: list[str] = []
        for host in self.allowed_hosts:
            hosts.append(host)
            if ":" not in host:
                hosts.append(f"{host}:*")
        return TransportSecuritySettings(
            enable_dns_rebinding_protection=self.production,
            allowed_hosts=hosts,
            allowed_origins=list(self.allowed_origins),
        )
