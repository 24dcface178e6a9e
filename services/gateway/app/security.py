from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from typing import Mapping

from fastapi import HTTPException, Request, WebSocket
from starlette.datastructures import Headers

AUTH_MODE_ENV = "LIVECANVAS_AUTH_MODE"
API_KEYS_ENV = "LIVECANVAS_API_KEYS"
ALLOWED_IPS_ENV = "LIVECANVAS_ALLOWED_IPS"

API_KEY_MODE = "api-key"
NETWORK_TRUST_MODE = "network-trust"

# Probes and discovery stay reachable without credentials.
EXEMPT_PATH_EXACT = frozenset(
    {
        "/health",
        "/metrics",
        "/v1/canvas/capabilities",
        "/docs",
        "/redoc",
        "/openapi.json",
    }
)


def _split_csv(raw: str) -> list[str]:
    return [row.strip() for row in raw.split(",") if row.strip()]


@dataclass
class SecurityState:
    mode: str
    api_keys: set[str] = field(default_factory=set)
    allowed_ips: list[str] = field(default_factory=list)

    @property
    def enforcement_active(self) -> bool:
        if self.mode == NETWORK_TRUST_MODE:
            return bool(self.allowed_ips)
        return bool(self.api_keys)

    def client_allowed(self, host: str | None) -> bool:
        """Check ``host`` against the allow list (exact hosts or CIDR networks)."""
        if host is None:
            return False
        if not self.allowed_ips or host in self.allowed_ips:
            return True
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            return False
        for entry in self.allowed_ips:
            try:
                if address in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                continue
        return False

    def key_accepted(self, key: str) -> bool:
        return not self.api_keys or key in self.api_keys


def get_security_state() -> SecurityState:
    mode = os.getenv(AUTH_MODE_ENV, API_KEY_MODE).strip().lower()
    if mode not in {API_KEY_MODE, NETWORK_TRUST_MODE}:
        mode = API_KEY_MODE
    return SecurityState(
        mode=mode,
        api_keys=set(_split_csv(os.getenv(API_KEYS_ENV, ""))),
        allowed_ips=_split_csv(os.getenv(ALLOWED_IPS_ENV, "")),
    )


def path_is_exempt(path: str) -> bool:
    return path in EXEMPT_PATH_EXACT


def presented_api_key(headers: Headers, query: Mapping[str, str] | None = None) -> str:
    """Key from ``x-api-key``, then ``Authorization: Bearer``, then ``?api_key=``."""
    for value in headers.getlist("x-api-key"):
        if value.strip():
            return value.strip()
    scheme, _, token = headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return str((query or {}).get("api_key", "")).strip()


def enforce_http_auth(request: Request) -> None:
    if path_is_exempt(request.url.path):
        return
    state = get_security_state()
    if state.mode == NETWORK_TRUST_MODE:
        if not state.client_allowed(request.client.host if request.client else None):
            raise HTTPException(status_code=403, detail={"error": "ip_not_allowed"})
        return
    if not state.key_accepted(presented_api_key(request.headers)):
        raise HTTPException(status_code=401, detail={"error": "invalid_api_key"})


def websocket_authorized(ws: WebSocket) -> bool:
    state = get_security_state()
    if state.mode == NETWORK_TRUST_MODE:
        return state.client_allowed(ws.client.host if ws.client else None)
    # The query string is honoured for WebSocket handshakes only.
    return state.key_accepted(presented_api_key(ws.headers, ws.query_params))


__all__ = [
    "SecurityState",
    "enforce_http_auth",
    "get_security_state",
    "path_is_exempt",
    "presented_api_key",
    "websocket_authorized",
]
