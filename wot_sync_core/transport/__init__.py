"""Transport layer for Thing interactions.

This package contains all IO and wire handling.

Components:
- base: TransportClient contract
- http: fetch-style HTTP client (observation by polling)
- native: HTTP client plus WebSocket push subscriptions
- ws_client: WebSocket connection and message iteration
"""

from __future__ import annotations

import aiohttp

from ..config import ClientConfig
from .base import NO_PAYLOAD, TransportClient, Unsubscribe
from .http import HttpTransport
from .native import WebSocketTransport
from .ws_client import WotWsClient, WsMessage, WsMessageType


def create_transport(
    config: ClientConfig,
    session: aiohttp.ClientSession | None = None,
) -> TransportClient:
    """Build the transport selected by ``config.transport``."""
    if config.transport == "native":
        return WebSocketTransport(
            session,
            timeout=config.timeout,
            ping_interval=config.ws_ping_interval,
        )
    return HttpTransport(session, timeout=config.timeout)


__all__ = [
    "NO_PAYLOAD",
    "HttpTransport",
    "TransportClient",
    "Unsubscribe",
    "WebSocketTransport",
    "WotWsClient",
    "WsMessage",
    "WsMessageType",
    "create_transport",
]
