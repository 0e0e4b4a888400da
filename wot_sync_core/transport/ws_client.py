"""WebSocket client wrapper used by the native transport."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    DecodeFailure,
    TransportConnectionError,
    TransportHandshakeError,
    TransportTimeout,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class WsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class WsMessage:
    """Normalized WebSocket message payload."""

    type: WsMessageType
    data: str | None = None


class WotWsClient:
    """Wrapper around the websockets library for one form subscription."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Open the ``ws://`` or ``wss://`` endpoint named by a form href.

        Raises:
            TransportTimeout: If the opening handshake does not finish in time.
            TransportHandshakeError: If the server rejects the upgrade.
            TransportConnectionError: If the socket cannot be opened.
        """
        opening = websockets.connect(
            url, ping_interval=ping_interval, close_timeout=5, max_size=None
        )
        try:
            self._ws = await asyncio.wait_for(opening, timeout=timeout)
        except TimeoutError as err:
            raise TransportTimeout(f"Timed out opening {url}") from err
        except (InvalidHandshake, InvalidURI) as err:
            raise TransportHandshakeError(f"Upgrade rejected by {url}") from err
        except (OSError, WebSocketException) as err:
            raise TransportConnectionError(f"Cannot open {url}: {err}") from err

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def send_json(self, payload: Any) -> None:
        """Send a JSON payload to the websocket."""
        if self._ws is None:
            raise TransportConnectionError("WebSocket is not connected")
        await self._ws.send(json.dumps(payload))

    def __aiter__(self) -> AsyncIterator[WsMessage]:
        if self._ws is None:
            raise TransportConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[WsMessage]:
        if self._ws is None:
            raise TransportConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield WsMessage(type=WsMessageType.CLOSED)
        except Exception:
            yield WsMessage(type=WsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield WsMessage(type=WsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> WsMessage | None:
        """Normalize raw frames; binary frames are skipped."""
        if isinstance(msg, bytes):
            return None
        if isinstance(msg, str):
            return WsMessage(WsMessageType.TEXT, msg)
        return WsMessage(WsMessageType.TEXT, str(msg))

    @staticmethod
    def decode_json(message: WsMessage) -> Any:
        """Decode a TEXT message payload into a JSON value."""
        if message.type is not WsMessageType.TEXT or message.data is None:
            raise DecodeFailure("Only TEXT messages can be decoded")
        try:
            return json.loads(message.data)
        except ValueError as err:
            raise DecodeFailure("WebSocket frame is not valid JSON") from err
