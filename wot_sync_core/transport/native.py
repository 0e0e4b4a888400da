"""Native protocol transport: HTTP requests plus WebSocket push."""

from __future__ import annotations

import asyncio
import logging

import aiohttp
from yarl import URL

from ..errors import (
    SubscriptionUnsupported,
    TransportConnectionError,
    TransportFailure,
)
from ..models import Form
from .base import ErrorCallback, Unsubscribe, ValueCallback
from .http import HttpTransport
from .ws_client import WotWsClient, WsMessageType

_LOGGER = logging.getLogger(__name__)

PUSH_SCHEMES = frozenset({"ws", "wss"})


class WebSocketTransport(HttpTransport):
    """Transport that subscribes to ``ws://``/``wss://`` forms natively.

    Each TEXT frame carries one JSON value and is delivered verbatim.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        timeout: float = 5.0,
        ping_interval: int | None = 20,
    ) -> None:
        super().__init__(session, timeout=timeout)
        self._ping_interval = ping_interval
        self._subscriptions: set[asyncio.Task[None]] = set()

    def supports_push(self, form: Form) -> bool:
        return URL(form.href).scheme in PUSH_SCHEMES

    async def subscribe(
        self,
        form: Form,
        on_value: ValueCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Open a WebSocket for ``form`` and pump its frames to ``on_value``."""
        if not self.supports_push(form):
            raise SubscriptionUnsupported(f"No push endpoint at {form.href}")

        client = WotWsClient()
        await client.connect(
            form.href,
            ping_interval=self._ping_interval,
            timeout=self._timeout,
        )
        _LOGGER.debug("Subscribed to %s", form.href)

        active = True

        async def pump() -> None:
            try:
                async for message in client:
                    if not active:
                        return
                    if message.type is WsMessageType.TEXT:
                        try:
                            value = client.decode_json(message)
                        except TransportFailure as err:
                            on_error(err)
                            continue
                        on_value(value)
                    else:
                        on_error(
                            TransportConnectionError(
                                f"WebSocket {form.href} {message.type.value}"
                            )
                        )
                        return
            finally:
                await client.close()

        task = asyncio.create_task(pump())
        self._subscriptions.add(task)
        task.add_done_callback(self._subscriptions.discard)

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            task.cancel()
            _LOGGER.debug("Unsubscribed from %s", form.href)

        return unsubscribe

    async def close(self) -> None:
        """Cancel open subscriptions and close the HTTP session."""
        for task in list(self._subscriptions):
            task.cancel()
        if self._subscriptions:
            await asyncio.gather(*self._subscriptions, return_exceptions=True)
        await super().close()
