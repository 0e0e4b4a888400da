"""Registry of consumed Things."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from .config import ClientConfig
from .errors import ThingNotFound, WotClientError
from .models import ThingDescription
from .thing_client import ThingClient
from .transport import TransportClient, create_transport

_LOGGER = logging.getLogger(__name__)

LoadedCallback = Callable[[ThingClient], None]


class ThingDirectory:
    """Loads Thing Descriptions and owns one ThingClient per Thing.

    All clients share a single transport, selected by ``config.transport``
    unless one is injected.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: TransportClient | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._transport = transport or create_transport(self._config, session)
        self._things: dict[str, ThingClient] = {}
        self._loaded_callbacks: list[LoadedCallback] = []

    @property
    def transport(self) -> TransportClient:
        return self._transport

    def on_thing_loaded(self, callback: LoadedCallback) -> None:
        """Register callback invoked with each newly consumed ThingClient."""
        self._loaded_callbacks.append(callback)

    async def load_thing(self, url: str, *, thing_id: str | None = None) -> ThingClient:
        """Fetch the Thing Description at ``url`` and consume it."""
        _LOGGER.info("Loading Thing Description from %s", url)
        document = await self._transport.fetch_document(url)
        return self.consume_thing(document, url=url, thing_id=thing_id)

    def consume_thing(
        self,
        document: Mapping[str, Any],
        *,
        url: str | None = None,
        thing_id: str | None = None,
    ) -> ThingClient:
        """Create (or refresh) the client for a Thing Description document.

        A Thing that is already known keeps its client; only its document
        reference is replaced.
        """
        description = ThingDescription.from_dict(document, thing_id=thing_id)

        existing = self._things.get(description.id)
        if existing is not None:
            existing.replace_document(description)
            return existing

        client = ThingClient(
            description,
            self._transport,
            config=self._config,
            document_url=url,
        )
        self._things[description.id] = client
        _LOGGER.info("[%s] Thing loaded: %s", description.id, description.title)

        for callback in list(self._loaded_callbacks):
            callback(client)
        return client

    def get(self, thing_id: str) -> ThingClient:
        """Return the client for ``thing_id``.

        Raises:
            ThingNotFound: If no such Thing has been consumed.
        """
        client = self._things.get(thing_id)
        if client is None:
            raise ThingNotFound(f"Thing not found: {thing_id}")
        return client

    def has(self, thing_id: str) -> bool:
        return thing_id in self._things

    def things(self) -> dict[str, ThingClient]:
        return dict(self._things)

    async def remove(self, thing_id: str) -> bool:
        """Stop a Thing's observations and forget it."""
        client = self._things.pop(thing_id, None)
        if client is None:
            return False
        await client.close()
        return True

    async def health_status(self) -> dict[str, str]:
        """Probe every Thing by reading its first readable property.

        Returns:
            Mapping of thing id to "connected", "error" or "unknown"
        """
        status: dict[str, str] = {}
        for thing_id, client in list(self._things.items()):
            readable = [
                name
                for name, descriptor in client.document.properties.items()
                if not descriptor.write_only
            ]
            if not readable:
                status[thing_id] = "unknown"
                continue
            result = await client.read_property(readable[0])
            status[thing_id] = "connected" if result.ok else "error"
        return status

    async def close(self) -> None:
        """Stop all observations and release the transport."""
        for client in list(self._things.values()):
            try:
                await client.close()
            except WotClientError as err:
                _LOGGER.warning("[%s] Close failed: %s", client.thing_id, err)
        self._things.clear()
        await self._transport.close()
