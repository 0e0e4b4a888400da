"""Pytest configuration and fixtures for wot_sync_core tests."""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from wot_sync_core.config import ClientConfig, SyncConfig
from wot_sync_core.forms import method_for
from wot_sync_core.models import Form, Operation, ThingDescription
from wot_sync_core.thing_client import ThingClient
from wot_sync_core.transport.base import (
    NO_PAYLOAD,
    ErrorCallback,
    TransportClient,
    Unsubscribe,
    ValueCallback,
)

LAMP_TD: dict[str, Any] = {
    "@context": "https://www.w3.org/2022/wot/td/v1.1",
    "title": "Lamp",
    "id": "lamp",
    "base": "http://lamp.local",
    "properties": {
        "enabled": {
            "type": "boolean",
            "readOnly": False,
            "observable": True,
            "forms": [{"href": "/enabled", "op": ["readproperty", "writeproperty"]}],
        },
        "brightness": {
            "type": "integer",
            "forms": [{"href": "/brightness"}],
        },
        "power": {
            "type": "number",
            "readOnly": True,
            "forms": [{"href": "/power", "op": "readproperty"}],
        },
        "secret": {
            "type": "string",
            "writeOnly": True,
            "forms": [{"href": "/secret", "op": "writeproperty"}],
        },
        "serial": {
            "type": "string",
            "readOnly": True,
            "observable": False,
            "forms": [{"href": "/serial"}],
        },
    },
    "actions": {
        "toggle": {"forms": [{"href": "/actions/toggle", "op": "invokeaction"}]},
    },
    "events": {
        "overheated": {"forms": [{"href": "/events/overheated", "op": "subscribeevent"}]},
    },
}


class FakeTransport(TransportClient):
    """In-memory transport recording every request.

    GET returns the stored value for an href, PUT stores the payload, POST
    returns the configured action result. Queued failures are raised first.
    """

    def __init__(self, *, push: bool = False) -> None:
        self.values: dict[str, Any] = {}
        self.action_results: dict[str, Any] = {}
        self.documents: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.push = push
        self.subscribers: dict[str, list[tuple[ValueCallback, ErrorCallback]]] = defaultdict(list)
        self.closed = False
        self._failures: dict[tuple[str, str], list[Exception]] = defaultdict(list)
        self._subscribe_failures: list[Exception] = []
        self._gates: dict[tuple[str, str], asyncio.Event] = {}

    def fail(self, method: str, href: str, *errors: Exception) -> None:
        """Queue ``errors`` for the next requests of ``method`` on ``href``."""
        self._failures[(method, href)].extend(errors)

    def hold(self, method: str, href: str) -> asyncio.Event:
        """Block requests of ``method`` on ``href`` until the event is set."""
        gate = self._gates[(method, href)] = asyncio.Event()
        return gate

    def fail_subscribe(self, error: Exception) -> None:
        self._subscribe_failures.append(error)

    def calls(self, method: str, href: str | None = None) -> list[tuple[str, str, Any]]:
        return [
            call
            for call in self.requests
            if call[0] == method and (href is None or call[1] == href)
        ]

    async def request(
        self,
        form: Form,
        operation: Operation,
        payload: Any = NO_PAYLOAD,
    ) -> Any:
        method = method_for(form, operation)
        self.requests.append((method, form.href, None if payload is NO_PAYLOAD else payload))
        gate = self._gates.get((method, form.href))
        if gate is not None:
            await gate.wait()
        queued = self._failures.get((method, form.href))
        if queued:
            raise queued.pop(0)
        if method == "PUT":
            self.values[form.href] = payload
            return None
        if method == "POST":
            return self.action_results.get(form.href)
        return self.values.get(form.href)

    async def fetch_document(self, url: str) -> dict[str, Any]:
        self.requests.append(("GET", url, None))
        return copy.deepcopy(self.documents[url])

    def supports_push(self, form: Form) -> bool:
        return self.push

    async def subscribe(
        self,
        form: Form,
        on_value: ValueCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        if self._subscribe_failures:
            raise self._subscribe_failures.pop(0)
        entry = (on_value, on_error)
        self.subscribers[form.href].append(entry)

        def unsubscribe() -> None:
            if entry in self.subscribers[form.href]:
                self.subscribers[form.href].remove(entry)

        return unsubscribe

    def emit(self, href: str, value: Any) -> None:
        """Push ``value`` to every subscriber of ``href``."""
        for on_value, _ in list(self.subscribers[href]):
            on_value(value)

    def emit_error(self, href: str, error: Exception) -> None:
        for _, on_error in list(self.subscribers[href]):
            on_error(error)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    text_data: str | None = None,
    content_type: str = "application/json",
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        text_data: Body returned from text()
        content_type: Value of the Content-Type header

    Returns:
        Configured AsyncMock response usable as an async context manager
    """
    response = AsyncMock()
    response.status = status
    response.headers = {"Content-Type": content_type}
    response.text.return_value = text_data if text_data is not None else ""

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


@pytest.fixture
def lamp_td() -> dict[str, Any]:
    """A fresh copy of the lamp Thing Description."""
    return copy.deepcopy(LAMP_TD)


@pytest.fixture
def fast_config() -> ClientConfig:
    """Client config with delays short enough for tests."""
    return ClientConfig(
        timeout=1.0,
        retry_attempts=3,
        retry_base_delay=0.01,
        retry_max_delay=0.02,
        poll_interval=0.02,
    )


@pytest.fixture
def fast_sync_config() -> SyncConfig:
    return SyncConfig(success_clear_delay=0.05, error_clear_delay=0.05)


@pytest.fixture
def fake_transport() -> FakeTransport:
    transport = FakeTransport()
    transport.values["http://lamp.local/enabled"] = False
    transport.values["http://lamp.local/brightness"] = 40
    transport.values["http://lamp.local/power"] = 12.5
    return transport


@pytest.fixture
def lamp_client(
    lamp_td: dict[str, Any], fake_transport: FakeTransport, fast_config: ClientConfig
) -> ThingClient:
    return ThingClient(
        ThingDescription.from_dict(lamp_td),
        fake_transport,
        config=fast_config,
    )
