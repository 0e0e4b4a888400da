"""HTTP transport for form-described Thing endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from ..errors import (
    DecodeFailure,
    TransportConnectionError,
    TransportResponseError,
    TransportTimeout,
)
from ..forms import content_type_for, method_for
from ..models import Form, Operation
from .base import NO_PAYLOAD, TransportClient

_LOGGER = logging.getLogger(__name__)


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _decode(body: str, content_type: str, url: str) -> Any:
    if not body.strip():
        return None
    if not _is_json(content_type):
        return body
    try:
        return json.loads(body)
    except ValueError as err:
        raise DecodeFailure(f"Invalid JSON from {url}") from err


class HttpTransport(TransportClient):
    """Fetch-style client: request/response only, observation by polling."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        timeout: float = 5.0,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def request(
        self,
        form: Form,
        operation: Operation,
        payload: Any = NO_PAYLOAD,
    ) -> Any:
        """Send ``payload`` to the form endpoint and decode the response."""
        url = form.href
        method = method_for(form, operation)
        content_type = content_type_for(form)
        headers = {"Accept": content_type}

        data: str | None = None
        if payload is not NO_PAYLOAD:
            headers["Content-Type"] = content_type
            data = json.dumps(payload) if _is_json(content_type) else str(payload)

        _LOGGER.debug("%s %s (%s)", method, url, operation.value)
        try:
            async with self._get_session().request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise TransportResponseError(
                        resp.status, f"{method} {url} failed with HTTP {resp.status}"
                    )
                body = await resp.text()
                response_type = resp.headers.get("Content-Type", content_type)
        except TimeoutError as err:
            raise TransportTimeout(f"{method} {url} timed out") from err
        except aiohttp.ClientError as err:
            raise TransportConnectionError(f"{method} {url} failed: {err}") from err

        return _decode(body, response_type, url)

    async def fetch_document(self, url: str) -> dict[str, Any]:
        """Fetch a Thing Description as JSON."""
        document = await self.request(
            Form(href=url, method="GET", content_type="application/td+json"),
            Operation.READ_PROPERTY,
        )
        if not isinstance(document, dict):
            raise DecodeFailure(f"Thing Description at {url} is not a JSON object")
        return document

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
