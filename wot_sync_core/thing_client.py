"""Client for one consumed Thing.

Wraps a Thing Description and a TransportClient into read, write, observe,
invoke and event operations keyed by interaction name. Request/response
operations return an ``OperationResult`` instead of raising; observation setup
errors raise.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from .config import ClientConfig
from .errors import (
    ActionNotFound,
    DecodeFailure,
    EventNotFound,
    NotObservable,
    PropertyNotFound,
    ReadOnlyProperty,
    TransportFailure,
    TransportTimeout,
    WotClientError,
)
from .forms import resolve_form, resolve_href
from .models import (
    Capability,
    Form,
    Operation,
    OperationResult,
    PropertyDescriptor,
    ThingDescription,
    capability_of,
)
from .transport.base import NO_PAYLOAD, TransportClient, Unsubscribe

_LOGGER = logging.getLogger(__name__)

ResultCallback = Callable[[OperationResult], None]


class ThingEvent(str, Enum):
    """Events emitted to ThingClient listeners, each carrying an OperationResult."""

    PROPERTY_READ = "propertyRead"
    PROPERTY_READ_ERROR = "propertyReadError"
    PROPERTY_WRITTEN = "propertyWritten"
    PROPERTY_WRITE_ERROR = "propertyWriteError"
    PROPERTY_OBSERVED = "propertyObserved"
    PROPERTY_OBSERVED_ERROR = "propertyObservedError"
    ACTION_INVOKED = "actionInvoked"
    ACTION_INVOKED_ERROR = "actionInvokedError"
    EVENT_RECEIVED = "eventReceived"
    EVENT_RECEIVED_ERROR = "eventReceivedError"


class ThingClient:
    """Read/write/observe/invoke operations on one Thing.

    Usage:
        client = ThingClient(td, HttpTransport(session), document_url=td_url)
        result = await client.read_property("enabled")
        stop = await client.observe_property("enabled", on_result)
        await client.write_property("enabled", True)
        stop()
    """

    def __init__(
        self,
        document: ThingDescription,
        transport: TransportClient,
        *,
        config: ClientConfig | None = None,
        document_url: str | None = None,
    ) -> None:
        self._document = document
        self._transport = transport
        self._config = config or ClientConfig()
        self._document_url = document_url
        self._listeners: dict[ThingEvent, list[ResultCallback]] = {}
        self._observations: dict[int, Unsubscribe] = {}
        self._observation_counter = 0

    # -------------------------------------------------------------------------
    # Document
    # -------------------------------------------------------------------------

    @property
    def thing_id(self) -> str:
        return self._document.id

    @property
    def document(self) -> ThingDescription:
        return self._document

    @property
    def transport(self) -> TransportClient:
        return self._transport

    def replace_document(self, document: ThingDescription) -> None:
        """Swap in a new Thing Description.

        Running observations keep the forms they were started with.
        """
        _LOGGER.debug("[%s] Replacing Thing Description", self.thing_id)
        self._document = document

    def capability(self, name: str) -> Capability:
        """Capability of property ``name``."""
        return capability_of(self._property(name))

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, event: ThingEvent | str, callback: ResultCallback) -> None:
        """Register ``callback`` for ``event``."""
        self._listeners.setdefault(ThingEvent(event), []).append(callback)

    def remove_listener(self, event: ThingEvent | str, callback: ResultCallback) -> None:
        callbacks = self._listeners.get(ThingEvent(event), [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event: ThingEvent, result: OperationResult) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(result)
            except Exception:
                _LOGGER.exception("[%s] Listener for %s failed", self.thing_id, event.value)

    # -------------------------------------------------------------------------
    # Public API: Properties
    # -------------------------------------------------------------------------

    async def read_property(self, name: str) -> OperationResult:
        """Read property ``name``."""
        return await self._read(name, retry=True)

    async def write_property(self, name: str, value: Any) -> OperationResult:
        """Write ``value`` to property ``name``.

        Fails with ``ReadOnlyProperty`` before any transport call when the
        descriptor is read-only.
        """
        source = self._source(name)
        started = time.monotonic()
        try:
            descriptor = self._property(name)
            if descriptor.read_only:
                raise ReadOnlyProperty(f"Property is read-only: {name}")
            form = self._form(descriptor, Operation.WRITE_PROPERTY)
            await self._with_retry(
                name,
                lambda: self._transport.request(form, Operation.WRITE_PROPERTY, value),
            )
        except WotClientError as err:
            _LOGGER.warning("[%s] Write %s failed: %s", self.thing_id, name, err)
            result = OperationResult.failure(
                err,
                source,
                payload=value,
                operation="write",
                latency=self._latency(started),
            )
            self._emit(ThingEvent.PROPERTY_WRITE_ERROR, result)
            return result

        result = OperationResult.success(
            value, source, operation="write", latency=self._latency(started)
        )
        self._emit(ThingEvent.PROPERTY_WRITTEN, result)
        return result

    async def observe_property(
        self,
        name: str,
        callback: ResultCallback,
        *,
        interval: float | None = None,
    ) -> Unsubscribe:
        """Deliver updates of property ``name`` to ``callback``.

        Uses native push when the property is declared observable and the
        transport can push for its form; otherwise polls ``read_property``
        every ``interval`` seconds and delivers every tick. Failures arrive as
        ``ok=False`` results and are not retried.

        Raises:
            PropertyNotFound: If the property is not declared.
            NotObservable: If the descriptor forbids observation.
        """
        descriptor = self._property(name)
        if not capability_of(descriptor).can_observe:
            raise NotObservable(f"Property is not observable: {name}")

        if descriptor.observable:
            unsubscribe = await self._try_native(
                name,
                descriptor,
                Operation.OBSERVE_PROPERTY,
                callback,
                ThingEvent.PROPERTY_OBSERVED,
                ThingEvent.PROPERTY_OBSERVED_ERROR,
            )
            if unsubscribe is not None:
                return self._track(unsubscribe)

        poll_interval = interval or self._config.poll_interval
        _LOGGER.info(
            "[%s] Started polling observation for %s (%.1fs)",
            self.thing_id,
            name,
            poll_interval,
        )
        return self._track(
            self._start_polling(
                name,
                lambda: self._read(name, retry=False, emit=False),
                callback,
                poll_interval,
                ThingEvent.PROPERTY_OBSERVED,
                ThingEvent.PROPERTY_OBSERVED_ERROR,
            )
        )

    # -------------------------------------------------------------------------
    # Public API: Actions and Events
    # -------------------------------------------------------------------------

    async def invoke_action(self, name: str, params: Any = NO_PAYLOAD) -> OperationResult:
        """Invoke action ``name`` with optional ``params``."""
        source = self._source(name)
        started = time.monotonic()
        meta_params = None if params is NO_PAYLOAD else params
        try:
            action = self._document.actions.get(name)
            if action is None:
                raise ActionNotFound(f"Action not found: {name}")
            form = self._form(action, Operation.INVOKE_ACTION)
            output = await self._with_retry(
                name,
                lambda: self._transport.request(form, Operation.INVOKE_ACTION, params),
            )
        except WotClientError as err:
            _LOGGER.warning("[%s] Invoke %s failed: %s", self.thing_id, name, err)
            result = OperationResult.failure(
                err,
                source,
                operation="action",
                params=meta_params,
                latency=self._latency(started),
            )
            self._emit(ThingEvent.ACTION_INVOKED_ERROR, result)
            return result

        result = OperationResult.success(
            output,
            source,
            operation="action",
            params=meta_params,
            latency=self._latency(started),
        )
        self._emit(ThingEvent.ACTION_INVOKED, result)
        return result

    async def subscribe_event(
        self,
        name: str,
        callback: ResultCallback,
        *,
        interval: float | None = None,
    ) -> Unsubscribe:
        """Deliver occurrences of event ``name`` to ``callback``.

        Raises:
            EventNotFound: If the event is not declared.
        """
        event = self._document.events.get(name)
        if event is None:
            raise EventNotFound(f"Event not found: {name}")
        form = self._form(event, Operation.SUBSCRIBE_EVENT)

        unsubscribe = await self._try_native(
            name,
            event,
            Operation.SUBSCRIBE_EVENT,
            callback,
            ThingEvent.EVENT_RECEIVED,
            ThingEvent.EVENT_RECEIVED_ERROR,
        )
        if unsubscribe is not None:
            return self._track(unsubscribe)

        async def fetch() -> OperationResult:
            try:
                value = await self._timed(
                    self._transport.request(form, Operation.SUBSCRIBE_EVENT)
                )
            except WotClientError as err:
                return OperationResult.failure(err, self._source(name))
            return OperationResult.success(value, self._source(name))

        return self._track(
            self._start_polling(
                name,
                fetch,
                callback,
                interval or self._config.poll_interval,
                ThingEvent.EVENT_RECEIVED,
                ThingEvent.EVENT_RECEIVED_ERROR,
            )
        )

    async def close(self) -> None:
        """Stop every observation started through this client."""
        for unsubscribe in list(self._observations.values()):
            unsubscribe()
        self._observations.clear()

    # -------------------------------------------------------------------------
    # Internal: Request helpers
    # -------------------------------------------------------------------------

    async def _read(self, name: str, *, retry: bool, emit: bool = True) -> OperationResult:
        source = self._source(name)
        started = time.monotonic()
        try:
            descriptor = self._property(name)
            form = self._form(descriptor, Operation.READ_PROPERTY)

            def request() -> Awaitable[Any]:
                return self._transport.request(form, Operation.READ_PROPERTY)

            if retry:
                value = await self._with_retry(name, request)
            else:
                value = await self._timed(request())
        except WotClientError as err:
            _LOGGER.debug("[%s] Read %s failed: %s", self.thing_id, name, err)
            result = OperationResult.failure(
                err, source, operation="read", latency=self._latency(started)
            )
            if emit:
                self._emit(ThingEvent.PROPERTY_READ_ERROR, result)
            return result

        result = OperationResult.success(
            value, source, operation="read", latency=self._latency(started)
        )
        if emit:
            self._emit(ThingEvent.PROPERTY_READ, result)
        return result

    async def _with_retry(
        self, name: str, request: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Run ``request`` with exponential backoff on transport failures."""
        attempts = self._config.retry_attempts
        attempt = 0
        while True:
            try:
                return await self._timed(request())
            except DecodeFailure:
                raise
            except TransportFailure as err:
                if attempt + 1 >= attempts:
                    raise
                delay = self._config.backoff_delay(attempt)
                attempt += 1
                _LOGGER.warning(
                    "[%s] %s attempt %d/%d failed (%s), retrying in %.2fs",
                    self.thing_id,
                    name,
                    attempt,
                    attempts,
                    err,
                    delay,
                )
                await asyncio.sleep(delay)

    async def _timed(self, request: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(request, timeout=self._config.timeout)
        except TimeoutError as err:
            raise TransportTimeout(
                f"Request timed out after {self._config.timeout}s"
            ) from err

    def _property(self, name: str) -> PropertyDescriptor:
        descriptor = self._document.properties.get(name)
        if descriptor is None:
            raise PropertyNotFound(f"Property not found: {name}")
        return descriptor

    def _form(self, descriptor: Any, operation: Operation) -> Form:
        form = resolve_form(descriptor, operation)
        href = resolve_href(
            self._document.base or self._config.base_url,
            self._document_url,
            form.href,
        )
        return dataclasses.replace(form, href=href)

    def _source(self, name: str) -> str:
        return f"{self.thing_id}.{name}"

    @staticmethod
    def _latency(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    # -------------------------------------------------------------------------
    # Internal: Observation
    # -------------------------------------------------------------------------

    def _track(self, unsubscribe: Unsubscribe) -> Unsubscribe:
        self._observation_counter += 1
        key = self._observation_counter
        self._observations[key] = unsubscribe

        def tracked() -> None:
            if self._observations.pop(key, None) is not None:
                unsubscribe()

        return tracked

    async def _try_native(
        self,
        name: str,
        descriptor: Any,
        operation: Operation,
        callback: ResultCallback,
        ok_event: ThingEvent,
        error_event: ThingEvent,
    ) -> Unsubscribe | None:
        """Start a push subscription, or return None to fall back to polling."""
        try:
            form = self._form(descriptor, operation)
        except WotClientError as err:
            _LOGGER.debug("[%s] No push form for %s: %s", self.thing_id, name, err)
            return None
        if not self._transport.supports_push(form):
            return None

        source = self._source(name)
        active = True
        meta = {"operation": "observe", "method": "native"}

        def on_value(value: Any) -> None:
            if not active:
                return
            self._deliver(callback, OperationResult.success(value, source, **meta), ok_event)

        def on_error(err: TransportFailure) -> None:
            if not active:
                return
            self._deliver(callback, OperationResult.failure(err, source, **meta), error_event)

        try:
            transport_unsubscribe = await self._transport.subscribe(form, on_value, on_error)
        except WotClientError as err:
            _LOGGER.warning(
                "[%s] Native observation of %s failed, falling back to polling: %s",
                self.thing_id,
                name,
                err,
            )
            return None

        _LOGGER.info("[%s] Started native observation for %s", self.thing_id, name)

        def unsubscribe() -> None:
            nonlocal active
            active = False
            transport_unsubscribe()

        return unsubscribe

    def _start_polling(
        self,
        name: str,
        fetch: Callable[[], Awaitable[OperationResult]],
        callback: ResultCallback,
        interval: float,
        ok_event: ThingEvent,
        error_event: ThingEvent,
    ) -> Unsubscribe:
        stopped = False
        last: list[Any] = []

        async def poll() -> None:
            while not stopped:
                result = await fetch()
                if stopped:
                    return
                result = result.with_meta(operation="observe", method="polling")
                if result.ok:
                    if last and last[0] != result.payload:
                        result = result.with_prev(last[0])
                    last[:] = [result.payload]
                    self._deliver(callback, result, ok_event)
                else:
                    _LOGGER.debug(
                        "[%s] Polling error for %s: %s",
                        self.thing_id,
                        name,
                        result.error.message if result.error else "unknown",
                    )
                    self._deliver(callback, result, error_event)
                await asyncio.sleep(interval)

        task = asyncio.create_task(poll())

        def unsubscribe() -> None:
            nonlocal stopped
            if stopped:
                return
            stopped = True
            task.cancel()
            _LOGGER.debug("[%s] Stopped observation for %s", self.thing_id, name)

        return unsubscribe

    def _deliver(
        self, callback: ResultCallback, result: OperationResult, event: ThingEvent
    ) -> None:
        try:
            callback(result)
        except Exception:
            _LOGGER.exception(
                "[%s] Observation callback for %s failed", self.thing_id, result.source
            )
        self._emit(event, result)
