"""Declarative bindings between Thing properties and UI elements.

A binding observes a property and mirrors each value onto an element
attribute. Two-way bindings also listen for user changes on the element and
write them back through the SyncEngine, so declaratively bound controls get
the same optimistic update and rollback behaviour as hand-wired ones.

Declarative syntax:

    <ui-toggle data-wot-bind="lamp.enabled" data-wot-two-way></ui-toggle>
    <span data-wot-bind='{"thingId": "lamp", "property": "power",
                          "targetProperty": "text_content"}'
          data-wot-interval="2000"></span>
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import load_bindings
from .directory import ThingDirectory
from .element import UiElement, UiEvent
from .errors import (
    BindingConfigError,
    NotObservable,
    ValidationFailed,
    WotClientError,
)
from .models import OperationResult
from .sync_engine import (
    Control,
    OperationStatus,
    RetryOptions,
    SetValueOptions,
    SyncEngine,
)
from .transport.base import Unsubscribe

_LOGGER = logging.getLogger(__name__)

BIND_ATTRIBUTE = "data-wot-bind"
TWO_WAY_ATTRIBUTE = "data-wot-two-way"
INTERVAL_ATTRIBUTE = "data-wot-interval"

TEXT_CONTENT = "text_content"
ATTRIBUTE_PREFIX = "attr:"

Transform = Callable[[Any], Any]
Validate = Callable[[Any], "bool | str"]
ErrorHandler = Callable[[Exception, "BindingRecord"], None]

# Wire (camelCase) binding keys and their BindingConfig fields
_CONFIG_KEYS: dict[str, str] = {
    "thingId": "thing_id",
    "property": "property",
    "target": "target",
    "targetProperty": "target_property",
    "twoWay": "two_way",
    "observeInterval": "observe_interval",
    "updateEvent": "update_event",
    "optimistic": "optimistic",
    "autoRetry": "auto_retry",
}


@dataclass
class BindingConfig:
    """What to bind and how.

    Attributes:
        thing_id: Id of a Thing known to the ThingDirectory
        property: Property name on that Thing
        target: Element, or element id resolved against the binder's root
        target_property: ``value`` or another element property,
            ``text_content``, or ``attr:<name>``
        transform_in: Applied to every incoming value before display
        transform_out: Applied to user values before they are written
        two_way: Write user changes back to the Thing
        validate: Returns True, or False/a message to reject a user value
        observe_interval: Polling interval (seconds) when polling is used
        update_event: Element event that signals a user change
        on_error: Receives failures of this binding
        optimistic: Show user values before the write settles
        auto_retry: Retry budget for failed writes
    """

    thing_id: str
    property: str
    target: UiElement | str
    target_property: str = "value"
    transform_in: Transform | None = None
    transform_out: Transform | None = None
    two_way: bool = False
    validate: Validate | None = None
    observe_interval: float | None = None
    update_event: str | None = None
    on_error: ErrorHandler | None = None
    optimistic: bool = True
    auto_retry: RetryOptions | None = None

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], *, target: UiElement | str | None = None
    ) -> BindingConfig:
        """Build a config from its wire form.

        ``observeInterval`` and ``autoRetry.delay`` are milliseconds.

        Raises:
            BindingConfigError: On unknown keys or missing/invalid values.
        """
        unknown = set(data) - set(_CONFIG_KEYS)
        if unknown:
            raise BindingConfigError(f"Unknown binding keys: {sorted(unknown)}")

        thing_id = data.get("thingId")
        name = data.get("property")
        if not isinstance(thing_id, str) or not thing_id:
            raise BindingConfigError("Binding requires a 'thingId'")
        if not isinstance(name, str) or not name:
            raise BindingConfigError("Binding requires a 'property'")

        bound_target = target if target is not None else data.get("target")
        if not isinstance(bound_target, UiElement | str) or not bound_target:
            raise BindingConfigError(f"Binding {thing_id}.{name} requires a 'target'")

        interval = data.get("observeInterval")
        return cls(
            thing_id=thing_id,
            property=name,
            target=bound_target,
            target_property=str(data.get("targetProperty") or "value"),
            two_way=bool(data.get("twoWay", False)),
            observe_interval=_ms_to_seconds(interval, "observeInterval")
            if interval is not None
            else None,
            update_event=data.get("updateEvent"),
            optimistic=bool(data.get("optimistic", True)),
            auto_retry=_parse_retry(data.get("autoRetry")),
        )


def _ms_to_seconds(value: Any, key: str) -> float:
    try:
        millis = float(value)
    except (TypeError, ValueError) as err:
        raise BindingConfigError(f"'{key}' must be a number of milliseconds") from err
    if millis < 0:
        raise BindingConfigError(f"'{key}' must not be negative")
    return millis / 1000


def _parse_retry(data: Any) -> RetryOptions | None:
    if data is None:
        return None
    if not isinstance(data, Mapping):
        raise BindingConfigError("'autoRetry' must be an object")
    attempts = data.get("attempts", 1)
    if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 0:
        raise BindingConfigError("'autoRetry.attempts' must be a non-negative integer")
    return RetryOptions(
        attempts=attempts,
        delay=_ms_to_seconds(data.get("delay", 1000), "autoRetry.delay"),
    )


# -----------------------------------------------------------------------------
# Element access
# -----------------------------------------------------------------------------


def coerce_value(raw: str | None) -> Any:
    """Interpret a string attribute as bool, int or float where it parses."""
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for convert in (int, float):
        try:
            return convert(raw)
        except ValueError:
            continue
    return raw


def read_target(element: UiElement, target_property: str) -> Any:
    """Read the bound attribute of ``element``."""
    if target_property == TEXT_CONTENT:
        return element.text_content
    if target_property.startswith(ATTRIBUTE_PREFIX):
        return coerce_value(element.get_attribute(target_property[len(ATTRIBUTE_PREFIX):]))
    return element.get_property(target_property)


def write_target(element: UiElement, target_property: str, value: Any) -> None:
    """Write ``value`` to the bound attribute of ``element`` without events."""
    if target_property == TEXT_CONTENT:
        element.text_content = "" if value is None else str(value)
    elif target_property.startswith(ATTRIBUTE_PREFIX):
        name = target_property[len(ATTRIBUTE_PREFIX):]
        if value is None:
            element.remove_attribute(name)
        elif isinstance(value, bool):
            element.set_attribute(name, "true" if value else "false")
        else:
            element.set_attribute(name, str(value))
    else:
        element.set_property(target_property, value)


def default_update_event(element: UiElement) -> str:
    """Event that signals a user change on ``element``."""
    if element.tag == "input":
        return "change" if element.input_type in ("checkbox", "radio") else "input"
    if element.tag in ("select", "textarea"):
        return "change"
    if element.is_custom:
        return "uiChange"
    return "input"


class ElementControl(Control):
    """Control whose display value is an element attribute.

    The last value the engine applied is tracked separately from the element,
    so a rejected user edit can be restored. Once ``detached`` is set the
    element is left alone.
    """

    def __init__(self, source: str, element: UiElement, target_property: str) -> None:
        super().__init__(source, read_target(element, target_property))
        self.element = element
        self.target_property = target_property
        self.detached = False

    def update_value(self, value: Any) -> None:
        super().update_value(value)
        if not self.detached:
            write_target(self.element, self.target_property, value)

    def read_element(self) -> Any:
        return read_target(self.element, self.target_property)

    def restore(self) -> None:
        """Put the last applied value back onto the element."""
        if self.detached:
            return
        write_target(self.element, self.target_property, self.current_value())


@dataclass
class BindingRecord:
    """A live binding owned by one Binder."""

    id: str
    thing_id: str
    property_name: str
    target: UiElement
    target_attribute: str
    control: ElementControl
    generation: int
    transform_in: Transform | None = None
    transform_out: Transform | None = None
    two_way: bool = False
    validate: Validate | None = None
    observe_interval: float | None = None
    update_event: str | None = None
    on_error: ErrorHandler | None = None
    optimistic: bool = True
    auto_retry: RetryOptions | None = None
    unsubscribe: Unsubscribe | None = None
    listener: Callable[[UiEvent], None] | None = None
    listener_event: str | None = None


def parse_binding_attribute(element: UiElement) -> BindingConfig:
    """Parse the ``data-wot-bind`` attribute and its modifiers on ``element``.

    Raises:
        BindingConfigError: If the attribute is missing or malformed.
    """
    raw = (element.get_attribute(BIND_ATTRIBUTE) or "").strip()
    if not raw:
        raise BindingConfigError(f"{element!r} has no {BIND_ATTRIBUTE} attribute")

    if raw.startswith("{"):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as err:
            raise BindingConfigError(f"Invalid binding JSON {raw!r}: {err}") from err
        if not isinstance(data, dict):
            raise BindingConfigError(f"Binding JSON must be an object: {raw!r}")
    else:
        thing_id, _, name = raw.rpartition(".")
        if not thing_id or not name:
            raise BindingConfigError(
                f"Invalid binding {raw!r}, expected 'thingId.propertyName'"
            )
        data = {"thingId": thing_id, "property": name}

    if "twoWay" not in data and element.has_attribute(TWO_WAY_ATTRIBUTE):
        data["twoWay"] = element.get_attribute(TWO_WAY_ATTRIBUTE) != "false"
    interval = element.get_attribute(INTERVAL_ATTRIBUTE)
    if "observeInterval" not in data and interval:
        try:
            data["observeInterval"] = int(interval)
        except ValueError as err:
            raise BindingConfigError(
                f"Invalid {INTERVAL_ATTRIBUTE} {interval!r} on {element!r}"
            ) from err

    return BindingConfig.from_dict(data, target=element)


class Binder:
    """Registry of bindings between Thing properties and elements.

    Usage:
        binder = Binder(directory, root=page)
        binding_id = await binder.bind(
            BindingConfig(thing_id="lamp", property="enabled",
                          target="lamp-toggle", two_way=True)
        )
        binder.unbind(binding_id)
    """

    def __init__(
        self,
        directory: ThingDirectory,
        engine: SyncEngine | None = None,
        *,
        root: UiElement | None = None,
        default_error_handler: ErrorHandler | None = None,
    ) -> None:
        self._directory = directory
        self._engine = engine or SyncEngine()
        self._root = root
        self._default_error_handler = default_error_handler
        self._records: dict[str, BindingRecord] = {}
        self._counter = 0
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def bind(self, config: BindingConfig) -> str:
        """Create a binding and return its id.

        Raises:
            BindingConfigError: If the target element cannot be resolved.
            ThingNotFound: If the Thing is not in the directory.
            PropertyNotFound: If the Thing does not declare the property.
        """
        element = self._resolve_target(config.target)
        client = self._directory.get(config.thing_id)
        capability = client.capability(config.property)

        existing = self._find(element, config.thing_id, config.property)
        if existing is not None:
            _LOGGER.debug("[%s] Replacing binding on %r", existing.id, element)
            self.unbind(existing.id)

        self._counter += 1
        self._generation += 1
        binding_id = f"binding_{self._counter}"
        generation = self._generation
        record = BindingRecord(
            id=binding_id,
            thing_id=config.thing_id,
            property_name=config.property,
            target=element,
            target_attribute=config.target_property,
            control=ElementControl(
                f"{config.thing_id}.{config.property}", element, config.target_property
            ),
            generation=generation,
            transform_in=config.transform_in,
            transform_out=config.transform_out,
            two_way=config.two_way,
            validate=config.validate,
            observe_interval=config.observe_interval,
            update_event=config.update_event,
            on_error=config.on_error,
            optimistic=config.optimistic,
            auto_retry=config.auto_retry,
        )
        self._records[binding_id] = record

        if capability.can_observe:
            try:
                unsubscribe = await client.observe_property(
                    config.property,
                    lambda result: self.handle_property_update(record, generation, result),
                    interval=config.observe_interval,
                )
            except NotObservable:
                unsubscribe = None
            except WotClientError:
                self._records.pop(binding_id, None)
                raise
            if not self._is_current(record, generation):
                # Unbound while the subscription was being set up
                if unsubscribe is not None:
                    unsubscribe()
                return binding_id
            record.unsubscribe = unsubscribe

        if config.two_way:
            self._attach_listener(record)

        _LOGGER.info(
            "[%s] Bound %s.%s to %r (%s)",
            binding_id,
            config.thing_id,
            config.property,
            element,
            "two-way" if config.two_way else "one-way",
        )

        if capability.can_read:
            result = await client.read_property(config.property)
            self.handle_property_update(record, generation, result)
        return binding_id

    def unbind(self, binding_id: str) -> bool:
        """Stop observation, detach listeners and forget the binding."""
        record = self._records.pop(binding_id, None)
        if record is None:
            return False

        if record.unsubscribe is not None:
            record.unsubscribe()
            record.unsubscribe = None
        if record.listener is not None and record.listener_event is not None:
            record.target.remove_event_listener(record.listener_event, record.listener)
            record.listener = None
        record.control.detached = True
        self._engine.cancel(record.control)
        _LOGGER.debug("[%s] Unbound", binding_id)
        return True

    def unbind_all(self) -> None:
        for binding_id in list(self._records):
            self.unbind(binding_id)

    def bindings(self) -> dict[str, BindingRecord]:
        return dict(self._records)

    def bindings_for_thing(self, thing_id: str) -> list[BindingRecord]:
        return [r for r in self._records.values() if r.thing_id == thing_id]

    def get_control(self, binding_id: str) -> ElementControl | None:
        record = self._records.get(binding_id)
        return record.control if record is not None else None

    async def bind_from_config(
        self, source: Mapping[str, Any] | Path | str
    ) -> dict[str, str]:
        """Create bindings from a mapping of name to config, or a YAML file.

        Entries that fail are logged and skipped.

        Returns:
            Mapping of entry name to binding id for the entries that bound
        """
        entries = load_bindings(source) if isinstance(source, Path | str) else source

        results: dict[str, str] = {}
        for key, entry in entries.items():
            try:
                config = entry if isinstance(entry, BindingConfig) else self._config_from(entry)
                results[key] = await self.bind(config)
            except WotClientError as err:
                _LOGGER.warning("Skipping binding '%s': %s", key, err)
        return results

    async def bind_from_attributes(self, root: UiElement | None = None) -> list[str]:
        """Bind every element under ``root`` carrying ``data-wot-bind``.

        Elements that fail to parse or bind are logged and skipped.
        """
        container = root or self._root
        if container is None:
            raise BindingConfigError("No root element to scan for bindings")

        binding_ids: list[str] = []
        for element in container.query_all_with_attribute(BIND_ATTRIBUTE):
            try:
                binding_ids.append(await self.bind(parse_binding_attribute(element)))
            except WotClientError as err:
                _LOGGER.warning("Skipping declarative binding on %r: %s", element, err)
        return binding_ids

    async def flush(self) -> None:
        """Wait for pending write-backs started by element events."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    def handle_property_update(
        self, record: BindingRecord, generation: int, result: OperationResult
    ) -> None:
        """Apply an observed or read result to the bound element.

        Results for a torn-down binding or an older generation are ignored.
        """
        if not self._is_current(record, generation):
            _LOGGER.debug("[%s] Discarding stale result from %s", record.id, result.source)
            return

        if not result.ok:
            self._report(
                record,
                result.error.to_exception()
                if result.error is not None
                else WotClientError(f"Update of {result.source} failed"),
            )
            return

        try:
            value = (
                record.transform_in(result.payload)
                if record.transform_in is not None
                else result.payload
            )
        except Exception as err:
            self._report(record, err)
            return

        self._engine.set_value_silent(record.control, value)

    # -------------------------------------------------------------------------
    # Two-way write-back
    # -------------------------------------------------------------------------

    def _attach_listener(self, record: BindingRecord) -> None:
        event_type = record.update_event or default_update_event(record.target)
        generation = record.generation

        def on_change(event: UiEvent) -> None:
            value = record.control.read_element()
            task = asyncio.create_task(self._push_change(record, generation, value))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        record.target.add_event_listener(event_type, on_change)
        record.listener = on_change
        record.listener_event = event_type

    async def _push_change(self, record: BindingRecord, generation: int, value: Any) -> None:
        if not self._is_current(record, generation):
            return
        control = record.control

        if record.validate is not None:
            try:
                verdict = record.validate(value)
            except Exception as err:
                verdict = str(err) or "Validation failed"
            if verdict is not True:
                message = verdict if isinstance(verdict, str) and verdict else "Validation failed"
                self._engine.set_status(control, OperationStatus.ERROR, message)
                control.restore()
                self._report(record, ValidationFailed(message))
                return

        try:
            outgoing = (
                record.transform_out(value) if record.transform_out is not None else value
            )
            client = self._directory.get(record.thing_id)
        except Exception as err:
            control.restore()
            self._report(record, err)
            return

        outcome: list[OperationResult] = []

        async def write() -> OperationResult:
            result = await client.write_property(record.property_name, outgoing)
            outcome.append(result)
            return result

        ok = await self._engine.set_value(
            control,
            value,
            SetValueOptions(
                write_operation=write,
                optimistic=record.optimistic,
                auto_retry=record.auto_retry,
            ),
        )
        if ok or not self._is_current(record, generation):
            return
        if not record.optimistic:
            control.restore()
        error = outcome[-1].error if outcome else None
        self._report(
            record,
            error.to_exception()
            if error is not None
            else WotClientError(control.state.last_error or "Write failed"),
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _is_current(self, record: BindingRecord, generation: int) -> bool:
        return record.generation == generation and self._records.get(record.id) is record

    def _find(self, element: UiElement, thing_id: str, name: str) -> BindingRecord | None:
        for record in self._records.values():
            if (
                record.target is element
                and record.thing_id == thing_id
                and record.property_name == name
            ):
                return record
        return None

    def _resolve_target(self, target: UiElement | str) -> UiElement:
        if isinstance(target, UiElement):
            return target
        element_id = target.removeprefix("#")
        element = self._root.get_element_by_id(element_id) if self._root else None
        if element is None:
            raise BindingConfigError(f"Target element not found: {target}")
        return element

    def _config_from(self, entry: Any) -> BindingConfig:
        if not isinstance(entry, Mapping):
            raise BindingConfigError(f"Binding entry must be a mapping, got {type(entry).__name__}")
        return BindingConfig.from_dict(entry)

    def _report(self, record: BindingRecord, err: Exception) -> None:
        handler = record.on_error or self._default_error_handler
        if handler is None:
            _LOGGER.warning("[%s] %s.%s: %s", record.id, record.thing_id, record.property_name, err)
            return
        try:
            handler(err, record)
        except Exception:
            _LOGGER.exception("[%s] Error handler failed", record.id)
