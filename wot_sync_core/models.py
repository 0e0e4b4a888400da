"""Thing Description model and the unified operation result.

Descriptors are parsed once from the TD wire format and never edited in
place; a changed document is represented by a new ``ThingDescription``.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from .errors import (
    InvalidDocument,
    TransportFailure,
    TransportResponseError,
    WotClientError,
)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Operation(str, Enum):
    """Operation tags used in TD forms."""

    READ_PROPERTY = "readproperty"
    WRITE_PROPERTY = "writeproperty"
    OBSERVE_PROPERTY = "observeproperty"
    INVOKE_ACTION = "invokeaction"
    SUBSCRIBE_EVENT = "subscribeevent"


class AccessMode(str, Enum):
    """Access mode derived from a property descriptor."""

    READ_ONLY = "read-only"
    WRITE_ONLY = "write-only"
    READ_WRITE = "readwrite"


@dataclass(frozen=True)
class Form:
    """Concrete endpoint for one or more operations on an interaction."""

    href: str
    method: str | None = None
    content_type: str | None = None
    ops: frozenset[str] = frozenset()
    subprotocol: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Form:
        """Build a form from its TD wire representation."""
        href = data.get("href")
        if not isinstance(href, str) or not href:
            raise InvalidDocument("Form is missing an href")

        op = data.get("op")
        if isinstance(op, str):
            ops = frozenset({op})
        elif isinstance(op, list | tuple):
            ops = frozenset(str(o) for o in op)
        else:
            ops = frozenset()

        method = data.get("htv:methodName") or data.get("methodName") or data.get("method")
        return cls(
            href=href,
            method=method.upper() if isinstance(method, str) else None,
            content_type=data.get("contentType"),
            ops=ops,
            subprotocol=data.get("subprotocol"),
        )

    def supports(self, operation: Operation | str) -> bool:
        """Return True if the form is explicitly tagged with ``operation``."""
        return str(getattr(operation, "value", operation)) in self.ops


def _parse_forms(name: str, data: Mapping[str, Any]) -> tuple[Form, ...]:
    forms = data.get("forms") or []
    if not isinstance(forms, list):
        raise InvalidDocument(f"Forms of '{name}' must be a list")
    return tuple(Form.from_dict(f) for f in forms)


@dataclass(frozen=True)
class PropertyDescriptor:
    """Property affordance of a Thing.

    ``observable`` stays ``None`` when the TD does not mention it.
    """

    name: str
    read_only: bool = False
    write_only: bool = False
    observable: bool | None = None
    forms: tuple[Form, ...] = ()
    title: str | None = None
    type: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> PropertyDescriptor:
        observable = data.get("observable")
        return cls(
            name=name,
            read_only=bool(data.get("readOnly", False)),
            write_only=bool(data.get("writeOnly", False)),
            observable=bool(observable) if observable is not None else None,
            forms=_parse_forms(name, data),
            title=data.get("title"),
            type=data.get("type"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class ActionDescriptor:
    """Action affordance of a Thing."""

    name: str
    forms: tuple[Form, ...] = ()
    title: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> ActionDescriptor:
        return cls(
            name=name,
            forms=_parse_forms(name, data),
            title=data.get("title"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class EventDescriptor:
    """Event affordance of a Thing."""

    name: str
    forms: tuple[Form, ...] = ()
    title: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> EventDescriptor:
        return cls(
            name=name,
            forms=_parse_forms(name, data),
            title=data.get("title"),
            description=data.get("description"),
        )


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, Mapping):
        raise InvalidDocument(f"'{key}' must be an object")
    for name, entry in section.items():
        if not isinstance(entry, Mapping):
            raise InvalidDocument(f"'{key}.{name}' must be an object")
    return section


@dataclass(frozen=True, eq=False)
class ThingDescription:
    """Immutable, parsed Thing Description.

    Attributes:
        id: Thing identifier (``id``, ``@id`` or the id supplied at load time).
        title: Human readable title.
        base: Declared base URL for relative hrefs, if any.
        properties: Read-only mapping of property descriptors.
        actions: Read-only mapping of action descriptors.
        events: Read-only mapping of event descriptors.
        raw: The wire document the description was parsed from.
    """

    id: str
    title: str
    base: str | None = None
    properties: Mapping[str, PropertyDescriptor] = field(
        default_factory=lambda: MappingProxyType({})
    )
    actions: Mapping[str, ActionDescriptor] = field(
        default_factory=lambda: MappingProxyType({})
    )
    events: Mapping[str, EventDescriptor] = field(
        default_factory=lambda: MappingProxyType({})
    )
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], *, thing_id: str | None = None
    ) -> ThingDescription:
        """Parse a TD wire document.

        Raises:
            InvalidDocument: If the title or id is missing, or an interaction
                is malformed.
        """
        if not isinstance(data, Mapping):
            raise InvalidDocument("Thing Description must be a JSON object")

        title = data.get("title")
        if not isinstance(title, str) or not title:
            raise InvalidDocument("Thing Description has no title")

        doc_id = thing_id or data.get("id") or data.get("@id")
        if not isinstance(doc_id, str) or not doc_id:
            raise InvalidDocument(f"Thing Description '{title}' has no id")

        base = data.get("base")
        return cls(
            id=doc_id,
            title=title,
            base=base if isinstance(base, str) and base else None,
            properties=MappingProxyType(
                {
                    name: PropertyDescriptor.from_dict(name, entry)
                    for name, entry in _section(data, "properties").items()
                }
            ),
            actions=MappingProxyType(
                {
                    name: ActionDescriptor.from_dict(name, entry)
                    for name, entry in _section(data, "actions").items()
                }
            ),
            events=MappingProxyType(
                {
                    name: EventDescriptor.from_dict(name, entry)
                    for name, entry in _section(data, "events").items()
                }
            ),
            raw=MappingProxyType(dict(data)),
        )


@dataclass(frozen=True)
class Capability:
    """What a client may do with a property."""

    can_read: bool
    can_write: bool
    can_observe: bool
    mode: AccessMode


def capability_of(descriptor: PropertyDescriptor) -> Capability:
    """Derive the capability of a property descriptor."""
    can_read = not descriptor.write_only
    can_write = not descriptor.read_only
    can_observe = descriptor.observable is not False and can_read

    if not can_write:
        mode = AccessMode.READ_ONLY
    elif not can_read:
        mode = AccessMode.WRITE_ONLY
    else:
        mode = AccessMode.READ_WRITE

    return Capability(
        can_read=can_read,
        can_write=can_write,
        can_observe=can_observe,
        mode=mode,
    )


@dataclass(frozen=True)
class ErrorInfo:
    """Failure details carried by an OperationResult."""

    code: str
    message: str
    status: int | None = None

    @classmethod
    def from_exception(cls, err: BaseException) -> ErrorInfo:
        if isinstance(err, WotClientError):
            return cls(
                code=err.code,
                message=str(err) or err.code,
                status=getattr(err, "status", None),
            )
        return cls(code="UNEXPECTED", message=str(err) or type(err).__name__)

    def to_exception(self) -> WotClientError:
        """Rebuild a typed error carrying this code, message and status."""
        error_cls = _error_class(self.code)
        if issubclass(error_cls, TransportResponseError):
            return error_cls(self.status or 500, self.message)
        if issubclass(error_cls, TransportFailure):
            return error_cls(self.message, self.status)
        return error_cls(self.message)


def _error_class(code: str) -> type[WotClientError]:
    pending: list[type[WotClientError]] = [WotClientError]
    while pending:
        candidate = pending.pop()
        if candidate.code == code:
            return candidate
        pending.extend(candidate.__subclasses__())
    return WotClientError


@dataclass(frozen=True)
class OperationResult:
    """Unified message produced by every read, write, observe and invoke.

    ``prev`` is only meaningful when the result represents a change.
    """

    payload: Any
    ok: bool
    source: str
    timestamp: int = field(default_factory=now_ms)
    prev: Any = None
    error: ErrorInfo | None = None
    meta: Mapping[str, Any] = field(default_factory=lambda: {})

    @classmethod
    def success(
        cls,
        payload: Any,
        source: str,
        *,
        prev: Any = None,
        **meta: Any,
    ) -> OperationResult:
        return cls(payload=payload, ok=True, source=source, prev=prev, meta=meta)

    @classmethod
    def failure(
        cls,
        err: BaseException,
        source: str,
        *,
        payload: Any = None,
        **meta: Any,
    ) -> OperationResult:
        return cls(
            payload=payload,
            ok=False,
            source=source,
            error=ErrorInfo.from_exception(err),
            meta=meta,
        )

    def with_meta(self, **meta: Any) -> OperationResult:
        """Return a copy with extra metadata merged in."""
        return OperationResult(
            payload=self.payload,
            ok=self.ok,
            source=self.source,
            timestamp=self.timestamp,
            prev=self.prev,
            error=self.error,
            meta={**self.meta, **meta},
        )

    def with_prev(self, prev: Any) -> OperationResult:
        return OperationResult(
            payload=self.payload,
            ok=self.ok,
            source=self.source,
            timestamp=self.timestamp,
            prev=prev,
            error=self.error,
            meta=self.meta,
        )
