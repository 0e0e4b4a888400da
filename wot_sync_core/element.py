"""Minimal in-memory UI element tree used as binding targets.

Mirrors the slice of DOM behaviour the binder relies on: string attributes,
typed properties, text content, event listeners and a child tree. Setting a
property never dispatches an event; only ``dispatch_event`` does.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UiEvent:
    """Event delivered to element listeners."""

    type: str
    target: UiElement
    detail: Any = None


EventHandler = Callable[[UiEvent], None]


class UiElement:
    """Element with attributes, properties, listeners and children."""

    def __init__(
        self,
        tag: str = "div",
        *,
        id: str | None = None,
        attributes: dict[str, str] | None = None,
        properties: dict[str, Any] | None = None,
        text_content: str = "",
    ) -> None:
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.properties: dict[str, Any] = dict(properties or {})
        self.text_content = text_content
        self.children: list[UiElement] = []
        self.parent: UiElement | None = None
        self._listeners: dict[str, list[EventHandler]] = {}
        if id is not None:
            self.attributes["id"] = id

    def __repr__(self) -> str:
        suffix = f"#{self.id}" if self.id else ""
        return f"<UiElement {self.tag}{suffix}>"

    @property
    def id(self) -> str | None:
        return self.attributes.get("id")

    @property
    def is_custom(self) -> bool:
        """Custom elements carry a hyphen in their tag name."""
        return "-" in self.tag

    @property
    def input_type(self) -> str:
        value = self.properties.get("type") or self.attributes.get("type") or "text"
        return str(value).lower()

    # Attributes and properties

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def get_property(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def set_property(self, name: str, value: Any) -> None:
        self.properties[name] = value

    # Events

    def add_event_listener(self, event_type: str, handler: EventHandler) -> None:
        self._listeners.setdefault(event_type, []).append(handler)

    def remove_event_listener(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch_event(self, event_type: str, detail: Any = None) -> UiEvent:
        """Invoke listeners registered for ``event_type`` on this element."""
        event = UiEvent(type=event_type, target=self, detail=detail)
        for handler in list(self._listeners.get(event_type, [])):
            handler(event)
        return event

    # Tree

    def append_child(self, child: UiElement) -> UiElement:
        child.parent = self
        self.children.append(child)
        return child

    def iter_descendants(self) -> Iterator[UiElement]:
        """Depth-first, document order, excluding ``self``."""
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def query_all_with_attribute(self, name: str) -> list[UiElement]:
        return [el for el in self.iter_descendants() if el.has_attribute(name)]

    def get_element_by_id(self, element_id: str) -> UiElement | None:
        if self.id == element_id:
            return self
        for el in self.iter_descendants():
            if el.id == element_id:
                return el
        return None
