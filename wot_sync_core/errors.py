"""Error types for Thing client, transport and binding failures."""

from __future__ import annotations


class WotClientError(Exception):
    """Base error for Thing interaction failures."""

    code = "WOT_ERROR"


class InvalidDocument(WotClientError):
    """Thing Description is missing its structural minimum."""

    code = "INVALID_DOCUMENT"


class ThingNotFound(WotClientError):
    """No Thing is registered under the requested id."""

    code = "THING_NOT_FOUND"


class FormNotFound(WotClientError):
    """Interaction declares no form usable for the requested operation."""

    code = "FORM_NOT_FOUND"


class PropertyNotFound(WotClientError):
    """Property is not declared by the Thing Description."""

    code = "PROPERTY_NOT_FOUND"


class ReadOnlyProperty(WotClientError):
    """Write attempted on a read-only property."""

    code = "READ_ONLY_PROPERTY"


class NotObservable(WotClientError):
    """Observation attempted on a property that forbids it."""

    code = "NOT_OBSERVABLE"


class ActionNotFound(WotClientError):
    """Action is not declared by the Thing Description."""

    code = "ACTION_NOT_FOUND"


class EventNotFound(WotClientError):
    """Event is not declared by the Thing Description."""

    code = "EVENT_NOT_FOUND"


class TransportFailure(WotClientError):
    """Request or subscription against a form failed.

    ``status`` carries an HTTP-status-like code even for non-HTTP failures.
    """

    code = "TRANSPORT_FAILURE"
    default_status = 500

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status if status is not None else self.default_status


class TransportTimeout(TransportFailure):
    """Timeout while communicating with the Thing."""

    code = "TRANSPORT_TIMEOUT"
    default_status = 408


class TransportConnectionError(TransportFailure):
    """Network connection to the Thing failed."""

    code = "TRANSPORT_CONNECTION"
    default_status = 503


class TransportHandshakeError(TransportFailure):
    """WebSocket handshake failed."""

    code = "TRANSPORT_HANDSHAKE"
    default_status = 502


class TransportResponseError(TransportFailure):
    """Non-2xx response from the Thing."""

    code = "TRANSPORT_RESPONSE"

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message, status)


class SubscriptionUnsupported(TransportFailure):
    """Transport cannot push updates for the given form."""

    code = "SUBSCRIPTION_UNSUPPORTED"
    default_status = 501


class DecodeFailure(TransportFailure):
    """Response body could not be decoded."""

    code = "DECODE_FAILURE"
    default_status = 502


class ValidationFailed(WotClientError):
    """Outgoing value rejected by a binding's validate hook."""

    code = "VALIDATION_FAILED"


class BindingConfigError(WotClientError):
    """Binding could not be set up from its configuration."""

    code = "BINDING_CONFIG"


class ConfigError(WotClientError):
    """Configuration file or values are invalid."""

    code = "CONFIG_ERROR"
