"""Property synchronization and binding engine for Web of Things UIs."""

__version__ = "0.1.0"

from .binder import Binder, BindingConfig, BindingRecord, ElementControl
from .config import AppConfig, ClientConfig, SyncConfig, load_bindings, load_config
from .directory import ThingDirectory
from .element import UiElement, UiEvent
from .errors import (
    ActionNotFound,
    BindingConfigError,
    ConfigError,
    DecodeFailure,
    EventNotFound,
    FormNotFound,
    InvalidDocument,
    NotObservable,
    PropertyNotFound,
    ReadOnlyProperty,
    SubscriptionUnsupported,
    ThingNotFound,
    TransportConnectionError,
    TransportFailure,
    TransportHandshakeError,
    TransportResponseError,
    TransportTimeout,
    ValidationFailed,
    WotClientError,
)
from .forms import resolve_form, resolve_href
from .models import (
    AccessMode,
    Capability,
    ErrorInfo,
    Form,
    Operation,
    OperationResult,
    PropertyDescriptor,
    ThingDescription,
    capability_of,
)
from .sync_engine import (
    Control,
    OperationState,
    OperationStatus,
    RetryOptions,
    SetValueOptions,
    SyncEngine,
)
from .thing_client import ThingClient, ThingEvent
from .transport import HttpTransport, TransportClient, WebSocketTransport, create_transport

__all__ = [
    "AccessMode",
    "ActionNotFound",
    "AppConfig",
    "Binder",
    "BindingConfig",
    "BindingConfigError",
    "BindingRecord",
    "Capability",
    "ClientConfig",
    "ConfigError",
    "Control",
    "DecodeFailure",
    "ElementControl",
    "ErrorInfo",
    "EventNotFound",
    "Form",
    "FormNotFound",
    "HttpTransport",
    "InvalidDocument",
    "NotObservable",
    "Operation",
    "OperationResult",
    "OperationState",
    "OperationStatus",
    "PropertyDescriptor",
    "PropertyNotFound",
    "ReadOnlyProperty",
    "RetryOptions",
    "SetValueOptions",
    "SubscriptionUnsupported",
    "SyncConfig",
    "SyncEngine",
    "ThingClient",
    "ThingDescription",
    "ThingDirectory",
    "ThingEvent",
    "ThingNotFound",
    "TransportClient",
    "TransportConnectionError",
    "TransportFailure",
    "TransportHandshakeError",
    "TransportResponseError",
    "TransportTimeout",
    "UiElement",
    "UiEvent",
    "ValidationFailed",
    "WebSocketTransport",
    "WotClientError",
    "__version__",
    "capability_of",
    "create_transport",
    "load_bindings",
    "load_config",
    "resolve_form",
    "resolve_href",
]
