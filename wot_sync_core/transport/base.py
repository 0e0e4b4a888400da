"""Transport contract shared by every protocol binding."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Final

from ..errors import SubscriptionUnsupported, TransportFailure
from ..models import Form, Operation

Unsubscribe = Callable[[], None]
ValueCallback = Callable[[Any], None]
ErrorCallback = Callable[[TransportFailure], None]

# Sentinel for "no request body", distinct from a JSON null payload
NO_PAYLOAD: Final = object()


class TransportClient(ABC):
    """Performs single request/response or subscription cycles on a form.

    Implementations raise only ``TransportFailure`` subclasses across this
    boundary. Forms handed to a transport already carry absolute hrefs.
    """

    @abstractmethod
    async def request(
        self,
        form: Form,
        operation: Operation,
        payload: Any = NO_PAYLOAD,
    ) -> Any:
        """Perform a request and return the decoded response value."""

    @abstractmethod
    async def fetch_document(self, url: str) -> dict[str, Any]:
        """Fetch a Thing Description document."""

    def supports_push(self, form: Form) -> bool:
        """Return True if ``subscribe`` can deliver pushed values for ``form``."""
        return False

    async def subscribe(
        self,
        form: Form,
        on_value: ValueCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Start a push subscription and return its synchronous canceller."""
        raise SubscriptionUnsupported(f"Push subscription not supported for {form.href}")

    async def close(self) -> None:
        """Release connections owned by the transport."""
