"""Configuration for Thing clients, the sync engine and declarative bindings.

Configuration is plain dataclasses with defaults. A YAML file may supply any
subset of them:

    client:
      transport: native
      timeout: 5.0
      retry_attempts: 3
      poll_interval: 2.0
    sync:
      success_clear_delay: 1.2
      error_clear_delay: 3.0
    bindings:
      lamp_switch:
        thingId: lamp
        property: enabled
        target: lamp-toggle
        twoWay: true
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

TRANSPORT_KINDS: tuple[str, ...] = ("http", "native")


@dataclass
class ClientConfig:
    """Configuration for ThingClient and its transport.

    Attributes:
        transport: "http" (fetch + polling) or "native" (adds WebSocket push)
        base_url: Fallback base for relative hrefs when a TD declares none
        timeout: Per-attempt request timeout (seconds)
        retry_attempts: Total attempts for read/write/invoke
        retry_base_delay: First backoff delay (seconds), doubled per attempt
        retry_max_delay: Backoff cap (seconds)
        poll_interval: Default polling interval for observation (seconds)
        ws_ping_interval: WebSocket keepalive ping interval (seconds)
    """

    transport: str = "http"
    base_url: str | None = None
    timeout: float = 5.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 5.0
    poll_interval: float = 3.0
    ws_ping_interval: int | None = 20

    def __post_init__(self) -> None:
        if self.transport not in TRANSPORT_KINDS:
            raise ConfigError(
                f"Unknown transport '{self.transport}', expected one of {TRANSPORT_KINDS}"
            )
        if self.retry_attempts < 1:
            raise ConfigError("retry_attempts must be at least 1")
        if self.timeout <= 0 or self.poll_interval <= 0:
            raise ConfigError("timeout and poll_interval must be positive")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConfigError("Retry delays must not be negative")

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the zero-based ``attempt`` failed."""
        return min(self.retry_base_delay * (2**attempt), self.retry_max_delay)


@dataclass
class SyncConfig:
    """Status display delays for the optimistic-update state machine.

    Attributes:
        success_clear_delay: Seconds before success returns to idle
        error_clear_delay: Seconds before error returns to idle
    """

    success_clear_delay: float = 1.2
    error_clear_delay: float = 3.0

    def __post_init__(self) -> None:
        if self.success_clear_delay < 0 or self.error_clear_delay < 0:
            raise ConfigError("Status clear delays must not be negative")


@dataclass
class AppConfig:
    """Everything a configuration file can carry."""

    client: ClientConfig = field(default_factory=ClientConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    bindings: dict[str, dict[str, Any]] = field(default_factory=lambda: {})


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dictionary."""
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise ConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def _build(cls: type, section: Any, name: str) -> Any:
    if section is None:
        return cls()
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {sorted(unknown)}")
    try:
        return cls(**section)
    except TypeError as err:
        raise ConfigError(f"Invalid '{name}' section: {err}") from err


def load_config(path: Path | str) -> AppConfig:
    """Load client, sync and binding configuration from a YAML file.

    Raises:
        ConfigError: If the file is missing or holds invalid values.
    """
    data = _load_yaml(Path(path))
    bindings = data.get("bindings") or {}
    if not isinstance(bindings, dict):
        raise ConfigError("Section 'bindings' must be a mapping")
    return AppConfig(
        client=_build(ClientConfig, data.get("client"), "client"),
        sync=_build(SyncConfig, data.get("sync"), "sync"),
        bindings=bindings,
    )


def load_bindings(path: Path | str) -> dict[str, dict[str, Any]]:
    """Load only the ``bindings`` section of a YAML file."""
    return load_config(path).bindings
