"""Tests for configuration dataclasses and YAML loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from wot_sync_core.config import (
    ClientConfig,
    SyncConfig,
    load_bindings,
    load_config,
)
from wot_sync_core.errors import ConfigError


class TestClientConfig:
    """Tests for ClientConfig defaults and validation."""

    def test_defaults(self) -> None:
        """Test documented defaults."""
        config = ClientConfig()
        assert config.transport == "http"
        assert config.timeout == 5.0
        assert config.retry_attempts == 3
        assert config.poll_interval == 3.0

    def test_backoff_doubles_and_caps(self) -> None:
        """Test exponential backoff is capped at retry_max_delay."""
        config = ClientConfig(retry_base_delay=1.0, retry_max_delay=5.0)
        assert [config.backoff_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"transport": "carrier-pigeon"},
            {"retry_attempts": 0},
            {"timeout": 0},
            {"poll_interval": -1},
            {"retry_base_delay": -0.5},
        ],
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        """Test invalid values raise ConfigError."""
        with pytest.raises(ConfigError):
            ClientConfig(**kwargs)


class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_defaults(self) -> None:
        """Test status display delays."""
        config = SyncConfig()
        assert config.success_clear_delay == 1.2
        assert config.error_clear_delay == 3.0

    def test_negative_delay(self) -> None:
        """Test negative delays are rejected."""
        with pytest.raises(ConfigError):
            SyncConfig(error_clear_delay=-1)


class TestLoadConfig:
    """Tests for load_config() and load_bindings()."""

    def test_full_file(self, tmp_path: Path) -> None:
        """Test all sections are loaded."""
        path = tmp_path / "wot.yaml"
        path.write_text(
            """
client:
  transport: native
  timeout: 2.5
  poll_interval: 1.0
sync:
  success_clear_delay: 0.5
bindings:
  lamp_switch:
    thingId: lamp
    property: enabled
    target: lamp-toggle
    twoWay: true
""",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.client.transport == "native"
        assert config.client.timeout == 2.5
        assert config.client.retry_attempts == 3
        assert config.sync.success_clear_delay == 0.5
        assert config.sync.error_clear_delay == 3.0
        assert config.bindings["lamp_switch"]["twoWay"] is True

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test an empty file yields default configuration."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        config = load_config(str(path))

        assert config.client == ClientConfig()
        assert config.bindings == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="File not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test malformed YAML raises ConfigError."""
        path = tmp_path / "bad.yaml"
        path.write_text("client: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_unknown_key(self, tmp_path: Path) -> None:
        """Test unknown keys in a section are rejected."""
        path = tmp_path / "unknown.yaml"
        path.write_text("client:\n  colour: blue\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="colour"):
            load_config(path)

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Test dataclass validation surfaces as ConfigError."""
        path = tmp_path / "invalid.yaml"
        path.write_text("client:\n  transport: smoke-signals\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Unknown transport"):
            load_config(path)

    def test_load_bindings(self, tmp_path: Path) -> None:
        """Test only the bindings section is returned."""
        path = tmp_path / "bindings.yaml"
        path.write_text(
            "bindings:\n  power:\n    thingId: lamp\n    property: power\n    target: meter\n",
            encoding="utf-8",
        )
        assert load_bindings(path) == {
            "power": {"thingId": "lamp", "property": "power", "target": "meter"}
        }
