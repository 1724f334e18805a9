"""Tests for device inventory management."""
import os
import tempfile

import pytest

from vyos_config_engine.config.inventory import DeviceInventory
from vyos_config_engine.devices import VyOSDevice


class TestDeviceInventory:
    """Tests for DeviceInventory class."""

    @pytest.fixture
    def temp_config(self):
        """Create a temporary config file for testing."""
        config_content = """
defaults:
  type: vyos
  username: vyos
  password_env: "TEST_PASSWORD"
  timeout: 30
  retries: 3

devices:
  edge-1:
    name: "Edge router"
    host: 192.0.2.1

  edge-2:
    host: 192.0.2.2
    port: 2222
    username: admin
    key_path: /home/ops/.ssh/id_ed25519

groups:
  edge:
    - edge-1
    - edge-2
  broken:
    - edge-9

engine:
  rollback_timeout_ms: 45000
  poll_interval: 0.1
"""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write(config_content)
            f.flush()
            yield f.name
        os.unlink(f.name)

    def test_load_config(self, temp_config):
        """Inventory loads config file correctly."""
        inv = DeviceInventory(temp_config)
        assert inv.get_device_ids() == ["edge-1", "edge-2"]

    def test_get_device_config(self, temp_config):
        """Can get raw device config with defaults merged."""
        inv = DeviceInventory(temp_config)
        config = inv.get_device_config("edge-1")
        assert config["type"] == "vyos"
        assert config["host"] == "192.0.2.1"
        assert config["username"] == "vyos"
        assert config["timeout"] == 30
        assert config["retries"] == 3

    def test_device_specific_overrides_defaults(self, temp_config):
        """Device-specific values override defaults."""
        inv = DeviceInventory(temp_config)
        config = inv.get_device_config("edge-2")
        assert config["username"] == "admin"
        assert config["port"] == 2222

    def test_name_defaults_to_id(self, temp_config):
        """Devices without a name are named after their ID."""
        inv = DeviceInventory(temp_config)
        assert inv.get_device_config("edge-2")["name"] == "edge-2"
        assert inv.get_device_config("edge-1")["name"] == "Edge router"

    def test_get_device_unknown(self, temp_config):
        """Unknown device raises KeyError."""
        inv = DeviceInventory(temp_config)
        with pytest.raises(KeyError) as exc_info:
            inv.get_device_config("nonexistent")
        assert "Unknown device" in str(exc_info.value)

    def test_get_device(self, temp_config, monkeypatch):
        """Can create device instances."""
        monkeypatch.setenv("TEST_PASSWORD", "secret")
        inv = DeviceInventory(temp_config)
        device = inv.get_device("edge-2")
        assert isinstance(device, VyOSDevice)
        assert device.device_id == "edge-2"
        assert device.config.key_path == "/home/ops/.ssh/id_ed25519"
        assert device.config.get_password() == "secret"
        assert device.is_connected is False

    def test_get_device_cached(self, temp_config):
        """Device instances are cached."""
        inv = DeviceInventory(temp_config)
        assert inv.get_device("edge-1") is inv.get_device("edge-1")

    def test_engine_settings(self, temp_config):
        """The engine block is exposed for executor settings."""
        inv = DeviceInventory(temp_config)
        assert inv.get_engine_settings() == {"rollback_timeout_ms": 45000, "poll_interval": 0.1}

    def test_get_group_members(self, temp_config):
        """Can get members of a group."""
        inv = DeviceInventory(temp_config)
        assert inv.get_group_members("edge") == ["edge-1", "edge-2"]

    def test_get_group_members_unknown(self, temp_config):
        """Unknown group raises KeyError."""
        inv = DeviceInventory(temp_config)
        with pytest.raises(KeyError):
            inv.get_group_members("nonexistent")

    def test_group_with_unknown_device_warns(self, temp_config, caplog):
        """Groups referencing unknown devices are logged, not fatal."""
        with caplog.at_level("WARNING"):
            DeviceInventory(temp_config)
        assert "edge-9" in caplog.text

    @pytest.mark.asyncio
    async def test_close_all(self, temp_config):
        """close_all drops cached devices."""
        inv = DeviceInventory(temp_config)
        inv.get_device("edge-1")
        await inv.close_all()
        assert inv._devices == {}

    def test_missing_config(self, tmp_path, monkeypatch):
        """No inventory anywhere raises FileNotFoundError."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        if os.path.exists("/etc/vyos-config-engine/devices.yaml"):
            pytest.skip("system inventory present")
        with pytest.raises(FileNotFoundError):
            DeviceInventory()
