"""Device handlers for configurable routers."""
from .base import NetworkDevice, DeviceConfig, ShellChannel
from .vyos import VyOSDevice, VyOSShellChannel

__all__ = [
    "NetworkDevice",
    "DeviceConfig",
    "ShellChannel",
    "VyOSDevice",
    "VyOSShellChannel",
    "create_device",
]

# Device type registry
DEVICE_TYPES = {
    "vyos": VyOSDevice,
}


def create_device(device_id: str, config: dict) -> NetworkDevice:
    """Factory function to create device instances."""
    device_type = config.get("type", "").lower()
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"Unknown device type: {device_type}")

    device_class = DEVICE_TYPES[device_type]
    return device_class(device_id, DeviceConfig(**config))
